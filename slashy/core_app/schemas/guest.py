# slashy/core_app/schemas/guest.py
from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict


class GuestRequest(BaseModel):
    action: Literal["create", "get", "update_activity"]
    session_id: str
    name: Optional[str] = None


class GuestOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    session_id: str
    created_at: datetime
    last_active_at: datetime
