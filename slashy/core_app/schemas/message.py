# slashy/core_app/schemas/message.py
from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class ChatRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    message: str = Field(..., min_length=1, description="User message text")
    chat_id: Optional[str] = Field(None, alias="chatId")
    guest_id: Optional[str] = Field(None, alias="guestId")
    user_id: Optional[str] = Field(None, alias="userId")
    integrations: List[str] = Field(default_factory=list, description="Integrations the user enabled for this turn")


class ChatResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    response: str
    chat_id: str = Field(..., alias="chatId")
    tools: List[str] = Field(default_factory=list)


class MessageOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    chat_id: str
    content: str
    role: Literal["user", "assistant"]
    created_at: datetime


class ChatOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    guest_id: Optional[str] = None
    user_id: Optional[str] = None
    title: str
    created_at: datetime
    updated_at: datetime


class ChatTitleUpdate(BaseModel):
    title: str = Field(..., min_length=1)
