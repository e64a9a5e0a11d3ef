from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from slashy.core_app.errors import ValidationError


class ConnectionState(str, Enum):
    NONE = "none"
    PENDING = "pending"
    COMPLETED = "completed"
    ERROR = "error"
    TIMED_OUT = "timed_out"
    ABANDONED = "abandoned"


class Owner(BaseModel):
    """Who a chat or connection belongs to: an anonymous guest or a registered account."""
    kind: Literal["guest", "user"]
    id: str

    @classmethod
    def from_ids(cls, guest_id: Optional[str] = None, user_id: Optional[str] = None) -> "Owner":
        if bool(guest_id) == bool(user_id):
            raise ValidationError("Exactly one of guestId or userId is required")
        if guest_id:
            return cls(kind="guest", id=guest_id)
        return cls(kind="user", id=user_id)


class ToolAction(BaseModel):
    name: str
    app_name: str = ""
    description: Optional[str] = None
    parameters: Dict[str, Any] = Field(default_factory=dict)

    def to_declaration(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description or f"Execute {self.name} action",
            "parameters": self.parameters or {"type": "object", "properties": {}},
        }


class InitiatedConnection(BaseModel):
    redirect_url: str
    connection_request_id: str


class ProviderConnectionStatus(BaseModel):
    status: str
    connection_id: Optional[str] = None

    @property
    def is_active(self) -> bool:
        return self.status == "ACTIVE"


class ConnectionStatusResult(BaseModel):
    state: ConnectionState
    connection_id: Optional[str] = None
    message: Optional[str] = None


class TurnResult(BaseModel):
    reply_text: str
    chat_id: str
    tool_names: List[str] = Field(default_factory=list)
