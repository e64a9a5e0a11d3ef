# slashy/core_app/schemas/connection.py
from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class AuthRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    action: Literal["initiate", "check_status", "list", "disconnect"]
    owner_id: Optional[str] = Field(None, alias="ownerId")
    user_id: Optional[str] = Field(None, alias="userId")
    integration_id: Optional[str] = Field(None, alias="integrationId")
    tool_name: Optional[str] = Field(None, alias="toolName")
    auth_config_id: Optional[str] = Field(None, alias="authConfigId")
    connection_request_id: Optional[str] = Field(None, alias="connectionRequestId")

    @property
    def integration(self) -> Optional[str]:
        return self.integration_id or self.tool_name

    @property
    def claimed_owner(self) -> Optional[str]:
        return self.owner_id or self.user_id


class InitiateResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    redirect_url: str = Field(..., alias="redirectUrl")
    connection_request_id: str = Field(..., alias="connectionRequestId")


class StatusResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    status: str
    connection_id: Optional[str] = Field(None, alias="connectionId")
    message: Optional[str] = None


class ConnectionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    integration_id: str = Field(..., alias="integrationId")
    status: str
    connection_request_id: str = Field(..., alias="connectionRequestId")
    connection_id: Optional[str] = Field(None, alias="connectionId")
    updated_at: Optional[datetime] = Field(None, alias="updatedAt")


class ConnectionListResponse(BaseModel):
    connections: List[ConnectionOut]


class SuccessResponse(BaseModel):
    success: bool = True
