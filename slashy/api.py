import os
from contextlib import asynccontextmanager
from typing import Dict, List, Optional

import uvicorn
from dotenv import load_dotenv
from fastapi import Depends, FastAPI, Query, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from slashy.core_app.config import Settings, get_settings
from slashy.core_app.database.session import get_db, init_db
from slashy.core_app.dependencies.auth import get_optional_account
from slashy.core_app.dependencies.services import get_chat_orchestrator, get_connection_lifecycle
from slashy.core_app.errors import NotFoundError, SlashyError, Unauthorized, ValidationError
from slashy.core_app.models.models import Owner
from slashy.core_app.schemas.connection import (
    AuthRequest, ConnectionListResponse, ConnectionOut, InitiateResponse, StatusResponse, SuccessResponse,
)
from slashy.core_app.schemas.guest import GuestOut, GuestRequest
from slashy.core_app.schemas.message import ChatOut, ChatRequest, ChatResponse, ChatTitleUpdate, MessageOut
from slashy.core_app.services import chat as chat_service
from slashy.core_app.services import guests as guest_service
from slashy.core_app.services.chat_turn import ChatTurnOrchestrator
from slashy.core_app.services.connection_lifecycle import ConnectionLifecycle
from slashy.core_app.tools.setup_logger import setup_logger

load_dotenv()

logger = setup_logger(__name__.upper())


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    yield


app = FastAPI(
    title="Slashy API",
    version="1.0.0",
    description="Chat with an assistant that can use the integrations the user has connected.",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(SlashyError)
async def slashy_error_handler(request: Request, exc: SlashyError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    details = "; ".join(
        f"{'.'.join(str(p) for p in err.get('loc', ()) if p != 'body')}: {err.get('msg')}"
        for err in exc.errors()
    )
    return JSONResponse(status_code=400, content={"error": "Bad request: invalid request body", "details": details})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled error on {request.url.path}: {exc}", exc_info=True)
    return JSONResponse(status_code=500, content={"error": str(exc) or "Internal server error",
                                                  "details": "Failed to process request"})


def authorize_owner(owner: Owner, account: Optional[Dict], settings: Settings, db: Session) -> Owner:
    """Guests must exist; in bearer mode a user owner must be the authenticated account."""
    if owner.kind == "guest":
        if guest_service.get_guest(db, owner.id) is None:
            raise NotFoundError(f"Guest not found: {owner.id}")
    elif settings.auth_mode == "bearer":
        if account is None or account["id"] != owner.id:
            raise Unauthorized("Unauthorized: Valid authentication required")
    return owner


def connection_owner(request: AuthRequest, account: Optional[Dict], settings: Settings) -> str:
    if settings.auth_mode == "bearer":
        if account is None:
            raise Unauthorized("Unauthorized: Valid authentication required")
        return account["id"]

    if not request.claimed_owner:
        raise ValidationError("Bad request: ownerId is required")
    return request.claimed_owner


def owned_chat(db: Session, chat_id: str, owner: Owner):
    chat = chat_service.get_chat(db, chat_id)
    if chat is None or not chat_service.chat_belongs_to(chat, owner):
        raise NotFoundError(f"Chat not found: {chat_id}")
    return chat


def query_owner(
        guest_id: Optional[str] = Query(None, alias="guestId"),
        user_id: Optional[str] = Query(None, alias="userId"),
        account: Optional[Dict] = Depends(get_optional_account),
        settings: Settings = Depends(get_settings),
        db: Session = Depends(get_db),
) -> Owner:
    return authorize_owner(Owner.from_ids(guest_id, user_id), account, settings, db)


@app.post("/chat", response_model=ChatResponse)
def chat(
        request: ChatRequest,
        account: Optional[Dict] = Depends(get_optional_account),
        settings: Settings = Depends(get_settings),
        db: Session = Depends(get_db),
        orchestrator: ChatTurnOrchestrator = Depends(get_chat_orchestrator),
):
    """
    Handles one chat turn: stores the user message, asks the model (with the
    tools of the connected integrations) and stores the reply.
    """
    owner = authorize_owner(Owner.from_ids(request.guest_id, request.user_id), account, settings, db)
    logger.info(f"Chat request: chat={request.chat_id} {owner.kind}={owner.id} integrations={request.integrations}")

    result = orchestrator.submit_turn(request.message, owner, request.chat_id, request.integrations)
    return ChatResponse(response=result.reply_text, chat_id=result.chat_id, tools=result.tool_names)


@app.post("/auth")
def auth(
        request: AuthRequest,
        account: Optional[Dict] = Depends(get_optional_account),
        settings: Settings = Depends(get_settings),
        lifecycle: ConnectionLifecycle = Depends(get_connection_lifecycle),
):
    """
    Integration authorization: initiate a connection, check its status,
    list the caller's connections or disconnect one.
    """
    owner_id = connection_owner(request, account, settings)
    logger.info(f"Composio auth request: action={request.action} integration={request.integration} "
                f"request={request.connection_request_id} owner={owner_id}")

    if request.action == "initiate":
        if not request.integration:
            raise ValidationError("Bad request: toolName is required for initiation")
        initiated = lifecycle.initiate(owner_id, request.integration, request.auth_config_id)
        return InitiateResponse(
            redirect_url=initiated.redirect_url,
            connection_request_id=initiated.connection_request_id,
        ).model_dump(by_alias=True)

    if request.action == "check_status":
        if not request.connection_request_id:
            raise ValidationError("Bad request: connectionRequestId is required for status check")
        result = lifecycle.poll_status(request.connection_request_id, owner_id)
        return StatusResponse(status=result.state.value, connection_id=result.connection_id) \
            .model_dump(by_alias=True, exclude_none=True)

    if request.action == "list":
        rows = lifecycle.list_connections(owner_id)
        connections = [
            ConnectionOut(
                integration_id=row.integration_id,
                status=row.status,
                connection_request_id=row.connection_request_id,
                connection_id=row.connection_id,
                updated_at=row.updated_at,
            )
            for row in rows
        ]
        return ConnectionListResponse(connections=connections).model_dump(mode="json", by_alias=True)

    if not request.integration:
        raise ValidationError("Bad request: integrationId is required to disconnect")
    return SuccessResponse(success=lifecycle.disconnect(owner_id, request.integration)).model_dump()


@app.get("/auth/callback")
def auth_callback(
        error: Optional[str] = None,
        connection_request_id: Optional[str] = None,
        lifecycle: ConnectionLifecycle = Depends(get_connection_lifecycle),
):
    """Landing route for the provider's redirect after the user authorizes."""
    result = lifecycle.complete_from_callback(error=error, connection_request_id=connection_request_id)
    return StatusResponse(status=result.state.value, connection_id=result.connection_id, message=result.message) \
        .model_dump(by_alias=True, exclude_none=True)


@app.post("/guest")
def guest(request: GuestRequest, db: Session = Depends(get_db)):
    logger.info(f"Guest management request: action={request.action} session={request.session_id}")

    if request.action == "create":
        created = guest_service.create_guest(db, request.name, request.session_id)
        return GuestOut.model_validate(created).model_dump(mode="json")

    if request.action == "get":
        found = guest_service.get_guest_by_session_id(db, request.session_id)
        return GuestOut.model_validate(found).model_dump(mode="json") if found else None

    updated = guest_service.update_guest_activity(db, request.session_id)
    logger.info(f"Updated guest activity for session: {request.session_id}")
    return SuccessResponse(success=updated).model_dump()


@app.get("/chats", response_model=List[ChatOut])
def list_chats(owner: Owner = Depends(query_owner), db: Session = Depends(get_db)):
    return chat_service.get_chats_for_owner(db, owner)


@app.get("/chats/{chat_id}/messages", response_model=List[MessageOut])
def chat_messages(chat_id: str, owner: Owner = Depends(query_owner), db: Session = Depends(get_db)):
    owned_chat(db, chat_id, owner)
    return chat_service.get_chat_messages(db, chat_id)


@app.patch("/chats/{chat_id}", response_model=ChatOut)
def rename_chat(chat_id: str, body: ChatTitleUpdate, owner: Owner = Depends(query_owner),
                db: Session = Depends(get_db)):
    owned_chat(db, chat_id, owner)
    return chat_service.update_chat_title(db, chat_id, body.title)


@app.delete("/chats/{chat_id}")
def remove_chat(chat_id: str, owner: Owner = Depends(query_owner), db: Session = Depends(get_db)):
    owned_chat(db, chat_id, owner)
    return SuccessResponse(success=chat_service.delete_chat(db, chat_id)).model_dump()


@app.options("/{full_path:path}")
def preflight(full_path: str):
    return Response(status_code=200)


@app.get("/health")
def health_check():
    return {"status": "ok"}


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=int(os.getenv("PORT", 8080)))
