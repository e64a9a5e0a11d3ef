# slashy/core_app/services/chat.py
from typing import List, Optional

from sqlalchemy.orm import Session

from slashy.core_app.database.models import Chat, Message, utcnow
from slashy.core_app.database.session import store_operation
from slashy.core_app.errors import ValidationError
from slashy.core_app.models.models import Owner

DEFAULT_TITLE = "New Chat"
TITLE_MAX_LENGTH = 100
MESSAGE_ROLES = ("user", "assistant")


def make_title(text: Optional[str], max_length: int = TITLE_MAX_LENGTH) -> str:
    title = (text or "").strip()[:max_length]
    return title or DEFAULT_TITLE


def create_chat(db: Session, owner: Owner, title: Optional[str] = None) -> Chat:
    chat = Chat(
        guest_id=owner.id if owner.kind == "guest" else None,
        user_id=owner.id if owner.kind == "user" else None,
        title=make_title(title),
    )
    with store_operation(db, "create chat"):
        db.add(chat)
    db.refresh(chat)
    return chat


def get_chat(db: Session, chat_id: str) -> Optional[Chat]:
    with store_operation(db, "fetch chat", commit=False):
        return db.query(Chat).filter(Chat.id == chat_id).first()


def chat_belongs_to(chat: Chat, owner: Owner) -> bool:
    if owner.kind == "guest":
        return chat.guest_id == owner.id
    return chat.user_id == owner.id


def get_chats_for_owner(db: Session, owner: Owner) -> List[Chat]:
    column = Chat.guest_id if owner.kind == "guest" else Chat.user_id
    with store_operation(db, "fetch chats", commit=False):
        return db.query(Chat).filter(column == owner.id).order_by(Chat.updated_at.desc()).all()


def update_chat_title(db: Session, chat_id: str, title: str) -> Optional[Chat]:
    chat = get_chat(db, chat_id)
    if chat is None:
        return None
    with store_operation(db, "update chat title"):
        chat.title = make_title(title)
        chat.updated_at = utcnow()
    return chat


def delete_chat(db: Session, chat_id: str) -> bool:
    chat = get_chat(db, chat_id)
    if chat is None:
        return False
    with store_operation(db, "delete chat"):
        db.delete(chat)
    return True


def save_message(db: Session, chat_id: str, content: str, role: str) -> Message:
    if role not in MESSAGE_ROLES:
        raise ValidationError(f"Invalid message role: {role}")

    message = Message(chat_id=chat_id, content=content, role=role)
    with store_operation(db, "save message"):
        db.add(message)
        db.query(Chat).filter(Chat.id == chat_id).update({Chat.updated_at: utcnow()})
    db.refresh(message)
    return message


def get_chat_messages(db: Session, chat_id: str) -> List[Message]:
    with store_operation(db, "fetch messages", commit=False):
        return (
            db.query(Message)
            .filter(Message.chat_id == chat_id)
            .order_by(Message.created_at.asc(), Message.id.asc())
            .all()
        )


def get_recent_messages(db: Session, chat_id: str, limit: int = 20) -> List[Message]:
    """The most recent `limit` messages of a chat, oldest first."""
    with store_operation(db, "fetch chat history", commit=False):
        recent = (
            db.query(Message)
            .filter(Message.chat_id == chat_id)
            .order_by(Message.created_at.desc(), Message.id.desc())
            .limit(limit)
            .all()
        )
    return list(reversed(recent))
