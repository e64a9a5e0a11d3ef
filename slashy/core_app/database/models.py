# slashy/core_app/database/models.py
import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    CheckConstraint, Column, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint,
)
from sqlalchemy.orm import relationship

from .base import Base

CONNECTION_PENDING = "pending"
CONNECTION_COMPLETED = "completed"
CONNECTION_ERROR = "error"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


class Guest(Base):
    __tablename__ = 'guests'
    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String(255), nullable=False)
    session_id = Column(String(64), unique=True, index=True, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    last_active_at = Column(DateTime(timezone=True), default=utcnow)
    chats = relationship("Chat", back_populates="guest")


class Chat(Base):
    __tablename__ = 'chats'
    __table_args__ = (
        CheckConstraint(
            "(guest_id IS NULL) <> (user_id IS NULL)",
            name="ck_chats_single_owner",
        ),
    )
    id = Column(String(36), primary_key=True, default=new_id)
    guest_id = Column(String(36), ForeignKey('guests.id'), index=True, nullable=True)
    user_id = Column(String(64), index=True, nullable=True)
    title = Column(String(100), nullable=False, default="New Chat")
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow)
    guest = relationship("Guest", back_populates="chats")
    messages = relationship(
        "Message", back_populates="chat", cascade="all, delete-orphan", passive_deletes=True,
    )


class Message(Base):
    __tablename__ = 'messages'
    __table_args__ = (
        CheckConstraint("role IN ('user', 'assistant')", name="ck_messages_role"),
    )
    id = Column(Integer, primary_key=True, autoincrement=True)
    chat_id = Column(String(36), ForeignKey('chats.id', ondelete="CASCADE"), index=True, nullable=False)
    content = Column(Text, nullable=False)
    role = Column(String(50), nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, index=True)
    chat = relationship("Chat", back_populates="messages")


class Connection(Base):
    __tablename__ = 'composio_connections'
    __table_args__ = (
        UniqueConstraint("user_id", "integration_id", name="uq_connections_owner_integration"),
        CheckConstraint(
            "status IN ('pending', 'completed', 'error')", name="ck_connections_status",
        ),
    )
    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(64), index=True, nullable=False)
    integration_id = Column(String(100), nullable=False)
    auth_config_id = Column(String(255), nullable=False)
    connection_request_id = Column(String(255), index=True, nullable=False)
    connection_id = Column(String(255), nullable=True)
    status = Column(String(20), nullable=False, default=CONNECTION_PENDING)
    redirect_url = Column(Text, nullable=True)
    error_message = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow)
