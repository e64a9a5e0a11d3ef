from .base import Base
from .models import Chat, Connection, Guest, Message

__all__ = ["Base", "Chat", "Connection", "Guest", "Message"]
