"""
SQLAlchemy ORM models for database tables.

This module contains database table definitions using SQLAlchemy.
For Pydantic request/response schemas, see schemas.py.
"""

import uuid

from sqlalchemy import Column, ForeignKey, String, Text

from gracechat.storage import Base


def generate_id() -> str:
    return str(uuid.uuid4())


class ChatSession(Base):
    """
    SQLAlchemy model for a conversation.

    Table: chat_sessions
    Primary Key: id (server-assigned, never changes)
    """
    __tablename__ = "chat_sessions"

    id = Column(String(36), primary_key=True, default=generate_id)
    user_id = Column(String(36), nullable=True, index=True)
    created_at = Column(String, nullable=False)  # ISO-8601 UTC
    updated_at = Column(String, nullable=False, index=True)  # ISO-8601 UTC

    def __repr__(self):
        return f"<ChatSession(id='{self.id}')>"


class Message(Base):
    """
    SQLAlchemy model for a single user or bot message.

    Table: messages
    Messages are immutable once written.
    """
    __tablename__ = "messages"

    id = Column(String(36), primary_key=True, default=generate_id)
    session_id = Column(
        String(36),
        ForeignKey("chat_sessions.id"),
        nullable=False,
        index=True,
    )
    content = Column(Text, nullable=False)
    sender = Column(String(8), nullable=False)  # USER | BOT
    category = Column(String(16), nullable=False)  # TEXT | VERSE | PRAYER | DEVOTIONAL | ADVICE
    created_at = Column(String, nullable=False, index=True)  # ISO-8601 UTC, microseconds

    def __repr__(self):
        return f"<Message(id='{self.id}', sender='{self.sender}')>"
