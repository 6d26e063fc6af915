"""Domain models for the direct messaging service."""

from datetime import datetime, timezone
from typing import List, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class User(BaseModel):
    """User identity as known to the directory."""

    id: str
    name: str


class Message(BaseModel):
    """Stored direct message. Immutable once written."""

    id: UUID = Field(default_factory=uuid4)
    sender_id: str
    receiver_id: str
    message: str
    created_at: datetime = Field(default_factory=utcnow)
    embedding: Optional[List[float]] = None

    model_config = {"frozen": True}

    def sort_key(self):
        """Total retrieval order, stable under timestamp collisions."""
        return (self.created_at, str(self.id))

    def touches(self, user_id: str) -> bool:
        return user_id in (self.sender_id, self.receiver_id)


class MessageView(BaseModel):
    """Message hydrated with sender and receiver display identity."""

    id: UUID
    sender_id: str
    receiver_id: str
    message: str
    created_at: datetime
    sender: User
    receiver: User

    @classmethod
    def from_message(cls, message: Message, sender: User, receiver: User) -> "MessageView":
        return cls(
            id=message.id,
            sender_id=message.sender_id,
            receiver_id=message.receiver_id,
            message=message.message,
            created_at=message.created_at,
            sender=sender,
            receiver=receiver,
        )


class SearchResult(BaseModel):
    """Semantic search hit."""

    id: UUID
    message: str
    created_at: datetime
    sender_id: str
    receiver_id: str
    sender_name: str
    receiver_name: str
    score: float
