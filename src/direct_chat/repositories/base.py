"""Base repository interface."""

from abc import ABC, abstractmethod
from typing import List, Optional, Sequence

import structlog

from ..domain.errors import ValidationError, VectorStorageError
from ..domain.models import Message, User

logger = structlog.get_logger()


class Repository(ABC):
    """Abstract base class for message stores.

    Subclasses implement the raw storage primitives; the write policy lives
    here so every backend validates and degrades the same way.
    """

    @abstractmethod
    async def get_user(self, user_id: str) -> Optional[User]:
        """Look up a user in the directory."""
        pass

    @abstractmethod
    async def upsert_user(self, user: User) -> User:
        """Register a user or refresh its display name."""
        pass

    @abstractmethod
    async def insert_message(self, message: Message) -> Message:
        """Write one message. Raises VectorStorageError if only the vector is at fault."""
        pass

    @abstractmethod
    async def list_messages(
        self, user_id: str, peer_user_id: Optional[str] = None, limit: int = 50
    ) -> List[Message]:
        """Messages touching a user (or a pair), ascending by (created_at, id)."""
        pass

    @abstractmethod
    async def list_search_candidates(self, user_id: str) -> List[Message]:
        """Every message touching a user, with or without a vector."""
        pass

    async def create_message(
        self,
        sender_id: str,
        receiver_id: str,
        body: str,
        embedding: Optional[Sequence[float]] = None,
    ) -> Message:
        """Validate and persist a new message.

        A write that fails because of the vector is retried once without it;
        any other failure propagates.
        """
        body = (body or "").strip()
        if not body:
            raise ValidationError("Message cannot be empty")
        if sender_id == receiver_id:
            raise ValidationError("Cannot send messages to yourself")

        message = Message(
            sender_id=sender_id,
            receiver_id=receiver_id,
            message=body,
            embedding=list(embedding) if embedding is not None else None,
        )
        if message.embedding is None:
            return await self.insert_message(message)

        try:
            return await self.insert_message(message)
        except VectorStorageError as e:
            logger.warning(
                "vector_insert_failed",
                message_id=str(message.id),
                sender_id=sender_id,
                receiver_id=receiver_id,
                error=str(e),
            )
            return await self.insert_message(message.model_copy(update={"embedding": None}))
