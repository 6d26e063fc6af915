"""In-memory repository implementation."""

import asyncio
from typing import Dict, Iterable, List, Optional
from uuid import UUID

import structlog

from ..domain.errors import PersistenceError, VectorStorageError
from ..domain.models import Message, User
from .base import Repository

logger = structlog.get_logger()


class InMemoryRepository(Repository):
    """Lock-disciplined in-memory store.

    Messages are kept in an append-only list; a second index by id guards
    against writing the same message twice.
    """

    def __init__(
        self, embedding_dimension: int = 768, users: Optional[Iterable[User]] = None
    ) -> None:
        self.embedding_dimension = embedding_dimension
        self._users: Dict[str, User] = {user.id: user for user in users or ()}
        self._messages: List[Message] = []
        self._by_id: Dict[UUID, Message] = {}
        self._lock = asyncio.Lock()
        logger.info("repository_initialized", embedding_dimension=embedding_dimension)

    async def get_user(self, user_id: str) -> Optional[User]:
        async with self._lock:
            user = self._users.get(user_id)
            if user is None:
                logger.warning("user_not_found", user_id=user_id)
            return user

    async def upsert_user(self, user: User) -> User:
        async with self._lock:
            self._users[user.id] = user
            return user

    async def insert_message(self, message: Message) -> Message:
        if message.embedding is not None and len(message.embedding) != self.embedding_dimension:
            raise VectorStorageError(
                f"Expected {self.embedding_dimension}-dimensional vector, "
                f"got {len(message.embedding)}"
            )

        async with self._lock:
            if message.id in self._by_id:
                logger.error("duplicate_message_id", message_id=str(message.id))
                raise PersistenceError(f"Message {message.id} already exists")

            self._messages.append(message)
            self._by_id[message.id] = message
            logger.info(
                "message_stored",
                message_id=str(message.id),
                sender_id=message.sender_id,
                receiver_id=message.receiver_id,
                has_embedding=message.embedding is not None,
            )
            return message

    async def list_messages(
        self, user_id: str, peer_user_id: Optional[str] = None, limit: int = 50
    ) -> List[Message]:
        async with self._lock:
            if peer_user_id is None:
                matches = [m for m in self._messages if m.touches(user_id)]
            else:
                pair = {user_id, peer_user_id}
                matches = [
                    m for m in self._messages
                    if {m.sender_id, m.receiver_id} == pair
                ]
        return sorted(matches, key=Message.sort_key)[:limit]

    async def list_search_candidates(self, user_id: str) -> List[Message]:
        async with self._lock:
            return [m for m in self._messages if m.touches(user_id)]
