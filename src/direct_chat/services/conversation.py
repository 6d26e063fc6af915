"""Conversation service: sending, history and semantic search."""

from typing import Dict, List, Optional, Sequence

import numpy as np
import structlog

from ..domain.errors import EmbeddingUnavailable, NotFoundError, ValidationError
from ..domain.models import Message, MessageView, SearchResult, User
from ..metrics import EMBEDDING_FAILURES, MESSAGES_SENT
from ..repositories.base import Repository
from .embedding import EmbeddingProvider

logger = structlog.get_logger()

DEFAULT_HISTORY_LIMIT = 50
DEFAULT_SEARCH_K = 10


def similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """1 - cosine distance. Zero vectors score 0.0."""
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    norm = np.linalg.norm(va) * np.linalg.norm(vb)
    if va.shape != vb.shape or norm == 0:
        return 0.0
    return float(np.dot(va, vb) / norm)


class ConversationService:
    """Coordinates the store and the embedding provider.

    Embedding on the send path is best-effort: any provider failure stores
    the message without a vector. Search needs an embedding for the query,
    so there the failure is reported to the caller.
    """

    def __init__(self, repository: Repository, embeddings: EmbeddingProvider) -> None:
        self.repository = repository
        self.embeddings = embeddings

    async def require_user(self, user_id: str, role: str = "User") -> User:
        user = await self.repository.get_user(user_id)
        if user is None:
            raise NotFoundError(f"{role} not found")
        return user

    async def register_user(self, user: User) -> User:
        """Record an identity seen on an authenticated channel."""
        return await self.repository.upsert_user(user)

    async def _hydrate(self, messages: List[Message]) -> List[MessageView]:
        users: Dict[str, User] = {}
        views = []
        for message in messages:
            for user_id in (message.sender_id, message.receiver_id):
                if user_id not in users:
                    users[user_id] = (
                        await self.repository.get_user(user_id)
                        or User(id=user_id, name=user_id)
                    )
            views.append(
                MessageView.from_message(
                    message, users[message.sender_id], users[message.receiver_id]
                )
            )
        return views

    async def _try_embed(self, text: str, sender_id: str) -> Optional[List[float]]:
        try:
            return await self.embeddings.embed(text)
        except EmbeddingUnavailable as e:
            EMBEDDING_FAILURES.labels(path="send").inc()
            logger.warning("embedding_skipped", sender_id=sender_id, reason=str(e))
            return None

    async def send_message(
        self, sender_id: str, receiver_id: str, body: str, channel: str = "http"
    ) -> MessageView:
        """Persist a message and return it hydrated.

        Raises ValidationError, NotFoundError or PersistenceError. Nothing is
        written unless every check passes.
        """
        if not sender_id or not receiver_id or body is None:
            raise ValidationError("senderId, receiverId, and message are required")
        body = body.strip()
        if not body:
            raise ValidationError("Message cannot be empty")
        if sender_id == receiver_id:
            raise ValidationError("Cannot send messages to yourself")

        sender = await self.require_user(sender_id, "Sender")
        receiver = await self.require_user(receiver_id, "Receiver")

        embedding = await self._try_embed(body, sender_id)
        message = await self.repository.create_message(sender_id, receiver_id, body, embedding)

        MESSAGES_SENT.labels(channel=channel).inc()
        logger.info(
            "message_sent",
            message_id=str(message.id),
            sender_id=sender_id,
            receiver_id=receiver_id,
            channel=channel,
            has_embedding=message.embedding is not None,
        )
        return MessageView.from_message(message, sender, receiver)

    async def list_conversation(
        self,
        user_id: str,
        peer_user_id: Optional[str] = None,
        limit: int = DEFAULT_HISTORY_LIMIT,
    ) -> List[MessageView]:
        """Messages for a user, or between a user and a peer, oldest first."""
        if not user_id:
            raise ValidationError("userId is required")
        if not isinstance(limit, int) or limit < 1:
            raise ValidationError("limit must be a positive integer")
        await self.require_user(user_id)

        messages = await self.repository.list_messages(user_id, peer_user_id or None, limit)
        return await self._hydrate(messages)

    async def semantic_search(
        self, user_id: str, query_text: str, k: int = DEFAULT_SEARCH_K
    ) -> List[SearchResult]:
        """Rank the user's messages by similarity to the query.

        Messages stored without a vector score 0.0 and always sort after
        every embedded message.
        """
        if not user_id:
            raise ValidationError("userId is required")
        query_text = (query_text or "").strip()
        if not query_text:
            raise ValidationError("Search query cannot be empty")
        if not isinstance(k, int) or k < 1:
            raise ValidationError("k must be a positive integer")
        await self.require_user(user_id)

        try:
            query_vector = await self.embeddings.embed_query(query_text)
        except EmbeddingUnavailable:
            EMBEDDING_FAILURES.labels(path="search").inc()
            logger.error("search_embedding_failed", user_id=user_id)
            raise

        candidates = await self.repository.list_search_candidates(user_id)
        ranked = []
        for message in candidates:
            if message.embedding is None:
                ranked.append((1, 0.0, message))
            else:
                ranked.append((0, similarity(message.embedding, query_vector), message))
        ranked.sort(key=lambda item: (item[0], -item[1]) + item[2].sort_key())

        top = ranked[:k]
        views = await self._hydrate([message for _, _, message in top])
        results = [
            SearchResult(
                id=view.id,
                message=view.message,
                created_at=view.created_at,
                sender_id=view.sender_id,
                receiver_id=view.receiver_id,
                sender_name=view.sender.name,
                receiver_name=view.receiver.name,
                # Reported score is floored at 0.0, the score of an unembedded message.
                score=max(raw, 0.0),
            )
            for (_, raw, _), view in zip(top, views)
        ]
        logger.info("semantic_search", user_id=user_id, candidates=len(candidates), returned=len(results))
        return results
