"""Shared fixtures: seeded store, deterministic embeddings, routing."""

import pytest

from direct_chat.realtime.rooms import RoomRouter
from direct_chat.repositories.memory import InMemoryRepository
from direct_chat.services.auth import TokenVerifier
from direct_chat.services.conversation import ConversationService

from .support import SECRET, USERS, KeywordEmbeddings


@pytest.fixture
def repository() -> InMemoryRepository:
    return InMemoryRepository(embedding_dimension=3, users=USERS)


@pytest.fixture
def embeddings() -> KeywordEmbeddings:
    return KeywordEmbeddings()


@pytest.fixture
def service(repository, embeddings) -> ConversationService:
    return ConversationService(repository, embeddings)


@pytest.fixture
def router() -> RoomRouter:
    return RoomRouter()


@pytest.fixture
def verifier() -> TokenVerifier:
    return TokenVerifier(SECRET)
