"""Deterministic stand-ins for external collaborators."""

from typing import Any, List, Tuple

from jose import jwt

from direct_chat.domain.errors import EmbeddingUnavailable
from direct_chat.domain.models import User
from direct_chat.services.embedding import EmbeddingProvider

SECRET = "test-secret"

USERS = [
    User(id="u1", name="Alice"),
    User(id="u2", name="Bob"),
    User(id="u3", name="Carol"),
]


class KeywordEmbeddings(EmbeddingProvider):
    """Three-axis embedding: pets, travel, food."""

    dimension = 3
    AXES = (
        ("cat", "dog", "pet"),
        ("flight", "trip", "travel"),
        ("pizza", "lunch", "food"),
    )

    def __init__(self) -> None:
        self.calls: List[str] = []

    async def embed(self, text: str) -> List[float]:
        self.calls.append(text)
        lowered = text.lower()
        vector = [1.0 if any(word in lowered for word in axis) else 0.0 for axis in self.AXES]
        if not any(vector):
            vector = [0.1, 0.1, 0.1]
        return vector


class FailingEmbeddings(EmbeddingProvider):
    """Provider that is always down."""

    dimension = 3

    def __init__(self) -> None:
        self.calls: List[str] = []

    async def embed(self, text: str) -> List[float]:
        self.calls.append(text)
        raise EmbeddingUnavailable("Embedding provider is not configured")


class WrongSizeEmbeddings(EmbeddingProvider):
    """Returns vectors the store will refuse."""

    dimension = 5

    async def embed(self, text: str) -> List[float]:
        return [1.0] * 5


class FakeConnection:
    """Records every event pushed to it."""

    def __init__(self, connection_id: str, fail: bool = False) -> None:
        self.connection_id = connection_id
        self.fail = fail
        self.sent: List[Tuple[str, Any]] = []
        self.closed = False

    async def send(self, event: str, data: Any) -> None:
        if self.fail:
            raise ConnectionError("socket is gone")
        self.sent.append((event, data))

    async def close(self) -> None:
        self.closed = True

    def events(self, name: str) -> List[Any]:
        return [data for event, data in self.sent if event == name]


def make_token(user_id: str, name: str, secret: str = SECRET) -> str:
    return jwt.encode({"userId": user_id, "name": name}, secret, algorithm="HS256")


