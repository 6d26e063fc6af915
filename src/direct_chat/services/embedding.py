"""Text embedding providers."""

import asyncio
from abc import ABC, abstractmethod
from typing import List, Optional

import google.generativeai as genai
import structlog
from google.api_core import exceptions

from ..config import Settings
from ..domain.errors import EmbeddingUnavailable

logger = structlog.get_logger()


class EmbeddingProvider(ABC):
    """Maps text to a fixed-length vector or raises EmbeddingUnavailable."""

    dimension: int

    @abstractmethod
    async def embed(self, text: str) -> List[float]:
        """Embed a single text."""
        pass

    async def embed_query(self, text: str) -> List[float]:
        """Embed a search query. Same space as stored messages."""
        return await self.embed(text)


class GeminiEmbeddingProvider(EmbeddingProvider):
    """Embeddings from Google's Gemini embedding models.

    The client library is synchronous, so each call runs in a worker thread
    bounded by a timeout. A missing API key makes every call unavailable
    rather than failing at startup.
    """

    def __init__(
        self,
        api_key: str,
        model: str = "models/text-embedding-004",
        dimension: int = 768,
        timeout: float = 10.0,
        task_type: str = "retrieval_document",
    ) -> None:
        self.model = model
        self.dimension = dimension
        self.timeout = timeout
        self.task_type = task_type
        self._configured = bool(api_key)
        if self._configured:
            genai.configure(api_key=api_key)
        logger.info("embedding_provider_init", model=model, configured=self._configured)

    @classmethod
    def from_settings(cls, settings: Settings) -> "GeminiEmbeddingProvider":
        return cls(
            api_key=settings.gemini_api_key,
            model=settings.embedding_model,
            dimension=settings.embedding_dimension,
            timeout=settings.embedding_timeout,
        )

    def _embed_sync(self, text: str, task_type: str) -> List[float]:
        result = genai.embed_content(model=self.model, content=text, task_type=task_type)
        return list(result["embedding"])

    async def embed(self, text: str, task_type: Optional[str] = None) -> List[float]:
        text = (text or "").strip()
        if not text:
            raise EmbeddingUnavailable("Invalid text input for embedding generation")
        if not self._configured:
            raise EmbeddingUnavailable("Embedding provider is not configured")

        try:
            vector = await asyncio.wait_for(
                asyncio.to_thread(self._embed_sync, text, task_type or self.task_type),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            logger.warning("embedding_timeout", model=self.model, timeout=self.timeout)
            raise EmbeddingUnavailable("Embedding generation timed out")
        except exceptions.ResourceExhausted as e:
            logger.warning("embedding_quota_exhausted", model=self.model, error=str(e))
            raise EmbeddingUnavailable("Embedding quota exhausted") from e
        except Exception as e:
            logger.error("embedding_generation_error", model=self.model, error=str(e))
            raise EmbeddingUnavailable("Failed to generate embedding") from e

        if len(vector) != self.dimension:
            logger.error(
                "embedding_dimension_mismatch",
                model=self.model,
                expected=self.dimension,
                actual=len(vector),
            )
            raise EmbeddingUnavailable("Invalid embedding response")
        return vector

    async def embed_query(self, text: str) -> List[float]:
        return await self.embed(text, task_type="retrieval_query")
