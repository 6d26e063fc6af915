"""Runtime configuration read from the environment."""

import os
from dataclasses import dataclass, field
from functools import lru_cache
from typing import List


def _split(value: str) -> List[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


@dataclass(frozen=True)
class Settings:
    """Service settings. Defaults suit local development."""

    jwt_secret: str = "change-me"
    jwt_algorithm: str = "HS256"
    gemini_api_key: str = ""
    embedding_model: str = "models/text-embedding-004"
    embedding_dimension: int = 768
    embedding_timeout: float = 10.0
    cors_origins: List[str] = field(
        default_factory=lambda: ["http://localhost:3000", "http://127.0.0.1:3000"]
    )

    @classmethod
    def from_env(cls) -> "Settings":
        defaults = cls()
        return cls(
            jwt_secret=os.getenv("JWT_SECRET", defaults.jwt_secret),
            jwt_algorithm=os.getenv("JWT_ALGORITHM", defaults.jwt_algorithm),
            gemini_api_key=os.getenv("GEMINI_API_KEY", ""),
            embedding_model=os.getenv("EMBEDDING_MODEL", defaults.embedding_model),
            embedding_dimension=int(
                os.getenv("EMBEDDING_DIMENSION", defaults.embedding_dimension)
            ),
            embedding_timeout=float(
                os.getenv("EMBEDDING_TIMEOUT", defaults.embedding_timeout)
            ),
            cors_origins=_split(os.getenv("CORS_ORIGINS", ""))
            or defaults.cors_origins,
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Settings for this process, read once."""
    return Settings.from_env()
