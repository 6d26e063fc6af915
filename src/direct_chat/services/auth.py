"""Bearer token verification for the realtime channel."""

from typing import Any, Dict

import structlog
from jose import JWTError, jwt

from ..config import Settings
from ..domain.errors import AuthError
from ..domain.models import User

logger = structlog.get_logger()


class TokenVerifier:
    """Checks tokens issued by the auth service and extracts the identity."""

    def __init__(self, secret: str, algorithm: str = "HS256") -> None:
        self.secret = secret
        self.algorithm = algorithm

    @classmethod
    def from_settings(cls, settings: Settings) -> "TokenVerifier":
        return cls(settings.jwt_secret, settings.jwt_algorithm)

    def verify(self, token: Any) -> User:
        """Return the token's user or raise AuthError."""
        if not isinstance(token, str) or not token:
            raise AuthError("Authentication failed")
        try:
            claims: Dict[str, Any] = jwt.decode(token, self.secret, algorithms=[self.algorithm])
        except JWTError as e:
            logger.warning("token_rejected", error=str(e))
            raise AuthError("Authentication failed") from e

        user_id = claims.get("userId") or claims.get("sub")
        if not user_id:
            logger.warning("token_missing_identity")
            raise AuthError("Authentication failed")
        user_id = str(user_id)
        name = claims.get("name") or claims.get("email") or user_id
        return User(id=user_id, name=str(name))
