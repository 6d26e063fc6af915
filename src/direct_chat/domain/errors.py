"""Error taxonomy shared by the HTTP and realtime surfaces."""


class ChatError(Exception):
    """Base class for all service errors.

    The message is short and safe to show to a client.
    """


class ValidationError(ChatError):
    """Missing field, empty body or self-addressed message."""


class NotFoundError(ChatError):
    """Unknown user identity."""


class AuthError(ChatError):
    """Invalid, missing or expired credential."""


class EmbeddingUnavailable(ChatError):
    """Embedding provider failed, timed out or is not configured."""


class PersistenceError(ChatError):
    """The store could not complete a read or write."""


class VectorStorageError(PersistenceError):
    """A write failed because of the embedding vector alone."""
