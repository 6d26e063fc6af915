"""Per-connection realtime session state machine."""

from enum import Enum
from typing import Any, Optional, Protocol
from uuid import uuid4

import structlog

from ..domain.errors import AuthError, NotFoundError, ValidationError
from ..services.auth import TokenVerifier
from ..services.conversation import ConversationService
from .rooms import Deliverable, RoomRouter, canonical_room_id

logger = structlog.get_logger()


class SessionState(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATED = "authenticated"
    IN_ROOM = "in_room"
    CLOSED = "closed"


class Connection(Deliverable, Protocol):
    """A live client connection that the server can also close."""

    async def close(self) -> None:
        ...


class Session:
    """State for one live connection.

    Events from one connection are handled one at a time by its receive
    loop; sessions for different connections run concurrently and share
    only the room router and the conversation service.
    """

    def __init__(
        self,
        connection: Connection,
        router: RoomRouter,
        conversations: ConversationService,
        verifier: TokenVerifier,
    ) -> None:
        self.connection = connection
        self.router = router
        self.conversations = conversations
        self.verifier = verifier
        self.connection_id = getattr(connection, "connection_id", None) or str(uuid4())
        self.state = SessionState.UNAUTHENTICATED
        self.user_id: Optional[str] = None
        self.user_name: Optional[str] = None
        self.joined_room_id: Optional[str] = None

    @property
    def is_authenticated(self) -> bool:
        return self.state in (SessionState.AUTHENTICATED, SessionState.IN_ROOM)

    async def _emit(self, event: str, data: Any) -> None:
        try:
            await self.connection.send(event, data)
        except Exception as e:
            logger.warning(
                "session_emit_failed",
                connection_id=self.connection_id,
                socket_event=event,
                error=str(e),
            )

    async def reply_error(self, message: str) -> None:
        """Send a short `error` event to this connection only."""
        await self._emit("error", {"message": message})

    async def _reject_unauthenticated(self, operation: str) -> None:
        logger.warning("unauthenticated_event", connection_id=self.connection_id, operation=operation)
        await self._emit("unauthorized", {"message": "Please authenticate first"})

    async def authenticate(self, token: Any) -> bool:
        """Bind the token's identity, or reject and close the connection."""
        try:
            user = self.verifier.verify(token)
        except AuthError:
            logger.warning("socket_authentication_failed", connection_id=self.connection_id)
            await self._emit("unauthorized", {"message": "Authentication failed"})
            await self.disconnect()
            try:
                await self.connection.close()
            except Exception as e:
                logger.debug("connection_close_failed", connection_id=self.connection_id, error=str(e))
            return False

        if self.user_id is not None and self.user_id != user.id and self.joined_room_id:
            await self.router.leave(self.joined_room_id, self.connection)
            self.joined_room_id = None

        await self.conversations.register_user(user)
        self.user_id = user.id
        self.user_name = user.name
        if self.joined_room_id is None:
            self.state = SessionState.AUTHENTICATED
        logger.info("socket_authenticated", connection_id=self.connection_id, user_id=user.id)
        return True

    async def join_room(self, peer_user_id: Any) -> Optional[str]:
        if not self.is_authenticated:
            await self._reject_unauthenticated("join-room")
            return None
        if not peer_user_id:
            await self.reply_error("otherUserId is required")
            return None

        room_id = canonical_room_id(self.user_id, str(peer_user_id))
        if self.joined_room_id and self.joined_room_id != room_id:
            await self.router.leave(self.joined_room_id, self.connection)
        await self.router.join(room_id, self.connection)
        self.joined_room_id = room_id
        self.state = SessionState.IN_ROOM

        logger.info("room_joined", connection_id=self.connection_id, user_id=self.user_id, room_id=room_id)
        await self._emit("room-joined", {"roomId": room_id})
        return room_id

    async def leave_room(self, room_id: Any) -> None:
        if not room_id:
            return
        room_id = str(room_id)
        await self.router.leave(room_id, self.connection)
        if self.joined_room_id == room_id:
            self.joined_room_id = None
        logger.info("room_left", connection_id=self.connection_id, user_id=self.user_id, room_id=room_id)

    async def send_message(self, receiver_id: Any, body: Any) -> bool:
        """Persist, then broadcast to the pair's room. Returns True on delivery."""
        if not self.is_authenticated:
            await self._reject_unauthenticated("send-message")
            return False

        if not isinstance(body, str) or not body.strip():
            logger.info("empty_message_dropped", connection_id=self.connection_id, user_id=self.user_id)
            return False

        receiver_id = str(receiver_id) if receiver_id else ""
        try:
            view = await self.conversations.send_message(
                self.user_id, receiver_id, body, channel="socket"
            )
        except (ValidationError, NotFoundError) as e:
            logger.warning(
                "socket_message_rejected",
                sender_id=self.user_id,
                receiver_id=receiver_id,
                error=str(e),
            )
            await self.reply_error(str(e))
            return False
        except Exception as e:
            logger.error(
                "socket_message_failed",
                sender_id=self.user_id,
                receiver_id=receiver_id,
                error=str(e),
            )
            await self.reply_error("Failed to send message")
            return False

        room_id = canonical_room_id(self.user_id, receiver_id)
        await self.router.broadcast(room_id, "receive-message", view.model_dump(mode="json"))
        return True

    async def set_typing(self, receiver_id: Any, is_typing: Any, display_name: Any) -> None:
        if not self.is_authenticated:
            logger.debug("typing_ignored", connection_id=self.connection_id)
            return
        if not receiver_id:
            return
        room_id = canonical_room_id(self.user_id, str(receiver_id))
        await self.router.broadcast(
            room_id,
            "user-typing",
            {"user": display_name or self.user_name, "isTyping": bool(is_typing)},
            exclude=self.connection,
        )

    async def disconnect(self) -> None:
        if self.state is SessionState.CLOSED:
            return
        if self.joined_room_id:
            await self.router.leave(self.joined_room_id, self.connection)
            self.joined_room_id = None
        self.state = SessionState.CLOSED
        logger.info("socket_disconnected", connection_id=self.connection_id, user_id=self.user_id)

    async def handle(self, event: Any, data: Any) -> None:
        """Dispatch one inbound client event."""
        if self.state is SessionState.CLOSED:
            return
        data_dict = data if isinstance(data, dict) else {}

        if event == "authenticate":
            await self.authenticate(data)
        elif event == "join-room":
            await self.join_room(data_dict.get("otherUserId"))
        elif event == "leave-room":
            await self.leave_room(data if isinstance(data, str) else data_dict.get("roomId"))
        elif event == "send-message":
            await self.send_message(data_dict.get("receiver_id"), data_dict.get("message"))
        elif event == "typing":
            await self.set_typing(
                data_dict.get("receiver_id"), data_dict.get("isTyping"), data_dict.get("userName")
            )
        else:
            logger.warning("unknown_socket_event", connection_id=self.connection_id, socket_event=str(event))
            await self.reply_error("Unknown event")
