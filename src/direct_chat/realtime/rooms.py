"""Room routing for live connections."""

import asyncio
from typing import Any, Dict, Optional, Protocol, Set

import structlog

from ..metrics import DELIVERY_FAILURES

logger = structlog.get_logger()


class Deliverable(Protocol):
    """Anything the router can push an event to."""

    connection_id: str

    async def send(self, event: str, data: Any) -> None:
        ...


def canonical_room_id(a: str, b: str) -> str:
    """Order-independent room id for a pair of users."""
    return "-".join(sorted((str(a), str(b))))


class RoomRouter:
    """Reference-counted table of room id to joined connections.

    A room entry is created on first join and dropped on last leave.
    Membership changes and broadcast snapshots share one lock; delivery
    itself happens outside it.
    """

    def __init__(self) -> None:
        self._rooms: Dict[str, Set[Deliverable]] = {}
        self._lock = asyncio.Lock()

    async def join(self, room_id: str, conn: Deliverable) -> None:
        async with self._lock:
            self._rooms.setdefault(room_id, set()).add(conn)
            logger.debug("room_join", room_id=room_id, connection_id=conn.connection_id)

    async def leave(self, room_id: str, conn: Deliverable) -> None:
        async with self._lock:
            members = self._rooms.get(room_id)
            if not members or conn not in members:
                return
            members.discard(conn)
            if not members:
                del self._rooms[room_id]
            logger.debug("room_leave", room_id=room_id, connection_id=conn.connection_id)

    async def members(self, room_id: str) -> Set[Deliverable]:
        async with self._lock:
            return set(self._rooms.get(room_id, ()))

    async def room_count(self) -> int:
        async with self._lock:
            return len(self._rooms)

    async def _deliver(self, conn: Deliverable, room_id: str, event: str, data: Any) -> bool:
        try:
            await conn.send(event, data)
            return True
        except Exception as e:
            DELIVERY_FAILURES.inc()
            logger.warning(
                "room_delivery_failed",
                room_id=room_id,
                connection_id=conn.connection_id,
                socket_event=event,
                error=str(e),
            )
            return False

    async def broadcast(
        self,
        room_id: str,
        event: str,
        data: Any,
        exclude: Optional[Deliverable] = None,
    ) -> int:
        """Push an event to every member except `exclude`.

        Returns the number of successful deliveries.
        """
        async with self._lock:
            targets = [c for c in self._rooms.get(room_id, ()) if c is not exclude]
        if not targets:
            return 0

        results = await asyncio.gather(
            *[self._deliver(conn, room_id, event, data) for conn in targets]
        )
        return sum(results)
