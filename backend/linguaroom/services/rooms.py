import logging
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

logger = logging.getLogger(__name__)

DEFAULT_ROOM = "default"


@dataclass
class _RoomEntry:
    passcode: str
    last_seen: float


class RoomRegistry:
    """Maps room ids to the passcode guarding them. First writer wins.

    None of the methods await, so a check followed by a bind cannot
    interleave with another request on the event loop.
    """

    def __init__(self, ttl_seconds: float = 0.0, clock: Callable[[], float] = time.monotonic):
        self._rooms: Dict[str, _RoomEntry] = {}
        self._ttl = ttl_seconds
        self._clock = clock

    def _lookup(self, room: str) -> Optional[_RoomEntry]:
        entry = self._rooms.get(room)
        if entry is None:
            return None
        if self._ttl and self._clock() - entry.last_seen > self._ttl:
            logger.info(f"Room '{room}' idle for more than {self._ttl}s, releasing its passcode")
            del self._rooms[room]
            return None
        return entry

    def check(self, room: str, passcode: str) -> bool:
        """Allowed when the room has no passcode yet or the passcode matches. Never binds."""
        entry = self._lookup(room)
        if entry is None:
            return True
        if entry.passcode != passcode:
            return False
        entry.last_seen = self._clock()
        return True

    def bind_or_check(self, room: str, passcode: str) -> bool:
        if not passcode:
            return False
        entry = self._lookup(room)
        if entry is None:
            self._rooms[room] = _RoomEntry(passcode=passcode, last_seen=self._clock())
            logger.info(f"Room '{room}' bound to a passcode")
            return True
        if entry.passcode != passcode:
            logger.warning(f"Passcode mismatch for room '{room}'")
            return False
        entry.last_seen = self._clock()
        return True

    def __contains__(self, room: str) -> bool:
        return self._lookup(room) is not None
