"""
Per-(room, language) publish/subscribe over Server-Sent Events.

Each connected client is a Listener with a bounded queue of pending SSE
frames. Publishing never awaits: frames are queued for every listener on the
channel and the listener's own stream drains them. A listener that is closed
or has let its queue fill up is treated as a dead connection and detached.
"""

import asyncio
import json
import logging
import uuid
from typing import Any, AsyncIterator, Dict, Optional, Set

logger = logging.getLogger(__name__)

PING_FRAME = ": ping\n\n"
_CLOSED = object()


class ListenerClosed(Exception):
    """Raised when writing to a listener whose connection has gone away."""


def channel_name(room: str, language: str) -> str:
    """Build channel name for a room + language (language lowercased for stability)."""
    return f"{room or 'default'}:{(language or '').lower() or 'unknown'}"


def format_event(payload: Dict[str, Any]) -> str:
    return f"data: {json.dumps(payload, ensure_ascii=False)}\n\n"


class Listener:
    """One long-lived push connection. May belong to several channels."""

    def __init__(self, max_pending: int = 64):
        self.id = uuid.uuid4().hex[:8]
        self.channels: Set[str] = set()
        self.closed = False
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=max_pending)

    def send(self, frame: str) -> None:
        if self.closed:
            raise ListenerClosed(self.id)
        self._queue.put_nowait(frame)

    async def next_frame(self, timeout: float) -> Optional[str]:
        """Next pending frame, None after `timeout` seconds of idleness, _CLOSED once closed."""
        try:
            return await asyncio.wait_for(self._queue.get(), timeout=timeout)
        except asyncio.TimeoutError:
            return None

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        # Wake a reader blocked on the queue; pending frames of a dead listener are dropped
        while True:
            try:
                self._queue.put_nowait(_CLOSED)
                return
            except asyncio.QueueFull:
                self._queue.get_nowait()


class ChannelBroadcaster:
    """Registry of channel -> listeners. Channels exist only while they have listeners."""

    def __init__(self, ping_interval: float = 25.0, max_pending: int = 64):
        self.ping_interval = ping_interval
        self.max_pending = max_pending
        self._channels: Dict[str, Set[Listener]] = {}

    def new_listener(self) -> Listener:
        return Listener(max_pending=self.max_pending)

    def subscribe(self, channel: str, listener: Listener) -> None:
        self._channels.setdefault(channel, set()).add(listener)
        listener.channels.add(channel)
        logger.info(f"Listener {listener.id} subscribed to '{channel}' ({len(self._channels[channel])} on channel)")
        self._deliver(channel, listener, format_event({"type": "ready", "channel": channel}))

    def unsubscribe(self, channel: str, listener: Listener) -> None:
        listener.channels.discard(channel)
        listeners = self._channels.get(channel)
        if not listeners or listener not in listeners:
            return
        listeners.discard(listener)
        if not listeners:
            del self._channels[channel]
        logger.info(f"Listener {listener.id} left '{channel}'")

    def detach(self, listener: Listener) -> None:
        """Remove the listener from every channel and close it. Safe to call repeatedly."""
        for channel in list(listener.channels):
            self.unsubscribe(channel, listener)
        listener.close()

    def publish(self, channel: str, payload: Dict[str, Any]) -> int:
        """Queue one JSON event for every listener on the channel. Returns the delivered count."""
        listeners = self._channels.get(channel)
        if not listeners:
            return 0

        frame = format_event(payload)
        delivered = 0
        for listener in list(listeners):
            if self._deliver(channel, listener, frame):
                delivered += 1
        logger.debug(f"Published to '{channel}': {delivered} listener(s)")
        return delivered

    def _deliver(self, channel: str, listener: Listener, frame: str) -> bool:
        try:
            listener.send(frame)
            return True
        except (ListenerClosed, asyncio.QueueFull):
            logger.warning(f"Dropping listener {listener.id} on '{channel}': connection closed or not draining")
            self.detach(listener)
            return False

    async def stream(self, listener: Listener, *channels: str) -> AsyncIterator[str]:
        """Subscribe the listener to `channels`, then yield its SSE frames until the connection ends.

        Registration happens on first iteration, so a response that is never
        started registers nothing. Cleanup runs exactly once in `finally`,
        whether the client went away (the response task is cancelled), the
        server shut down, or the listener was dropped by publish.
        """
        try:
            for channel in channels:
                self.subscribe(channel, listener)
            while True:
                frame = await listener.next_frame(self.ping_interval)
                if frame is _CLOSED:
                    break
                yield PING_FRAME if frame is None else frame
        finally:
            self.detach(listener)

    def listener_count(self, channel: str) -> int:
        return len(self._channels.get(channel, ()))

    def channel_count(self) -> int:
        return len(self._channels)

    def close_all(self) -> None:
        for listeners in list(self._channels.values()):
            for listener in list(listeners):
                self.detach(listener)
