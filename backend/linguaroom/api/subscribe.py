"""
Server-Sent Events endpoint for listeners of a room's per-language channel.

Client opens:
    GET /api/subscribe?channel=r1:cantonese&room=r1&passcode=...

Server sends:
- data: {"type": "ready", "channel": "..."}        once, on connect
- data: {"type": "translation", "room": ..., "language": ..., "transcript": ...,
         "translation": ..., "audioBase64": ...}    per published result
- : ping                                            while idle
"""

import logging

from fastapi import APIRouter, Depends, Query
from fastapi.responses import StreamingResponse

from ..errors import AuthorizationError, RequestValidationFailed
from ..services.broadcaster import channel_name
from ..services.rooms import DEFAULT_ROOM
from ..state import SessionState, get_state

logger = logging.getLogger(__name__)

router = APIRouter(tags=["subscribe"])

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def resolve_channel(channel: str, room: str) -> tuple[str, str]:
    """Return (room, channel). A full channel name carries its own room; a bare language is scoped to `room`."""
    if ":" in channel:
        channel_room = channel.rpartition(":")[0] or DEFAULT_ROOM
        return channel_room, channel
    return room, channel_name(room, channel)


@router.get("/subscribe")
async def subscribe(
    channel: str = Query(""),
    room: str = Query(DEFAULT_ROOM),
    passcode: str = Query(""),
    state: SessionState = Depends(get_state),
) -> StreamingResponse:
    channel = channel.strip()
    room = room.strip() or DEFAULT_ROOM
    if not channel:
        raise RequestValidationFailed("Missing channel query param")
    # Passcode is checked against the room named by the channel
    channel_room, channel = resolve_channel(channel, room)
    if not state.rooms.check(channel_room, passcode.strip()):
        raise AuthorizationError("Invalid passcode")

    broadcaster = state.broadcaster
    listener = broadcaster.new_listener()

    return StreamingResponse(
        broadcaster.stream(listener, channel),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )
