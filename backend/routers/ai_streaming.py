"""
Nova AI Streaming - Server-sent event utilities

Turns an EventChannel into an SSE StreamingResponse. The HTTP layer only
reads the channel; the orchestrator task owns writing and closing it.
"""

import logging
from typing import AsyncIterator

from fastapi.responses import StreamingResponse

from routers.ai_orchestration.events import EventChannel

logger = logging.getLogger(__name__)

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


async def sse_frames(channel: EventChannel) -> AsyncIterator[str]:
    """Yield one SSE frame per event until the channel closes.

    If the consumer goes away first, the channel is detached so the
    still-running orchestrator's writes are discarded.
    """
    sent = 0
    try:
        async for event in channel:
            sent += 1
            yield event.to_sse()
    finally:
        if not channel.closed:
            logger.info(f"[STREAM] Client disconnected after {sent} events, detaching channel")
            channel.detach()
        else:
            logger.debug(f"[STREAM] Stream finished ({sent} events)")


def sse_response(channel: EventChannel) -> StreamingResponse:
    return StreamingResponse(sse_frames(channel), media_type="text/event-stream", headers=SSE_HEADERS)
