"""
Live progress stream for LuaLink.
Server-sent events carrying scan and delivery progress to any observer.
"""

import asyncio
import logging

import orjson
from fastapi import APIRouter, Request
from fastapi.responses import StreamingResponse

from lualink.agent.broadcaster import EventBroadcaster, Subscriber
from lualink.agent.events import ProgressEvent

logger = logging.getLogger("lualink.web.realtime")

router = APIRouter(tags=["realtime"])

HEARTBEAT_INTERVAL = 15.0


def format_sse(event: ProgressEvent) -> str:
    """One `data:` record per event."""
    return f"data: {orjson.dumps(event.to_dict()).decode()}\n\n"


async def stream_events(
    request: Request,
    broadcaster: EventBroadcaster,
    subscriber: Subscriber,
    heartbeat: float = HEARTBEAT_INTERVAL,
):
    """Relay subscriber events until the client goes away."""
    try:
        while True:
            if await request.is_disconnected():
                break
            try:
                event = await subscriber.get(timeout=heartbeat)
            except asyncio.TimeoutError:
                # Comment line keeps proxies from closing an idle stream
                yield ": heartbeat\n\n"
                continue
            yield format_sse(event)
    finally:
        broadcaster.unsubscribe(subscriber)


@router.get("/events")
async def events(request: Request):
    """Attach an observer to the live progress stream."""
    broadcaster: EventBroadcaster = request.app.state.broadcaster
    client = request.client.host if request.client else ""
    subscriber = broadcaster.subscribe(name=client)
    return StreamingResponse(
        stream_events(request, broadcaster, subscriber),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
        },
    )
