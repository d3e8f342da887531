"""WebSocket endpoint streaming pipeline events to dashboards."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect

from services.broadcast import Broadcaster, build_default_broadcaster

logger = logging.getLogger(__name__)

router = APIRouter()


def get_broadcaster() -> Broadcaster:
    return build_default_broadcaster()


async def _drain_client(websocket: WebSocket) -> None:
    # Clients only listen; reading is how a disconnect gets noticed.
    while True:
        await websocket.receive_text()


async def _forward_events(websocket: WebSocket, queue: "asyncio.Queue[dict]") -> None:
    while True:
        message = await queue.get()
        await websocket.send_json(message)


@router.websocket("/ws")
async def live_updates(
    websocket: WebSocket,
    broadcaster: Broadcaster = Depends(get_broadcaster),
) -> None:
    await websocket.accept()
    subscriber_id, queue = broadcaster.subscribe()
    tasks = [
        asyncio.create_task(_drain_client(websocket)),
        asyncio.create_task(_forward_events(websocket, queue)),
    ]
    try:
        await websocket.send_json(
            {
                "event": "connected",
                "data": {"subscriber_id": subscriber_id},
                "sent_at": datetime.now(timezone.utc).isoformat(),
            }
        )
        done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        for task in done:
            exc = task.exception()
            if exc is not None and not isinstance(exc, WebSocketDisconnect):
                logger.warning("Live connection closed with error", extra={"reason": str(exc)})
    except WebSocketDisconnect:
        pass
    finally:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        broadcaster.unsubscribe(subscriber_id)
