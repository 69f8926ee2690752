"""
WebSocket Route for Trackwatch

WS /ws streams the event feed: the check state of every tracked item first,
then every check, added, updated and removed event as it happens.
"""

import asyncio
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

logger = logging.getLogger(__name__)

router = APIRouter(tags=["feed"])


@router.websocket("/ws")
async def event_feed_socket(websocket: WebSocket):
    service = websocket.app.state.engine.service
    await websocket.accept()
    queue = await service.subscribe_feed()
    client = websocket.client.host if websocket.client else "unknown"
    logger.info(f"Feed client connected from {client}")

    async def forward():
        while True:
            message = await queue.get()
            await websocket.send_json(message)

    sender = asyncio.create_task(forward())
    try:
        # Incoming messages are ignored; receiving only detects the disconnect
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        logger.info(f"Feed client {client} disconnected")
    finally:
        sender.cancel()
        await asyncio.gather(sender, return_exceptions=True)
        service.feed.unsubscribe(queue)
