"""
Bridge from snapshot callbacks (any thread) to a websocket.

Snapshots only mark the view dirty; the socket coroutine renders the latest
state once per wake-up, so bursts of writes collapse into one frame.
"""

import asyncio
import logging
from typing import Callable

from fastapi import WebSocket, WebSocketDisconnect

logger = logging.getLogger(__name__)


async def _wait_for_close(websocket: WebSocket) -> None:
    while True:
        await websocket.receive_text()


async def stream_snapshots(
    websocket: WebSocket,
    subscribe: Callable[[Callable], Callable[[], None]],
    render: Callable[[], dict],
) -> None:
    loop = asyncio.get_running_loop()
    dirty = asyncio.Event()

    def on_change(*_):
        loop.call_soon_threadsafe(dirty.set)

    unsubscribe = subscribe(on_change)
    dirty.set()

    closed = asyncio.create_task(_wait_for_close(websocket))
    try:
        while True:
            waiter = asyncio.create_task(dirty.wait())
            done, _ = await asyncio.wait({waiter, closed}, return_when=asyncio.FIRST_COMPLETED)

            if closed in done:
                waiter.cancel()
                logger.debug("Live socket closed: %r", closed.exception())
                break

            dirty.clear()
            await websocket.send_json(render())
    except WebSocketDisconnect:
        logger.debug("Live socket closed by client")
    finally:
        unsubscribe()
        closed.cancel()
