"""
WebSocket connection hub.

Tracks connected dashboard clients and fans JSON events out to all of them.
Sends that fail drop the client; nothing is retried.
"""

import asyncio
import logging
from typing import Any, Dict, Optional, Set

from fastapi import WebSocket

logger = logging.getLogger(__name__)


class ConnectionManager:
    """Set of live WebSocket clients."""

    def __init__(self):
        self.clients: Set[WebSocket] = set()
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    def bind_loop(self, loop: asyncio.AbstractEventLoop) -> None:
        """Remember the server's event loop so worker threads can publish."""
        self._loop = loop

    async def connect(self, websocket: WebSocket) -> None:
        await websocket.accept()
        self.clients.add(websocket)
        logger.info(f"Client connected. Total clients: {len(self.clients)}")

    def disconnect(self, websocket: WebSocket) -> None:
        self.clients.discard(websocket)
        logger.info(f"Client disconnected. Total clients: {len(self.clients)}")

    async def broadcast(self, message: Dict[str, Any]) -> int:
        """
        Send a message to every connected client.

        Returns:
            Number of clients the message reached
        """
        delivered = 0
        for websocket in list(self.clients):
            try:
                await websocket.send_json(message)
                delivered += 1
            except Exception as e:
                logger.warning(f"Error sending WebSocket message: {e}")
                self.clients.discard(websocket)
        return delivered

    def publish(self, message: Dict[str, Any]) -> None:
        """
        Schedule a broadcast from any thread without waiting for it.

        No-op until a loop is bound (e.g. in unit tests without a server).
        """
        if self._loop is None or self._loop.is_closed():
            logger.debug(f"No event loop bound, dropping {message.get('type')} event")
            return
        asyncio.run_coroutine_threadsafe(self.broadcast(message), self._loop)
