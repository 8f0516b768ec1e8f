"""SSE (Server-Sent Events) connection manager for real-time notifications."""

import asyncio
import uuid

import structlog

logger = structlog.get_logger()


class SSEManager:
    """Manages SSE connections per user using asyncio.Queue."""

    def __init__(self) -> None:
        self._connections: dict[uuid.UUID, list[asyncio.Queue]] = {}

    async def connect(self, user_id: uuid.UUID) -> asyncio.Queue:
        """Register a new SSE connection for a user."""
        queue: asyncio.Queue = asyncio.Queue()
        self._connections.setdefault(user_id, []).append(queue)
        logger.info("sse_connected", user_id=str(user_id), total=len(self._connections[user_id]))
        return queue

    def disconnect(self, user_id: uuid.UUID, queue: asyncio.Queue) -> None:
        """Remove an SSE connection for a user."""
        queues = self._connections.get(user_id)
        if queues is None:
            return
        if queue in queues:
            queues.remove(queue)
        if not queues:
            del self._connections[user_id]
        logger.info("sse_disconnected", user_id=str(user_id))

    def connection_count(self, user_id: uuid.UUID) -> int:
        return len(self._connections.get(user_id, []))

    def push(self, user_id: uuid.UUID, event_data: dict) -> None:
        """Push an event to all SSE connections for a user. Queues are unbounded."""
        for queue in self._connections.get(user_id, []):
            queue.put_nowait(event_data)


# Module-level singleton
sse_manager = SSEManager()
