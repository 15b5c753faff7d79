"""
WebSocket Manager for Live Refresh
Pushes shopping list changes and merge proposal prompts to subscribed clients.
Supports Redis Pub/Sub for multi-instance deployments.
"""
import asyncio
import json
import logging
from typing import Dict, Set, Optional, Any, Union
from dataclasses import dataclass
from enum import Enum
from fastapi import WebSocket
import redis.asyncio as redis

from utils.debug import log_ws_event

logger = logging.getLogger(__name__)

CHANNEL_PREFIX = "shopping_list:"


class EventType(str, Enum):
    """Types of real-time events"""
    # Shopping list events
    SHOPPING_LIST_CREATED = "shopping_list:created"
    SHOPPING_LIST_UPDATED = "shopping_list:updated"
    SHOPPING_LIST_DELETED = "shopping_list:deleted"

    # Ingestion pipeline events
    MERGE_PROPOSAL_OPENED = "merge_proposal:opened"
    MERGE_PROPOSAL_RESOLVED = "merge_proposal:resolved"
    ENTRY_DROPPED = "ingestion:entry_dropped"

    # General events
    PING = "ping"
    PONG = "pong"


@dataclass
class WebSocketConnection:
    """Represents a WebSocket connection subscribed to one list"""
    websocket: WebSocket
    list_id: str


class WebSocketManager:
    """
    Manages WebSocket connections and broadcasts real-time updates per list.
    Supports Redis Pub/Sub for multi-instance deployments.
    """

    def __init__(self):
        # Map of connection_id -> WebSocketConnection
        self._connections: Dict[str, WebSocketConnection] = {}
        # Map of list_id -> set of connection_ids
        self._list_connections: Dict[str, Set[str]] = {}
        self._lock = asyncio.Lock()
        # Connection counter for unique IDs
        self._counter = 0

        # Redis Pub/Sub support
        self._redis_client: Optional[redis.Redis] = None
        self._redis_pubsub = None
        self._redis_enabled = False
        self._redis_listener_task: Optional[asyncio.Task] = None

    async def initialize_redis(self, redis_url: str):
        """
        Initialize Redis client for Pub/Sub.
        Call this at application startup.
        """
        try:
            self._redis_client = redis.from_url(
                redis_url,
                encoding="utf-8",
                decode_responses=True
            )
            await self._redis_client.ping()
            self._redis_enabled = True
            logger.info(f"Redis Pub/Sub initialized: {redis_url}")
        except Exception as e:
            logger.error(f"Failed to initialize Redis: {e}")
            logger.warning("Running without Redis Pub/Sub (single-instance mode)")
            self._redis_enabled = False

    async def start_redis_listener(self):
        """Subscribe to every list channel and forward messages to local sockets."""
        if not self._redis_enabled or not self._redis_client:
            logger.info("Redis Pub/Sub disabled - running in single-instance mode")
            return

        try:
            self._redis_pubsub = self._redis_client.pubsub()
            await self._redis_pubsub.psubscribe(f"{CHANNEL_PREFIX}*")
            logger.info("Redis Pub/Sub listener started")
            self._redis_listener_task = asyncio.create_task(self._redis_listener_loop())
        except Exception as e:
            logger.error(f"Failed to start Redis listener: {e}")
            self._redis_enabled = False

    async def _redis_listener_loop(self):
        if not self._redis_pubsub:
            return

        try:
            async for message in self._redis_pubsub.listen():
                if message["type"] != "pmessage":
                    continue
                try:
                    await self._handle_redis_message(message)
                except Exception as e:
                    logger.error(f"Error handling Redis message: {e}")
        except asyncio.CancelledError:
            logger.info("Redis listener task cancelled")
            raise
        except Exception as e:
            logger.error(f"Error in Redis listener loop: {e}", exc_info=True)
            # Don't attempt to reconnect to avoid crash loops
            self._redis_enabled = False
            logger.warning("Redis Pub/Sub disabled after error - continuing in single-instance mode")

    async def _handle_redis_message(self, message: dict):
        channel = message["channel"]
        data = json.loads(message["data"])
        list_id = channel[len(CHANNEL_PREFIX):]
        await self._broadcast_local(list_id, data.get("type"), data.get("data"))

    async def _broadcast_local(self, list_id: str, event_type: str, data: Any):
        """Send to the connections of this instance subscribed to a list"""
        connection_ids = self._list_connections.get(list_id, set()).copy()
        for conn_id in connection_ids:
            await self.send_to_connection(conn_id, event_type, data)

    async def shutdown(self):
        """Shutdown Redis connections gracefully"""
        if self._redis_listener_task:
            self._redis_listener_task.cancel()
            try:
                await self._redis_listener_task
            except asyncio.CancelledError:
                pass

        if self._redis_pubsub:
            try:
                await self._redis_pubsub.punsubscribe()
                await self._redis_pubsub.aclose()
            except Exception as e:
                logger.error(f"Error closing Redis pubsub: {e}")

        if self._redis_client:
            try:
                await self._redis_client.aclose()
            except Exception as e:
                logger.error(f"Error closing Redis client: {e}")

        logger.info("Redis connections closed")

    async def connect(self, websocket: WebSocket, list_id: str) -> str:
        """
        Accept a new WebSocket connection and subscribe it to a list.
        Returns the connection ID.
        """
        await websocket.accept()

        async with self._lock:
            self._counter += 1
            connection_id = f"conn_{list_id}_{self._counter}"
            self._connections[connection_id] = WebSocketConnection(websocket=websocket, list_id=list_id)
            self._list_connections.setdefault(list_id, set()).add(connection_id)

        log_ws_event("CONNECT", connection_id=connection_id, list_id=list_id)
        return connection_id

    async def disconnect(self, connection_id: str):
        """Remove a WebSocket connection"""
        async with self._lock:
            connection = self._connections.pop(connection_id, None)
            if connection is None:
                return

            subscribers = self._list_connections.get(connection.list_id)
            if subscribers is not None:
                subscribers.discard(connection_id)
                if not subscribers:
                    del self._list_connections[connection.list_id]

        log_ws_event("DISCONNECT", connection_id=connection_id, list_id=connection.list_id)

    async def send_to_connection(self, connection_id: str, event_type: Union[EventType, str], data: Any):
        connection = self._connections.get(connection_id)
        if connection is None:
            return

        event = event_type.value if isinstance(event_type, EventType) else event_type
        try:
            await connection.websocket.send_json({"type": event, "data": data})
        except Exception as e:
            log_ws_event("SEND", connection_id=connection_id, error=str(e))
            await self.disconnect(connection_id)

    async def broadcast_to_list(self, list_id: str, event_type: Union[EventType, str], data: Any):
        """Broadcast an event to every client watching a list, on every instance"""
        event = event_type.value if isinstance(event_type, EventType) else event_type
        log_ws_event("BROADCAST", list_id=list_id, data={"type": event})

        if self._redis_enabled and self._redis_client:
            try:
                await self._redis_client.publish(
                    f"{CHANNEL_PREFIX}{list_id}",
                    json.dumps({"type": event, "data": data}, default=str)
                )
                return
            except Exception as e:
                logger.error(f"Failed to publish to Redis, falling back to local broadcast: {e}")

        await self._broadcast_local(list_id, event, data)

    def get_stats(self) -> dict:
        return {
            "total_connections": len(self._connections),
            "lists_watched": len(self._list_connections),
            "redis_enabled": self._redis_enabled,
        }


# Global WebSocket manager instance
ws_manager = WebSocketManager()
