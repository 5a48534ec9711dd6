"""Realtime WebSocket endpoint for boards and booth terminals."""
import json
import logging
import uuid
from typing import Any, Dict

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect
from fastapi.websockets import WebSocketState
from sqlalchemy.ext.asyncio import async_sessionmaker

from orderflow.core.dependencies import get_broadcaster, get_registry
from orderflow.db.database import get_session_factory
from orderflow.services.ordering.commands import OrderCommandHandler
from orderflow.services.ordering.errors import StoreError
from orderflow.services.persistence.orders import OrderStore
from orderflow.services.realtime.broadcaster import Broadcaster
from orderflow.services.realtime.events import Channel
from orderflow.services.realtime.registry import Connection, SessionRegistry

router = APIRouter()
logger = logging.getLogger(__name__)


def _is_open(websocket: WebSocket) -> bool:
    return websocket.application_state == WebSocketState.CONNECTED


async def _reply(connection: Connection, frame: Dict[str, Any]) -> None:
    async with connection.send_lock:
        # Closed by the broadcaster after a failed push
        if not _is_open(connection.sender):
            return
        await connection.sender.send_json(frame)


async def _error(connection: Connection, detail: str, retryable: bool = False) -> None:
    await _reply(connection, {"type": "error", "detail": detail, "retryable": retryable})


@router.websocket("/ws")
async def realtime(
    websocket: WebSocket,
    session_factory: async_sessionmaker = Depends(get_session_factory),
    registry: SessionRegistry = Depends(get_registry),
    broadcaster: Broadcaster = Depends(get_broadcaster),
):
    """
    Realtime channel.

    Frames are JSON objects with an ``action``: ``subscribe``,
    ``unsubscribe``, ``snapshot``, ``submit_order`` or ``ping``. A
    subscription answers with a snapshot of the channel before any delta.
    A connection dropped after a failed push is closed by the broadcaster;
    if the socket is still readable, the next frame rejoins it with no
    channels, so a ``snapshot`` or ``subscribe`` recovers the board.
    """
    await websocket.accept()
    connection_id = uuid.uuid4().hex
    connection = registry.register(connection_id, websocket)
    logger.info(
        f"[REALTIME] Connection opened - id: {connection_id}, "
        f"Client: {websocket.client.host if websocket.client else 'unknown'}"
    )
    await _reply(connection, {"type": "connected", "connection_id": connection_id})

    try:
        while _is_open(websocket):
            raw = await websocket.receive_text()
            if not _is_open(websocket):
                logger.info(f"[REALTIME] Connection {connection_id} closed after a failed push")
                break
            if registry.get(connection_id) is not connection:
                connection = registry.register(connection_id, websocket)
                logger.info(f"[REALTIME] Connection {connection_id} rejoined after being dropped")
            try:
                message = json.loads(raw)
            except ValueError:
                await _error(connection, "Frame is not valid JSON")
                continue
            if not isinstance(message, dict):
                await _error(connection, "Frame must be a JSON object")
                continue
            await _dispatch(connection, message, session_factory, registry, broadcaster)
    except WebSocketDisconnect:
        logger.info(f"[REALTIME] Connection closed - id: {connection_id}")
    finally:
        if registry.get(connection_id) is connection:
            registry.unregister(connection_id)


async def _dispatch(
    connection: Connection,
    message: Dict[str, Any],
    session_factory: async_sessionmaker,
    registry: SessionRegistry,
    broadcaster: Broadcaster,
) -> None:
    action = message.get("action")
    logger.debug(f"[REALTIME] {connection.connection_id} -> {action}")

    if action == "ping":
        await _reply(connection, {"type": "pong"})
        return

    if action in ("subscribe", "snapshot", "unsubscribe"):
        channel_name = message.get("channel")
        try:
            channel = Channel(channel_name)
        except ValueError:
            await _error(connection, f"Unknown channel: {channel_name}")
            return

        if action == "unsubscribe":
            registry.unsubscribe(connection.connection_id, channel)
            await _reply(connection, {"type": "unsubscribed", "channel": channel.value})
            return

        try:
            async with session_factory() as db:
                store = OrderStore(db)
                if action == "subscribe":
                    await broadcaster.attach(connection.connection_id, channel, store)
                else:
                    await broadcaster.send_snapshot(connection.connection_id, channel, store)
        except StoreError as e:
            logger.error(f"[REALTIME] Snapshot of {channel.value} failed - {e}")
            await _error(connection, "Snapshot unavailable, retry", retryable=True)
        except KeyError:
            # Dropped by a concurrent failed push while this frame was handled
            logger.info(f"[REALTIME] {connection.connection_id} dropped before its snapshot")
            await _error(connection, "Connection was reset, resubscribe", retryable=True)
        return

    if action == "submit_order":
        try:
            async with session_factory() as db:
                handler = OrderCommandHandler(OrderStore(db), broadcaster)
                result = await handler.submit_order(
                    message.get("booth_id"),
                    message.get("items") or [],
                    note=message.get("note"),
                    total_price=message.get("total_price"),
                )
        except StoreError as e:
            logger.error(f"[REALTIME] Order submission failed - {e}")
            await _error(connection, "Order could not be saved, retry", retryable=True)
            return
        await _reply(connection, {"type": "command_result", **result.to_payload()})
        return

    await _error(connection, f"Unknown action: {action}")
