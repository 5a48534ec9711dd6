"""Synchronization broadcaster.

Pushes delta events to channel members after a store commit, and serves
full snapshots rebuilt from the store to observers that (re)subscribe.
Delivery is best effort: a failed send is logged, the dead connection is
closed and dropped, and the caller never sees the failure. Command handlers
schedule the fan-out and return without waiting for it.
"""
import asyncio
import itertools
import logging
from typing import Any, Dict, List, Set, Tuple

from orderflow.services.ordering.errors import BroadcastFailure, StoreError
from orderflow.services.ordering.models import OrderItemView, OrderView
from orderflow.services.ordering.states import (
    KITCHEN_BOARD_STATUSES,
    SERVING_BOARD_STATUSES,
    PaymentStatus,
)
from orderflow.services.persistence.orders import OrderStore
from orderflow.services.realtime.events import Channel, Event, snapshot_envelope
from orderflow.services.realtime.registry import Connection, SessionRegistry

logger = logging.getLogger(__name__)

DEFAULT_SEND_TIMEOUT = 5.0
# WebSocket close code: transient condition, client should reconnect
CLOSE_TRY_AGAIN_LATER = 1013


class Broadcaster:
    """Fans committed changes out to subscribed observers."""

    def __init__(self, registry: SessionRegistry, send_timeout: float = DEFAULT_SEND_TIMEOUT):
        self.registry = registry
        self.send_timeout = send_timeout
        self._sequence = itertools.count(1)
        self._pending: Set[asyncio.Task] = set()

    def schedule(self, event: Event) -> asyncio.Task:
        """
        Publish an event in the background.

        Tasks start in the order they were scheduled, so events scheduled
        one after another keep their sequence order on every connection.
        """
        task = asyncio.create_task(self._fan_out(event), name=f"broadcast_{event.type.value}")
        self._pending.add(task)
        task.add_done_callback(self._finished)
        return task

    async def drain(self) -> None:
        """Wait for every scheduled publish to finish."""
        while self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)

    def _finished(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"[BROADCAST] Background publish failed - {task.exception()!r}")

    async def publish(self, event: Event) -> int:
        """
        Deliver an event to every member of its channels.

        Returns:
            Number of successful deliveries
        """
        return await self._fan_out(event)

    async def _fan_out(self, event: Event) -> int:
        # Sequence and membership are taken together, with no await between,
        # so a snapshot reserved after this point is newer than the event
        event.sequence = next(self._sequence)
        # One gather across all channels; per-connection locks keep sequence order
        targets: List[Tuple[Connection, Dict[str, Any]]] = []
        for channel in event.channels:
            frame = event.envelope(channel)
            targets.extend((connection, frame) for connection in self.registry.members_of(channel))

        results = await asyncio.gather(
            *(self._deliver(connection, frame) for connection, frame in targets)
        )
        delivered = sum(1 for ok in results if ok)

        logger.info(
            f"[BROADCAST] {event.type.value} #{event.sequence} -> "
            f"{', '.join(c.value for c in event.channels)} - {delivered} deliveries"
        )
        return delivered

    async def attach(self, connection_id: str, channel: str, store: OrderStore) -> bool:
        """
        Subscribe a connection and send it the channel snapshot.

        The connection's send lock is held from subscription until the
        snapshot is written, so deltas for the channel queue up behind it.
        Deltas committed while the snapshot was being read are delivered
        afterwards; they carry absolute statuses and replaying them is a
        no-op for the observer.

        Raises:
            KeyError: unknown connection
            ValueError: unknown channel
            StoreError: snapshot could not be read
        """
        connection = self._connection(connection_id)
        channel = Channel(channel)

        async with connection.send_lock:
            self.registry.subscribe(connection_id, channel)
            try:
                return await self._send_snapshot(connection, channel, store)
            except StoreError:
                # No membership without a snapshot
                self.registry.unsubscribe(connection_id, channel)
                raise

    async def send_snapshot(self, connection_id: str, channel: str, store: OrderStore) -> bool:
        """
        Resend the snapshot of a channel the connection already follows.

        Observers call this after missing events. A connection that is not
        a member yet is attached instead.
        """
        connection = self._connection(connection_id)
        channel = Channel(channel)
        if channel not in connection.channels:
            return await self.attach(connection_id, channel, store)

        async with connection.send_lock:
            return await self._send_snapshot(connection, channel, store)

    async def _send_snapshot(self, connection: Connection, channel: Channel, store: OrderStore) -> bool:
        # Caller holds the send lock; queued deltas all get a higher sequence
        sequence = next(self._sequence)
        data = await self.snapshot(channel, store)
        try:
            await self._send(connection, snapshot_envelope(channel, data, sequence))
        except BroadcastFailure as e:
            await self._drop(connection, e)
            return False
        logger.info(f"[BROADCAST] Snapshot of {channel.value} sent to {connection.connection_id}")
        return True

    def _connection(self, connection_id: str) -> Connection:
        connection = self.registry.get(connection_id)
        if connection is None:
            raise KeyError(connection_id)
        return connection

    async def snapshot(self, channel: str, store: OrderStore) -> Dict[str, Any]:
        """Current state of a channel, read from the store."""
        channel = Channel(channel)
        if channel is Channel.KITCHEN:
            items = await store.list_items_by_status(*KITCHEN_BOARD_STATUSES, paid_only=True)
            return {"items": [OrderItemView.from_item(item).model_dump() for item in items]}
        if channel is Channel.SERVING:
            items = await store.list_items_by_status(*SERVING_BOARD_STATUSES, paid_only=True)
            return {"items": [OrderItemView.from_item(item).model_dump() for item in items]}
        orders = await store.list_orders(payment_status=PaymentStatus.UNPAID)
        return {"orders": [OrderView.from_order(order).model_dump() for order in orders]}

    async def _deliver(self, connection: Connection, frame: Dict[str, Any]) -> bool:
        async with connection.send_lock:
            # Dropped while waiting behind another frame
            if self.registry.get(connection.connection_id) is not connection:
                return False
            try:
                await self._send(connection, frame)
            except BroadcastFailure as e:
                await self._drop(connection, e)
                return False
        return True

    async def _send(self, connection: Connection, frame: Dict[str, Any]) -> None:
        try:
            await asyncio.wait_for(connection.sender.send_json(frame), timeout=self.send_timeout)
        except asyncio.TimeoutError as e:
            raise BroadcastFailure(connection.connection_id, "send timed out") from e
        except Exception as e:
            raise BroadcastFailure(
                connection.connection_id, f"{type(e).__name__}: {e}"
            ) from e

    async def _drop(self, connection: Connection, failure: BroadcastFailure) -> None:
        """Unregister and close the connection so the observer reconnects."""
        logger.warning(f"[BROADCAST] Dropping connection after failed push - {failure}")
        self.registry.unregister(connection.connection_id)
        try:
            await asyncio.wait_for(
                connection.sender.close(code=CLOSE_TRY_AGAIN_LATER, reason="Missed events, reconnect"),
                timeout=self.send_timeout,
            )
        except Exception as e:
            logger.debug(f"[BROADCAST] Could not close {connection.connection_id} - {type(e).__name__}: {e}")
