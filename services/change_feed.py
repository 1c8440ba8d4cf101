"""
In-process change feed for the ``orders`` table.

SQLAlchemy mapper events record inserts, updates and deletes on Order rows;
the session publishes them only once its transaction commits. Subscribers
are scoped to one restaurant and receive events on their own event loop.
"""
import asyncio
import logging
import threading
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field
from sqlalchemy import event
from sqlalchemy.orm import Session, object_session

from models.order_management import Order

logger = logging.getLogger(__name__)

INSERT = "INSERT"
UPDATE = "UPDATE"
DELETE = "DELETE"

_PENDING_KEY = "pending_order_events"


class ChangeEvent(BaseModel):
    type: str
    table: str = "orders"
    restaurant_id: int
    new: Optional[Dict[str, Any]] = None
    old: Optional[Dict[str, Any]] = None
    commit_timestamp: datetime = Field(default_factory=datetime.utcnow)

    @property
    def order_id(self) -> Optional[int]:
        row = self.new or self.old or {}
        return row.get("id")


class Subscription:
    """Events for one restaurant. Use as an async context manager so it is always closed."""

    def __init__(self, feed: "ChangeFeed", restaurant_id: int, loop: asyncio.AbstractEventLoop):
        self.feed = feed
        self.restaurant_id = restaurant_id
        self._loop = loop
        self._queue: asyncio.Queue = asyncio.Queue()
        self.closed = False

    def deliver(self, change: ChangeEvent) -> None:
        self._loop.call_soon_threadsafe(self._queue.put_nowait, change)

    async def get(self, timeout: Optional[float] = None) -> ChangeEvent:
        if timeout is None:
            return await self._queue.get()
        return await asyncio.wait_for(self._queue.get(), timeout)

    def close(self) -> None:
        if not self.closed:
            self.closed = True
            self.feed.unsubscribe(self)

    def __aiter__(self):
        return self

    async def __anext__(self) -> ChangeEvent:
        if self.closed:
            raise StopAsyncIteration
        return await self.get()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        self.close()


class ChangeFeed:
    def __init__(self):
        self._subscribers: Dict[int, List[Subscription]] = {}
        self._lock = threading.Lock()

    def subscribe(self, restaurant_id: int) -> Subscription:
        """Must be called from the event loop that will consume the events."""
        subscription = Subscription(self, restaurant_id, asyncio.get_running_loop())
        with self._lock:
            self._subscribers.setdefault(restaurant_id, []).append(subscription)
        logger.debug(f"Subscribed to orders of restaurant {restaurant_id}. Total subscriptions: {self.subscriber_count(restaurant_id)}")
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        with self._lock:
            subscribers = self._subscribers.get(subscription.restaurant_id, [])
            if subscription in subscribers:
                subscribers.remove(subscription)
            if not subscribers:
                self._subscribers.pop(subscription.restaurant_id, None)
        logger.debug(f"Unsubscribed from orders of restaurant {subscription.restaurant_id}")

    def subscriber_count(self, restaurant_id: int) -> int:
        return len(self._subscribers.get(restaurant_id, []))

    def publish(self, change: ChangeEvent) -> None:
        with self._lock:
            subscribers = list(self._subscribers.get(change.restaurant_id, []))
        logger.debug(f"Publishing {change.type} of order {change.order_id} to {len(subscribers)} subscriber(s)")
        for subscription in subscribers:
            try:
                subscription.deliver(change)
            except RuntimeError as e:
                # The subscriber's event loop is gone
                logger.warning(f"Dropping subscription for restaurant {change.restaurant_id}: {str(e)}")
                subscription.close()


def order_row(order: Order) -> Dict[str, Any]:
    return {
        "id": order.id,
        "restaurant_id": order.restaurant_id,
        "order_type": order.order_type,
        "status": order.status,
        "table_number": order.table_number,
        "total_amount": order.total_amount,
        "created_at": order.created_at.isoformat() if order.created_at else None,
        "updated_at": order.updated_at.isoformat() if order.updated_at else None,
    }


order_feed = ChangeFeed()


def _queue_change(target: Order, change: ChangeEvent) -> None:
    session = object_session(target)
    if session is None:
        return
    session.info.setdefault(_PENDING_KEY, []).append(change)


def _after_insert(mapper, connection, target):
    _queue_change(target, ChangeEvent(type=INSERT, restaurant_id=target.restaurant_id, new=order_row(target)))


def _after_update(mapper, connection, target):
    _queue_change(target, ChangeEvent(type=UPDATE, restaurant_id=target.restaurant_id, new=order_row(target)))


def _after_delete(mapper, connection, target):
    _queue_change(target, ChangeEvent(
        type=DELETE,
        restaurant_id=target.restaurant_id,
        old={"id": target.id, "restaurant_id": target.restaurant_id},
    ))


def _after_commit(session):
    for change in session.info.pop(_PENDING_KEY, []):
        order_feed.publish(change)


def _after_rollback(session):
    session.info.pop(_PENDING_KEY, None)


def install_order_events() -> None:
    """Hook the orders table into ``order_feed``. Safe to call more than once."""
    if event.contains(Order, "after_insert", _after_insert):
        return
    event.listen(Order, "after_insert", _after_insert)
    event.listen(Order, "after_update", _after_update)
    event.listen(Order, "after_delete", _after_delete)
    event.listen(Session, "after_commit", _after_commit)
    event.listen(Session, "after_rollback", _after_rollback)
    logger.debug("Order change events installed")
