"""
Client-side live view of one restaurant's orders.

Starts from a full snapshot, then follows the change feed and re-fetches the
full list on a timer as a consistency backstop. Cancelled orders are never
shown. A fetched copy older than the tracked one (by ``updated_at``) is
discarded, so a slow response cannot clobber newer data.
"""
import asyncio
import logging
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from models.order_management import OrderStatus
from schemas.order_management import OrderResponse
from services import orders as order_service
from services.change_feed import DELETE, INSERT, UPDATE, ChangeEvent, order_feed
from services.status_flow import ACTIVE_STATUSES, PAST_STATUSES, TERMINAL_STATUSES
from utils.config import settings
from utils.database import SessionLocal

logger = logging.getLogger(__name__)

CANCELLED = OrderStatus.CANCELLED.value


def elapsed_time(order, now: Optional[datetime] = None) -> timedelta:
    """Time the order took if it is finished, otherwise time since it was placed."""
    if order.status in TERMINAL_STATUSES and order.updated_at:
        return order.updated_at - order.created_at
    return (now or datetime.utcnow()) - order.created_at


def is_ticking(order) -> bool:
    return order.status not in TERMINAL_STATUSES


class OrderSource:
    """Where a live view reads orders and change events from."""

    async def fetch_orders(self, restaurant_id: int) -> List[OrderResponse]:
        raise NotImplementedError

    async def fetch_order(self, order_id: int) -> Optional[OrderResponse]:
        raise NotImplementedError

    def subscribe(self, restaurant_id: int):
        """Return an async-iterable subscription with a ``close()`` method."""
        raise NotImplementedError


class LocalOrderSource(OrderSource):
    """Reads straight from the database and the in-process change feed."""

    def __init__(self, session_factory=SessionLocal, feed=order_feed):
        self.session_factory = session_factory
        self.feed = feed

    def _load_orders(self, restaurant_id: int) -> List[OrderResponse]:
        db = self.session_factory()
        try:
            return [OrderResponse.model_validate(o) for o in order_service.list_orders(db, restaurant_id)]
        finally:
            db.close()

    def _load_order(self, order_id: int) -> Optional[OrderResponse]:
        db = self.session_factory()
        try:
            order = order_service.find_order(db, order_id)
            return OrderResponse.model_validate(order) if order else None
        finally:
            db.close()

    # Queries run on a worker thread so the event loop keeps serving events
    async def fetch_orders(self, restaurant_id: int) -> List[OrderResponse]:
        return await asyncio.to_thread(self._load_orders, restaurant_id)

    async def fetch_order(self, order_id: int) -> Optional[OrderResponse]:
        return await asyncio.to_thread(self._load_order, order_id)

    def subscribe(self, restaurant_id: int):
        return self.feed.subscribe(restaurant_id)


class OrderLiveView:
    def __init__(
        self,
        source: OrderSource,
        restaurant_id: int,
        refresh_interval: Optional[float] = None,
        on_change: Optional[Callable[["OrderLiveView"], None]] = None,
    ):
        self.source = source
        self.restaurant_id = restaurant_id
        self.refresh_interval = settings.ORDERS_REFRESH_INTERVAL if refresh_interval is None else refresh_interval
        self.on_change = on_change
        self._orders: List[OrderResponse] = []
        self._subscription = None
        self._tasks: List[asyncio.Task] = []

    # ---- lifecycle ----

    async def start(self, initial: Optional[List[OrderResponse]] = None) -> "OrderLiveView":
        # Subscribe before the snapshot so no change falls between the two
        self._subscription = self.source.subscribe(self.restaurant_id)
        try:
            if initial is None:
                await self.refresh()
            else:
                self.load(initial)
        except BaseException:
            # __aexit__ never runs when entering fails
            self._subscription.close()
            self._subscription = None
            raise
        self._tasks = [
            asyncio.create_task(self._listen()),
            asyncio.create_task(self._refresh_periodically()),
        ]
        logger.info(f"Live view started for restaurant {self.restaurant_id}")
        return self

    async def stop(self) -> None:
        for task in self._tasks:
            task.cancel()
        for task in self._tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._tasks = []
        if self._subscription is not None:
            self._subscription.close()
            self._subscription = None
        logger.info(f"Live view stopped for restaurant {self.restaurant_id}")

    async def __aenter__(self):
        return await self.start()

    async def __aexit__(self, exc_type, exc, tb):
        await self.stop()

    @property
    def running(self) -> bool:
        return bool(self._tasks)

    async def _listen(self) -> None:
        async for change in self._subscription:
            try:
                await self.apply(change)
            except Exception as e:
                logger.warning(f"Failed to apply {change.type} for order {change.order_id}: {str(e)}")

    async def _refresh_periodically(self) -> None:
        while True:
            await asyncio.sleep(self.refresh_interval)
            try:
                await self.refresh()
            except Exception as e:
                logger.warning(f"Error refreshing orders of restaurant {self.restaurant_id}: {str(e)}")

    # ---- reconciliation ----

    def load(self, snapshot: List[OrderResponse]) -> None:
        tracked = {o.id: o for o in self._orders}
        fresh = []
        for order in snapshot:
            if order.status == CANCELLED:
                continue
            current = tracked.get(order.id)
            if current is not None and current.updated_at > order.updated_at:
                fresh.append(current)
            else:
                fresh.append(order)
        self._orders = fresh
        self._changed()

    async def refresh(self) -> None:
        snapshot = await self.source.fetch_orders(self.restaurant_id)
        self.load(snapshot)

    async def apply(self, change: ChangeEvent) -> None:
        if change.type == INSERT:
            await self.handle_insert(change.order_id)
        elif change.type == UPDATE:
            await self.handle_update(change.order_id, (change.new or {}).get("status"))
        elif change.type == DELETE:
            self.remove(change.order_id)
        else:
            logger.warning(f"Ignoring unknown change type {change.type!r}")

    async def handle_insert(self, order_id: int) -> None:
        if self.get(order_id) is not None:
            return
        order = await self.source.fetch_order(order_id)
        if order is None or order.status == CANCELLED:
            return
        # Another trigger may have added it while the fetch was in flight
        if self.get(order_id) is None:
            self._orders.append(order)
            self._changed()

    async def handle_update(self, order_id: int, status: Optional[str] = None) -> None:
        if status == CANCELLED:
            self.remove(order_id)
            return
        order = await self.source.fetch_order(order_id)
        if order is None:
            return
        if order.status == CANCELLED:
            self.remove(order_id)
            return
        self._store(order)

    def remove(self, order_id: int) -> None:
        before = len(self._orders)
        self._orders = [o for o in self._orders if o.id != order_id]
        if len(self._orders) != before:
            self._changed()

    def _store(self, order: OrderResponse) -> None:
        for index, current in enumerate(self._orders):
            if current.id == order.id:
                if order.updated_at < current.updated_at:
                    logger.debug(f"Discarding stale copy of order {order.id}")
                    return
                self._orders[index] = order
                self._changed()
                return
        self._orders.append(order)
        self._changed()

    def _changed(self) -> None:
        if self.on_change is not None:
            self.on_change(self)

    # ---- display ----

    def get(self, order_id: int) -> Optional[OrderResponse]:
        for order in self._orders:
            if order.id == order_id:
                return order
        return None

    @property
    def orders(self) -> List[OrderResponse]:
        return list(self._orders)

    @property
    def active(self) -> List[OrderResponse]:
        return [o for o in self._orders if o.status in ACTIVE_STATUSES]

    @property
    def past(self) -> List[OrderResponse]:
        past = [o for o in self._orders if o.status in PAST_STATUSES]
        return sorted(past, key=lambda o: o.created_at, reverse=True)

    def elapsed(self, order_id: int, now: Optional[datetime] = None) -> Optional[timedelta]:
        order = self.get(order_id)
        return elapsed_time(order, now) if order else None
