import asyncio
from datetime import datetime, timedelta

import pytest

from schemas.order_management import OrderResponse, OrderUpdate
from services import orders as order_service
from services.cart import Cart
from services.change_feed import ChangeEvent, ChangeFeed, DELETE, INSERT, UPDATE
from services.live_view import LocalOrderSource, OrderLiveView, OrderSource, elapsed_time, is_ticking

T0 = datetime(2026, 3, 1, 12, 0, 0)


def make_order(order_id, status="pending", minutes=0, updated=None, order_type="dine_in"):
    created = T0 + timedelta(minutes=minutes)
    return OrderResponse(
        id=order_id,
        restaurant_id=1,
        order_type=order_type,
        status=status,
        total_amount=1000,
        created_at=created,
        updated_at=updated or created,
    )


class FakeSubscription:
    def __init__(self):
        self.queue = asyncio.Queue()
        self.closed = False

    def close(self):
        self.closed = True

    def __aiter__(self):
        return self

    async def __anext__(self):
        return await self.queue.get()


class FakeSource(OrderSource):
    def __init__(self, orders=()):
        self.rows = {o.id: o for o in orders}
        self.fetches = 0
        self.subscription = None

    async def fetch_orders(self, restaurant_id):
        self.fetches += 1
        return list(self.rows.values())

    async def fetch_order(self, order_id):
        return self.rows.get(order_id)

    def subscribe(self, restaurant_id):
        self.subscription = FakeSubscription()
        return self.subscription


def change(kind, order_id, status=None):
    row = {"id": order_id, "status": status}
    if kind == DELETE:
        return ChangeEvent(type=kind, restaurant_id=1, old=row)
    return ChangeEvent(type=kind, restaurant_id=1, new=row)


def test_initial_load_hides_cancelled_orders():
    async def scenario():
        source = FakeSource([make_order(1), make_order(2, "cancelled")])
        view = OrderLiveView(source, 1, refresh_interval=60)
        await view.start()
        ids = [o.id for o in view.orders]
        await view.stop()
        return ids, source.subscription.closed

    ids, closed = asyncio.run(scenario())
    assert ids == [1]
    assert closed


def test_insert_is_idempotent():
    async def scenario():
        source = FakeSource([make_order(1)])
        view = OrderLiveView(source, 1, refresh_interval=60)
        await view.start()
        source.rows[2] = make_order(2, minutes=1)
        await view.apply(change(INSERT, 2))
        await view.apply(change(INSERT, 2))
        await view.stop()
        return [o.id for o in view.orders]

    assert asyncio.run(scenario()) == [1, 2]


def test_update_to_cancelled_removes_order():
    async def scenario():
        source = FakeSource([make_order(1), make_order(2)])
        view = OrderLiveView(source, 1, refresh_interval=60)
        await view.start()
        source.rows[2] = make_order(2, "cancelled", updated=T0 + timedelta(minutes=5))
        await view.apply(change(UPDATE, 2, "cancelled"))
        await view.stop()
        return [o.id for o in view.orders]

    assert asyncio.run(scenario()) == [1]


def test_delete_removes_order():
    async def scenario():
        view = OrderLiveView(FakeSource([make_order(1)]), 1, refresh_interval=60)
        await view.start()
        await view.apply(change(DELETE, 1))
        await view.stop()
        return view.orders

    assert asyncio.run(scenario()) == []


def test_stale_copy_does_not_overwrite_newer_one():
    async def scenario():
        newer = make_order(1, "ready", updated=T0 + timedelta(minutes=10))
        view = OrderLiveView(FakeSource(), 1, refresh_interval=60)
        await view.start(initial=[newer])
        view.load([make_order(1, "preparing", updated=T0 + timedelta(minutes=5))])
        await view.stop()
        return view.get(1).status

    assert asyncio.run(scenario()) == "ready"


def test_events_are_applied_from_subscription():
    async def scenario():
        source = FakeSource([make_order(1)])
        seen = []
        view = OrderLiveView(source, 1, refresh_interval=60, on_change=lambda v: seen.append(len(v.orders)))
        async with view:
            source.rows[1] = make_order(1, "confirmed", updated=T0 + timedelta(minutes=1))
            source.subscription.queue.put_nowait(change(UPDATE, 1, "confirmed"))
            for _ in range(50):
                if view.get(1).status == "confirmed":
                    break
                await asyncio.sleep(0.01)
            status = view.get(1).status
        return status, view.running, seen

    status, running, seen = asyncio.run(scenario())
    assert status == "confirmed"
    assert not running
    assert seen


def test_periodic_refresh_picks_up_missed_changes():
    async def scenario():
        source = FakeSource([make_order(1)])
        view = OrderLiveView(source, 1, refresh_interval=0.01)
        await view.start()
        source.rows[3] = make_order(3, minutes=2)
        for _ in range(50):
            if view.get(3) is not None:
                break
            await asyncio.sleep(0.01)
        await view.stop()
        return [o.id for o in view.orders], source.fetches

    ids, fetches = asyncio.run(scenario())
    assert 3 in ids
    assert fetches >= 2


def test_active_and_past_partitions():
    view = OrderLiveView(FakeSource(), 1, refresh_interval=60)
    view.load([
        make_order(1, "pending"),
        make_order(2, "out_for_delivery", order_type="delivery"),
        make_order(3, "served", minutes=1),
        make_order(4, "delivered", minutes=5, order_type="delivery"),
        make_order(5, "completed", minutes=3, order_type="take_away"),
    ])
    assert [o.id for o in view.active] == [1, 2]
    assert [o.id for o in view.past] == [4, 5, 3]


def test_elapsed_time_ticks_until_finished():
    running = make_order(1, "preparing")
    done = make_order(2, "served", updated=T0 + timedelta(minutes=42))
    now = T0 + timedelta(minutes=90)
    assert elapsed_time(running, now) == timedelta(minutes=90)
    assert elapsed_time(done, now) == timedelta(minutes=42)
    assert is_ticking(running)
    assert not is_ticking(done)


async def _wait_for(predicate):
    for _ in range(100):
        if predicate():
            return True
        await asyncio.sleep(0.01)
    return False


def test_local_source_follows_committed_orders(db, session_factory, restaurant, coffee):
    async def scenario():
        view = OrderLiveView(LocalOrderSource(session_factory), restaurant.id, refresh_interval=60)
        async with view:
            cart = Cart()
            cart.add(coffee)
            order = order_service.create_order(db, restaurant.id, cart.to_create())
            appeared = await _wait_for(lambda: view.get(order.id) is not None)
            order_service.update_order(db, restaurant.id, order.id, OrderUpdate(status="cancelled"))
            removed = await _wait_for(lambda: view.get(order.id) is None)
        return appeared, removed

    assert asyncio.run(scenario()) == (True, True)


class FailingSource(FakeSource):
    def __init__(self, feed):
        super().__init__()
        self.feed = feed

    async def fetch_orders(self, restaurant_id):
        raise RuntimeError("store unavailable")

    def subscribe(self, restaurant_id):
        return self.feed.subscribe(restaurant_id)


def test_failed_start_releases_subscription():
    async def scenario():
        feed = ChangeFeed()
        view = OrderLiveView(FailingSource(feed), 1, refresh_interval=60)
        with pytest.raises(RuntimeError):
            async with view:
                pass
        return feed.subscriber_count(1), view.running

    assert asyncio.run(scenario()) == (0, False)


def test_update_for_untracked_order_adds_it():
    async def scenario():
        source = FakeSource([make_order(1)])
        view = OrderLiveView(source, 1, refresh_interval=60)
        await view.start()
        # Order 2 was not part of the snapshot
        source.rows[2] = make_order(2, "confirmed", updated=T0 + timedelta(minutes=3))
        await view.apply(change(UPDATE, 2, "confirmed"))
        await view.stop()
        return [(o.id, o.status) for o in view.orders]

    assert asyncio.run(scenario()) == [(1, "pending"), (2, "confirmed")]


def test_update_with_older_copy_keeps_tracked_order():
    async def scenario():
        source = FakeSource()
        view = OrderLiveView(source, 1, refresh_interval=60)
        await view.start(initial=[make_order(1, "ready", updated=T0 + timedelta(minutes=10))])
        source.rows[1] = make_order(1, "preparing", updated=T0 + timedelta(minutes=4))
        await view.apply(change(UPDATE, 1, "preparing"))
        await view.stop()
        return view.get(1).status

    assert asyncio.run(scenario()) == "ready"
