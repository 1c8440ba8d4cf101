"""Order status flows per order type. Advisory: the write path only checks
them when ENFORCE_STATUS_FLOW is on."""
from typing import List, Optional

from models.order_management import OrderStatus, OrderType

STATUS_FLOWS = {
    OrderType.DINE_IN.value: [
        OrderStatus.PENDING.value,
        OrderStatus.CONFIRMED.value,
        OrderStatus.PREPARING.value,
        OrderStatus.READY.value,
        OrderStatus.SERVED.value,
    ],
    OrderType.TAKE_AWAY.value: [
        OrderStatus.PENDING.value,
        OrderStatus.CONFIRMED.value,
        OrderStatus.PREPARING.value,
        OrderStatus.READY.value,
        OrderStatus.COMPLETED.value,
    ],
    OrderType.DELIVERY.value: [
        OrderStatus.PENDING.value,
        OrderStatus.CONFIRMED.value,
        OrderStatus.PREPARING.value,
        OrderStatus.READY.value,
        OrderStatus.OUT_FOR_DELIVERY.value,
        OrderStatus.DELIVERED.value,
    ],
}

# Deprecated type values still present in old rows
ORDER_TYPE_ALIASES = {"take_out": OrderType.TAKE_AWAY.value}

ACTIVE_STATUSES = frozenset({
    OrderStatus.PENDING.value,
    OrderStatus.CONFIRMED.value,
    OrderStatus.PREPARING.value,
    OrderStatus.READY.value,
    OrderStatus.OUT_FOR_DELIVERY.value,
})
PAST_STATUSES = frozenset({
    OrderStatus.SERVED.value,
    OrderStatus.COMPLETED.value,
    OrderStatus.DELIVERED.value,
})
TERMINAL_STATUSES = PAST_STATUSES | {OrderStatus.CANCELLED.value}


def _value(v) -> Optional[str]:
    return v.value if isinstance(v, (OrderType, OrderStatus)) else v


def _field(order, name):
    if isinstance(order, dict):
        return order.get(name)
    return getattr(order, name, None)


def canonical_type(order_type) -> Optional[str]:
    order_type = _value(order_type)
    return ORDER_TYPE_ALIASES.get(order_type, order_type)


def flow_for(order_type) -> List[str]:
    """Status sequence for an order type; unknown types use the dine-in flow."""
    order_type = canonical_type(order_type)
    return STATUS_FLOWS.get(order_type, STATUS_FLOWS[OrderType.DINE_IN.value])


def next_status(status, order_type) -> Optional[str]:
    flow = flow_for(order_type)
    status = _value(status)
    if status not in flow:
        return None
    index = flow.index(status)
    if index == len(flow) - 1:
        return None
    return flow[index + 1]


def advance(order) -> Optional[str]:
    """Next status for an order (ORM row, schema or dict), or None when there is none."""
    return next_status(_field(order, "status"), _field(order, "order_type"))


def allowed_statuses(order_type) -> List[str]:
    """Statuses an operator may pick for this order type."""
    return flow_for(order_type) + [OrderStatus.CANCELLED.value]


def is_terminal(status) -> bool:
    return _value(status) in TERMINAL_STATUSES


def is_legal_transition(current, requested, order_type) -> bool:
    current, requested = _value(current), _value(requested)
    if requested == current:
        return True
    if requested == OrderStatus.CANCELLED.value:
        return not is_terminal(current)
    return requested == next_status(current, order_type)
