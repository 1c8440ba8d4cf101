"""Order aggregate: header plus line items, persisted through a SQLAlchemy session."""
import logging
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from models.menu_management import MenuItem
from models.order_management import Order, OrderItem, OrderStatus, OrderType
from models.restaurant import Restaurant
from schemas.order_management import OrderCreate, OrderItemCreate, OrderUpdate
from services import status_flow
from services.exceptions import (
    InvalidStatusTransition,
    NotFoundError,
    PartialWriteError,
    PersistenceError,
)
from utils.config import settings

logger = logging.getLogger(__name__)

HEADER_FIELDS = ("status", "order_type", "table_number", "total_amount", "special_request")


def compute_total(items: Iterable[OrderItemCreate]) -> float:
    return sum(item.price * item.quantity for item in items)


def get_restaurant(db: Session, restaurant_id: int) -> Restaurant:
    restaurant = db.query(Restaurant).filter(Restaurant.id == restaurant_id).first()
    if not restaurant:
        raise NotFoundError(f"Restaurant {restaurant_id} not found")
    return restaurant


def _order_query(db: Session):
    return db.query(Order).options(selectinload(Order.order_items))


def list_orders(db: Session, restaurant_id: int) -> List[Order]:
    return (
        _order_query(db)
        .filter(Order.restaurant_id == restaurant_id)
        .order_by(Order.created_at.desc(), Order.id.desc())
        .all()
    )


def find_order(db: Session, order_id: int) -> Optional[Order]:
    return _order_query(db).filter(Order.id == order_id).first()


def get_order(db: Session, restaurant_id: int, order_id: int) -> Order:
    order = _order_query(db).filter(Order.id == order_id, Order.restaurant_id == restaurant_id).first()
    if not order:
        raise NotFoundError(f"Order {order_id} not found")
    return order


def _insert_items(db: Session, order_id: int, items: Iterable[OrderItemCreate]) -> None:
    db.add_all([
        OrderItem(
            order_id=order_id,
            menu_item_id=item.menu_item_id,
            name=item.name,
            quantity=item.quantity,
            price_at_time=item.price,
            selected_options=[opt.model_dump() for opt in item.selected_options],
        )
        for item in items
    ])


def _replace_items(db: Session, order: Order, items: Iterable[OrderItemCreate]) -> None:
    # Whole-row replace: delete every existing line, then insert the new set
    db.query(OrderItem).filter(OrderItem.order_id == order.id).delete(synchronize_session=False)
    db.flush()
    db.expire(order, ["order_items"])
    _insert_items(db, order.id, items)


def _commit(db: Session, action: str) -> None:
    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Store rejected {action}: {str(e)}")
        raise PersistenceError(f"Failed to {action}") from e


def create_order(db: Session, restaurant_id: int, payload: OrderCreate, atomic: Optional[bool] = None) -> Order:
    """
    Persist a new pending order and its line items.

    With ``atomic`` (the default from settings) header and items share one
    transaction. Otherwise the header is committed first; when the items write
    then fails the header stays and PartialWriteError is raised.
    """
    atomic = settings.ATOMIC_ORDER_WRITES if atomic is None else atomic
    get_restaurant(db, restaurant_id)

    order = Order(
        restaurant_id=restaurant_id,
        order_type=payload.order_type.value,
        status=OrderStatus.PENDING.value,
        table_number=payload.table_number,
        special_request=payload.special_request,
        total_amount=compute_total(payload.items),
    )
    try:
        db.add(order)
        db.flush()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Error creating order header for restaurant {restaurant_id}: {str(e)}")
        raise PersistenceError("Failed to create order") from e

    if not atomic:
        _commit(db, "create order")
        try:
            _insert_items(db, order.id, payload.items)
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Order {order.id} saved without items: {str(e)}")
            raise PartialWriteError(order.id) from e
    else:
        try:
            _insert_items(db, order.id, payload.items)
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Error creating items for restaurant {restaurant_id}: {str(e)}")
            raise PersistenceError("Failed to create order") from e
        _commit(db, "create order")

    db.refresh(order)
    logger.info(f"Order {order.id} created for restaurant {restaurant_id} with {len(payload.items)} items, total {order.total_amount}")
    return order


def update_order(
    db: Session,
    restaurant_id: int,
    order_id: int,
    patch: OrderUpdate,
    atomic: Optional[bool] = None,
    enforce_flow: Optional[bool] = None,
) -> Order:
    """
    Apply a header patch and, when ``patch.items`` is given, replace all line items.

    Status writes are not checked against the order type's flow unless
    ``enforce_flow`` (ENFORCE_STATUS_FLOW) is on.
    """
    atomic = settings.ATOMIC_ORDER_WRITES if atomic is None else atomic
    enforce_flow = settings.ENFORCE_STATUS_FLOW if enforce_flow is None else enforce_flow
    order = get_order(db, restaurant_id, order_id)

    changes = patch.model_dump(exclude_unset=True, include=set(HEADER_FIELDS))
    if "status" in changes and changes["status"] is not None:
        changes["status"] = changes["status"].value
        if enforce_flow:
            order_type = changes.get("order_type") or order.order_type
            if not status_flow.is_legal_transition(order.status, changes["status"], order_type):
                raise InvalidStatusTransition(order.status, changes["status"])
    if changes.get("order_type") is not None:
        changes["order_type"] = changes["order_type"].value
    for field in ("status", "order_type", "total_amount"):
        # Non-nullable header columns
        if field in changes and changes[field] is None:
            del changes[field]
    if patch.items is not None and "total_amount" not in changes:
        changes["total_amount"] = compute_total(patch.items)
    resulting_type = status_flow.canonical_type(changes.get("order_type") or order.order_type)
    if resulting_type != OrderType.DINE_IN.value and ("table_number" in changes or order.table_number is not None):
        # Only dine-in orders keep a table
        changes["table_number"] = None

    for field, value in changes.items():
        setattr(order, field, value)
    order.updated_at = datetime.utcnow()

    if patch.items is not None and not atomic:
        _commit(db, "update order details")
        try:
            _replace_items(db, order, patch.items)
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Order {order.id} header updated but items were not: {str(e)}")
            raise PartialWriteError(order.id, f"Failed to save new items for order {order.id}") from e
    else:
        try:
            if patch.items is not None:
                _replace_items(db, order, patch.items)
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Error replacing items of order {order.id}: {str(e)}")
            raise PersistenceError("Failed to update order items") from e
        _commit(db, "update order")

    db.refresh(order)
    logger.info(f"Order {order.id} updated: {sorted(changes)}{' + items' if patch.items is not None else ''}")
    return order


def advance_order(db: Session, restaurant_id: int, order_id: int) -> Optional[Order]:
    """Move an order one step along its flow; None when it has no next status."""
    order = get_order(db, restaurant_id, order_id)
    upcoming = status_flow.advance(order)
    if upcoming is None:
        return None
    return update_order(db, restaurant_id, order_id, OrderUpdate(status=upcoming))


def delete_order(db: Session, restaurant_id: int, order_id: int) -> None:
    order = get_order(db, restaurant_id, order_id)
    db.delete(order)
    _commit(db, "delete order")
    logger.info(f"Order {order_id} deleted from restaurant {restaurant_id}")


def set_contents(order_item, menu_items: Iterable[MenuItem]) -> List[Dict]:
    """
    Dishes contained in a set-menu line. Descriptions and preparation steps are
    not snapshotted, so they are looked up from the current menu.
    """
    by_id = {m.id: m for m in menu_items}
    contents = []
    for option in order_item.selected_options or []:
        if isinstance(option, dict):
            item_id, group_name, choice_name = option.get("item_id"), option.get("group_name"), option.get("choice_name")
        else:
            item_id, group_name, choice_name = option.item_id, option.group_name, option.choice_name
        if not item_id:
            continue
        linked = by_id.get(item_id)
        contents.append({
            "group_name": group_name,
            "choice_name": choice_name,
            "item_id": item_id,
            "description": linked.description if linked else None,
            "steps": linked.steps if linked else None,
        })
    return contents
