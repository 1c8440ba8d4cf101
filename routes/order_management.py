from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
import logging
from typing import List

from utils.database import get_db
from models.menu_management import MenuItem
from models.order_management import OrderItem
from models.user import User
from schemas.order_management import (
    OrderCreate,
    OrderUpdate,
    OrderResponse,
    NextStatusResponse,
    SetContentResponse,
)
from services import orders as order_service
from services import status_flow
from services.exceptions import SoufraError
from utils.auth import get_current_super_admin
from utils.http_errors import to_http_exception

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/restaurants/{restaurant_id}/orders", tags=["orders"])


@router.get("", response_model=List[OrderResponse])
async def list_orders(restaurant_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_super_admin)):
    """Orders of a restaurant, newest first."""
    try:
        order_service.get_restaurant(db, restaurant_id)
        return order_service.list_orders(db, restaurant_id)
    except SoufraError as e:
        raise to_http_exception(e, "list orders")


@router.post("", response_model=OrderResponse, status_code=status.HTTP_201_CREATED)
async def create_order(
    restaurant_id: int,
    order: OrderCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_super_admin)
):
    try:
        return order_service.create_order(db, restaurant_id, order)
    except SoufraError as e:
        logger.error(f"Error creating order for restaurant {restaurant_id}: {str(e)}")
        raise to_http_exception(e, "create order")


@router.get("/{order_id}", response_model=OrderResponse)
async def get_order(restaurant_id: int, order_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_super_admin)):
    try:
        return order_service.get_order(db, restaurant_id, order_id)
    except SoufraError as e:
        raise to_http_exception(e, "get order")


@router.put("/{order_id}", response_model=OrderResponse)
async def update_order(
    restaurant_id: int,
    order_id: int,
    order_update: OrderUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_super_admin)
):
    """
    Update header fields and, when ``items`` is present, replace every line
    item of the order. Sending ``items: []`` is only accepted together with
    ``status: cancelled``.
    """
    try:
        return order_service.update_order(db, restaurant_id, order_id, order_update)
    except SoufraError as e:
        logger.error(f"Error updating order {order_id}: {str(e)}")
        raise to_http_exception(e, "update order")


@router.delete("/{order_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_order(restaurant_id: int, order_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_super_admin)):
    try:
        order_service.delete_order(db, restaurant_id, order_id)
    except SoufraError as e:
        raise to_http_exception(e, "delete order")


@router.get("/{order_id}/next-status", response_model=NextStatusResponse)
async def get_next_status(restaurant_id: int, order_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_super_admin)):
    try:
        order = order_service.get_order(db, restaurant_id, order_id)
    except SoufraError as e:
        raise to_http_exception(e, "get order")
    return NextStatusResponse(
        order_id=order.id,
        status=order.status,
        next_status=status_flow.advance(order),
        allowed_statuses=status_flow.allowed_statuses(order.order_type),
    )


@router.post("/{order_id}/advance", response_model=OrderResponse)
async def advance_order(restaurant_id: int, order_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_super_admin)):
    """Move the order to the next status of its flow."""
    try:
        order = order_service.advance_order(db, restaurant_id, order_id)
    except SoufraError as e:
        raise to_http_exception(e, "advance order")
    if order is None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Order has no next status")
    return order


@router.get("/{order_id}/items/{item_id}/set-contents", response_model=List[SetContentResponse])
async def get_set_contents(
    restaurant_id: int,
    order_id: int,
    item_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_super_admin)
):
    """Dishes inside a set-menu line, with their current description and steps."""
    try:
        order_service.get_order(db, restaurant_id, order_id)
    except SoufraError as e:
        raise to_http_exception(e, "get order")
    order_item = db.query(OrderItem).filter(OrderItem.id == item_id, OrderItem.order_id == order_id).first()
    if not order_item:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Order item not found")

    linked_ids = [opt.get("item_id") for opt in order_item.selected_options or [] if opt.get("item_id")]
    menu_items = db.query(MenuItem).filter(MenuItem.id.in_(linked_ids)).all() if linked_ids else []
    return order_service.set_contents(order_item, menu_items)
