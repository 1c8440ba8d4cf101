from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session
from typing import Dict, List, Optional, Union

from utils.database import get_db
from models.menu_management import Category, ItemType, MenuItem
from models.user import User
from schemas.menu_management import (
    CategoryCreate,
    CategoryUpdate,
    CategoryResponse,
    CategoryWithItemsResponse,
    MenuItemAvailability,
    MenuItemCreate,
    MenuItemUpdate,
    MenuItemResponse,
    OptionGroup,
)
from schemas.order_management import SelectedOption
from routes.restaurants import get_restaurant_or_404
from services import pricing
from services.exceptions import SoufraError
from utils.auth import get_current_super_admin
from utils.http_errors import to_http_exception
import logging

# Setup logging
logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/restaurants/{restaurant_id}", tags=["menu_management"])


class PricePreviewRequest(BaseModel):
    selections: Dict[str, Union[str, List[str]]] = Field(default_factory=dict)

class PricePreviewResponse(BaseModel):
    menu_item_id: int
    base_price: float
    unit_price: float
    selected_options: List[SelectedOption]


def get_category_or_404(db: Session, restaurant_id: int, category_id: int) -> Category:
    category = db.query(Category).filter(Category.id == category_id, Category.restaurant_id == restaurant_id).first()
    if not category:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Category not found")
    return category


def get_menu_item_or_404(db: Session, restaurant_id: int, item_id: int) -> MenuItem:
    item = db.query(MenuItem).filter(MenuItem.id == item_id, MenuItem.restaurant_id == restaurant_id).first()
    if not item:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Menu item not found")
    return item


def validate_linked_items(db: Session, restaurant_id: int, options: List[OptionGroup], item_id: Optional[int] = None):
    """Item-linked choices must point at another item of the same restaurant."""
    linked = {c.item_id for g in options for c in g.choices if c.item_id is not None}
    if not linked:
        return
    if item_id is not None and item_id in linked:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="A set menu cannot contain itself")
    found = {
        row.id for row in db.query(MenuItem.id).filter(MenuItem.id.in_(linked), MenuItem.restaurant_id == restaurant_id).all()
    }
    missing = sorted(linked - found)
    if missing:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Linked menu item(s) {missing} not found in this restaurant"
        )


# Category Endpoints
@router.get("/categories", response_model=List[CategoryWithItemsResponse])
async def list_categories(restaurant_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_super_admin)):
    get_restaurant_or_404(db, restaurant_id)
    return (
        db.query(Category)
        .filter(Category.restaurant_id == restaurant_id)
        .order_by(Category.sort_order, Category.id)
        .all()
    )


@router.post("/categories", response_model=CategoryResponse, status_code=status.HTTP_201_CREATED)
async def create_category(
    restaurant_id: int,
    category: CategoryCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_super_admin)
):
    get_restaurant_or_404(db, restaurant_id)
    db_category = Category(restaurant_id=restaurant_id, **category.model_dump())
    db.add(db_category)
    db.commit()
    db.refresh(db_category)
    logger.info(f"Category {db_category.id} created in restaurant {restaurant_id}")
    return db_category


@router.put("/categories/{category_id}", response_model=CategoryResponse)
async def update_category(
    restaurant_id: int,
    category_id: int,
    category_update: CategoryUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_super_admin)
):
    db_category = get_category_or_404(db, restaurant_id, category_id)
    for field, value in category_update.model_dump(exclude_unset=True).items():
        if value is not None:
            setattr(db_category, field, value)
    db.commit()
    db.refresh(db_category)
    return db_category


@router.delete("/categories/{category_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_category(restaurant_id: int, category_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_super_admin)):
    db_category = get_category_or_404(db, restaurant_id, category_id)
    db.delete(db_category)
    db.commit()


# Menu Item Endpoints
@router.get("/menu-items", response_model=List[MenuItemResponse])
async def list_menu_items(restaurant_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_super_admin)):
    get_restaurant_or_404(db, restaurant_id)
    return db.query(MenuItem).filter(MenuItem.restaurant_id == restaurant_id).order_by(MenuItem.id).all()


@router.post("/menu-items", response_model=MenuItemResponse, status_code=status.HTTP_201_CREATED)
async def create_menu_item(
    restaurant_id: int,
    item: MenuItemCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_super_admin)
):
    get_restaurant_or_404(db, restaurant_id)
    get_category_or_404(db, restaurant_id, item.category_id)
    validate_linked_items(db, restaurant_id, item.options)

    data = item.model_dump()
    data["options"] = [g.model_dump() for g in item.options]
    db_item = MenuItem(restaurant_id=restaurant_id, **data)
    db.add(db_item)
    db.commit()
    db.refresh(db_item)
    logger.info(f"Menu item {db_item.id} ({db_item.item_type.value}) created in restaurant {restaurant_id}")
    return db_item


@router.get("/menu-items/{item_id}", response_model=MenuItemResponse)
async def get_menu_item(restaurant_id: int, item_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_super_admin)):
    return get_menu_item_or_404(db, restaurant_id, item_id)


@router.put("/menu-items/{item_id}", response_model=MenuItemResponse)
async def update_menu_item(
    restaurant_id: int,
    item_id: int,
    item_update: MenuItemUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_super_admin)
):
    db_item = get_menu_item_or_404(db, restaurant_id, item_id)
    changes = item_update.model_dump(exclude_unset=True)

    if changes.get("category_id") is not None:
        get_category_or_404(db, restaurant_id, changes["category_id"])
    if item_update.options is not None:
        validate_linked_items(db, restaurant_id, item_update.options, item_id=item_id)
        changes["options"] = [g.model_dump() for g in item_update.options]

    for field, value in changes.items():
        if value is None and field in ("name", "price", "is_available", "item_type", "options", "category_id"):
            continue
        setattr(db_item, field, value)
    if db_item.item_type == ItemType.SINGLE:
        db_item.options = []

    db.commit()
    db.refresh(db_item)
    return db_item


@router.patch("/menu-items/{item_id}/availability", response_model=MenuItemResponse)
async def toggle_menu_item_availability(
    restaurant_id: int,
    item_id: int,
    availability: MenuItemAvailability,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_super_admin)
):
    db_item = get_menu_item_or_404(db, restaurant_id, item_id)
    db_item.is_available = availability.is_available
    db.commit()
    db.refresh(db_item)
    logger.info(f"Menu item {item_id} availability set to {availability.is_available}")
    return db_item


@router.post("/menu-items/{item_id}/price", response_model=PricePreviewResponse)
async def preview_menu_item_price(
    restaurant_id: int,
    item_id: int,
    preview: PricePreviewRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_super_admin)
):
    db_item = get_menu_item_or_404(db, restaurant_id, item_id)
    try:
        pricing.validate_selections(db_item.options, preview.selections)
    except SoufraError as e:
        raise to_http_exception(e)
    return {
        "menu_item_id": db_item.id,
        "base_price": db_item.price,
        "unit_price": pricing.price_item(db_item, preview.selections),
        "selected_options": pricing.build_selected_options(db_item.options, preview.selections),
    }


@router.delete("/menu-items/{item_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_menu_item(restaurant_id: int, item_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_super_admin)):
    db_item = get_menu_item_or_404(db, restaurant_id, item_id)
    db.delete(db_item)
    db.commit()
