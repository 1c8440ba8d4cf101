from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from typing import List

from utils.database import get_db
from models.restaurant import Restaurant
from models.user import User
from schemas.restaurant import RestaurantCreate, RestaurantResponse, RestaurantUpdate
from utils.auth import get_current_super_admin
from utils.validators import slugify, validate_slug_uniqueness
import logging

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/restaurants", tags=["restaurants"])


def get_restaurant_or_404(db: Session, restaurant_id: int) -> Restaurant:
    restaurant = db.query(Restaurant).filter(Restaurant.id == restaurant_id).first()
    if not restaurant:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Restaurant not found")
    return restaurant


@router.post("", response_model=RestaurantResponse, status_code=status.HTTP_201_CREATED)
async def create_restaurant(
    restaurant: RestaurantCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_super_admin)
):
    slug = slugify(restaurant.name)
    if not slug:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Restaurant name must contain letters or digits")
    validate_slug_uniqueness(db, Restaurant, slug)

    db_restaurant = Restaurant(slug=slug, **restaurant.model_dump())
    db.add(db_restaurant)
    db.commit()
    db.refresh(db_restaurant)
    logger.info(f"Restaurant {db_restaurant.id} ({slug}) created by user {current_user.id}")
    return db_restaurant


@router.get("", response_model=List[RestaurantResponse])
async def list_restaurants(db: Session = Depends(get_db), current_user: User = Depends(get_current_super_admin)):
    return db.query(Restaurant).order_by(Restaurant.name).all()


@router.get("/by-slug/{slug}", response_model=RestaurantResponse)
async def get_restaurant_by_slug(slug: str, db: Session = Depends(get_db), current_user: User = Depends(get_current_super_admin)):
    restaurant = db.query(Restaurant).filter(Restaurant.slug == slug).first()
    if not restaurant:
        logger.warning(f"No restaurant with slug {slug}")
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Restaurant not found")
    return restaurant


@router.get("/{restaurant_id}", response_model=RestaurantResponse)
async def get_restaurant(restaurant_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_super_admin)):
    return get_restaurant_or_404(db, restaurant_id)


@router.put("/{restaurant_id}", response_model=RestaurantResponse)
async def update_restaurant(
    restaurant_id: int,
    restaurant_update: RestaurantUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_super_admin)
):
    restaurant = get_restaurant_or_404(db, restaurant_id)

    # The slug is fixed at creation so existing links keep working
    for field, value in restaurant_update.model_dump(exclude_unset=True).items():
        if field == "name" and not value:
            continue
        setattr(restaurant, field, value)

    db.commit()
    db.refresh(restaurant)
    return restaurant


@router.delete("/{restaurant_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_restaurant(restaurant_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_super_admin)):
    restaurant = get_restaurant_or_404(db, restaurant_id)
    db.delete(restaurant)
    db.commit()
    logger.info(f"Restaurant {restaurant_id} deleted by user {current_user.id}")
