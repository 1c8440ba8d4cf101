import copy
import os

# Keep the application engine off the working directory during tests
os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.main import app
from models.menu_management import Category, ItemType, MenuItem
from models.restaurant import Restaurant
from models.user import User, UserRole
from utils.auth import create_access_token, get_password_hash
from utils.database import Base, get_db

engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def override_get_db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


app.dependency_overrides[get_db] = override_get_db


@pytest.fixture(autouse=True)
def tables():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db():
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client():
    return TestClient(app)


def make_user(db, email, role, password="secret123"):
    user = User(
        email=email,
        first_name="Test",
        hashed_password=get_password_hash(password),
        role=role,
        is_active=True,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def super_admin(db):
    return make_user(db, "admin@soufra.io", UserRole.SUPER_ADMIN)


@pytest.fixture
def admin_headers(super_admin):
    token = create_access_token({"sub": super_admin.email, "role": super_admin.role.value})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def restaurant(db):
    restaurant = Restaurant(name="Le Jardin", slug="le-jardin")
    db.add(restaurant)
    db.commit()
    db.refresh(restaurant)
    return restaurant


# Set menu "Lunch Formula": starter required, dessert optional
LUNCH_OPTIONS = [
    {
        "id": "g1",
        "name": "Starter",
        "min_selection": 1,
        "max_selection": 1,
        "choices": [
            {"id": "c1", "name": "Soup", "extra_price": 0},
            {"id": "c2", "name": "Foie gras", "extra_price": 500},
        ],
    },
    {
        "id": "g2",
        "name": "Dessert",
        "min_selection": 0,
        "max_selection": 1,
        "choices": [
            {"id": "c3", "name": "Tart", "extra_price": 0},
        ],
    },
]


@pytest.fixture
def category(db, restaurant):
    category = Category(restaurant_id=restaurant.id, name="Formulas", sort_order=1)
    db.add(category)
    db.commit()
    db.refresh(category)
    return category


@pytest.fixture
def lunch_formula(db, restaurant, category):
    item = MenuItem(
        restaurant_id=restaurant.id,
        category_id=category.id,
        name="Lunch Formula",
        price=2000,
        item_type=ItemType.SET_MENU,
        options=LUNCH_OPTIONS,
    )
    db.add(item)
    db.commit()
    db.refresh(item)
    return item


@pytest.fixture
def coffee(db, restaurant, category):
    item = MenuItem(
        restaurant_id=restaurant.id,
        category_id=category.id,
        name="Coffee",
        description="Double espresso",
        price=300,
        item_type=ItemType.SINGLE,
        options=[],
    )
    db.add(item)
    db.commit()
    db.refresh(item)
    return item


@pytest.fixture
def lunch_options():
    return copy.deepcopy(LUNCH_OPTIONS)


@pytest.fixture
def user_factory(db):
    def factory(email, role, password="secret123"):
        return make_user(db, email, role, password)
    return factory


@pytest.fixture
def session_factory():
    return TestingSessionLocal
