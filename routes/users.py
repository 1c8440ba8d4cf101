from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError
from typing import Optional
from models.user import User, UserRole
from schemas.user import UserCreate, UserResponse, Token, LoginRequest
from services.exceptions import AuthorizationError
from utils.auth import (
    ACCESS_DENIED,
    SECRET_KEY,
    authenticate_user,
    create_access_token,
    ensure_super_admin,
    get_current_super_admin,
    get_password_hash,
)
from utils.database import get_db
import logging

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/users", tags=["users"])


@router.post("/login", response_model=Token)
async def login(credentials: LoginRequest, db: Session = Depends(get_db)):
    user = authenticate_user(db, credentials.email, credentials.password)
    if not user or not user.is_active:
        logger.warning(f"Failed login attempt for {credentials.email}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        ensure_super_admin(user)
    except AuthorizationError:
        # Authenticated but not allowed in: no session is issued
        logger.warning(f"User {user.email} with role {user.role.value} signed out: {ACCESS_DENIED}")
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=ACCESS_DENIED)

    access_token = create_access_token({"sub": user.email, "role": user.role.value})
    logger.info(f"User {user.email} signed in")
    return {"access_token": access_token, "token_type": "bearer"}


@router.post("/register", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def register_user(
    user: UserCreate,
    admin_secret: Optional[str] = None,
    db: Session = Depends(get_db),
):
    """
    Sign up with email and password. Only a request carrying the admin secret
    gets the super_admin role; any other account is created but refused
    access to the dashboard.
    """
    existing_user = db.query(User).filter(User.email == user.email).first()
    if existing_user:
        logger.warning(f"Registration failed: Email already registered: {user.email}")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Email already registered")

    role = UserRole.SUPER_ADMIN if admin_secret and admin_secret == SECRET_KEY else UserRole.CUSTOMER
    db_user = User(
        email=user.email,
        first_name=user.first_name,
        last_name=user.last_name,
        hashed_password=get_password_hash(user.password),
        role=role,
        is_active=True,
    )
    try:
        db.add(db_user)
        db.commit()
        db.refresh(db_user)
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Unexpected error registering user {user.email}: {str(e)}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to register user")

    logger.info(f"User registered: {db_user.email} (ID: {db_user.id}, Role: {db_user.role.value})")
    if role != UserRole.SUPER_ADMIN:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=ACCESS_DENIED)
    return db_user


@router.get("/me", response_model=UserResponse)
async def read_current_user(current_user: User = Depends(get_current_super_admin)):
    return current_user
