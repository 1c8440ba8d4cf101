from sqlalchemy import Column, Integer, String, Boolean, DateTime, Enum
from sqlalchemy.sql import func
from utils.database import Base
import enum

class UserRole(str, enum.Enum):
    SUPER_ADMIN = "super_admin"  # Operator of the back-office dashboard
    OWNER = "owner"              # Owner of a single restaurant
    STAFF = "staff"              # Restaurant staff
    CUSTOMER = "customer"        # Ordering-channel account

class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True, nullable=False)
    first_name = Column(String, nullable=True)
    last_name = Column(String, nullable=True)
    hashed_password = Column(String, nullable=False)
    role = Column(Enum(UserRole, name="userrole", values_callable=lambda e: [r.value for r in e]), nullable=False, default=UserRole.CUSTOMER)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    @property
    def is_super_admin(self) -> bool:
        """Only super admins may use the dashboard."""
        return self.role == UserRole.SUPER_ADMIN
