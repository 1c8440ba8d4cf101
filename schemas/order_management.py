import logging
from typing import List, Optional
from datetime import datetime
from pydantic import BaseModel, Field, field_validator, model_validator

from models.order_management import OrderType, OrderStatus

# Configure logger
logger = logging.getLogger(__name__)

LEGACY_ORDER_TYPES = {"take_out": OrderType.TAKE_AWAY.value}


def normalize_order_type(value):
    """Map deprecated order type values onto their current names."""
    if isinstance(value, str) and value in LEGACY_ORDER_TYPES:
        logger.debug(f"Mapping legacy order type {value!r} to {LEGACY_ORDER_TYPES[value]!r}")
        return LEGACY_ORDER_TYPES[value]
    return value


class SelectedOption(BaseModel):
    """Flattened snapshot of one chosen option, kept on the order line."""
    group_name: str
    name: str
    choice_name: str
    price: float = 0
    item_id: Optional[int] = None


class OrderItemCreate(BaseModel):
    menu_item_id: Optional[int] = Field(None, gt=0)
    name: str = Field(..., min_length=1)
    quantity: int = Field(..., ge=1)
    price: float = Field(..., ge=0, description="Unit price including selected options")
    selected_options: List[SelectedOption] = Field(default_factory=list)


class OrderItemResponse(BaseModel):
    id: int
    order_id: int
    menu_item_id: Optional[int] = None
    name: str
    quantity: int
    price_at_time: float
    selected_options: List[SelectedOption] = Field(default_factory=list)

    @field_validator("selected_options", mode="before")
    def default_selected_options(cls, v):
        return v or []

    class Config:
        from_attributes = True


class OrderCreate(BaseModel):
    order_type: OrderType = Field(OrderType.DINE_IN, description="Type of order: dine_in, take_away or delivery")
    table_number: Optional[str] = Field(None, description="Table for dine-in orders only")
    special_request: Optional[str] = None
    items: List[OrderItemCreate] = Field(..., min_length=1, description="List of order items")

    @field_validator("order_type", mode="before")
    def map_legacy_order_type(cls, v):
        return normalize_order_type(v)

    @model_validator(mode="after")
    def drop_table_for_non_dine_in(self):
        if self.table_number is not None and not self.table_number.strip():
            self.table_number = None
        if self.order_type != OrderType.DINE_IN and self.table_number is not None:
            logger.debug(f"Ignoring table_number {self.table_number!r} for {self.order_type.value} order")
            self.table_number = None
        return self


class OrderUpdate(BaseModel):
    status: Optional[OrderStatus] = None
    order_type: Optional[OrderType] = None
    table_number: Optional[str] = None
    total_amount: Optional[float] = Field(None, ge=0)
    special_request: Optional[str] = None
    items: Optional[List[OrderItemCreate]] = None

    @field_validator("order_type", mode="before")
    def map_legacy_order_type(cls, v):
        return normalize_order_type(v)

    @model_validator(mode="after")
    def validate_items_for_status(self):
        # An order may only be emptied when it is being cancelled
        if self.items is not None and len(self.items) == 0 and self.status != OrderStatus.CANCELLED:
            raise ValueError("An order needs at least one item unless it is cancelled")
        return self


class OrderResponse(BaseModel):
    id: int
    restaurant_id: int
    order_type: str
    status: str
    table_number: Optional[str] = None
    total_amount: float
    special_request: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    order_items: List[OrderItemResponse] = Field(default_factory=list)

    class Config:
        from_attributes = True


class NextStatusResponse(BaseModel):
    order_id: int
    status: str
    next_status: Optional[str] = None
    allowed_statuses: List[str]


class SetContentResponse(BaseModel):
    group_name: str
    choice_name: str
    item_id: int
    description: Optional[str] = None
    steps: Optional[str] = None
