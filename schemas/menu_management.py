import uuid
from pydantic import BaseModel, Field, field_validator, model_validator
from typing import Optional, List
from datetime import datetime
from models.menu_management import ItemType


def _new_id() -> str:
    return uuid.uuid4().hex


class OptionChoice(BaseModel):
    id: str = Field(default_factory=_new_id)
    name: str
    item_id: Optional[int] = None  # links the choice to another menu item
    extra_price: float = Field(0, ge=0)
    is_available: bool = True


class OptionGroup(BaseModel):
    """One step of a set menu, e.g. "Choose a starter"."""
    id: str = Field(default_factory=_new_id)
    name: str
    min_selection: int = Field(1, ge=0)
    max_selection: int = Field(1, ge=1)
    choices: List[OptionChoice] = Field(default_factory=list)

    @model_validator(mode="after")
    def validate_selection_bounds(self):
        if self.min_selection > self.max_selection:
            raise ValueError(
                f"Option group '{self.name}': min_selection ({self.min_selection}) "
                f"exceeds max_selection ({self.max_selection})"
            )
        seen = set()
        for choice in self.choices:
            if choice.id in seen:
                raise ValueError(f"Option group '{self.name}' has duplicate choice id {choice.id}")
            seen.add(choice.id)
        return self

    def get_choice(self, choice_id: str) -> Optional[OptionChoice]:
        for choice in self.choices:
            if choice.id == choice_id:
                return choice
        return None


class CategoryBase(BaseModel):
    name: str = Field(..., min_length=1)
    sort_order: int = 0

class CategoryCreate(CategoryBase):
    pass

class CategoryUpdate(BaseModel):
    name: Optional[str] = None
    sort_order: Optional[int] = None

class CategoryResponse(CategoryBase):
    id: int
    restaurant_id: int
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class MenuItemBase(BaseModel):
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    steps: Optional[str] = None
    price: float = Field(..., ge=0)
    image_url: Optional[str] = None
    is_available: bool = True
    item_type: ItemType = ItemType.SINGLE
    options: List[OptionGroup] = Field(default_factory=list)

    @model_validator(mode="after")
    def validate_options_for_type(self):
        # Single items never carry option groups
        if self.item_type == ItemType.SINGLE:
            self.options = []
        return self

class MenuItemCreate(MenuItemBase):
    category_id: int

class MenuItemUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    steps: Optional[str] = None
    price: Optional[float] = Field(None, ge=0)
    image_url: Optional[str] = None
    is_available: Optional[bool] = None
    item_type: Optional[ItemType] = None
    options: Optional[List[OptionGroup]] = None
    category_id: Optional[int] = None

    @field_validator("name")
    def validate_name(cls, v):
        if v is not None and not v.strip():
            raise ValueError("Name must not be empty")
        return v

class MenuItemAvailability(BaseModel):
    is_available: bool

class MenuItemResponse(MenuItemBase):
    id: int
    restaurant_id: int
    category_id: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class CategoryWithItemsResponse(CategoryResponse):
    menu_items: List[MenuItemResponse] = Field(default_factory=list)
