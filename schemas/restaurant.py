from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime

class RestaurantBase(BaseModel):
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    phone_number: Optional[str] = None

class RestaurantCreate(RestaurantBase):
    pass

class RestaurantUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    phone_number: Optional[str] = None

class RestaurantResponse(RestaurantBase):
    id: int
    slug: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True
