from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

class ProductCreate(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    description: str = Field(default="", max_length=2000)
    price: Decimal = Field(ge=0, max_digits=10, decimal_places=2)
    category: str = Field(min_length=1, max_length=100)
    category_id: Optional[UUID] = None
    tags: List[str] = []
    image_url: Optional[str] = None
    file_url: Optional[str] = None
    file_name: Optional[str] = None
    file_size: Optional[int] = Field(default=None, ge=1)
    is_active: bool = True


class ProductUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=2000)
    price: Optional[Decimal] = Field(default=None, ge=0, max_digits=10, decimal_places=2)
    category: Optional[str] = Field(default=None, min_length=1, max_length=100)
    category_id: Optional[UUID] = None
    tags: Optional[List[str]] = None
    image_url: Optional[str] = None
    file_url: Optional[str] = None
    file_name: Optional[str] = None
    file_size: Optional[int] = Field(default=None, ge=1)
    is_active: Optional[bool] = None


class ProductsBulkDelete(BaseModel):
    ids: List[UUID]


class ProductsBulkUpdate(BaseModel):
    ids: List[UUID]
    is_active: bool


class CategoryCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    slug: str = Field(min_length=1, max_length=120, pattern=r"^[a-z0-9-]+$")
    description: Optional[str] = None
    image_url: Optional[str] = None
    is_active: bool = True
    sort_order: int = 0


class CategoryUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    slug: Optional[str] = Field(default=None, min_length=1, max_length=120, pattern=r"^[a-z0-9-]+$")
    description: Optional[str] = None
    image_url: Optional[str] = None
    is_active: Optional[bool] = None
    sort_order: Optional[int] = None
