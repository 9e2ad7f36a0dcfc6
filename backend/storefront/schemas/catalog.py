"""Catalog Schemas - categories, products and variants.

Invariants:
    - Prices and stock never negative; discount_percentage 0-99
    - Category slug lower-cased; product slug derived from name when omitted
    - Variant ids in updates keep the existing variant (and its stock items)
"""

from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from storefront.core.domain_types import DeliveryType, ProductStatus

SLUG_PATTERN = r"^[a-z0-9]+(?:-[a-z0-9]+)*$"


def _lower_slug(v):
    return v.strip().lower() if isinstance(v, str) else v


# --- Categories ---------------------------------------------------------------

class CategoryCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    slug: str = Field(pattern=SLUG_PATTERN, max_length=120)
    description: str = Field(min_length=1, max_length=2000)
    icon: str = Field("default-icon", max_length=100)

    @field_validator("slug", mode="before")
    @classmethod
    def lower_slug(cls, v):
        return _lower_slug(v)

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("name cannot be empty")
        return v


class CategoryUpdate(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=100)
    slug: str | None = Field(None, pattern=SLUG_PATTERN, max_length=120)
    description: str | None = Field(None, max_length=2000)
    icon: str | None = Field(None, max_length=100)

    @field_validator("slug", mode="before")
    @classmethod
    def lower_slug(cls, v):
        return _lower_slug(v)


class CategoryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    slug: str
    description: str
    icon: str
    created_at: datetime


# --- Products -----------------------------------------------------------------

class VariantInput(BaseModel):
    id: UUID | None = None
    name: str = Field(min_length=1, max_length=200)
    description: str = Field("", max_length=2000)
    price: float = Field(ge=0)
    features: list[str] = []
    delivery_type: DeliveryType = DeliveryType.AUTOMATIC


class ProductCreate(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    slug: str | None = Field(None, max_length=220)
    description: str = Field(min_length=1)
    short_description: str = Field("", max_length=200)
    images: list[str] = Field(min_length=1)
    category_id: UUID | None = None
    price: float = Field(0.0, ge=0)
    original_price: float = Field(0.0, ge=0)
    discount_percentage: int = Field(0, ge=0, le=99)
    featured: bool = False
    status: ProductStatus | None = None
    delivery_type: DeliveryType = DeliveryType.AUTOMATIC
    variants: list[VariantInput] = []

    @field_validator("slug", mode="before")
    @classmethod
    def lower_slug(cls, v):
        return _lower_slug(v)


class ProductUpdate(BaseModel):
    """Partial update; variants, when given, replace the whole list."""
    name: str | None = Field(None, min_length=1, max_length=200)
    slug: str | None = Field(None, max_length=220)
    description: str | None = None
    short_description: str | None = Field(None, max_length=200)
    images: list[str] | None = None
    category_id: UUID | None = None
    price: float | None = Field(None, ge=0)
    original_price: float | None = Field(None, ge=0)
    discount_percentage: int | None = Field(None, ge=0, le=99)
    featured: bool | None = None
    status: ProductStatus | None = None
    delivery_type: DeliveryType | None = None
    variants: list[VariantInput] | None = None

    @field_validator("slug", mode="before")
    @classmethod
    def lower_slug(cls, v):
        return _lower_slug(v)


class VariantResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    description: str
    price: float
    stock: int
    features: list[str]
    delivery_type: DeliveryType


class ProductResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    slug: str
    description: str
    short_description: str
    images: list[str]
    category_id: UUID | None
    price: float
    original_price: float
    discount_percentage: int
    stock: int
    featured: bool
    status: ProductStatus | None
    delivery_type: DeliveryType
    variants: list[VariantResponse]
    created_at: datetime
    updated_at: datetime


ProductSort = Literal["created_at", "name", "price"]
