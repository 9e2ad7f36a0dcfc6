"""Cart Schemas - line inputs and the cart view returned by every cart endpoint."""

from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class CartLineInput(BaseModel):
    product_id: UUID
    variant_id: UUID | None = None
    quantity: int = Field(1, ge=1, le=1000)


class CartReplace(BaseModel):
    """Whole-cart replacement. Raw dicts so one bad line is dropped, not fatal."""
    items: list[dict] = []


class CartQuantityUpdate(BaseModel):
    quantity: int = Field(ge=1, le=1000)


class CartItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    product_id: UUID
    variant_id: UUID | None
    product_name: str
    product_image: str
    variant_name: str
    price: float
    quantity: int
    has_variants: bool


class CartResponse(BaseModel):
    items: list[CartItemResponse]
    total: float
    item_count: int
