"""Stock Schemas - adding, assigning and listing deliverable codes.

Invariants:
    - Codes stripped; blank codes dropped before reaching the service
    - quantity >= 1 for assignment and availability checks
"""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _clean_codes(codes: list[str]) -> list[str]:
    return [c.strip() for c in codes if c and c.strip()]


class StockCreate(BaseModel):
    product_id: UUID
    variant_id: UUID | None = None
    codes: list[str] = Field(min_length=1)
    metadata: dict = {}

    @field_validator("codes")
    @classmethod
    def strip_codes(cls, v: list[str]) -> list[str]:
        v = _clean_codes(v)
        if not v:
            raise ValueError("at least one non-empty code is required")
        return v


class StockBulkCreate(BaseModel):
    """Codes as newline-separated text (pasted from a spreadsheet or file)."""
    product_id: UUID
    variant_id: UUID | None = None
    text: str = Field(min_length=1)

    def codes(self) -> list[str]:
        return _clean_codes(self.text.splitlines())


class StockAssign(BaseModel):
    user_id: UUID
    product_id: UUID
    variant_id: UUID | None = None
    quantity: int = Field(1, ge=1, le=1000)


class StockItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    product_id: UUID
    variant_id: UUID | None
    code: str
    is_used: bool
    assigned_to: UUID | None
    assigned_at: datetime | None
    order_id: UUID | None
    created_at: datetime


class StockAddResult(BaseModel):
    added: int
    duplicates: list[str]
    stock: int


class StockAvailability(BaseModel):
    product_id: UUID
    variant_id: UUID | None
    available: int
    requested: int
    in_stock: bool
