"""Coupon Schemas - validation requests and admin CRUD.

Invariants:
    - code stripped and upper-cased on input
    - end_date must be after start_date when both given
    - percentage discounts <= 100
"""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from storefront.core.coupon_rules import normalize_code
from storefront.core.domain_types import DiscountType


class CouponValidateRequest(BaseModel):
    code: str = Field(min_length=1, max_length=50)
    cart_total: float = Field(ge=0)

    @field_validator("code")
    @classmethod
    def normalize(cls, v: str) -> str:
        return normalize_code(v)


class CouponValidation(BaseModel):
    valid: bool = True
    code: str
    description: str
    discount_type: DiscountType
    discount: float
    discount_amount: float
    final_total: float


class _CouponFields(BaseModel):
    description: str | None = Field(None, max_length=500)
    discount: float | None = Field(None, ge=0)
    discount_type: DiscountType | None = None
    max_uses: int | None = Field(None, ge=0)
    min_amount: float | None = Field(None, ge=0)
    max_amount: float | None = Field(None, ge=0)
    start_date: datetime | None = None
    end_date: datetime | None = None
    is_active: bool | None = None
    product_ids: list[UUID] | None = None
    category_ids: list[UUID] | None = None

    @model_validator(mode="after")
    def check_ranges(self):
        if self.start_date and self.end_date and self.end_date <= self.start_date:
            raise ValueError("end_date must be after start_date")
        if (
            self.discount_type == DiscountType.PERCENTAGE
            and self.discount is not None and self.discount > 100
        ):
            raise ValueError("percentage discount cannot exceed 100")
        return self


class CouponCreate(_CouponFields):
    code: str = Field(min_length=1, max_length=50)
    discount: float = Field(ge=0)
    discount_type: DiscountType = DiscountType.PERCENTAGE

    @field_validator("code")
    @classmethod
    def normalize(cls, v: str) -> str:
        v = normalize_code(v)
        if not v:
            raise ValueError("code cannot be empty")
        return v


class CouponUpdate(_CouponFields):
    code: str | None = Field(None, min_length=1, max_length=50)

    @field_validator("code")
    @classmethod
    def normalize(cls, v: str | None) -> str | None:
        return normalize_code(v) if v is not None else None


class CouponResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    code: str
    description: str
    discount: float
    discount_type: DiscountType
    max_uses: int
    used_count: int
    min_amount: float
    max_amount: float
    start_date: datetime
    end_date: datetime
    is_active: bool
    product_ids: list[str]
    category_ids: list[str]
    created_at: datetime
