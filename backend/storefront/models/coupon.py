"""Coupon ORM - discount codes with usage limits and validity window.

Invariants:
    - code unique, stored upper-cased
    - used_count <= max_uses whenever max_uses > 0 (reserved by conditional UPDATE)
    - discount, min_amount, max_amount never negative
    - product_ids empty means the coupon applies to every product
"""

import uuid
from datetime import datetime, timezone, timedelta

from sqlalchemy import (
    String, Integer, Float, Boolean, DateTime, JSON, ForeignKey, CheckConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.dialects.postgresql import UUID

from storefront.db.base import Base

DEFAULT_VALIDITY = timedelta(days=30)


class Coupon(Base):
    __tablename__ = "coupons"
    __table_args__ = (
        CheckConstraint("discount >= 0", name="discount_non_negative"),
        CheckConstraint("max_uses >= 0", name="max_uses_non_negative"),
        CheckConstraint("used_count >= 0", name="used_count_non_negative"),
        CheckConstraint("min_amount >= 0", name="min_amount_non_negative"),
        CheckConstraint("max_amount >= 0", name="max_amount_non_negative"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    code: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    description: Mapped[str] = mapped_column(String(500), nullable=False, default="")
    discount: Mapped[float] = mapped_column(Float, nullable=False)
    discount_type: Mapped[str] = mapped_column(
        String(20), nullable=False, default="percentage",
    )
    max_uses: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    used_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    min_amount: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    max_amount: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    start_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    end_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc) + DEFAULT_VALIDITY,
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    product_ids: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    category_ids: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    created_by: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
