"""Product ORM - catalog entries and their purchasable variants.

Invariants:
    - slug unique across products
    - price, original_price, stock never negative (check constraints)
    - stock is denormalized: refreshed by stock_service after every stock change,
      MANUAL_DELIVERY_STOCK for manual delivery
    - Variants owned by the product (cascade delete-orphan), ordered by position

Design Decisions:
    - Variants as child table instead of embedded array: stock items and cart/order
      lines reference variant ids directly
    - images and features as JSON lists: never queried, only rendered
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    String, Text, Integer, Float, Boolean, DateTime, JSON,
    ForeignKey, CheckConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.dialects.postgresql import UUID

from storefront.db.base import Base


class Product(Base):
    __tablename__ = "products"
    __table_args__ = (
        CheckConstraint("price >= 0", name="price_non_negative"),
        CheckConstraint("original_price >= 0", name="original_price_non_negative"),
        CheckConstraint("stock >= 0", name="stock_non_negative"),
        CheckConstraint(
            "discount_percentage >= 0 AND discount_percentage <= 99",
            name="discount_percentage_range",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    slug: Mapped[str] = mapped_column(String(220), nullable=False, unique=True)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    short_description: Mapped[str] = mapped_column(String(200), nullable=False, default="")
    images: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    category_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("categories.id"), nullable=True, index=True,
    )
    price: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    original_price: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    discount_percentage: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    stock: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    featured: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    status: Mapped[str | None] = mapped_column(String(20), nullable=True)
    delivery_type: Mapped[str] = mapped_column(
        String(20), nullable=False, default="automatic",
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

    variants: Mapped[list["ProductVariant"]] = relationship(
        "ProductVariant", back_populates="product",
        cascade="all, delete-orphan", lazy="selectin",
        order_by="ProductVariant.position",
    )

    def find_variant(self, variant_id) -> "ProductVariant | None":
        for variant in self.variants:
            if str(variant.id) == str(variant_id):
                return variant
        return None


class ProductVariant(Base):
    __tablename__ = "product_variants"
    __table_args__ = (
        CheckConstraint("price >= 0", name="price_non_negative"),
        CheckConstraint("stock >= 0", name="stock_non_negative"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    product_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("products.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    price: Mapped[float] = mapped_column(Float, nullable=False)
    stock: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    features: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    delivery_type: Mapped[str] = mapped_column(
        String(20), nullable=False, default="automatic",
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    product: Mapped["Product"] = relationship("Product", back_populates="variants")
