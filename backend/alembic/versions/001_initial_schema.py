"""Initial schema - users, catalog, stock, carts, coupons, orders, settings.

Revision ID: 001_initial
Revises: None
Create Date: 2026-10-17

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID

revision: str = "001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps(*, updated: bool = True) -> list[sa.Column]:
    columns = [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]
    if updated:
        columns.append(
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        )
    return columns


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("username", sa.String(30), nullable=False, unique=True),
        sa.Column("email", sa.String(255), nullable=False, unique=True),
        sa.Column("password_hash", sa.String(255), nullable=False),
        sa.Column("name", sa.String(120), nullable=False, server_default=""),
        sa.Column("profile_image", sa.String(500), nullable=False, server_default=""),
        sa.Column("role", sa.String(20), nullable=False, server_default="user"),
        sa.Column("member_number", sa.Integer, nullable=True, unique=True),
        sa.Column("cpf", sa.String(20), nullable=False, server_default=""),
        sa.Column("address", sa.String(500), nullable=False, server_default=""),
        sa.Column("phone", sa.String(30), nullable=False, server_default=""),
        sa.Column("owned_products", sa.JSON, nullable=False, server_default="[]"),
        *_timestamps(),
    )

    op.create_table(
        "categories",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("name", sa.String(100), nullable=False, unique=True),
        sa.Column("slug", sa.String(120), nullable=False, unique=True),
        sa.Column("description", sa.Text, nullable=False, server_default=""),
        sa.Column("icon", sa.String(100), nullable=False, server_default="default-icon"),
        *_timestamps(),
    )

    op.create_table(
        "products",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("slug", sa.String(220), nullable=False, unique=True),
        sa.Column("description", sa.Text, nullable=False, server_default=""),
        sa.Column("short_description", sa.String(200), nullable=False, server_default=""),
        sa.Column("images", sa.JSON, nullable=False, server_default="[]"),
        sa.Column("category_id", UUID(as_uuid=True), sa.ForeignKey("categories.id"), nullable=True, index=True),
        sa.Column("price", sa.Float, nullable=False, server_default="0"),
        sa.Column("original_price", sa.Float, nullable=False, server_default="0"),
        sa.Column("discount_percentage", sa.Integer, nullable=False, server_default="0"),
        sa.Column("stock", sa.Integer, nullable=False, server_default="0"),
        sa.Column("featured", sa.Boolean, nullable=False, server_default="false"),
        sa.Column("status", sa.String(20), nullable=True),
        sa.Column("delivery_type", sa.String(20), nullable=False, server_default="automatic"),
        *_timestamps(),
        sa.CheckConstraint("price >= 0", name="price_non_negative"),
        sa.CheckConstraint("original_price >= 0", name="original_price_non_negative"),
        sa.CheckConstraint("stock >= 0", name="stock_non_negative"),
        sa.CheckConstraint(
            "discount_percentage >= 0 AND discount_percentage <= 99",
            name="discount_percentage_range",
        ),
    )

    op.create_table(
        "product_variants",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "product_id", UUID(as_uuid=True),
            sa.ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True,
        ),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("description", sa.Text, nullable=False, server_default=""),
        sa.Column("price", sa.Float, nullable=False),
        sa.Column("stock", sa.Integer, nullable=False, server_default="0"),
        sa.Column("features", sa.JSON, nullable=False, server_default="[]"),
        sa.Column("delivery_type", sa.String(20), nullable=False, server_default="automatic"),
        sa.Column("position", sa.Integer, nullable=False, server_default="0"),
        sa.CheckConstraint("price >= 0", name="price_non_negative"),
        sa.CheckConstraint("stock >= 0", name="stock_non_negative"),
    )

    op.create_table(
        "stock_items",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("product_id", UUID(as_uuid=True), nullable=False),
        sa.Column("variant_id", UUID(as_uuid=True), nullable=True),
        sa.Column("code", sa.String(500), nullable=False, unique=True),
        sa.Column("is_used", sa.Boolean, nullable=False, server_default="false"),
        sa.Column("metadata", sa.JSON, nullable=False, server_default="{}"),
        sa.Column(
            "assigned_to", UUID(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True,
        ),
        sa.Column("assigned_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("order_id", UUID(as_uuid=True), nullable=True, index=True),
        *_timestamps(updated=False),
    )
    op.create_index(
        "ix_stock_items_lookup", "stock_items", ["product_id", "variant_id", "is_used"],
    )

    op.create_table(
        "carts",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "user_id", UUID(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True,
        ),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )

    op.create_table(
        "cart_items",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "cart_id", UUID(as_uuid=True),
            sa.ForeignKey("carts.id", ondelete="CASCADE"), nullable=False, index=True,
        ),
        sa.Column("product_id", UUID(as_uuid=True), nullable=False),
        sa.Column("variant_id", UUID(as_uuid=True), nullable=True),
        sa.Column("product_name", sa.String(200), nullable=False),
        sa.Column("product_image", sa.String(500), nullable=False, server_default=""),
        sa.Column("variant_name", sa.String(200), nullable=False, server_default=""),
        sa.Column("price", sa.Float, nullable=False),
        sa.Column("quantity", sa.Integer, nullable=False, server_default="1"),
        sa.Column("has_variants", sa.Boolean, nullable=False, server_default="false"),
        sa.Column("added_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("quantity >= 1", name="quantity_positive"),
        sa.CheckConstraint("price >= 0", name="price_non_negative"),
    )

    op.create_table(
        "coupons",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("code", sa.String(50), nullable=False, unique=True),
        sa.Column("description", sa.String(500), nullable=False, server_default=""),
        sa.Column("discount", sa.Float, nullable=False),
        sa.Column("discount_type", sa.String(20), nullable=False, server_default="percentage"),
        sa.Column("max_uses", sa.Integer, nullable=False, server_default="0"),
        sa.Column("used_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("min_amount", sa.Float, nullable=False, server_default="0"),
        sa.Column("max_amount", sa.Float, nullable=False, server_default="0"),
        sa.Column("start_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default="true"),
        sa.Column("product_ids", sa.JSON, nullable=False, server_default="[]"),
        sa.Column("category_ids", sa.JSON, nullable=False, server_default="[]"),
        sa.Column(
            "created_by", UUID(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True,
        ),
        *_timestamps(),
        sa.CheckConstraint("discount >= 0", name="discount_non_negative"),
        sa.CheckConstraint("max_uses >= 0", name="max_uses_non_negative"),
        sa.CheckConstraint("used_count >= 0", name="used_count_non_negative"),
        sa.CheckConstraint("min_amount >= 0", name="min_amount_non_negative"),
        sa.CheckConstraint("max_amount >= 0", name="max_amount_non_negative"),
    )

    op.create_table(
        "orders",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("user_id", UUID(as_uuid=True), sa.ForeignKey("users.id"), nullable=False, index=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending", index=True),
        sa.Column("payment_method", sa.String(20), nullable=False),
        sa.Column("subtotal_amount", sa.Float, nullable=False, server_default="0"),
        sa.Column("discount_amount", sa.Float, nullable=False, server_default="0"),
        sa.Column("total_amount", sa.Float, nullable=False),
        sa.Column("payment_id", sa.String(64), nullable=True, index=True),
        sa.Column("payment_status", sa.String(30), nullable=True),
        sa.Column("pix_qr_code", sa.Text, nullable=True),
        sa.Column("pix_qr_code_base64", sa.Text, nullable=True),
        sa.Column("pix_ticket_url", sa.String(500), nullable=True),
        sa.Column("payment_expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("payment_checked_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "coupon_id", UUID(as_uuid=True),
            sa.ForeignKey("coupons.id", ondelete="SET NULL"), nullable=True,
        ),
        sa.Column("coupon_code", sa.String(50), nullable=True),
        sa.Column("product_assigned", sa.Boolean, nullable=False, server_default="false"),
        sa.Column("customer_data", sa.JSON, nullable=False, server_default="{}"),
        sa.Column("notes", sa.JSON, nullable=False, server_default="[]"),
        sa.Column("status_history", sa.JSON, nullable=False, server_default="[]"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now(), index=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("total_amount >= 0", name="total_non_negative"),
        sa.CheckConstraint("discount_amount >= 0", name="discount_non_negative"),
    )

    op.create_table(
        "order_items",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "order_id", UUID(as_uuid=True),
            sa.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True,
        ),
        sa.Column("product_id", UUID(as_uuid=True), nullable=False, index=True),
        sa.Column("variant_id", UUID(as_uuid=True), nullable=True),
        sa.Column("name", sa.String(400), nullable=False),
        sa.Column("price", sa.Float, nullable=False),
        sa.Column("quantity", sa.Integer, nullable=False, server_default="1"),
        sa.Column("delivery_type", sa.String(20), nullable=False, server_default="automatic"),
        sa.Column("delivered", sa.Boolean, nullable=False, server_default="false"),
        sa.Column("delivered_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("position", sa.Integer, nullable=False, server_default="0"),
        sa.CheckConstraint("quantity >= 1", name="quantity_positive"),
        sa.CheckConstraint("price >= 0", name="price_non_negative"),
    )

    op.create_table(
        "settings",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("key", sa.String(100), nullable=False, unique=True),
        sa.Column("value", sa.Text, nullable=False, server_default=""),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )


def downgrade() -> None:
    op.drop_table("settings")
    op.drop_table("order_items")
    op.drop_table("orders")
    op.drop_table("coupons")
    op.drop_table("cart_items")
    op.drop_table("carts")
    op.drop_index("ix_stock_items_lookup", table_name="stock_items")
    op.drop_table("stock_items")
    op.drop_table("product_variants")
    op.drop_table("products")
    op.drop_table("categories")
    op.drop_table("users")
