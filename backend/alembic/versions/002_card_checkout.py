"""Add hosted card checkout columns to orders.

Revision ID: 002_card_checkout
Revises: 001_initial
Create Date: 2026-10-17

checkout_id holds the gateway preference id and checkout_url the page the
buyer is sent to. The card payment itself lands in payment_id via webhook.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


revision: str = "002_card_checkout"
down_revision: Union[str, None] = "001_initial"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.add_column("orders", sa.Column("checkout_id", sa.String(64), nullable=True))
    op.add_column("orders", sa.Column("checkout_url", sa.String(500), nullable=True))


def downgrade() -> None:
    op.drop_column("orders", "checkout_url")
    op.drop_column("orders", "checkout_id")
