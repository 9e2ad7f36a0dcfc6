"""Cron Routes - verifies expiry of stale pending orders and the cron key check.

Tests:
    - Pending orders older than the window expire (history entry, coupon use released)
    - Recent or already-paid orders are left alone
    - A failed order retried by the buyer is pending again from the retry, not from creation
    - With cron_api_key configured the key is required (Bearer header or ?key=)
"""

from datetime import datetime, timedelta, timezone
from uuid import UUID

from storefront.config import Settings, get_settings
from storefront.main import app
from storefront.models.coupon import Coupon
from storefront.models.order import Order
from storefront.schemas.coupon import CouponCreate
from storefront.services.coupon_service import CouponService
from storefront.services.maintenance_service import expire_pending_orders


async def _checkout(client, headers, product, **extra):
    res = await client.post(
        "/api/v1/orders",
        json={"items": [{"product_id": str(product.id)}], "payment_method": "pix", **extra},
        headers=headers,
    )
    return res.json()["id"]


async def _age(test_db, order_id, minutes):
    order = await test_db.get(Order, UUID(order_id))
    then = datetime.now(timezone.utc) - timedelta(minutes=minutes)
    order.created_at = then
    order.status_history = [
        {**entry, "changed_at": then.isoformat()} for entry in order.status_history
    ]
    await test_db.commit()


async def test_expires_only_stale_pending_orders(
    client, buyer_headers, make_product, test_db, reload,
):
    product = await make_product(delivery_type="manual")
    stale = await _checkout(client, buyer_headers, product)
    fresh = await _checkout(client, buyer_headers, product)
    await _age(test_db, stale, 45)

    res = await client.get("/api/v1/cron/expire-orders")

    assert res.status_code == 200
    assert res.json() == {"expired": 1, "order_ids": [stale]}
    expired = await reload(Order, UUID(stale))
    assert expired.status == "expired"
    assert expired.status_history[-1]["changed_by"] == "system"
    assert (await reload(Order, UUID(fresh))).status == "pending"


async def test_expiry_releases_coupon(
    client, buyer_headers, make_product, test_db, reload,
):
    product = await make_product(delivery_type="manual", price=40.0)
    coupon = await CouponService(test_db).create(CouponCreate(code="CRON", discount=5))
    order_id = await _checkout(client, buyer_headers, product, coupon_code="CRON")
    await _age(test_db, order_id, 120)

    await client.get("/api/v1/cron/expire-orders")

    assert (await reload(Coupon, coupon.id)).used_count == 0


async def test_paid_orders_never_expire(
    client, admin_headers, buyer_headers, make_product, test_db,
):
    product = await make_product(delivery_type="manual")
    order_id = await _checkout(client, buyer_headers, product)
    await client.patch(
        f"/api/v1/admin/orders/{order_id}/status",
        json={"status": "paid"}, headers=admin_headers,
    )
    await _age(test_db, order_id, 120)

    res = await client.get("/api/v1/cron/expire-orders")

    assert res.json()["expired"] == 0


async def test_retried_order_is_not_expired_by_its_age(
    client, buyer_headers, make_product, test_db, fake_gateway, reload,
):
    product = await make_product(delivery_type="manual")
    order_id = await _checkout(client, buyer_headers, product)
    await _age(test_db, order_id, 45)
    pix = await client.post(
        "/api/v1/payments/pix", json={"order_id": order_id}, headers=buyer_headers,
    )
    payment_id = pix.json()["payment_id"]
    fake_gateway.set_status(payment_id, "rejected")
    await client.post(
        "/api/v1/payments/webhook",
        json={"type": "payment", "data": {"id": payment_id}},
    )
    retry = await client.post(
        "/api/v1/payments/pix", json={"order_id": order_id}, headers=buyer_headers,
    )
    assert retry.status_code == 200

    res = await client.get("/api/v1/cron/expire-orders")

    assert res.json() == {"expired": 0, "order_ids": []}
    assert (await reload(Order, UUID(order_id))).status == "pending"


async def test_expire_with_explicit_clock(client, buyer_headers, make_product, test_db):
    product = await make_product(delivery_type="manual")
    order_id = await _checkout(client, buyer_headers, product)

    later = datetime.now(timezone.utc) + timedelta(minutes=31)
    expired = await expire_pending_orders(test_db, 30, now=later)

    assert expired == [order_id]


async def test_cron_key_required_when_configured(client):
    app.dependency_overrides[get_settings] = lambda: Settings(cron_api_key="cron-secret")

    missing = await client.get("/api/v1/cron/expire-orders")
    wrong = await client.get("/api/v1/cron/expire-orders", params={"key": "nope"})
    by_query = await client.get("/api/v1/cron/expire-orders", params={"key": "cron-secret"})
    by_header = await client.get(
        "/api/v1/cron/expire-orders", headers={"Authorization": "Bearer cron-secret"},
    )

    assert missing.status_code == 401
    assert wrong.status_code == 401
    assert by_query.status_code == 200
    assert by_header.status_code == 200
