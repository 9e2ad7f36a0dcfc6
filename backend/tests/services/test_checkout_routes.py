"""Checkout - verifies order creation: server-side pricing, stock checks and coupon reservation.

Tests:
    - Line prices, subtotal, discount and total come from the catalog, never the client
    - Orders start pending with a "created" history entry and a customer snapshot;
      client-sent extras never replace the account name, email or username
    - Automatic lines need unused stock (quantities of repeated lines add up); manual lines do not
    - A coupon use is reserved at checkout; an exhausted coupon rejects the order
    - Buyers see only their own orders
"""

from sqlalchemy import select, func

from storefront.models.coupon import Coupon
from storefront.models.order import Order
from storefront.schemas.coupon import CouponCreate
from storefront.services.coupon_service import CouponService


async def _order(client, headers, lines, **extra):
    body = {"items": lines, "payment_method": "pix", **extra}
    return await client.post("/api/v1/orders", json=body, headers=headers)


async def test_order_priced_from_catalog(client, buyer_headers, make_product, add_stock):
    product = await make_product(name="Game Key", price=50.0)
    await add_stock(product, ["K-1", "K-2"])

    res = await _order(client, buyer_headers, [
        {"product_id": str(product.id), "quantity": 2, "price": 0.01},
    ])

    assert res.status_code == 201
    order = res.json()
    assert order["status"] == "pending"
    assert order["subtotal_amount"] == 100.0
    assert order["discount_amount"] == 0.0
    assert order["total_amount"] == 100.0
    assert order["items"][0]["name"] == "Game Key"
    assert order["items"][0]["price"] == 50.0
    assert order["items"][0]["delivered"] is False
    assert order["product_assigned"] is False
    assert [h["status"] for h in order["status_history"]] == ["pending"]
    assert order["customer_data"]["email"] == "buyer@example.com"
    assert order["customer_data"]["name"] == "Ana Souza"


async def test_customer_snapshot_keeps_account_identity(client, buyer_headers, make_product):
    product = await make_product(delivery_type="manual")

    res = await _order(
        client, buyer_headers, [{"product_id": str(product.id)}],
        customer_data={
            "email": "someone-else@example.com", "name": "Mallory",
            "username": "root", "cpf": "98765432100", "gift_message": "enjoy",
        },
    )

    snapshot = res.json()["customer_data"]
    assert snapshot["email"] == "buyer@example.com"
    assert snapshot["name"] == "Ana Souza"
    assert snapshot["username"] == "buyer"
    assert snapshot["cpf"] == "98765432100"
    assert snapshot["gift_message"] == "enjoy"


async def test_variant_line_uses_variant_price(client, buyer_headers, make_product, add_stock):
    product = await make_product(name="Sub", variants=[
        {"name": "Monthly", "price": 9.9}, {"name": "Yearly", "price": 99.0},
    ])
    yearly = product.variants[1]
    await add_stock(product, ["Y-1"], variant=yearly)

    res = await _order(client, buyer_headers, [
        {"product_id": str(product.id), "variant_id": str(yearly.id)},
    ])

    assert res.status_code == 201
    assert res.json()["total_amount"] == 99.0
    assert res.json()["items"][0]["name"] == "Sub - Yearly"


async def test_insufficient_stock_creates_no_order(
    client, buyer_headers, make_product, add_stock, test_db,
):
    product = await make_product()
    await add_stock(product, ["ONLY-1"])

    res = await _order(client, buyer_headers, [
        {"product_id": str(product.id), "quantity": 1},
        {"product_id": str(product.id), "quantity": 1},
    ])

    assert res.status_code == 400
    assert res.json()["error"]["code"] == "INSUFFICIENT_STOCK"
    assert res.json()["error"]["details"] == {"available": 1, "requested": 2}
    count = await test_db.execute(select(func.count()).select_from(Order))
    assert count.scalar_one() == 0


async def test_manual_product_needs_no_stock(client, buyer_headers, make_product):
    product = await make_product(delivery_type="manual", price=15.0)

    res = await _order(client, buyer_headers, [
        {"product_id": str(product.id), "quantity": 3},
    ])

    assert res.status_code == 201
    assert res.json()["items"][0]["delivery_type"] == "manual"


async def test_order_requires_items(client, buyer_headers):
    res = await _order(client, buyer_headers, [])
    assert res.status_code == 400


async def test_order_requires_session(client, make_product):
    product = await make_product(delivery_type="manual")
    res = await _order(client, {}, [{"product_id": str(product.id)}])
    assert res.status_code == 401


# ─── Coupons at checkout ────────────────────────────────────────

async def _coupon(test_db, **fields) -> Coupon:
    body = CouponCreate(
        code=fields.pop("code", "SAVE10"), discount=fields.pop("discount", 10), **fields,
    )
    return await CouponService(test_db).create(body)


async def test_coupon_discount_and_reservation(
    client, buyer_headers, make_product, test_db, reload,
):
    product = await make_product(delivery_type="manual", price=80.0)
    coupon = await _coupon(test_db, max_uses=5)

    res = await _order(
        client, buyer_headers, [{"product_id": str(product.id)}], coupon_code=" save10 ",
    )

    assert res.status_code == 201
    order = res.json()
    assert order["coupon_code"] == "SAVE10"
    assert order["discount_amount"] == 8.0
    assert order["total_amount"] == 72.0
    assert (await reload(Coupon, coupon.id)).used_count == 1


async def test_exhausted_coupon_rejects_checkout(client, buyer_headers, make_product, test_db):
    product = await make_product(delivery_type="manual", price=80.0)
    await _coupon(test_db, max_uses=1)
    line = [{"product_id": str(product.id)}]

    first = await _order(client, buyer_headers, line, coupon_code="SAVE10")
    second = await _order(client, buyer_headers, line, coupon_code="SAVE10")

    assert first.status_code == 201
    assert second.status_code == 400
    assert second.json()["error"]["code"] == "COUPON_EXHAUSTED"


async def test_unknown_coupon_rejects_checkout(client, buyer_headers, make_product):
    product = await make_product(delivery_type="manual")

    res = await _order(
        client, buyer_headers, [{"product_id": str(product.id)}], coupon_code="NOPE",
    )

    assert res.status_code == 404


# ─── Order views ────────────────────────────────────────────────

async def test_buyer_sees_only_own_orders(
    client, buyer_headers, make_user, make_product, headers_for,
):
    product = await make_product(delivery_type="manual")
    order_id = (await _order(
        client, buyer_headers, [{"product_id": str(product.id)}],
    )).json()["id"]
    stranger = headers_for(await make_user("stranger"))

    mine = await client.get("/api/v1/users/me/orders", headers=buyer_headers)
    theirs = await client.get("/api/v1/users/me/orders", headers=stranger)
    peek = await client.get(f"/api/v1/users/me/orders/{order_id}", headers=stranger)

    assert [o["id"] for o in mine.json()["orders"]] == [order_id]
    assert mine.json()["pagination"]["total"] == 1
    assert theirs.json()["orders"] == []
    assert peek.status_code == 404
