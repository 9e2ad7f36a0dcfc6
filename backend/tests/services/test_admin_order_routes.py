"""Admin Order Routes - verifies the status lifecycle, fulfilment and manual delivery.

Tests:
    - Marking an order paid delivers automatic lines from stock and completes the order
    - Fulfilment short on stock leaves the line undelivered with a note; the admin can
      deliver it later, which completes the order
    - Manual lines wait for the admin; the product is granted on payment
    - Forbidden transitions -> 409; same-status updates are no-ops
    - Cancelling gives the reserved coupon use back
    - Listing filters by status and searches by buyer
"""

from uuid import UUID

import pytest

from storefront.models.coupon import Coupon
from storefront.models.product import Product
from storefront.models.user import User
from storefront.schemas.coupon import CouponCreate
from storefront.services.coupon_service import CouponService
from storefront.services.stock_service import StockService


async def _checkout(client, headers, product, quantity=1, **extra):
    res = await client.post(
        "/api/v1/orders",
        json={
            "items": [{"product_id": str(product.id), "quantity": quantity}],
            "payment_method": "pix", **extra,
        },
        headers=headers,
    )
    assert res.status_code == 201
    return res.json()


async def _set_status(client, headers, order_id, status, note=None):
    body = {"status": status}
    if note:
        body["note"] = note
    return await client.patch(
        f"/api/v1/admin/orders/{order_id}/status", json=body, headers=headers,
    )


@pytest.fixture
async def keyed_product(make_product, add_stock):
    product = await make_product(name="Game Key", price=30.0)
    await add_stock(product, ["KEY-1", "KEY-2", "KEY-3"])
    return product


# ─── Fulfilment ─────────────────────────────────────────────────

async def test_paid_order_is_fulfilled_and_delivered(
    client, admin_headers, buyer, buyer_headers, keyed_product, reload,
):
    order = await _checkout(client, buyer_headers, keyed_product, quantity=2)

    res = await _set_status(client, admin_headers, order["id"], "paid")

    assert res.status_code == 200
    data = res.json()
    assert data["status"] == "delivered"
    assert data["product_assigned"] is True
    assert data["items"][0]["delivered"] is True
    assert [h["status"] for h in data["status_history"]] == ["pending", "paid", "delivered"]
    assert (await reload(User, buyer.id)).owned_products == [str(keyed_product.id)]
    assert (await reload(Product, keyed_product.id)).stock == 1

    codes = await client.get("/api/v1/users/me/stock-items", headers=buyer_headers)
    delivered = codes.json()["groups"][0]["items"]
    assert len(delivered) == 2
    assert all(i["order_id"] == order["id"] for i in delivered)


async def test_short_stock_leaves_line_for_manual_delivery(
    client, admin_headers, buyer, buyer_headers, keyed_product, make_user, test_db,
    add_stock,
):
    order = await _checkout(client, buyer_headers, keyed_product, quantity=2)
    # Someone else takes two of the three codes between checkout and payment
    other = await make_user("other")
    await StockService(test_db).claim(keyed_product, None, 2, other.id)
    await test_db.commit()

    paid = await _set_status(client, admin_headers, order["id"], "paid")

    data = paid.json()
    assert data["status"] == "paid"
    assert data["items"][0]["delivered"] is False
    assert "manual delivery required" in data["notes"][-1]["text"]
    assert data["notes"][-1]["added_by"] == "system"

    await add_stock(keyed_product, ["KEY-4"])
    item_id = data["items"][0]["id"]
    delivered = await client.post(
        f"/api/v1/admin/orders/{order['id']}/items/{item_id}/deliver",
        headers=admin_headers,
    )

    assert delivered.status_code == 200
    assert delivered.json()["status"] == "delivered"
    assert delivered.json()["items"][0]["delivered"] is True


async def test_manual_line_waits_for_admin(
    client, admin, admin_headers, buyer, buyer_headers, make_product, reload,
):
    product = await make_product(name="Boosting", delivery_type="manual")
    order = await _checkout(client, buyer_headers, product)

    paid = await _set_status(client, admin_headers, order["id"], "paid")
    assert paid.json()["status"] == "paid"
    assert (await reload(User, buyer.id)).owned_products == [str(product.id)]

    item_id = paid.json()["items"][0]["id"]
    res = await client.post(
        f"/api/v1/admin/orders/{order['id']}/items/{item_id}/deliver",
        headers=admin_headers,
    )

    data = res.json()
    assert data["status"] == "delivered"
    assert data["status_history"][-1]["changed_by"] == str(admin.id)
    assert data["notes"][-1]["text"] == "Item 'Boosting' delivered"


async def test_deliver_requires_paid_order(client, admin_headers, buyer_headers, keyed_product):
    order = await _checkout(client, buyer_headers, keyed_product)
    item_id = order["items"][0]["id"]

    res = await client.post(
        f"/api/v1/admin/orders/{order['id']}/items/{item_id}/deliver",
        headers=admin_headers,
    )

    assert res.status_code == 400
    assert res.json()["error"]["code"] == "ORDER_NOT_PAID"


# ─── Lifecycle ──────────────────────────────────────────────────

async def test_forbidden_transition_is_conflict(
    client, admin_headers, buyer_headers, keyed_product,
):
    order = await _checkout(client, buyer_headers, keyed_product)

    res = await _set_status(client, admin_headers, order["id"], "delivered")

    assert res.status_code == 409
    assert res.json()["error"]["code"] == "INVALID_STATUS_TRANSITION"
    assert res.json()["error"]["details"] == {"current": "pending", "target": "delivered"}


async def test_terminal_status_cannot_be_left(
    client, admin_headers, buyer_headers, keyed_product,
):
    order = await _checkout(client, buyer_headers, keyed_product)
    await _set_status(client, admin_headers, order["id"], "cancelled")

    res = await _set_status(client, admin_headers, order["id"], "paid")

    assert res.status_code == 409


async def test_same_status_is_noop_but_keeps_note(
    client, admin_headers, buyer_headers, keyed_product,
):
    order = await _checkout(client, buyer_headers, keyed_product)

    res = await _set_status(
        client, admin_headers, order["id"], "pending", note="Customer called",
    )

    data = res.json()
    assert len(data["status_history"]) == 1
    assert data["notes"][-1]["text"] == "Customer called"


async def test_cancel_releases_coupon_use(
    client, admin_headers, buyer_headers, keyed_product, test_db, reload,
):
    coupon = await CouponService(test_db).create(
        CouponCreate(code="SAVE10", discount=10, max_uses=1),
    )
    order = await _checkout(client, buyer_headers, keyed_product, coupon_code="SAVE10")
    assert (await reload(Coupon, coupon.id)).used_count == 1

    await _set_status(client, admin_headers, order["id"], "cancelled")

    assert (await reload(Coupon, coupon.id)).used_count == 0


async def test_add_note(client, admin, admin_headers, buyer_headers, keyed_product):
    order = await _checkout(client, buyer_headers, keyed_product)

    res = await client.post(
        f"/api/v1/admin/orders/{order['id']}/notes",
        json={"text": "  Checked with payment provider  "},
        headers=admin_headers,
    )

    note = res.json()["notes"][-1]
    assert note["text"] == "Checked with payment provider"
    assert note["added_by"] == str(admin.id)


# ─── Listing ────────────────────────────────────────────────────

async def test_list_filters_and_shows_buyer(
    client, admin_headers, buyer_headers, keyed_product, make_user, headers_for,
):
    first = await _checkout(client, buyer_headers, keyed_product)
    await _checkout(client, buyer_headers, keyed_product)
    other = headers_for(await make_user("carol"))
    await _checkout(client, other, keyed_product)
    await _set_status(client, admin_headers, first["id"], "cancelled")

    cancelled = await client.get(
        "/api/v1/admin/orders", params={"status": "cancelled"}, headers=admin_headers,
    )
    by_buyer = await client.get(
        "/api/v1/admin/orders", params={"search": "carol"}, headers=admin_headers,
    )

    assert [o["id"] for o in cancelled.json()["orders"]] == [first["id"]]
    assert cancelled.json()["orders"][0]["username"] == "buyer"
    assert by_buyer.json()["pagination"]["total"] == 1
    assert by_buyer.json()["orders"][0]["email"] == "carol@example.com"


async def test_get_unknown_order_is_404(client, admin_headers):
    res = await client.get(
        f"/api/v1/admin/orders/{UUID(int=1)}", headers=admin_headers,
    )
    assert res.status_code == 404
