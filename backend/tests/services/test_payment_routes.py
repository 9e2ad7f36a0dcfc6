"""Payment Routes - verifies PIX and card checkout creation, throttled polling and webhook processing.

Tests:
    - PIX created once per pending order and reused while still live
    - Only the buyer may pay or poll; non-pending orders are not payable
    - Card checkouts need a valid CPF and are reused until paid
    - A failed order returns to pending when the buyer retries
    - Polling hits the gateway at most once per check interval
    - Webhooks re-fetch the payment, drive the order lifecycle and are idempotent
    - A gateway status the lifecycle forbids is noted on the order, not raised
    - Admin-stored access token wins over the environment; no token -> 502
"""

from datetime import datetime, timedelta, timezone
from uuid import UUID

import pytest

from storefront.api.dependencies import get_payment_gateway
from storefront.config import Settings
from storefront.core.errors import PaymentGatewayError
from storefront.infrastructure.payment_gateway import MercadoPagoGateway
from storefront.main import app
from storefront.models.order import Order
from storefront.models.setting import Setting, PAYMENT_ACCESS_TOKEN_KEY


@pytest.fixture
async def order(client, buyer_headers, make_product, add_stock):
    product = await make_product(name="Game Key", price=30.0)
    await add_stock(product, ["PIX-1", "PIX-2"])
    res = await client.post(
        "/api/v1/orders",
        json={"items": [{"product_id": str(product.id)}], "payment_method": "pix"},
        headers=buyer_headers,
    )
    return res.json()


async def _pix(client, headers, order_id):
    return await client.post(
        "/api/v1/payments/pix", json={"order_id": order_id}, headers=headers,
    )


async def _webhook(client, payment_id, kind="payment"):
    return await client.post(
        "/api/v1/payments/webhook",
        json={"type": kind, "action": "payment.updated", "data": {"id": payment_id}},
    )


# ─── PIX creation ───────────────────────────────────────────────

async def test_create_pix_attaches_payment(client, buyer_headers, order, fake_gateway):
    res = await _pix(client, buyer_headers, order["id"])

    assert res.status_code == 200
    pix = res.json()
    assert pix["payment_id"] == "1000"
    assert pix["payment_status"] == "pending"
    assert pix["amount"] == 30.0
    assert pix["qr_code"] == "00020126-pix-1000"
    sent = fake_gateway.created[0]
    assert sent["external_reference"] == order["id"]
    assert sent["payer_email"] == "buyer@example.com"
    assert (sent["payer_first_name"], sent["payer_last_name"]) == ("Ana", "Souza")
    assert sent["payer_cpf"] == "12345678909"


async def test_live_pix_is_reused(client, buyer_headers, order, fake_gateway):
    first = await _pix(client, buyer_headers, order["id"])
    second = await _pix(client, buyer_headers, order["id"])

    assert first.json()["payment_id"] == second.json()["payment_id"]
    assert len(fake_gateway.created) == 1


async def test_expired_pix_is_replaced(client, buyer_headers, order, fake_gateway, test_db):
    await _pix(client, buyer_headers, order["id"])
    stored = await test_db.get(Order, UUID(order["id"]))
    stored.payment_expires_at = datetime.now(timezone.utc) - timedelta(minutes=1)
    await test_db.commit()

    res = await _pix(client, buyer_headers, order["id"])

    assert res.json()["payment_id"] == "1001"
    assert len(fake_gateway.created) == 2


async def test_only_buyer_can_pay(client, order, make_user, headers_for):
    stranger = headers_for(await make_user("stranger"))

    res = await _pix(client, stranger, order["id"])

    assert res.status_code == 404


async def test_cancelled_order_is_not_payable(client, admin_headers, buyer_headers, order):
    await client.patch(
        f"/api/v1/admin/orders/{order['id']}/status",
        json={"status": "cancelled"}, headers=admin_headers,
    )

    res = await _pix(client, buyer_headers, order["id"])

    assert res.status_code == 400
    assert res.json()["error"]["code"] == "ORDER_NOT_PAYABLE"


async def test_failed_order_can_retry(client, buyer_headers, order, fake_gateway):
    first = (await _pix(client, buyer_headers, order["id"])).json()
    fake_gateway.set_status(first["payment_id"], "rejected")
    rejected = await _webhook(client, first["payment_id"])
    assert rejected.json()["status"] == "failed"

    retry = await _pix(client, buyer_headers, order["id"])

    assert retry.status_code == 200
    assert retry.json()["payment_id"] == "1001"
    mine = await client.get(f"/api/v1/users/me/orders/{order['id']}", headers=buyer_headers)
    history = mine.json()["status_history"]
    assert [h["status"] for h in history] == ["pending", "failed", "pending"]
    assert history[-1]["description"] == "payment retried"


# ─── Polling ────────────────────────────────────────────────────

async def test_status_poll_is_throttled(client, buyer_headers, order, fake_gateway, test_db):
    pix = (await _pix(client, buyer_headers, order["id"])).json()
    url = f"/api/v1/payments/orders/{order['id']}/status"

    recent = await client.get(url, headers=buyer_headers)
    assert recent.json()["checked"] is False
    assert fake_gateway.fetched == []

    stored = await test_db.get(Order, UUID(order["id"]))
    stored.payment_checked_at = datetime.now(timezone.utc) - timedelta(minutes=1)
    await test_db.commit()
    fake_gateway.set_status(pix["payment_id"], "approved")

    polled = await client.get(url, headers=buyer_headers)

    assert polled.json()["checked"] is True
    assert polled.json()["status"] == "delivered"
    assert polled.json()["payment_status"] == "approved"
    assert fake_gateway.fetched == [pix["payment_id"]]


async def test_poll_without_payment_skips_gateway(client, buyer_headers, order, fake_gateway):
    res = await client.get(
        f"/api/v1/payments/orders/{order['id']}/status", headers=buyer_headers,
    )

    assert res.json() == {
        "order_id": order["id"], "status": "pending",
        "payment_status": None, "checked": False,
    }
    assert fake_gateway.fetched == []


# ─── Card checkout ──────────────────────────────────────────────

async def _card(client, headers, order_id, **extra):
    return await client.post(
        "/api/v1/payments/card", json={"order_id": order_id, **extra}, headers=headers,
    )


async def test_card_checkout_opens_hosted_page(client, buyer_headers, order, fake_gateway, reload):
    res = await _card(client, buyer_headers, order["id"], cpf="123.456.789-09")

    assert res.status_code == 200
    body = res.json()
    assert body["checkout_id"].startswith("pref-")
    assert body["checkout_url"].startswith("https://pay.test/checkout/")
    assert body["external_reference"] == order["id"]
    assert body["amount"] == 30.0
    sent = fake_gateway.checkouts[0]
    assert sent["payer_cpf"] == "12345678909"
    assert sent["external_reference"] == order["id"]
    stored = await reload(Order, UUID(order["id"]))
    assert stored.payment_method == "credit_card"
    assert stored.payment_id is None


async def test_card_checkout_is_reused_until_paid(client, buyer_headers, order, fake_gateway):
    first = (await _card(client, buyer_headers, order["id"])).json()
    second = (await _card(client, buyer_headers, order["id"])).json()

    assert second["checkout_id"] == first["checkout_id"]
    assert len(fake_gateway.checkouts) == 1


async def test_card_checkout_replaces_pix(client, buyer_headers, order, fake_gateway, reload):
    await _pix(client, buyer_headers, order["id"])

    await _card(client, buyer_headers, order["id"])

    stored = await reload(Order, UUID(order["id"]))
    assert stored.pix_qr_code is None
    assert stored.payment_expires_at is None
    assert stored.checkout_id is not None


async def test_card_checkout_rejects_bad_cpf(client, buyer_headers, order, fake_gateway):
    res = await _card(client, buyer_headers, order["id"], cpf="111.111.111-11")

    assert res.status_code == 400
    assert res.json()["error"]["code"] == "INVALID_CPF"
    assert fake_gateway.checkouts == []


async def test_card_checkout_needs_cpf_somewhere(
    client, buyer, buyer_headers, order, fake_gateway, test_db,
):
    buyer.cpf = ""
    await test_db.commit()

    res = await _card(client, buyer_headers, order["id"])

    assert res.status_code == 400
    assert res.json()["error"]["code"] == "INVALID_CPF"


async def test_card_payment_webhook_delivers_order(
    client, buyer_headers, order, fake_gateway, reload,
):
    await _card(client, buyer_headers, order["id"])
    fake_gateway.add_payment("card-77", "approved", external_reference=order["id"])

    res = await _webhook(client, "card-77")

    assert res.json()["status"] == "delivered"
    stored = await reload(Order, UUID(order["id"]))
    assert stored.payment_id == "card-77"
    assert stored.payment_method == "credit_card"


# ─── Webhook ────────────────────────────────────────────────────

async def test_approved_webhook_delivers_order(client, buyer_headers, order, fake_gateway):
    pix = (await _pix(client, buyer_headers, order["id"])).json()
    fake_gateway.set_status(pix["payment_id"], "approved")

    res = await _webhook(client, pix["payment_id"])

    assert res.status_code == 200
    assert res.json() == {
        "received": True, "processed": True, "order_id": order["id"],
        "status": "delivered", "changed": True,
    }
    codes = await client.get("/api/v1/users/me/stock-items", headers=buyer_headers)
    assert len(codes.json()["groups"][0]["items"]) == 1


async def test_repeated_webhook_is_idempotent(client, buyer_headers, order, fake_gateway):
    pix = (await _pix(client, buyer_headers, order["id"])).json()
    fake_gateway.set_status(pix["payment_id"], "approved")
    await _webhook(client, pix["payment_id"])

    again = await _webhook(client, pix["payment_id"])

    assert again.json()["changed"] is False
    codes = await client.get("/api/v1/users/me/stock-items", headers=buyer_headers)
    assert len(codes.json()["groups"][0]["items"]) == 1


async def test_webhook_matches_by_external_reference(client, order, fake_gateway, test_db):
    fake_gateway.add_payment("555", "approved", external_reference=order["id"])

    res = await _webhook(client, 555)

    assert res.json()["status"] == "delivered"
    stored = await test_db.get(Order, UUID(order["id"]), populate_existing=True)
    assert stored.payment_id == "555"


async def test_forbidden_gateway_status_is_noted(
    client, admin_headers, buyer_headers, order, fake_gateway,
):
    pix = (await _pix(client, buyer_headers, order["id"])).json()
    await client.patch(
        f"/api/v1/admin/orders/{order['id']}/status",
        json={"status": "cancelled"}, headers=admin_headers,
    )
    fake_gateway.set_status(pix["payment_id"], "approved")

    res = await _webhook(client, pix["payment_id"])

    assert res.status_code == 200
    assert res.json()["status"] == "cancelled"
    assert res.json()["changed"] is False
    detail = await client.get(f"/api/v1/admin/orders/{order['id']}", headers=admin_headers)
    assert "review required" in detail.json()["notes"][-1]["text"]
    assert detail.json()["payment_status"] == "approved"


async def test_unmapped_gateway_status_only_updates_payment_status(
    client, buyer_headers, order, fake_gateway,
):
    pix = (await _pix(client, buyer_headers, order["id"])).json()
    fake_gateway.set_status(pix["payment_id"], "in_process")

    res = await _webhook(client, pix["payment_id"])

    assert res.json()["status"] == "pending"
    assert res.json()["changed"] is False


async def test_non_payment_webhook_is_ignored(client, fake_gateway):
    res = await _webhook(client, "1", kind="merchant_order")

    assert res.json() == {"received": True, "processed": False}
    assert fake_gateway.fetched == []


async def test_webhook_without_id_is_rejected(client):
    res = await client.post("/api/v1/payments/webhook", json={"type": "payment", "data": {}})

    assert res.status_code == 400
    assert res.json()["error"]["code"] == "WEBHOOK_INVALID"


async def test_webhook_for_unknown_payment_is_404(client):
    res = await _webhook(client, "999999")
    assert res.status_code == 404


# ─── Gateway wiring ─────────────────────────────────────────────

async def test_gateway_requires_access_token(test_db):
    with pytest.raises(PaymentGatewayError) as exc_info:
        await get_payment_gateway(test_db, Settings(payment_access_token=""))
    assert exc_info.value.gateway_error_type == "not_configured"


async def test_stored_token_configures_gateway(test_db):
    test_db.add(Setting(key=PAYMENT_ACCESS_TOKEN_KEY, value="APP_USR-stored"))
    await test_db.commit()

    gateway = await get_payment_gateway(test_db, Settings(payment_access_token=""))

    assert isinstance(gateway, MercadoPagoGateway)


async def test_unconfigured_gateway_answers_502(client, buyer_headers, order):
    app.dependency_overrides.pop(get_payment_gateway)

    res = await _pix(client, buyer_headers, order["id"])

    assert res.status_code == 502
    assert res.json()["error"]["code"] == "PAYMENT_GATEWAY_ERROR"
