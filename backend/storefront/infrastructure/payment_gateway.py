"""Resilient Payment Gateway Client - Mercado Pago REST over httpx with retry, backoff and error mapping.

Invariants:
    - Rate limits (429): exponential backoff with jitter, respects Retry-After header
    - Transient errors (5xx, connection, timeout): max_retries retries with exponential backoff
    - Client errors (4xx except 429): immediate failure, no retry
    - All failures mapped to PaymentGatewayError (core/errors.py)
    - Each create call carries a fresh idempotency key (order id + random suffix);
      retries inside one call reuse it, so a retried PIX attempt gets a new payment

Design Decisions:
    - Thin wrapper returning GatewayPayment or GatewayCheckout: services never touch raw provider JSON
    - PaymentGateway Protocol: routes depend on the protocol so tests swap in a fake
    - +/-25% jitter on backoff: prevents thundering herd on shared rate limits
"""

import asyncio
import logging
import random
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Protocol

import httpx

from storefront.core.errors import PaymentGatewayError, ErrorContext

logger = logging.getLogger(__name__)

_RETRYABLE_STATUS = {500, 502, 503, 504}
# Card checkout: no PIX or boleto on the hosted page, up to 12 installments
CARD_EXCLUDED_METHODS = ("pix", "bolbradesco")
CARD_MAX_INSTALLMENTS = 12


@dataclass
class GatewayPayment:
    """Provider-neutral view of a payment."""
    id: str
    status: str
    amount: float | None = None
    external_reference: str | None = None
    qr_code: str | None = None
    qr_code_base64: str | None = None
    ticket_url: str | None = None
    expires_at: datetime | None = None
    raw: dict = field(default_factory=dict, repr=False)


@dataclass
class GatewayCheckout:
    """Hosted card checkout (Mercado Pago preference)."""
    id: str
    checkout_url: str
    external_reference: str | None = None
    raw: dict = field(default_factory=dict, repr=False)


class PaymentGateway(Protocol):
    async def create_pix_payment(
        self,
        *,
        amount: float,
        description: str,
        payer_email: str,
        external_reference: str,
        notification_url: str | None = None,
        payer_first_name: str | None = None,
        payer_last_name: str | None = None,
        payer_cpf: str | None = None,
    ) -> GatewayPayment: ...

    async def create_card_checkout(
        self,
        *,
        amount: float,
        description: str,
        payer_email: str,
        external_reference: str,
        notification_url: str | None = None,
        return_url: str | None = None,
        payer_first_name: str | None = None,
        payer_last_name: str | None = None,
        payer_cpf: str | None = None,
    ) -> GatewayCheckout: ...

    async def get_payment(self, payment_id: str) -> GatewayPayment | None: ...


def parse_payment(data: dict) -> GatewayPayment:
    """Map a Mercado Pago payment resource to GatewayPayment."""
    transaction = (data.get("point_of_interaction") or {}).get("transaction_data") or {}
    expires_raw = data.get("date_of_expiration")
    expires_at = None
    if expires_raw:
        try:
            expires_at = datetime.fromisoformat(expires_raw)
        except ValueError:
            logger.warning(f"Unparseable payment expiration: {expires_raw}")
    return GatewayPayment(
        id=str(data["id"]),
        status=str(data.get("status", "")),
        amount=data.get("transaction_amount"),
        external_reference=data.get("external_reference"),
        qr_code=transaction.get("qr_code"),
        qr_code_base64=transaction.get("qr_code_base64"),
        ticket_url=transaction.get("ticket_url"),
        expires_at=expires_at,
        raw=data,
    )


class MercadoPagoGateway:
    """Wraps the Mercado Pago payments API with retry logic, timeouts, and error mapping."""

    def __init__(
        self,
        access_token: str,
        base_url: str = "https://api.mercadopago.com",
        timeout_seconds: int = 30,
        max_retries: int = 3,
        base_delay_ms: int = 500,
        max_delay_ms: int = 8_000,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        if not access_token:
            raise PaymentGatewayError(
                "Payment access token is not configured", "not_configured",
            )
        self.base_url = base_url.rstrip("/")
        self.access_token = access_token
        self.timeout_seconds = timeout_seconds
        self.max_retries = max_retries
        self.base_delay_ms = base_delay_ms
        self.max_delay_ms = max_delay_ms
        self._transport = transport

    async def create_pix_payment(
        self,
        *,
        amount: float,
        description: str,
        payer_email: str,
        external_reference: str,
        notification_url: str | None = None,
        payer_first_name: str | None = None,
        payer_last_name: str | None = None,
        payer_cpf: str | None = None,
    ) -> GatewayPayment:
        payer: dict = {"email": payer_email}
        if payer_first_name:
            payer["first_name"] = payer_first_name
        if payer_last_name:
            payer["last_name"] = payer_last_name
        if payer_cpf:
            payer["identification"] = {"type": "CPF", "number": payer_cpf}
        body = {
            "transaction_amount": amount,
            "description": description,
            "payment_method_id": "pix",
            "payer": payer,
            "external_reference": external_reference,
        }
        if notification_url:
            body["notification_url"] = notification_url
        context = ErrorContext(order_id=external_reference)
        idempotency_key = f"pix-{external_reference}-{uuid.uuid4().hex}"
        data = await self._request(
            "POST", "/v1/payments", json=body,
            headers={"X-Idempotency-Key": idempotency_key},
            context=context,
        )
        payment = parse_payment(data)
        logger.info(
            "PIX payment created",
            extra={"payment_id": payment.id, "order_id": external_reference},
        )
        return payment

    async def create_card_checkout(
        self,
        *,
        amount: float,
        description: str,
        payer_email: str,
        external_reference: str,
        notification_url: str | None = None,
        return_url: str | None = None,
        payer_first_name: str | None = None,
        payer_last_name: str | None = None,
        payer_cpf: str | None = None,
    ) -> GatewayCheckout:
        """Create a hosted card checkout; the buyer pays on checkout_url."""
        payer: dict = {"email": payer_email}
        if payer_first_name:
            payer["name"] = payer_first_name
        if payer_last_name:
            payer["surname"] = payer_last_name
        if payer_cpf:
            payer["identification"] = {"type": "CPF", "number": payer_cpf}
        body = {
            "items": [{
                "id": external_reference,
                "title": description,
                "description": description,
                "quantity": 1,
                "unit_price": amount,
                "currency_id": "BRL",
            }],
            "payer": payer,
            "payment_methods": {
                "excluded_payment_methods": [{"id": m} for m in CARD_EXCLUDED_METHODS],
                "excluded_payment_types": [],
                "installments": CARD_MAX_INSTALLMENTS,
            },
            "external_reference": external_reference,
        }
        if notification_url:
            body["notification_url"] = notification_url
        if return_url:
            back = f"{return_url.rstrip('/')}/checkout"
            body["back_urls"] = {
                outcome: f"{back}/{outcome}?external_reference={external_reference}"
                for outcome in ("success", "failure", "pending")
            }
            body["auto_return"] = "approved"
        context = ErrorContext(order_id=external_reference)
        data = await self._request(
            "POST", "/checkout/preferences", json=body,
            headers={"X-Idempotency-Key": f"card-{external_reference}-{uuid.uuid4().hex}"},
            context=context,
        )
        checkout = GatewayCheckout(
            id=str(data["id"]),
            checkout_url=data.get("init_point") or "",
            external_reference=data.get("external_reference", external_reference),
            raw=data,
        )
        logger.info(
            "Card checkout created",
            extra={"order_id": external_reference, "checkout_id": checkout.id},
        )
        return checkout

    async def get_payment(self, payment_id: str) -> GatewayPayment | None:
        """Fetch a payment; None when the provider does not know it."""
        try:
            data = await self._request("GET", f"/v1/payments/{payment_id}")
        except PaymentGatewayError as e:
            if e.status_code == 404:
                return None
            raise
        return parse_payment(data)

    async def _request(
        self, method: str, path: str, *,
        json: dict | None = None,
        headers: dict | None = None,
        context: ErrorContext | None = None,
    ) -> dict:
        request_headers = {"Authorization": f"Bearer {self.access_token}"}
        request_headers.update(headers or {})
        async with httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout_seconds,
            transport=self._transport,
        ) as client:
            for attempt in range(self.max_retries + 1):
                try:
                    response = await client.request(
                        method, path, json=json, headers=request_headers,
                    )
                except (httpx.ConnectError, httpx.TimeoutException, httpx.RemoteProtocolError) as e:
                    await self._handle_transient_error(e, attempt, context)
                    continue

                if response.status_code == 429:
                    await self._handle_rate_limit(response, attempt, context)
                    continue
                if response.status_code in _RETRYABLE_STATUS:
                    await self._handle_transient_error(
                        f"HTTP {response.status_code}", attempt, context,
                    )
                    continue
                if response.status_code >= 400:
                    raise PaymentGatewayError(
                        _error_message(response), "client_error",
                        status_code=response.status_code, context=context,
                    )
                return response.json()
        raise PaymentGatewayError("Retries exhausted", "connection_error", context=context)

    async def _handle_rate_limit(
        self, response: httpx.Response, attempt: int, context: ErrorContext | None,
    ) -> None:
        """Handle rate limit response with retry or raise."""
        if attempt >= self.max_retries:
            raise PaymentGatewayError(
                "Rate limit exceeded after retries", "rate_limit",
                status_code=429, context=context,
            )
        delay = _retry_after_ms(response) or self._backoff(attempt)
        logger.warning(
            f"Payment gateway rate limit, retry after {delay}ms",
            extra={"attempt": attempt + 1},
        )
        await asyncio.sleep(delay / 1000)

    async def _handle_transient_error(
        self, e: object, attempt: int, context: ErrorContext | None,
    ) -> None:
        """Handle transient errors with retry or raise."""
        if attempt >= self.max_retries:
            raise PaymentGatewayError(
                f"Transient failure after {self.max_retries} retries: {e}",
                "connection_error", context=context,
            )
        delay = self._backoff(attempt)
        logger.warning(
            f"Payment gateway transient error, retry after {delay}ms: {e}",
            extra={"attempt": attempt + 1},
        )
        await asyncio.sleep(delay / 1000)

    def _backoff(self, attempt: int) -> int:
        """Exponential backoff with +/-25% jitter."""
        delay = min(self.max_delay_ms, (2 ** attempt) * self.base_delay_ms)
        return int(delay * random.uniform(0.75, 1.25))  # nosec B311


def _retry_after_ms(response: httpx.Response) -> int | None:
    val = response.headers.get("retry-after")
    if val and val.isdigit():
        return int(val) * 1000
    return None


def _error_message(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return f"HTTP {response.status_code}"
    return str(payload.get("message") or payload.get("error") or f"HTTP {response.status_code}")
