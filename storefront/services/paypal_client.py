# storefront/services/paypal_client.py
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

import httpx
from pydantic import BaseModel, Field, ValidationError, field_validator

from storefront.domain.errors import PaymentProviderError
from storefront.domain.types import money
from storefront.utils.retry import http_retry
from storefront.utils.settings import (
    PAYPAL_API,
    PAYPAL_CLIENT_ID,
    PAYPAL_CLIENT_SECRET,
    PAYMENT_CURRENCY,
    HTTP_TIMEOUT_SECONDS,
)
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


class Amount(BaseModel):
    value: Decimal
    currency_code: str = PAYMENT_CURRENCY

    @field_validator("value")
    @classmethod
    def to_cents(cls, v: Decimal) -> Decimal:
        return money(v)


class Capture(BaseModel):
    id: str = Field(..., min_length=1)
    status: str | None = None
    amount: Amount
    create_time: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class Payments(BaseModel):
    captures: list[Capture] = Field(default_factory=list)


class PurchaseUnit(BaseModel):
    payments: Payments = Field(default_factory=Payments)


class Payer(BaseModel):
    payer_id: str | None = None
    email_address: str | None = None


class CaptureResult(BaseModel):
    """Answer of POST /v2/checkout/orders/{id}/capture."""

    status: str = ""
    purchase_units: list[PurchaseUnit] = Field(default_factory=list)
    payer: Payer = Field(default_factory=Payer)
    raw: dict = Field(default_factory=dict, repr=False, exclude=True)

    @property
    def captures(self) -> list[Capture]:
        return [c for unit in self.purchase_units for c in unit.payments.captures]

    @property
    def completed(self) -> bool:
        return self.status == "COMPLETED"


class RefundResult(BaseModel):
    status: str | None = None
    raw: dict = Field(default_factory=dict, repr=False, exclude=True)


def parse_capture(data: dict) -> CaptureResult:
    try:
        result = CaptureResult.model_validate(data)
    except ValidationError as e:
        logger.error(f"PayPal capture payload rejected: {e}")
        raise PaymentProviderError("PayPal returned a malformed capture", provider="paypal", body=data) from e
    result.raw = data
    return result


class PayPalClient:
    """Card network provider: create intent, capture, refund.

    Only the OAuth token fetch is retried. Create, capture and refund move
    money, a failure there is terminal for the current attempt.
    """

    provider = "paypal"

    def __init__(
        self,
        base_url: str | None = None,
        client_id: str | None = None,
        client_secret: str | None = None,
        currency: str = PAYMENT_CURRENCY,
        timeout: float = HTTP_TIMEOUT_SECONDS,
        http: httpx.AsyncClient | None = None,
    ):
        self.base_url = (base_url or PAYPAL_API).rstrip("/")
        self.client_id = client_id if client_id is not None else PAYPAL_CLIENT_ID
        self.client_secret = client_secret if client_secret is not None else PAYPAL_CLIENT_SECRET
        self.currency = currency
        self.http = http or httpx.AsyncClient(timeout=timeout)

    async def aclose(self) -> None:
        await self.http.aclose()

    async def _send(self, method: str, path: str, **kwargs) -> dict:
        url = f"{self.base_url}{path}"
        logger.info(f"PayPalClient {method} {url}")
        try:
            resp = await self.http.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            raise PaymentProviderError(f"PayPal request failed: {e}", provider=self.provider) from e

        try:
            body: Any = resp.json()
        except ValueError:
            body = resp.text

        if resp.is_error:
            logger.error(f"PayPal {path} answered {resp.status_code}: {body}")
            raise PaymentProviderError(
                "PayPal rejected the request",
                provider=self.provider,
                status_code=resp.status_code,
                body=body,
            )
        return body if isinstance(body, dict) else {"body": body}

    @http_retry()
    async def _fetch_token(self) -> httpx.Response:
        return await self.http.post(
            f"{self.base_url}/v1/oauth2/token",
            auth=(self.client_id, self.client_secret),
            data={"grant_type": "client_credentials"},
        )

    async def get_access_token(self) -> str:
        try:
            resp = await self._fetch_token()
        except httpx.HTTPError as e:
            raise PaymentProviderError(f"PayPal auth failed: {e}", provider=self.provider) from e
        if resp.is_error:
            raise PaymentProviderError(
                "PayPal auth failed", provider=self.provider, status_code=resp.status_code, body=resp.text
            )
        try:
            token = resp.json().get("access_token")
        except (ValueError, AttributeError):
            token = None
        if not token:
            raise PaymentProviderError("PayPal auth returned no token", provider=self.provider, body=resp.text)
        return token

    async def _auth_headers(self) -> dict:
        token = await self.get_access_token()
        return {"Authorization": f"Bearer {token}", "Content-Type": "application/json"}

    async def create_order(self, amount: Decimal) -> str:
        """create-intent(amount, currency) -> provider order id"""
        body = {
            "intent": "CAPTURE",
            "purchase_units": [
                {"amount": {"currency_code": self.currency, "value": f"{money(amount):.2f}"}}
            ],
        }
        data = await self._send("POST", "/v2/checkout/orders", json=body, headers=await self._auth_headers())
        order_id = data.get("id")
        if not order_id:
            raise PaymentProviderError(
                "Failed to create PayPal order", provider=self.provider, body=data
            )
        return order_id

    async def capture_order(self, provider_order_id: str) -> CaptureResult:
        data = await self._send(
            "POST",
            f"/v2/checkout/orders/{provider_order_id}/capture",
            headers=await self._auth_headers(),
        )
        logger.info(f"PayPal capture {provider_order_id} status {data.get('status')}")
        return parse_capture(data)

    async def refund_capture(self, capture_id: str, amount: Decimal | None = None) -> RefundResult:
        body = None
        if amount:
            body = {"amount": {"value": f"{money(amount):.2f}", "currency_code": self.currency}}
        data = await self._send(
            "POST",
            f"/v2/payments/captures/{capture_id}/refund",
            json=body,
            headers=await self._auth_headers(),
        )
        try:
            result = RefundResult.model_validate(data)
        except ValidationError as e:
            raise PaymentProviderError("PayPal returned a malformed refund", provider=self.provider, body=data) from e
        result.raw = data
        return result
