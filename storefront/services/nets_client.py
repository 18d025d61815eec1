# storefront/services/nets_client.py
from decimal import Decimal
from typing import Any

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from storefront.domain.errors import PaymentProviderError
from storefront.domain.types import money
from storefront.utils.settings import (
    NETS_API_URL,
    NETS_API_KEY,
    NETS_PROJECT_ID,
    NETS_TXN_ID,
    HTTP_TIMEOUT_SECONDS,
)
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


class QrStatus(BaseModel):
    """The `result.data` block both NETS calls answer with."""

    model_config = ConfigDict(extra="allow")

    response_code: str | None = None
    txn_status: int | None = None
    raw: dict = Field(default_factory=dict, repr=False, exclude=True)

    @property
    def data(self) -> dict:
        return self.model_dump(exclude_unset=True)


class QrRequestResult(QrStatus):
    qr_code: str | None = None
    txn_retrieval_ref: str | None = None
    network_status: Any = None
    instruction: str | None = None
    error_message: str | None = None

    @property
    def issued(self) -> bool:
        return self.response_code == "00" and self.txn_status == 1 and bool(self.qr_code)


class QrQueryResult(QrStatus):
    @property
    def succeeded(self) -> bool:
        return self.response_code == "00" and self.txn_status == 1

    @property
    def failed(self) -> bool:
        return self.response_code != "00" or self.txn_status == 2


class _ResultBlock(BaseModel):
    data: dict | None = None


class NetsAnswer(BaseModel):
    result: _ResultBlock | None = None


def parse_answer(model: type[QrStatus], body: Any) -> QrStatus:
    try:
        answer = NetsAnswer.model_validate(body)
        data = answer.result.data if answer.result and answer.result.data else {}
        parsed = model.model_validate(data)
    except ValidationError as e:
        logger.error(f"NETS payload rejected: {e}")
        raise PaymentProviderError("NETS answered with an unexpected payload", provider="nets", body=body) from e
    parsed.raw = body
    return parsed


class NetsClient:
    """QR bank payment provider: request a QR code, query its status.

    Both calls are keyed by the provider's retrieval reference. Neither is
    retried here; the status poller decides what a failed query means.
    """

    provider = "nets"

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        project_id: str | None = None,
        txn_id: str = NETS_TXN_ID,
        timeout: float = HTTP_TIMEOUT_SECONDS,
        http: httpx.AsyncClient | None = None,
    ):
        self.base_url = (base_url or NETS_API_URL).rstrip("/")
        self.api_key = api_key if api_key is not None else NETS_API_KEY
        self.project_id = project_id if project_id is not None else NETS_PROJECT_ID
        self.txn_id = txn_id
        self.http = http or httpx.AsyncClient(timeout=timeout)

    async def aclose(self) -> None:
        await self.http.aclose()

    def _headers(self) -> dict:
        return {
            "api-key": self.api_key,
            "project-id": self.project_id,
            "Content-Type": "application/json",
        }

    async def _post(self, path: str, body: dict) -> dict:
        url = f"{self.base_url}{path}"
        logger.info(f"NetsClient POST {url}")
        try:
            resp = await self.http.post(url, json=body, headers=self._headers())
        except httpx.HTTPError as e:
            raise PaymentProviderError(f"NETS request failed: {e}", provider=self.provider) from e
        if resp.is_error:
            raise PaymentProviderError(
                "NETS rejected the request",
                provider=self.provider,
                status_code=resp.status_code,
                body=resp.text,
            )
        try:
            return resp.json()
        except ValueError as e:
            raise PaymentProviderError(
                "NETS answered with a non-JSON body",
                provider=self.provider,
                status_code=resp.status_code,
                body=resp.text,
            ) from e

    async def request_qr(self, amount: Decimal) -> QrRequestResult:
        body = await self._post(
            "/request",
            {"txn_id": self.txn_id, "amt_in_dollars": float(money(amount)), "notify_mobile": 0},
        )
        return parse_answer(QrRequestResult, body)

    async def query(self, txn_retrieval_ref: str, frontend_timeout_status: int = 0) -> QrQueryResult:
        body = await self._post(
            "/query",
            {"txn_retrieval_ref": txn_retrieval_ref, "frontend_timeout_status": frontend_timeout_status},
        )
        return parse_answer(QrQueryResult, body)
