"""
PortOne V2 REST API istemcisi (httpx).

- Kimlik doğrulama: "Authorization: PortOne <API_SECRET>", isteğe bağlı Store-Id başlığı.
- İptal çağrılarında her seferinde yeni Idempotency-Key (UUID4).
- Lookup/iptal öncesi kimlik daima kanonik formata çevrilir (payment_id.normalize_payment_id).
- İstemci kendi içinde tekrar denemez; tekrar politikası çağıranındır (reconciliation).
"""
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, NamedTuple

import httpx
from pydantic import ValidationError

from plantbid.core.config import settings
from plantbid.schemas.payment import GatewayPayment, GatewayPaymentStatus

from .payment_id import looks_like_merchant_order_number, normalize_payment_id

logger = logging.getLogger(__name__)


class PortOneError(Exception):
    """Ağ hatası, timeout veya 2xx dışı yanıt. body ham yanıttır; kullanıcıya gösterilmez."""

    def __init__(self, message: str, status_code: int | None = None, body: Any = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.body = body

    def __str__(self) -> str:
        if self.status_code is not None:
            return f"{self.message} (status={self.status_code})"
        return self.message


class CancelResult(NamedTuple):
    payment_id: str
    idempotency_key: str
    status: str  # REQUESTED | SUCCEEDED | FAILED
    cancellation: dict[str, Any]


def _mask(secret: str) -> str:
    if len(secret) <= 8:
        return "***"
    return f"{secret[:4]}...{secret[-4:]}"


def _iso(value: datetime | str | None) -> str | None:
    if value is None or isinstance(value, str):
        return value
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


class PortOneClient:
    def __init__(
        self,
        api_secret: str,
        base_url: str = "https://api.portone.io",
        store_id: str | None = None,
        timeout: float = 10.0,
        merchant_id: str | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        headers = {
            "Authorization": f"PortOne {api_secret}",
            "Accept": "application/json",
            "Content-Type": "application/json",
        }
        if store_id:
            headers["Store-Id"] = store_id
        self.merchant_id = merchant_id
        self._client = httpx.Client(
            base_url=base_url.rstrip("/"),
            timeout=timeout,
            headers=headers,
            transport=transport,
        )
        logger.info("PortOne client initialized: base_url=%s secret=%s store_id=%s", base_url, _mask(api_secret), store_id or "-")

    def close(self) -> None:
        self._client.close()

    def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        allow_404: bool = False,
    ) -> dict[str, Any] | None:
        try:
            response = self._client.request(method, path, params=params, json=json, headers=headers)
        except httpx.TimeoutException as e:
            raise PortOneError(f"PortOne timeout: {method} {path}") from e
        except httpx.HTTPError as e:
            raise PortOneError(f"PortOne connection error: {method} {path}: {e}") from e

        if response.status_code == 404 and allow_404:
            return None
        try:
            body = response.json() if response.content else {}
        except ValueError:
            body = response.text
        if not response.is_success:
            logger.warning("PortOne %s %s failed: status=%s", method, path, response.status_code)
            raise PortOneError(f"PortOne API error: {method} {path}", response.status_code, body)
        if not isinstance(body, dict):
            raise PortOneError(f"PortOne unexpected response: {method} {path}", response.status_code, body)
        return body

    def get_payment(self, payment_id: str) -> GatewayPayment | None:
        """
        Kanonik id doğrudan sorgulanır; UUID önce normalize edilir.
        Diğer her değer tüccar sipariş numarası kabul edilip aramaya yönlendirilir (ilk eşleşme).
        404 -> None.
        """
        raw = (payment_id or "").strip()
        if not raw:
            return None
        if looks_like_merchant_order_number(raw):
            logger.info("get_payment: %s is not a payment id, searching by order id", raw)
            found = self.search_payments(order_id=raw)
            return found[0] if found else None
        normalized = normalize_payment_id(raw)
        if normalized != raw:
            logger.info("get_payment: normalized %s -> %s", raw, normalized)
        body = self._request("GET", f"/payments/{normalized}", allow_404=True)
        if body is None:
            return None
        try:
            return GatewayPayment.model_validate(body)
        except ValidationError as e:
            raise PortOneError(f"PortOne unparseable payment: GET /payments/{normalized}", 200, body) from e

    def search_payments(
        self,
        order_id: str | None = None,
        status: GatewayPaymentStatus | str | None = None,
        start_date: datetime | str | None = None,
        end_date: datetime | str | None = None,
        page: int = 1,
        limit: int = 20,
        merchant_id: str | None = None,
    ) -> list[GatewayPayment]:
        params: dict[str, Any] = {"page": page, "limit": limit}
        if order_id:
            params["orderId"] = order_id
        if status:
            params["status"] = status.value if isinstance(status, GatewayPaymentStatus) else str(status)
        if start_date:
            params["startDate"] = _iso(start_date)
        if end_date:
            params["endDate"] = _iso(end_date)
        if merchant_id:
            params["merchantId"] = merchant_id
        body = self._request("GET", "/payments", params=params) or {}
        items = body.get("payments")
        if items is None:
            items = body.get("items") or []
        payments: list[GatewayPayment] = []
        for item in items:
            if not isinstance(item, dict):
                continue
            try:
                payments.append(GatewayPayment.model_validate(item))
            except ValidationError as e:
                # Tek bozuk kayıt tüm aramayı düşürmesin
                logger.warning("search: skipping unparseable payment id=%s: %s", item.get("id") or item.get("paymentId"), e.error_count())
        return payments

    def cancel_payment(
        self,
        payment_id: str,
        reason: str | None = None,
        amount: int | None = None,
        tax_free: int | None = None,
        merchant_id: str | None = None,
    ) -> CancelResult:
        normalized = normalize_payment_id(payment_id)
        idempotency_key = str(uuid.uuid4())
        payload: dict[str, Any] = {"reason": (reason or "").strip() or settings.payment_default_cancel_reason}
        if amount:
            payload["amount"] = amount
        if tax_free is not None:
            payload["taxFree"] = tax_free
        logger.info(
            "PortOne cancel: raw=%s normalized=%s amount=%s mid=%s idempotency_key=%s",
            payment_id,
            normalized,
            amount or "full",
            merchant_id or self.merchant_id or "-",
            idempotency_key,
        )
        body = self._request(
            "POST",
            f"/payments/{normalized}/cancel",
            json=payload,
            headers={"Idempotency-Key": idempotency_key},
        ) or {}
        cancellation = body.get("cancellation") if isinstance(body.get("cancellation"), dict) else body
        status = str(cancellation.get("status") or "REQUESTED")
        return CancelResult(
            payment_id=normalized,
            idempotency_key=idempotency_key,
            status=status,
            cancellation=cancellation,
        )


_client: PortOneClient | None = None


def get_portone_client() -> PortOneClient:
    """Uygulama genelinde tek istemci (bağlantı havuzu paylaşılır)."""
    global _client
    if _client is None:
        if not settings.portone_api_secret:
            logger.warning("PORTONE_API_SECRET is not set; gateway calls will be rejected")
        _client = PortOneClient(
            api_secret=settings.portone_api_secret,
            base_url=settings.portone_api_base_url,
            store_id=settings.portone_store_id or None,
            timeout=settings.portone_timeout_seconds,
            merchant_id=settings.portone_merchant_id or None,
        )
    return _client


def close_portone_client() -> None:
    global _client
    if _client is not None:
        _client.close()
        _client = None
