"""
PortOne V2 webhook işleme.

İmza: HMAC-SHA256(secret, "{portone-timestamp}.{ham gövde}") hex, "portone-signature" başlığında.
Secret tanımlı değilse imza doğrulanmaz (sadece geliştirme ortamı).
Ödeme olayları da kayıt oluşturmadan önce PortOne'dan teyit edilir (reconcile).
"""
import hashlib
import hmac
import json
import logging
from datetime import datetime
from typing import Any, NamedTuple

from pydantic import ValidationError

from plantbid.models import OrderStatus, PaymentStatus
from plantbid.schemas.payment import GatewayPayment, GatewayPaymentStatus

from .errors import InvalidWebhook, PaymentError
from .portone_client import PortOneClient, PortOneError
from .reconciliation import PaymentReconciler
from .storage import PaymentStorage

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "portone-signature"
TIMESTAMP_HEADER = "portone-timestamp"

PAID_EVENTS = {"Transaction.Paid"}
CANCEL_EVENTS = {"Transaction.Cancelled"}
PARTIAL_CANCEL_EVENTS = {"Transaction.PartialCancelled"}
FAILED_EVENTS = {"Transaction.Failed"}
# Eski format: tek olay tipi, durum payload içinde
STATUS_CHANGED_EVENT = "PAYMENT_STATUS_CHANGED"
CONSOLE_CANCEL_REASON = "관리자 콘솔에서 취소"

_KIND_BY_LOCAL_STATUS = {
    PaymentStatus.COMPLETED: "paid",
    PaymentStatus.CANCELLED: "cancelled",
    PaymentStatus.FAILED: "failed",
}


class WebhookResult(NamedTuple):
    event_type: str
    order_id: str | None
    action: str  # completed | reconciled | cancelled | partial_cancelled | failed | ignored


def sign_payload(secret: str, timestamp: str, body: bytes) -> str:
    message = timestamp.encode() + b"." + body
    return hmac.new(secret.encode(), message, hashlib.sha256).hexdigest()


def verify_signature(secret: str, signature: str | None, timestamp: str | None, body: bytes) -> bool:
    if not signature or not timestamp:
        return False
    expected = sign_payload(secret, timestamp, body)
    return hmac.compare_digest(expected, signature.strip())


def _classify(event_type: str, status: GatewayPaymentStatus) -> str:
    if event_type in PAID_EVENTS:
        return "paid"
    if event_type in CANCEL_EVENTS:
        return "cancelled"
    if event_type in PARTIAL_CANCEL_EVENTS:
        return "partial"
    if event_type in FAILED_EVENTS:
        return "failed"
    if event_type == STATUS_CHANGED_EVENT:
        if status is GatewayPaymentStatus.PARTIAL_CANCELLED:
            return "partial"
        return _KIND_BY_LOCAL_STATUS.get(status.to_local(), "ignored")
    return "ignored"


class PaymentWebhookHandler:
    def __init__(
        self,
        storage: PaymentStorage,
        client: PortOneClient,
        reconciler: PaymentReconciler,
        secret: str = "",
    ) -> None:
        self.storage = storage
        self.client = client
        self.reconciler = reconciler
        self.secret = secret

    def parse(self, body: bytes, headers: dict[str, str]) -> tuple[str, GatewayPayment]:
        if self.secret:
            if not verify_signature(self.secret, headers.get(SIGNATURE_HEADER), headers.get(TIMESTAMP_HEADER), body):
                logger.warning("webhook signature verification failed")
                raise InvalidWebhook("웹훅 서명 검증에 실패했습니다.")
        try:
            payload = json.loads(body or b"{}")
        except ValueError as e:
            raise InvalidWebhook() from e
        if not isinstance(payload, dict):
            raise InvalidWebhook()
        event_type = str(payload.get("type") or payload.get("eventType") or "")
        data = payload.get("data")
        if not event_type or not isinstance(data, dict):
            raise InvalidWebhook()
        payment_data: Any = data.get("payment") if isinstance(data.get("payment"), dict) else data
        try:
            event = GatewayPayment.model_validate(payment_data)
        except ValidationError as e:
            raise InvalidWebhook() from e
        return event_type, event

    def _resolve_order_id(self, event: GatewayPayment) -> GatewayPayment:
        """V2 olayları çoğunlukla sadece paymentId taşır; sipariş numarası PortOne'dan alınır."""
        if event.order_id or not event.payment_id:
            return event
        try:
            remote = self.client.get_payment(event.payment_id)
        except PortOneError as e:
            logger.warning("webhook lookup failed: payment_id=%s %s", event.payment_id, e)
            return event
        return remote or event

    def handle(self, body: bytes, headers: dict[str, str]) -> WebhookResult:
        event_type, event = self.parse(body, headers)
        kind = _classify(event_type, event.status)
        if kind == "ignored":
            logger.info("webhook ignored: type=%s payment_id=%s", event_type, event.payment_id)
            return WebhookResult(event_type, event.order_id, "ignored")

        event = self._resolve_order_id(event)
        order_id = event.order_id
        if not order_id:
            logger.warning("webhook without order id: type=%s payment_id=%s", event_type, event.payment_id)
            return WebhookResult(event_type, None, "ignored")
        logger.info("webhook: type=%s order_id=%s payment_id=%s", event_type, order_id, event.payment_id)

        if kind == "paid":
            return self._on_paid(event_type, order_id)
        if kind == "cancelled":
            return self._on_cancelled(event_type, order_id, event)
        if kind == "partial":
            return self._on_partial_cancelled(event_type, order_id)
        return self._on_failed(event_type, order_id)

    def _on_paid(self, event_type: str, order_id: str) -> WebhookResult:
        existing = self.storage.get_payment_by_order_id(order_id)
        if existing is None:
            try:
                self.reconciler.reconcile(order_id)
            except PaymentError as e:
                # PortOne henüz teyit etmiyorsa sonraki yönlendirme/poll tekrar dener
                logger.warning("webhook reconcile failed: order_id=%s %s", order_id, e.message)
                return WebhookResult(event_type, order_id, "ignored")
            return WebhookResult(event_type, order_id, "reconciled")
        if existing.status == PaymentStatus.READY.value:
            try:
                self.reconciler.sync_status(order_id)
            except (PaymentError, PortOneError) as e:
                logger.warning("webhook status sync failed: order_id=%s %s", order_id, e)
                return WebhookResult(event_type, order_id, "ignored")
            return WebhookResult(event_type, order_id, "completed")
        return WebhookResult(event_type, order_id, "ignored")

    def _on_cancelled(self, event_type: str, order_id: str, event: GatewayPayment) -> WebhookResult:
        if self.storage.get_payment_by_order_id(order_id) is None:
            logger.warning("webhook cancel: no local payment for order_id=%s", order_id)
            return WebhookResult(event_type, order_id, "ignored")
        reason = event.latest_cancel_reason or CONSOLE_CANCEL_REASON
        cancelled = self.storage.cancel_payment_if_active(order_id, reason, cancelled_at=datetime.utcnow())
        if cancelled is None:
            return WebhookResult(event_type, order_id, "ignored")
        self.storage.update_order_status_by_order_id(order_id, OrderStatus.CANCELLED.value)
        return WebhookResult(event_type, order_id, "cancelled")

    def _on_partial_cancelled(self, event_type: str, order_id: str) -> WebhookResult:
        """Kısmi iptalde ödeme ve sipariş geçerli kalır; iptal edilen tutar PortOne'dan çekilir."""
        if self.storage.get_payment_by_order_id(order_id) is None:
            return WebhookResult(event_type, order_id, "ignored")
        try:
            self.reconciler.sync_status(order_id)
        except (PaymentError, PortOneError) as e:
            logger.warning("webhook partial cancel sync failed: order_id=%s %s", order_id, e)
            return WebhookResult(event_type, order_id, "ignored")
        return WebhookResult(event_type, order_id, "partial_cancelled")

    def _on_failed(self, event_type: str, order_id: str) -> WebhookResult:
        payment = self.storage.get_payment_by_order_id(order_id)
        if payment is None or payment.status == PaymentStatus.CANCELLED.value:
            return WebhookResult(event_type, order_id, "ignored")
        self.storage.update_payment(payment, status=PaymentStatus.FAILED.value, fail_reason=f"PortOne {event_type}")
        return WebhookResult(event_type, order_id, "failed")
