"""
Sipariş <-> PortOne ödeme eşleştirme.

Webhook kaçtığında ya da geç geldiğinde, ödeme sonrası yönlendirmede yerel sipariş için
PortOne tarafında onaylanmış ödeme aranır. Sıra:
  1) doğrudan lookup (arama kimliği kanonikse),
  2) sınırlı sayıda lineer beklemeli arama (orderId ile),
  3) son 24 saatlik pencerede tek seferlik geniş arama.
Aday ancak tutar, sipariş kimliği ve ödenmiş durum kontrolünden geçerse kaydedilir.
"""
import logging
import time
from datetime import datetime, timedelta, timezone
from typing import Callable, NamedTuple

from plantbid.core.config import settings
from plantbid.models import Order, OrderStatus, Payment, PaymentStatus
from plantbid.schemas.payment import GatewayPayment, GatewayPaymentStatus

from .errors import MissingOrderId, OrderNotFound, PaymentNotFound, ValidationMismatch
from .payment_id import is_canonical_payment_id, is_legacy_uuid, normalize_payment_id
from .portone_client import PortOneClient, PortOneError
from .retry import linear_delay, retry_with_backoff
from .storage import PaymentStorage

logger = logging.getLogger(__name__)

BidResolver = Callable[[Order], int | None]

_UNSET = object()


class StatusSync(NamedTuple):
    payment: Payment
    gateway_status: GatewayPaymentStatus


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _naive_utc(value: datetime | None) -> datetime | None:
    """DB'de zaman damgaları tz'siz UTC tutulur."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def _order_name(order: Order) -> str:
    if order.product_id:
        return f"식물 구매 #{order.product_id}"
    return f"식물 구매 ({order.order_id})"


def _corresponds(candidate: GatewayPayment, expected_ids: set[str]) -> bool:
    return (candidate.order_id in expected_ids) or (candidate.payment_id in expected_ids)


def _candidates(results: list[GatewayPayment], expected_ids: set[str]) -> list[GatewayPayment]:
    """Sipariş/ödeme kimliği birebir tutan sonuçlar öncelikli; hiç yoksa sadece ilk sonuç."""
    exact = [item for item in results if _corresponds(item, expected_ids)]
    if exact:
        return exact
    return results[:1]


def _pick_match(results: list[GatewayPayment], expected_ids: set[str]) -> GatewayPayment | None:
    candidates = _candidates(results, expected_ids)
    return candidates[0] if candidates else None


class PaymentReconciler:
    def __init__(
        self,
        storage: PaymentStorage,
        client: PortOneClient,
        *,
        max_attempts: int | None = None,
        base_delay_ms: int | None = None,
        recent_window_hours: int | None = None,
        recent_window_limit: int | None = None,
        fallback_bid_id=_UNSET,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.storage = storage
        self.client = client
        self.max_attempts = max_attempts if max_attempts is not None else settings.reconcile_max_attempts
        self.base_delay_ms = base_delay_ms if base_delay_ms is not None else settings.reconcile_base_delay_ms
        self.recent_window_hours = recent_window_hours or settings.reconcile_recent_window_hours
        self.recent_window_limit = recent_window_limit or settings.reconcile_recent_window_limit
        self.fallback_bid_id = settings.attribution_fallback_bid_id if fallback_bid_id is _UNSET else fallback_bid_id
        self.sleep = sleep
        self.clock = clock
        self.bid_resolvers: list[BidResolver] = [
            self._bid_from_conversation,
            self._latest_vendor_bid,
            self._fallback_bid,
        ]

    # --- doğrulama ---

    def validate(self, order: Order, candidate: GatewayPayment, expected_ids: set[str]) -> None:
        if candidate.total_amount != order.price:
            raise ValidationMismatch(
                f"amount mismatch: gateway={candidate.total_amount} order={order.price}",
                order_id=order.order_id,
                payment_id=candidate.payment_id,
            )
        if not _corresponds(candidate, expected_ids):
            raise ValidationMismatch(
                f"order id mismatch: gateway order_id={candidate.order_id}",
                order_id=order.order_id,
                payment_id=candidate.payment_id,
            )
        if not candidate.status.is_paid:
            raise ValidationMismatch(
                f"not paid: status={candidate.status.value}",
                order_id=order.order_id,
                payment_id=candidate.payment_id,
            )

    def _acceptable(self, order: Order, candidate: GatewayPayment | None, expected_ids: set[str]) -> bool:
        if candidate is None:
            return False
        try:
            self.validate(order, candidate, expected_ids)
        except ValidationMismatch as e:
            logger.warning("reconcile candidate rejected: %s", e)
            return False
        return True

    # --- stratejiler ---

    def _confirm(self, match: GatewayPayment, expected_ids: set[str]) -> GatewayPayment | None:
        """
        Arama sonucunu tekil lookup ile teyit et. Teyit başka bir siparişe aitse aday düşer (None).
        Lookup hata verir ya da bulamazsa arama sonucu kullanılır (makbuz URL'si olmayabilir).
        """
        if not match.payment_id:
            return match
        try:
            confirmed = self.client.get_payment(match.payment_id)
        except PortOneError as e:
            logger.warning("confirmation lookup failed: payment_id=%s %s", match.payment_id, e)
            return match
        if confirmed is None:
            return match
        if not _corresponds(confirmed, expected_ids):
            logger.warning(
                "confirmation does not correspond: payment_id=%s gateway order_id=%s expected=%s",
                match.payment_id,
                confirmed.order_id,
                sorted(expected_ids),
            )
            return None
        return confirmed

    def _direct_lookup(self, order: Order, search_id: str, expected_ids: set[str]) -> GatewayPayment | None:
        if not is_canonical_payment_id(search_id):
            return None
        return retry_with_backoff(
            lambda attempt: self.client.get_payment(search_id),
            attempts=1,
            delay=linear_delay(self.base_delay_ms),
            accept=lambda candidate: self._acceptable(order, candidate, expected_ids),
            sleep=self.sleep,
            label=f"direct lookup {search_id}",
        )

    def _bounded_search(self, order: Order, search_id: str, expected_ids: set[str]) -> GatewayPayment | None:
        search_ids = [search_id]
        if order.order_id != search_id:
            search_ids.append(order.order_id)

        def attempt_search(attempt: int) -> GatewayPayment | None:
            for sid in search_ids:
                try:
                    results = self.client.search_payments(order_id=sid)
                except PortOneError as e:
                    logger.warning("search attempt=%s order_id=%s failed: %s", attempt, sid, e)
                    continue
                logger.info("search attempt=%s/%s order_id=%s results=%s", attempt, self.max_attempts, sid, len(results))
                for match in _candidates(results, expected_ids):
                    candidate = self._confirm(match, expected_ids)
                    if self._acceptable(order, candidate, expected_ids):
                        return candidate
            return None

        return retry_with_backoff(
            attempt_search,
            attempts=self.max_attempts,
            delay=linear_delay(self.base_delay_ms),
            sleep=self.sleep,
            label=f"search {order.order_id}",
        )

    def _recent_window(self, order: Order, expected_ids: set[str]) -> GatewayPayment | None:
        def window_search(attempt: int) -> GatewayPayment | None:
            end = self.clock()
            start = end - timedelta(hours=self.recent_window_hours)
            results = self.client.search_payments(start_date=start, end_date=end, limit=self.recent_window_limit)
            exact = [item for item in results if _corresponds(item, expected_ids)]
            logger.info("recent window search: results=%s exact=%s", len(results), len(exact))
            for item in exact:
                candidate = self._confirm(item, expected_ids)
                if self._acceptable(order, candidate, expected_ids):
                    return candidate
            return None

        return retry_with_backoff(
            window_search,
            attempts=1,
            delay=linear_delay(self.base_delay_ms),
            sleep=self.sleep,
            label=f"recent window {order.order_id}",
        )

    # --- teklif ataması ---

    def _bid_from_conversation(self, order: Order) -> int | None:
        if not order.conversation_id:
            return None
        bid = self.storage.get_bid_by_vendor_and_conversation(order.vendor_id, order.conversation_id)
        return bid.id if bid else None

    def _latest_vendor_bid(self, order: Order) -> int | None:
        bids = self.storage.get_bids_for_vendor(order.vendor_id)
        return bids[0].id if bids else None

    def _fallback_bid(self, order: Order) -> int | None:
        return self.fallback_bid_id

    def attribute_bid(self, order: Order) -> int | None:
        for resolver in self.bid_resolvers:
            bid_id = resolver(order)
            if bid_id is not None:
                return bid_id
        logger.warning("no bid attribution for order_id=%s vendor_id=%s", order.order_id, order.vendor_id)
        return None

    # --- operasyonlar ---

    @staticmethod
    def search_id_for(order: Order) -> str:
        info = order.payment_info or {}
        payment_id = info.get("paymentId") if isinstance(info, dict) else None
        if isinstance(payment_id, str) and payment_id.strip():
            return payment_id.strip()
        return order.order_id

    def reconcile(self, order_id: str) -> Payment:
        order_id = (order_id or "").strip()
        if not order_id:
            raise MissingOrderId()

        existing = self.storage.get_payment_by_order_id(order_id)
        if existing is not None:
            return existing

        order = self.storage.get_order_by_order_id(order_id)
        if order is None:
            raise OrderNotFound(order_id=order_id)

        search_id = self.search_id_for(order)
        expected_ids = {order_id, search_id}
        logger.info("reconcile start: order_id=%s search_id=%s", order_id, search_id)

        candidate = (
            self._direct_lookup(order, search_id, expected_ids)
            or self._bounded_search(order, search_id, expected_ids)
            or self._recent_window(order, expected_ids)
        )
        if candidate is None:
            logger.warning("reconcile failed: no gateway payment for order_id=%s", order_id)
            raise PaymentNotFound(order_id=order_id)

        payment_key = normalize_payment_id(candidate.payment_id or search_id)
        payment = Payment(
            order_id=order_id,
            user_id=order.user_id,
            bid_id=self.attribute_bid(order),
            order_name=_order_name(order),
            amount=order.price,
            payment_key=payment_key,
            status=PaymentStatus.COMPLETED.value,
            merchant_id=settings.portone_merchant_id or None,
            method=candidate.method,
            receipt_url=candidate.receipt_url,
            approved_at=_naive_utc(candidate.paid_at or self.clock()),
        )
        payment = self.storage.create_payment(payment)
        if order.status == OrderStatus.CREATED.value:
            self.storage.update_order_status_by_order_id(order_id, OrderStatus.PAID.value)
        logger.info(
            "reconcile done: order_id=%s gateway_payment_id=%s payment_key=%s bid_id=%s",
            order_id,
            candidate.payment_id,
            payment.payment_key,
            payment.bid_id,
        )
        return payment

    def correct_payment_key(self, order_id: str, payment_id: str | None = None) -> Payment:
        """Manuel düzeltme: kayıtlı ödeme anahtarını verilen veya PortOne'da bulunan kimlikle değiştir."""
        order_id = (order_id or "").strip()
        if not order_id:
            raise MissingOrderId()
        payment = self.storage.get_payment_by_order_id(order_id)
        if payment is None:
            raise PaymentNotFound(order_id=order_id)

        if payment_id and payment_id.strip():
            source = payment_id.strip()
        else:
            try:
                results = self.client.search_payments(order_id=order_id)
            except PortOneError as e:
                logger.warning("payment key search failed: order_id=%s %s", order_id, e)
                results = []
            found = _pick_match(results, {order_id})
            if found is None or not found.payment_id:
                raise PaymentNotFound(order_id=order_id)
            source = found.payment_id

        new_key = normalize_payment_id(source)
        if new_key == payment.payment_key:
            return payment
        logger.info("payment key corrected: order_id=%s %s -> %s (source=%s)", order_id, payment.payment_key, new_key, source)
        return self.storage.update_payment(payment, payment_key=new_key)

    def _remote_for(self, payment: Payment) -> GatewayPayment | None:
        if payment.payment_key and (is_canonical_payment_id(payment.payment_key) or is_legacy_uuid(payment.payment_key)):
            try:
                remote = self.client.get_payment(payment.payment_key)
            except PortOneError as e:
                logger.warning("status lookup failed: payment_key=%s %s", payment.payment_key, e)
                remote = None
            if remote is not None:
                return remote
        try:
            results = self.client.search_payments(order_id=payment.order_id)
        except PortOneError as e:
            logger.warning("status search failed: order_id=%s %s", payment.order_id, e)
            return None
        return _pick_match(results, {payment.order_id})

    def sync_status(self, order_id: str) -> StatusSync:
        """PortOne'daki durumu yerel kayda yansıt (iptal / ödendi / başarısız)."""
        order_id = (order_id or "").strip()
        if not order_id:
            raise MissingOrderId()
        payment = self.storage.get_payment_by_order_id(order_id)
        if payment is None:
            raise PaymentNotFound(order_id=order_id)
        remote = self._remote_for(payment)
        if remote is None:
            raise PaymentNotFound(order_id=order_id)

        status = remote.status
        target = status.to_local()
        local = payment.status
        if target is PaymentStatus.CANCELLED and local != PaymentStatus.CANCELLED.value:
            reason = remote.latest_cancel_reason or settings.payment_default_cancel_reason
            self.storage.cancel_payment_if_active(order_id, reason, cancelled_at=_naive_utc(remote.cancelled_at))
            self.storage.update_order_status_by_order_id(order_id, OrderStatus.CANCELLED.value)
        elif target is PaymentStatus.COMPLETED and local == PaymentStatus.READY.value:
            self.storage.update_payment(
                payment,
                status=PaymentStatus.COMPLETED.value,
                approved_at=_naive_utc(remote.paid_at or self.clock()),
                receipt_url=remote.receipt_url or payment.receipt_url,
            )
            order = self.storage.get_order_by_order_id(order_id)
            if order is not None and order.status == OrderStatus.CREATED.value:
                self.storage.update_order_status_by_order_id(order_id, OrderStatus.PAID.value)
        elif target is PaymentStatus.FAILED and local == PaymentStatus.READY.value:
            self.storage.update_payment(payment, status=PaymentStatus.FAILED.value, fail_reason="PortOne FAILED")

        # Kısmi iptal: sipariş değişmez, sadece iptal edilen toplam PortOne ile hizalanır
        if (
            status is GatewayPaymentStatus.PARTIAL_CANCELLED
            and local != PaymentStatus.CANCELLED.value
            and (remote.cancelled_amount or 0) > (payment.cancelled_amount or 0)
        ):
            self.storage.update_payment(
                payment,
                cancelled_amount=remote.cancelled_amount,
                cancel_reason=remote.latest_cancel_reason or payment.cancel_reason,
            )
        logger.info("status sync: order_id=%s gateway=%s local=%s", order_id, status.value, local)

        refreshed = self.storage.get_payment_by_order_id(order_id)
        return StatusSync(payment=refreshed or payment, gateway_status=status)
