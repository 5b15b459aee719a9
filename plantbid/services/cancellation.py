"""
Ödeme iptali: yerel durum esastır, PortOne çağrısı en iyi çaba ile yapılır.
PortOne hata verse de sipariş ve ödeme yerelde iptal edilir; operatör için loglanır.
Kalan tutarın altındaki iptal kısmidir: ödeme COMPLETED, sipariş olduğu gibi kalır.
"""
import logging
from datetime import datetime
from typing import NamedTuple

from plantbid.core.config import settings
from plantbid.models import Order, OrderStatus, Payment, PaymentStatus

from .errors import AlreadyCancelled, CancelAmountExceeded, MissingOrderId, PaymentNotFound
from .payment_id import normalize_payment_id
from .portone_client import PortOneClient, PortOneError
from .storage import PaymentStorage

logger = logging.getLogger(__name__)


class CancelOutcome(NamedTuple):
    payment: Payment
    order: Order | None
    remote_cancelled: bool
    remote_error: str | None  # Sadece log/operatör için; istemciye gösterilmez
    gateway_payment_id: str
    partial: bool = False


class PaymentCanceller:
    def __init__(self, storage: PaymentStorage, client: PortOneClient) -> None:
        self.storage = storage
        self.client = client

    def cancel(self, order_id: str, reason: str | None = None, amount: int | None = None) -> CancelOutcome:
        order_id = (order_id or "").strip()
        if not order_id:
            raise MissingOrderId()
        reason = (reason or "").strip() or settings.payment_default_cancel_reason

        payment = self.storage.get_payment_by_order_id(order_id)
        if payment is None:
            raise PaymentNotFound(order_id=order_id)
        if payment.status == PaymentStatus.CANCELLED.value:
            raise AlreadyCancelled(order_id=order_id, payment=payment)

        remaining = payment.amount - (payment.cancelled_amount or 0)
        if amount is not None and amount > remaining:
            logger.warning("cancel rejected: order_id=%s amount=%s remaining=%s", order_id, amount, remaining)
            raise CancelAmountExceeded(order_id=order_id)
        partial = amount is not None and amount < remaining

        # Saklı payment_key eski/hatalı olabilir; sipariş anında sabitlenen order_id esas alınır
        gateway_payment_id = normalize_payment_id(order_id)
        logger.info(
            "cancel: order_id=%s gateway_payment_id=%s stored_key=%s amount=%s remaining=%s",
            order_id,
            gateway_payment_id,
            payment.payment_key,
            amount or "full",
            remaining,
        )

        remote_cancelled = False
        remote_error: str | None = None
        try:
            result = self.client.cancel_payment(
                gateway_payment_id,
                reason=reason,
                amount=amount,
                merchant_id=payment.merchant_id,
            )
            remote_cancelled = True
            logger.info("cancel: PortOne accepted order_id=%s status=%s", order_id, result.status)
        except PortOneError as e:
            remote_error = str(e)
            logger.warning(
                "cancel: PortOne failed, cancelling locally anyway order_id=%s status_code=%s error=%s",
                order_id,
                e.status_code,
                e.message,
            )

        if partial:
            updated = self.storage.record_partial_cancel(order_id, amount, reason)
            if updated is None:
                # Araya tam iptal ya da başka bir kısmi iptal girdi
                current = self.storage.reload_payment(order_id)
                if current is not None and current.status == PaymentStatus.CANCELLED.value:
                    raise AlreadyCancelled(order_id=order_id, payment=current)
                raise CancelAmountExceeded(order_id=order_id)
            return CancelOutcome(
                payment=updated,
                order=self.storage.get_order_by_order_id(order_id),
                remote_cancelled=remote_cancelled,
                remote_error=remote_error,
                gateway_payment_id=gateway_payment_id,
                partial=True,
            )

        cancelled = self.storage.cancel_payment_if_active(order_id, reason, cancelled_at=datetime.utcnow())
        if cancelled is None:
            # Eşzamanlı başka bir iptal önce yazdı
            raise AlreadyCancelled(order_id=order_id, payment=self.storage.reload_payment(order_id))
        order = self.storage.update_order_status_by_order_id(order_id, OrderStatus.CANCELLED.value)
        return CancelOutcome(
            payment=cancelled,
            order=order,
            remote_cancelled=remote_cancelled,
            remote_error=remote_error,
            gateway_payment_id=gateway_payment_id,
        )
