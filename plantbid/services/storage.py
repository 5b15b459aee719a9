"""
Ödeme alt sisteminin kullandığı depolama arayüzü (SQLModel Session üzerinde).
Sipariş ve teklif tabloları çevre uygulamaya aittir; burada sadece okunur ve durum güncellenir.
"""
import logging
from datetime import datetime
from typing import Any

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from plantbid.models import Bid, Order, Payment, PaymentStatus

logger = logging.getLogger(__name__)


class PaymentStorage:
    def __init__(self, db: Session) -> None:
        self.db = db

    def get_payment_by_order_id(self, order_id: str) -> Payment | None:
        return self.db.exec(select(Payment).where(Payment.order_id == order_id)).first()

    def get_order_by_order_id(self, order_id: str) -> Order | None:
        return self.db.exec(select(Order).where(Order.order_id == order_id)).first()

    def reload_payment(self, order_id: str) -> Payment | None:
        """Başka bir oturumun yazdığı son hali okur (kimlik haritasındaki eski kopya yerine)."""
        payment = self.get_payment_by_order_id(order_id)
        if payment is not None:
            self.db.refresh(payment)
        return payment

    def create_payment(self, payment: Payment) -> Payment:
        """
        order_id unique: aynı sipariş için eşzamanlı ikinci insert IntegrityError alır,
        bu durumda kazanan satır okunup döndürülür.
        """
        self.db.add(payment)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            existing = self.get_payment_by_order_id(payment.order_id)
            if existing is None:
                raise
            logger.info("create_payment conflict: order_id=%s already has payment id=%s", payment.order_id, existing.id)
            return existing
        self.db.refresh(payment)
        return payment

    def update_payment(self, payment: Payment, **fields: Any) -> Payment:
        for key, value in fields.items():
            setattr(payment, key, value)
        payment.updated_at = datetime.utcnow()
        self.db.add(payment)
        self.db.commit()
        self.db.refresh(payment)
        return payment

    def update_payment_by_order_id(self, order_id: str, **fields: Any) -> Payment | None:
        payment = self.get_payment_by_order_id(order_id)
        if payment is None:
            return None
        return self.update_payment(payment, **fields)

    def update_order_status_by_order_id(self, order_id: str, status: str) -> Order | None:
        order = self.get_order_by_order_id(order_id)
        if order is None:
            return None
        order.status = status
        order.updated_at = datetime.utcnow()
        self.db.add(order)
        self.db.commit()
        self.db.refresh(order)
        return order

    def cancel_payment_if_active(self, order_id: str, reason: str, cancelled_at: datetime | None = None) -> Payment | None:
        """
        Koşullu güncelleme: UPDATE ... WHERE status != 'CANCELLED'.
        Etkilenen satır yoksa (zaten iptal ya da kayıt yok) None; eşzamanlı iptallerde tek kazanan olur.
        """
        now = cancelled_at or datetime.utcnow()
        stmt = (
            update(Payment)
            .where(Payment.order_id == order_id)
            .where(Payment.status != PaymentStatus.CANCELLED.value)
            .values(
                status=PaymentStatus.CANCELLED.value,
                cancel_reason=reason,
                cancelled_at=now,
                updated_at=now,
            )
        )
        result = self.db.exec(stmt)
        self.db.commit()
        if result.rowcount == 0:
            return None
        payment = self.get_payment_by_order_id(order_id)
        if payment is not None:
            self.db.refresh(payment)
        return payment

    def record_partial_cancel(self, order_id: str, amount: int, reason: str) -> Payment | None:
        """
        Kısmi iptal: durum değişmez, sadece cancelled_amount artar.
        Koşul: iptal edilmemiş ve toplam iptal ödeme tutarının altında kalıyor; aksi halde None.
        """
        stmt = (
            update(Payment)
            .where(Payment.order_id == order_id)
            .where(Payment.status != PaymentStatus.CANCELLED.value)
            .where(Payment.cancelled_amount + amount < Payment.amount)
            .values(
                cancelled_amount=Payment.cancelled_amount + amount,
                cancel_reason=reason,
                updated_at=datetime.utcnow(),
            )
        )
        result = self.db.exec(stmt)
        self.db.commit()
        if result.rowcount == 0:
            return None
        payment = self.get_payment_by_order_id(order_id)
        if payment is not None:
            self.db.refresh(payment)
        return payment

    def get_bids_for_vendor(self, vendor_id: int) -> list[Bid]:
        """En yeni teklif önce."""
        stmt = select(Bid).where(Bid.vendor_id == vendor_id).order_by(Bid.created_at.desc(), Bid.id.desc())
        return list(self.db.exec(stmt).all())

    def get_bid_by_vendor_and_conversation(self, vendor_id: int, conversation_id: int) -> Bid | None:
        stmt = (
            select(Bid)
            .where(Bid.vendor_id == vendor_id)
            .where(Bid.conversation_id == conversation_id)
            .order_by(Bid.created_at.desc(), Bid.id.desc())
        )
        return self.db.exec(stmt).first()
