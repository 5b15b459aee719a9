from datetime import datetime
from enum import Enum

from sqlmodel import Field, SQLModel


class PaymentStatus(str, Enum):
    READY = "READY"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    FAILED = "FAILED"


class Payment(SQLModel, table=True):
    """
    Sipariş başına tek ödeme kaydı (order_id unique). Silinmez; iptal bir durum geçişidir.
    payment_key her zaman kanonik PortOne formatındadır: pay_ + 22 alfanümerik.
    """

    __tablename__ = "payments"
    id: int | None = Field(default=None, primary_key=True)
    order_id: str = Field(unique=True, index=True)
    user_id: int = Field(index=True)
    bid_id: int | None = Field(default=None, index=True)  # Teklif bulunamazsa None
    order_name: str = ""
    amount: int  # KRW
    payment_key: str | None = Field(default=None, index=True)
    status: str = PaymentStatus.READY.value
    merchant_id: str | None = None  # Acquirer MID (MOI...)
    method: str | None = None       # CARD, VIRTUAL_ACCOUNT ...
    receipt_url: str | None = None
    approved_at: datetime | None = None
    fail_reason: str | None = None
    # CANCELLED ise ikisi de dolu olmalı
    cancel_reason: str | None = None
    cancelled_amount: int = 0  # Kısmi iptallerin toplamı; tam iptalde dokunulmaz
    cancelled_at: datetime | None = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime | None = Field(default_factory=datetime.utcnow)
