from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

from plantbid.models.payment import PaymentStatus


class SyncPaymentRequest(BaseModel):
    """Ödeme sonrası yönlendirme: orderId ile PortOne'daki ödeme bulunup yerelde kaydedilir."""
    model_config = ConfigDict(populate_by_name=True)
    order_id: str = Field(alias="orderId", min_length=1)


class CancelPaymentRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)
    order_id: str = Field(alias="orderId", min_length=1)
    reason: str | None = None
    amount: int | None = Field(default=None, gt=0)  # Kısmi iptal; None = tamamı


class ReconcilePaymentRequest(BaseModel):
    """Manuel ödeme anahtarı düzeltme: paymentId verilmezse PortOne'da orderId ile aranır."""
    model_config = ConfigDict(populate_by_name=True)
    order_id: str = Field(alias="orderId", min_length=1)
    payment_id: str | None = Field(default=None, alias="paymentId")


class GatewayPaymentStatus(str, Enum):
    READY = "READY"
    PAY_PENDING = "PAY_PENDING"
    VIRTUAL_ACCOUNT_ISSUED = "VIRTUAL_ACCOUNT_ISSUED"
    PAID = "PAID"
    DONE = "DONE"
    PARTIAL_CANCELLED = "PARTIAL_CANCELLED"
    CANCELLED = "CANCELLED"
    FAILED = "FAILED"
    UNKNOWN = "UNKNOWN"

    @classmethod
    def _missing_(cls, value: object) -> "GatewayPaymentStatus":
        # PortOne bazen küçük harf döner; tanınmayan her şey UNKNOWN
        if isinstance(value, str):
            upper = value.strip().upper()
            for member in cls:
                if member.value == upper:
                    return member
        return cls.UNKNOWN

    @property
    def is_paid(self) -> bool:
        return self in (GatewayPaymentStatus.PAID, GatewayPaymentStatus.DONE)

    def to_local(self) -> PaymentStatus | None:
        return GATEWAY_TO_LOCAL_STATUS[self]


GATEWAY_TO_LOCAL_STATUS: dict[GatewayPaymentStatus, PaymentStatus | None] = {
    GatewayPaymentStatus.READY: PaymentStatus.READY,
    GatewayPaymentStatus.PAY_PENDING: PaymentStatus.READY,
    GatewayPaymentStatus.VIRTUAL_ACCOUNT_ISSUED: PaymentStatus.READY,
    GatewayPaymentStatus.PAID: PaymentStatus.COMPLETED,
    GatewayPaymentStatus.DONE: PaymentStatus.COMPLETED,
    # Kısmi iptalde ödeme kalan tutar için geçerli kalır
    GatewayPaymentStatus.PARTIAL_CANCELLED: PaymentStatus.COMPLETED,
    GatewayPaymentStatus.CANCELLED: PaymentStatus.CANCELLED,
    GatewayPaymentStatus.FAILED: PaymentStatus.FAILED,
    GatewayPaymentStatus.UNKNOWN: None,
}


class GatewayPayment(BaseModel):
    """
    PortOne V2 ödeme kaydı (bellekte). Yanıt {"payment": {...}} şeklinde sarılı gelebilir;
    alanlar camelCase (paymentId) veya snake_case (payment_id) olabilir.
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    payment_id: str = ""
    order_id: str | None = None
    status: GatewayPaymentStatus = GatewayPaymentStatus.UNKNOWN
    total_amount: int | None = None
    cancelled_amount: int | None = None
    receipt_url: str | None = None
    paid_at: datetime | None = None
    cancelled_at: datetime | None = None
    method: str | None = None
    cancellations: list[dict[str, Any]] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _flatten(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        if isinstance(data.get("payment"), dict):
            data = data["payment"]
        data = dict(data)
        aliases = {
            "paymentId": "payment_id",
            "id": "payment_id",
            "orderId": "order_id",
            "merchantOrderId": "order_id",
            "totalAmount": "total_amount",
            "receiptUrl": "receipt_url",
            "paidAt": "paid_at",
            "cancelledAt": "cancelled_at",
            "cancelledAmount": "cancelled_amount",
        }
        for src, dst in aliases.items():
            if src in data and data.get(dst) is None:
                data[dst] = data[src]
        amount = data.get("amount")
        if data.get("total_amount") is None and isinstance(amount, dict):
            data["total_amount"] = amount.get("total")
        elif data.get("total_amount") is None and isinstance(amount, (int, float)):
            data["total_amount"] = amount
        if data.get("cancelled_amount") is None and isinstance(amount, dict):
            data["cancelled_amount"] = amount.get("cancelled")
        method = data.get("method")
        if isinstance(method, dict):
            data["method"] = method.get("type")
        if data.get("cancellations") is None:
            data["cancellations"] = []
        if data.get("status") is None:
            data["status"] = GatewayPaymentStatus.UNKNOWN
        return data

    @property
    def latest_cancel_reason(self) -> str | None:
        for entry in reversed(self.cancellations):
            reason = (entry.get("reason") or "").strip()
            if reason:
                return reason
        return None
