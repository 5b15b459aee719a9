"""Sipariş: alışveriş/sepet tarafının sahibi olduğu tablo; burada sadece okunur ve durum güncellenir."""
from datetime import datetime
from enum import Enum
from typing import Any

from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel


class OrderStatus(str, Enum):
    CREATED = "created"
    PAID = "paid"
    PREPARING = "preparing"
    SHIPPING = "shipping"
    DELIVERED = "delivered"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class Order(SQLModel, table=True):
    __tablename__ = "orders"
    id: int | None = Field(default=None, primary_key=True)
    order_id: str = Field(unique=True, index=True)  # Dış sipariş numarası (PortOne'a giden orderId)
    user_id: int = Field(index=True)                # Alıcı
    vendor_id: int = Field(index=True)              # Satıcı
    product_id: int | None = None
    conversation_id: int | None = Field(default=None, index=True)  # AI danışma / teklif sohbeti
    price: int  # KRW, tam sayı (원)
    status: str = OrderStatus.CREATED.value
    # Sipariş anında yakalanan ödeme bilgisi; {"paymentId": "pay_..."} taşıyabilir
    payment_info: dict[str, Any] | None = Field(default=None, sa_column=Column(JSON, nullable=True))
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime | None = None
