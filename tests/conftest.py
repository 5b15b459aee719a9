"""Pytest fixtures: test client, test DB (in-memory SQLite), sahte PortOne istemcisi."""
import os
from datetime import datetime

import pytest
from fastapi.testclient import TestClient

# Test ortamında in-memory SQLite ve beklemesiz eşleştirme (app import edilmeden önce set edilmeli)
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("RECONCILE_BASE_DELAY_MS", "0")
os.environ.setdefault("RECONCILE_MAX_ATTEMPTS", "6")
# Ödeme uçlarında rate limit yüksek olsun ki tüm testler geçebilsin
os.environ.setdefault("RATE_LIMIT_PAYMENTS_PER_MINUTE", "1000")
os.environ["PORTONE_WEBHOOK_SECRET"] = ""
os.environ["PORTONE_MERCHANT_ID"] = "MOI3204387"

from sqlmodel import Session, SQLModel  # noqa: E402

from plantbid.api.deps import get_gateway_client  # noqa: E402
from plantbid.core.database import engine  # noqa: E402
from plantbid.core.rate_limit import limiter  # noqa: E402
from plantbid.main import app  # noqa: E402
from plantbid.models import Bid, Order, Payment, PaymentStatus  # noqa: E402
from plantbid.schemas.payment import GatewayPayment  # noqa: E402
from plantbid.services.portone_client import CancelResult, PortOneError  # noqa: E402
from plantbid.services.storage import PaymentStorage  # noqa: E402


class FakePortOne:
    """PortOneClient ile aynı arayüz; çağrıları kaydeder, ağ kullanmaz."""

    def __init__(self) -> None:
        self.payments: list[GatewayPayment] = []
        self.calls: list[tuple] = []
        self.cancel_error: PortOneError | None = None
        self.fail_next_searches = 0
        # True: arama orderId filtresini yok sayar (alakasız sonuç döndüren gateway)
        self.fuzzy_search = False

    def add_payment(self, payment_id: str, order_id: str, amount: int, status: str = "PAID", **extra) -> GatewayPayment:
        payment = GatewayPayment.model_validate(
            {"paymentId": payment_id, "orderId": order_id, "amount": {"total": amount}, "status": status, **extra}
        )
        self.payments.append(payment)
        return payment

    def calls_of(self, name: str) -> list[tuple]:
        return [c for c in self.calls if c[0] == name]

    def get_payment(self, payment_id: str) -> GatewayPayment | None:
        self.calls.append(("get_payment", payment_id))
        for payment in self.payments:
            if payment.payment_id == payment_id:
                return payment
        return None

    def search_payments(
        self,
        order_id=None,
        status=None,
        start_date=None,
        end_date=None,
        page=1,
        limit=20,
        merchant_id=None,
    ) -> list[GatewayPayment]:
        self.calls.append(("search_payments", order_id, start_date is not None))
        if self.fail_next_searches > 0:
            self.fail_next_searches -= 1
            raise PortOneError("PortOne API error: GET /payments", 503, {"message": "unavailable"})
        if order_id is None or self.fuzzy_search:
            return list(self.payments)[:limit]
        return [p for p in self.payments if p.order_id == order_id][:limit]

    def cancel_payment(self, payment_id, reason=None, amount=None, tax_free=None, merchant_id=None) -> CancelResult:
        self.calls.append(("cancel_payment", payment_id, reason, amount))
        if self.cancel_error is not None:
            raise self.cancel_error
        return CancelResult(payment_id=payment_id, idempotency_key="test-key", status="SUCCEEDED", cancellation={})


@pytest.fixture(autouse=True)
def _fresh_db():
    """Her test temiz tablolar ve sıfır rate limit sayacı ile başlar."""
    SQLModel.metadata.drop_all(engine)
    SQLModel.metadata.create_all(engine)
    limiter.reset()
    yield


@pytest.fixture
def db():
    with Session(engine) as session:
        yield session


@pytest.fixture
def storage(db):
    return PaymentStorage(db)


@pytest.fixture
def portone():
    return FakePortOne()


@pytest.fixture(scope="function")
def client(portone):
    """TestClient; PortOne istemcisi sahtesiyle değiştirilir."""
    app.dependency_overrides[get_gateway_client] = lambda: portone
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def make_order(db):
    def _make(
        order_id: str = "ord_abc123",
        price: int = 35000,
        user_id: int = 11,
        vendor_id: int = 7,
        conversation_id: int | None = None,
        payment_info: dict | None = None,
        status: str = "created",
    ) -> Order:
        order = Order(
            order_id=order_id,
            price=price,
            user_id=user_id,
            vendor_id=vendor_id,
            conversation_id=conversation_id,
            payment_info=payment_info,
            status=status,
        )
        db.add(order)
        db.commit()
        db.refresh(order)
        return order

    return _make


@pytest.fixture
def make_payment(db):
    def _make(
        order_id: str = "ord_abc123",
        amount: int = 35000,
        status: str = PaymentStatus.COMPLETED.value,
        payment_key: str | None = "pay_01HXABCDEF0123456789AB",
    ) -> Payment:
        payment = Payment(order_id=order_id, user_id=11, amount=amount, status=status, payment_key=payment_key)
        db.add(payment)
        db.commit()
        db.refresh(payment)
        return payment

    return _make


@pytest.fixture
def make_bid(db):
    def _make(vendor_id: int = 7, conversation_id: int | None = None, created_at: datetime | None = None) -> Bid:
        bid = Bid(vendor_id=vendor_id, conversation_id=conversation_id, price=35000, created_at=created_at or datetime.utcnow())
        db.add(bid)
        db.commit()
        db.refresh(bid)
        return bid

    return _make
