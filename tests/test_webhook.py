"""PortOne V2 webhook: imza doğrulama ve olay işleme."""
import json

from fastapi.testclient import TestClient

from plantbid.core.config import settings
from plantbid.models import PaymentStatus
from plantbid.services.webhook import sign_payload, verify_signature

GATEWAY_ID = "pay_01HXABCDEF0123456789AB"


def _post(client: TestClient, payload: dict, headers: dict | None = None):
    body = json.dumps(payload).encode()
    return client.post("/payments/webhook", content=body, headers={"Content-Type": "application/json", **(headers or {})})


def test_paid_event_reconciles_through_gateway(client: TestClient, portone, storage, make_order):
    make_order("ord_abc123", price=35000)
    portone.add_payment(GATEWAY_ID, "ord_abc123", 35000)

    r = _post(client, {"type": "Transaction.Paid", "data": {"paymentId": GATEWAY_ID, "storeId": "store-test"}})

    assert r.status_code == 200
    j = r.json()
    assert j["action"] == "reconciled"
    assert j["orderId"] == "ord_abc123"
    assert storage.get_payment_by_order_id("ord_abc123").status == PaymentStatus.COMPLETED.value


def test_paid_event_without_gateway_confirmation_creates_nothing(client: TestClient, portone, storage, make_order):
    make_order("ord_abc123", price=35000)
    portone.add_payment(GATEWAY_ID, "ord_abc123", 35000, "READY")

    r = _post(client, {"type": "Transaction.Paid", "data": {"paymentId": GATEWAY_ID}})

    assert r.status_code == 200
    assert r.json()["action"] == "ignored"
    assert storage.get_payment_by_order_id("ord_abc123") is None


def test_cancel_event_cancels_locally(client: TestClient, storage, make_order, make_payment):
    make_order("ord_abc123", status="paid")
    make_payment("ord_abc123")

    r = _post(
        client,
        {
            "type": "Transaction.Cancelled",
            "data": {"payment": {"paymentId": GATEWAY_ID, "orderId": "ord_abc123", "cancellations": [{"reason": "관리자 취소"}]}},
        },
    )

    assert r.status_code == 200
    assert r.json()["action"] == "cancelled"
    storage.db.expire_all()
    payment = storage.get_payment_by_order_id("ord_abc123")
    assert payment.status == PaymentStatus.CANCELLED.value
    assert payment.cancel_reason == "관리자 취소"
    assert storage.get_order_by_order_id("ord_abc123").status == "cancelled"


def test_failed_event_marks_payment_failed(client: TestClient, storage, make_payment):
    make_payment("ord_abc123", status=PaymentStatus.READY.value)

    r = _post(client, {"eventType": "Transaction.Failed", "data": {"orderId": "ord_abc123", "paymentId": GATEWAY_ID}})

    assert r.json()["action"] == "failed"
    storage.db.expire_all()
    assert storage.get_payment_by_order_id("ord_abc123").status == PaymentStatus.FAILED.value


def test_unknown_event_is_ignored(client: TestClient, portone):
    r = _post(client, {"type": "Transaction.VirtualAccountIssued", "data": {"paymentId": GATEWAY_ID}})
    assert r.status_code == 200
    assert r.json()["action"] == "ignored"
    assert portone.calls == []


def test_malformed_body_is_400(client: TestClient):
    r = client.post("/payments/webhook", content=b"not json", headers={"Content-Type": "application/json"})
    assert r.status_code == 400
    assert r.json()["success"] is False


def test_signature_required_when_secret_set(client: TestClient, monkeypatch, make_payment):
    monkeypatch.setattr(settings, "portone_webhook_secret", "whsec_test")
    make_payment("ord_abc123")
    payload = {"type": "Transaction.Cancelled", "data": {"orderId": "ord_abc123", "paymentId": GATEWAY_ID}}
    body = json.dumps(payload).encode()

    r = client.post("/payments/webhook", content=body, headers={"portone-signature": "bad", "portone-timestamp": "1715500000"})
    assert r.status_code == 400
    assert r.json()["error"] == "웹훅 서명 검증에 실패했습니다."

    signature = sign_payload("whsec_test", "1715500000", body)
    r = client.post(
        "/payments/webhook",
        content=body,
        headers={"portone-signature": signature, "portone-timestamp": "1715500000", "Content-Type": "application/json"},
    )
    assert r.status_code == 200
    assert r.json()["action"] == "cancelled"


def test_verify_signature_rejects_missing_headers():
    assert not verify_signature("secret", None, "1", b"{}")
    assert not verify_signature("secret", "abc", None, b"{}")
    assert verify_signature("secret", sign_payload("secret", "1", b"{}"), "1", b"{}")


def test_partial_cancel_event_keeps_order_paid(client: TestClient, portone, storage, make_order, make_payment):
    make_order("ord_abc123", status="paid")
    make_payment("ord_abc123")
    portone.add_payment(GATEWAY_ID, "ord_abc123", 35000, "PARTIAL_CANCELLED", cancelledAmount=3000)

    r = _post(client, {"type": "Transaction.PartialCancelled", "data": {"paymentId": GATEWAY_ID, "orderId": "ord_abc123"}})

    assert r.status_code == 200
    assert r.json()["action"] == "partial_cancelled"
    storage.db.expire_all()
    payment = storage.get_payment_by_order_id("ord_abc123")
    assert payment.status == PaymentStatus.COMPLETED.value
    assert payment.cancelled_amount == 3000
    assert storage.get_order_by_order_id("ord_abc123").status == "paid"


def test_legacy_status_changed_event_uses_local_mapping(client: TestClient, storage, make_order, make_payment):
    make_order("ord_abc123", status="paid")
    make_payment("ord_abc123")

    r = _post(
        client,
        {"type": "PAYMENT_STATUS_CHANGED", "data": {"paymentId": GATEWAY_ID, "orderId": "ord_abc123", "status": "CANCELLED"}},
    )

    assert r.json()["action"] == "cancelled"
    storage.db.expire_all()
    assert storage.get_payment_by_order_id("ord_abc123").status == PaymentStatus.CANCELLED.value


def test_legacy_pending_status_is_ignored(client: TestClient, portone):
    r = _post(client, {"type": "PAYMENT_STATUS_CHANGED", "data": {"paymentId": GATEWAY_ID, "orderId": "ord_abc123", "status": "PAY_PENDING"}})
    assert r.json()["action"] == "ignored"
    assert portone.calls == []
