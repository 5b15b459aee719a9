"""PortOne V2 istemcisi: başlıklar, yol normalizasyonu, hata çevirisi (httpx.MockTransport)."""
import json
from datetime import datetime, timezone

import httpx
import pytest

from plantbid.schemas.payment import GatewayPaymentStatus
from plantbid.services.portone_client import PortOneClient, PortOneError

SECRET = "test-portone-secret-0123456789"


def make_client(handler, **kwargs) -> tuple[PortOneClient, list[httpx.Request]]:
    seen: list[httpx.Request] = []

    def _record(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return handler(request)

    client = PortOneClient(
        api_secret=SECRET,
        base_url="https://api.portone.test",
        store_id=kwargs.pop("store_id", "store-test"),
        transport=httpx.MockTransport(_record),
        **kwargs,
    )
    return client, seen


def test_get_payment_canonical_sends_auth_headers():
    def handler(request):
        return httpx.Response(
            200,
            json={
                "payment": {
                    "id": "pay_01HXABCDEF0123456789AB",
                    "orderId": "ord_abc123",
                    "status": "PAID",
                    "amount": {"total": 35000},
                    "receiptUrl": "https://receipt.example/1",
                    "paidAt": "2025-05-12T10:00:00Z",
                }
            },
        )

    client, seen = make_client(handler)
    payment = client.get_payment("pay_01HXABCDEF0123456789AB")

    assert seen[0].method == "GET"
    assert seen[0].url.path == "/payments/pay_01HXABCDEF0123456789AB"
    assert seen[0].headers["Authorization"] == f"PortOne {SECRET}"
    assert seen[0].headers["Store-Id"] == "store-test"
    assert payment.payment_id == "pay_01HXABCDEF0123456789AB"
    assert payment.order_id == "ord_abc123"
    assert payment.status is GatewayPaymentStatus.PAID
    assert payment.total_amount == 35000
    assert payment.receipt_url == "https://receipt.example/1"
    assert payment.paid_at == datetime(2025, 5, 12, 10, 0, tzinfo=timezone.utc)


def test_get_payment_snake_case_fields():
    def handler(request):
        return httpx.Response(
            200,
            json={"payment_id": "pay_01HXABCDEF0123456789AB", "order_id": "ord_1", "status": "paid", "total_amount": 900},
        )

    client, _ = make_client(handler)
    payment = client.get_payment("pay_01HXABCDEF0123456789AB")
    assert payment.order_id == "ord_1"
    assert payment.total_amount == 900
    assert payment.status.is_paid


def test_get_payment_uuid_is_normalized_before_lookup():
    client, seen = make_client(lambda r: httpx.Response(200, json={"id": "pay_0196ae8c58566f4a044a7d", "status": "PAID"}))
    client.get_payment("0196ae8c-5856-6faf-9053-88714a044a7d")
    assert seen[0].url.path == "/payments/pay_0196ae8c58566f4a044a7d"


def test_get_payment_order_number_redirects_to_search():
    def handler(request):
        return httpx.Response(200, json={"payments": [{"id": "pay_01HXABCDEF0123456789AB", "orderId": "ord_abc123", "status": "PAID"}]})

    client, seen = make_client(handler)
    payment = client.get_payment("ord_abc123")
    assert seen[0].url.path == "/payments"
    assert seen[0].url.params["orderId"] == "ord_abc123"
    assert payment.payment_id == "pay_01HXABCDEF0123456789AB"


def test_get_payment_404_returns_none():
    client, _ = make_client(lambda r: httpx.Response(404, json={"type": "PAYMENT_NOT_FOUND"}))
    assert client.get_payment("pay_01HXABCDEF0123456789AB") is None


def test_non_2xx_raises_portone_error_with_body():
    client, _ = make_client(lambda r: httpx.Response(401, json={"type": "UNAUTHORIZED", "message": "bad secret"}))
    with pytest.raises(PortOneError) as exc_info:
        client.get_payment("pay_01HXABCDEF0123456789AB")
    assert exc_info.value.status_code == 401
    assert exc_info.value.body == {"type": "UNAUTHORIZED", "message": "bad secret"}


def test_network_error_raises_portone_error():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    client, _ = make_client(handler)
    with pytest.raises(PortOneError) as exc_info:
        client.search_payments(order_id="ord_1")
    assert exc_info.value.status_code is None


def test_search_payments_query_params():
    client, seen = make_client(lambda r: httpx.Response(200, json={"payments": []}))
    start = datetime(2025, 5, 11, 10, 0, tzinfo=timezone.utc)
    end = datetime(2025, 5, 12, 10, 0, tzinfo=timezone.utc)
    result = client.search_payments(status=GatewayPaymentStatus.PAID, start_date=start, end_date=end, limit=100)

    params = seen[0].url.params
    assert result == []
    assert params["status"] == "PAID"
    assert params["startDate"] == "2025-05-11T10:00:00Z"
    assert params["endDate"] == "2025-05-12T10:00:00Z"
    assert params["limit"] == "100"
    assert params["page"] == "1"
    assert "orderId" not in params


def test_cancel_uses_fresh_idempotency_key_and_default_reason():
    client, seen = make_client(lambda r: httpx.Response(200, json={"cancellation": {"status": "SUCCEEDED"}}))
    first = client.cancel_payment("ord_abc123")
    second = client.cancel_payment("ord_abc123", reason="  ", amount=5000)

    assert seen[0].method == "POST"
    assert seen[0].url.path == "/payments/pay_ordabc1230000000000000/cancel"
    assert first.payment_id == "pay_ordabc1230000000000000"
    assert first.status == "SUCCEEDED"
    keys = {seen[0].headers["Idempotency-Key"], seen[1].headers["Idempotency-Key"]}
    assert len(keys) == 2
    assert first.idempotency_key != second.idempotency_key

    body = json.loads(seen[1].content)
    assert body == {"reason": "고객 요청에 의한 취소", "amount": 5000}


def test_cancel_error_carries_status_code():
    client, _ = make_client(lambda r: httpx.Response(409, json={"type": "PAYMENT_ALREADY_CANCELLED"}))
    with pytest.raises(PortOneError) as exc_info:
        client.cancel_payment("pay_01HXABCDEF0123456789AB", reason="고객 변심")
    assert exc_info.value.status_code == 409


def test_search_skips_unparseable_payment():
    def handler(request):
        return httpx.Response(
            200,
            json={
                "payments": [
                    {"id": "pay_X", "orderId": "other", "status": "PAID", "paidAt": "garbage"},
                    {"id": "pay_01HXABCDEF0123456789AB", "orderId": "ord_abc123", "status": "PAID"},
                ]
            },
        )

    client, _ = make_client(handler)
    result = client.search_payments(order_id="ord_abc123")
    assert [p.payment_id for p in result] == ["pay_01HXABCDEF0123456789AB"]


def test_unparseable_lookup_raises_portone_error():
    body = {"id": "pay_01HXABCDEF0123456789AB", "status": "PAID", "paidAt": "garbage"}
    client, _ = make_client(lambda r: httpx.Response(200, json=body))
    with pytest.raises(PortOneError) as exc_info:
        client.get_payment("pay_01HXABCDEF0123456789AB")
    assert exc_info.value.body == body
