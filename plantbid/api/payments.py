"""
Ödeme uçları (/payments). Tekrarlanan iptal dışında hatalar burada yakalanmaz; PaymentError -> HTTP eşlemesi
plantbid.main içindeki exception handler'lardadır.
"""
from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, Request
from fastapi.concurrency import run_in_threadpool

from plantbid.core.rate_limit import general_rate_limit, limiter, payments_rate_limit
from plantbid.models import Order, Payment
from plantbid.schemas.payment import CancelPaymentRequest, ReconcilePaymentRequest, SyncPaymentRequest
from plantbid.services.cancellation import PaymentCanceller
from plantbid.services.errors import AlreadyCancelled
from plantbid.services.reconciliation import PaymentReconciler
from plantbid.services.webhook import PaymentWebhookHandler

from .deps import get_canceller, get_reconciler, get_webhook_handler

router = APIRouter(prefix="/payments", tags=["payments"])


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def payment_to_dict(payment: Payment) -> dict[str, Any]:
    return {
        "id": payment.id,
        "orderId": payment.order_id,
        "userId": payment.user_id,
        "bidId": payment.bid_id,
        "orderName": payment.order_name,
        "amount": payment.amount,
        "paymentKey": payment.payment_key,
        "status": payment.status,
        "method": payment.method,
        "merchantId": payment.merchant_id,
        "receiptUrl": payment.receipt_url,
        "approvedAt": _iso(payment.approved_at),
        "cancelReason": payment.cancel_reason,
        "cancelledAmount": payment.cancelled_amount,
        "cancelledAt": _iso(payment.cancelled_at),
        "createdAt": _iso(payment.created_at),
        "updatedAt": _iso(payment.updated_at),
    }


def order_to_dict(order: Order | None) -> dict[str, Any] | None:
    if order is None:
        return None
    return {"orderId": order.order_id, "status": order.status, "price": order.price}


@router.post("/sync")
@limiter.limit(payments_rate_limit)
def sync_payment(
    body: SyncPaymentRequest,
    request: Request,
    reconciler: PaymentReconciler = Depends(get_reconciler),
):
    """Ödeme sonrası yönlendirme: PortOne'da onaylı ödeme bulunursa yerel kayıt oluşturulur."""
    payment = reconciler.reconcile(body.order_id)
    return {"success": True, "payment": payment_to_dict(payment)}


@router.get("/order/{order_id}")
@limiter.limit(payments_rate_limit)
def get_payment_for_order(
    order_id: str,
    request: Request,
    reconciler: PaymentReconciler = Depends(get_reconciler),
):
    # Kayıt varsa ağ çağrısı yapılmaz
    payment = reconciler.reconcile(order_id)
    return {"success": True, "payment": payment_to_dict(payment)}


@router.post("/cancel")
@limiter.limit(payments_rate_limit)
def cancel_payment(
    body: CancelPaymentRequest,
    request: Request,
    canceller: PaymentCanceller = Depends(get_canceller),
):
    try:
        outcome = canceller.cancel(body.order_id, reason=body.reason, amount=body.amount)
    except AlreadyCancelled as e:
        # Tekrarlanan iptal hata değildir; PortOne'a gidilmez
        return {
            "success": True,
            "message": e.message,
            "payment": payment_to_dict(e.payment) if e.payment is not None else None,
        }
    return {
        "success": True,
        "message": "결제가 부분 취소되었습니다." if outcome.partial else "결제가 취소되었습니다.",
        "payment": payment_to_dict(outcome.payment),
        "order": order_to_dict(outcome.order),
        "gatewayCancelled": outcome.remote_cancelled,
        "gatewayPaymentId": outcome.gateway_payment_id,
    }


@router.post("/reconcile")
@limiter.limit(payments_rate_limit)
def correct_payment_key(
    body: ReconcilePaymentRequest,
    request: Request,
    reconciler: PaymentReconciler = Depends(get_reconciler),
):
    """Destek: kayıtlı ödeme anahtarı yanlışsa verilen paymentId veya PortOne araması ile düzeltilir."""
    payment = reconciler.correct_payment_key(body.order_id, body.payment_id)
    return {
        "success": True,
        "message": "결제 정보가 업데이트되었습니다.",
        "payment": payment_to_dict(payment),
    }


@router.post("/sync-status")
@limiter.limit(payments_rate_limit)
def sync_payment_status(
    body: SyncPaymentRequest,
    request: Request,
    reconciler: PaymentReconciler = Depends(get_reconciler),
):
    result = reconciler.sync_status(body.order_id)
    return {
        "success": True,
        "payment": payment_to_dict(result.payment),
        "gatewayStatus": result.gateway_status.value,
    }


@router.post("/webhook")
@limiter.limit(general_rate_limit)
async def portone_webhook(
    request: Request,
    handler: PaymentWebhookHandler = Depends(get_webhook_handler),
):
    """PortOne V2 webhook. İşlenemeyen ama geçerli olaylar da 200 döner (PortOne tekrar göndermesin)."""
    body = await request.body()
    headers = {k.lower(): v for k, v in request.headers.items()}
    result = await run_in_threadpool(handler.handle, body, headers)
    return {"success": True, "eventType": result.event_type, "orderId": result.order_id, "action": result.action}
