from .cancellation import CancelOutcome, PaymentCanceller
from .errors import (
    AlreadyCancelled,
    InvalidWebhook,
    MissingOrderId,
    OrderNotFound,
    PaymentError,
    PaymentNotFound,
    ValidationMismatch,
)
from .payment_id import normalize_payment_id
from .portone_client import PortOneClient, PortOneError
from .reconciliation import PaymentReconciler, StatusSync
from .storage import PaymentStorage
from .webhook import PaymentWebhookHandler, WebhookResult

__all__ = [
    "AlreadyCancelled",
    "CancelOutcome",
    "InvalidWebhook",
    "MissingOrderId",
    "OrderNotFound",
    "PaymentCanceller",
    "PaymentError",
    "PaymentNotFound",
    "PaymentReconciler",
    "PaymentStorage",
    "PaymentWebhookHandler",
    "PortOneClient",
    "PortOneError",
    "StatusSync",
    "ValidationMismatch",
    "WebhookResult",
    "normalize_payment_id",
]
