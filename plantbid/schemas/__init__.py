from .payment import (
    GATEWAY_TO_LOCAL_STATUS,
    CancelPaymentRequest,
    GatewayPayment,
    GatewayPaymentStatus,
    ReconcilePaymentRequest,
    SyncPaymentRequest,
)

__all__ = [
    "GATEWAY_TO_LOCAL_STATUS",
    "CancelPaymentRequest",
    "GatewayPayment",
    "GatewayPaymentStatus",
    "ReconcilePaymentRequest",
    "SyncPaymentRequest",
]
