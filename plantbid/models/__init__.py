from .bid import Bid
from .error_log import ErrorLog
from .order import Order, OrderStatus
from .payment import Payment, PaymentStatus

__all__ = [
    "Bid",
    "ErrorLog",
    "Order",
    "OrderStatus",
    "Payment",
    "PaymentStatus",
]
