"""Ödeme alt sistemi hata sınıfları. HTTP'ye çeviri sadece plantbid.main exception handler'larında yapılır."""


class PaymentError(Exception):
    status_code = 500
    message = "결제 처리 중 오류가 발생했습니다."

    def __init__(self, message: str | None = None, *, order_id: str | None = None) -> None:
        self.message = message or self.message
        self.order_id = order_id
        super().__init__(self.message)


class PaymentNotFound(PaymentError):
    status_code = 404
    message = "결제 정보를 찾을 수 없습니다."


class OrderNotFound(PaymentError):
    status_code = 404
    message = "주문을 찾을 수 없습니다."


class AlreadyCancelled(PaymentError):
    """Tekrarlanan iptal isteği; /payments/cancel bunu başarılı yanıt olarak döner."""

    status_code = 400
    message = "이미 취소된 결제입니다."

    def __init__(self, message: str | None = None, *, order_id: str | None = None, payment=None) -> None:
        super().__init__(message, order_id=order_id)
        self.payment = payment


class CancelAmountExceeded(PaymentError):
    status_code = 400
    message = "취소 금액이 결제 금액을 초과합니다."


class ValidationMismatch(PaymentError):
    """Aday ödeme tutar/sipariş/durum kontrolünden geçemedi. Dışarı sızmaz, 'eşleşme yok' sayılır."""

    status_code = 409
    message = "결제 정보가 주문과 일치하지 않습니다."

    def __init__(self, reason: str, *, order_id: str | None = None, payment_id: str | None = None) -> None:
        super().__init__(order_id=order_id)
        self.reason = reason
        self.payment_id = payment_id

    def __str__(self) -> str:
        return f"{self.reason} (order_id={self.order_id} payment_id={self.payment_id})"


class MissingOrderId(PaymentError):
    status_code = 400
    message = "주문 ID가 필요합니다."


class InvalidWebhook(PaymentError):
    status_code = 400
    message = "잘못된 웹훅 요청입니다."
