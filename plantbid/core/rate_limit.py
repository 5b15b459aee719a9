"""IP bazlı rate limiting (SlowAPI); proxy (X-Forwarded-For) destekli, sayaç deposu ayarlanabilir."""
from fastapi import Request

from slowapi import Limiter

from .config import settings


def _get_client_ip(request: Request) -> str:
    """Proxy arkasında gerçek istemci IP."""
    xff = request.headers.get("x-forwarded-for")
    if xff:
        return xff.split(",")[0].strip()
    if request.client and request.client.host:
        return request.client.host
    return "127.0.0.1"


def payments_rate_limit() -> str:
    """Her istekte ayardan okunur; testlerde settings üzerinden değiştirilebilir."""
    return f"{settings.rate_limit_payments_per_minute}/minute"


def general_rate_limit() -> str:
    """Ödeme dışı uçlar (webhook) için genel dakikalık limit."""
    return f"{settings.rate_limit_per_minute}/minute"


# Çoklu instance'ta RATE_LIMIT_STORAGE_URI=redis://... ile ortak sayaç kullanılır
limiter = Limiter(key_func=_get_client_ip, storage_uri=settings.rate_limit_storage_uri)
