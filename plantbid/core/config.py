from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings

# .env proje kökünde: plantbid/core/config.py -> plantbid/core -> plantbid -> proje kökü
_ROOT = Path(__file__).resolve().parent.parent.parent
_ENV_FILE = _ROOT / ".env"

# Daha kısa bir secret büyük ihtimalle yanlış kopyalanmıştır
PORTONE_SECRET_MIN_LENGTH = 16


class Settings(BaseSettings):
    database_url: str = "sqlite:///./plantbid.db"
    environment: str = "development"
    # CORS: virgülle ayrılmış origin listesi
    cors_origins: str = "*"
    # IP başına dakikada max istek (genel)
    rate_limit_per_minute: int = 60
    # /payments/* uçları için ayrı limit (testte yüksek tutulabilir)
    rate_limit_payments_per_minute: int = 30
    # SlowAPI sayaç deposu: tek instance için memory://, çoklu instance için redis://host:6379
    rate_limit_storage_uri: str = "memory://"
    # PortOne V2 REST API
    portone_api_secret: str = ""
    portone_api_base_url: str = "https://api.portone.io"
    portone_store_id: str = ""
    portone_merchant_id: str = ""          # Acquirer (KG이니시스) MID, örn. MOI3204387
    portone_timeout_seconds: float = 10.0  # Her çağrı için ayrı timeout
    portone_webhook_secret: str = ""       # Boşsa webhook imzası doğrulanmaz (sadece geliştirme)
    # Eşleştirme (reconcile) döngüsü: webhook gecikmesine göre ayarlanır, sözleşmenin parçası değil
    reconcile_max_attempts: int = 6
    reconcile_base_delay_ms: int = 500    # Bekleme = base * deneme_no (lineer)
    reconcile_recent_window_hours: int = 24
    reconcile_recent_window_limit: int = 100
    payment_default_cancel_reason: str = "고객 요청에 의한 취소"
    # Teklif (bid) bulunamazsa kullanılacak id; None = atanmamış bırak
    attribution_fallback_bid_id: int | None = None

    model_config = {
        "env_file": _ENV_FILE if _ENV_FILE.is_file() else ".env",
        "extra": "ignore",
    }

    @field_validator("portone_api_secret", "portone_webhook_secret", mode="before")
    @classmethod
    def strip_secret(cls, v: str | None) -> str:
        """Boşluk/yanlış kopya kaynaklı 401 hatalarını azaltır."""
        return (v or "").strip()

    @field_validator("portone_api_base_url", mode="before")
    @classmethod
    def strip_base_url(cls, v: str | None) -> str:
        return (v or "https://api.portone.io").strip().rstrip("/")

    @field_validator("attribution_fallback_bid_id", mode="before")
    @classmethod
    def empty_bid_is_none(cls, v: object) -> object:
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator("payment_default_cancel_reason", mode="before")
    @classmethod
    def default_reason_not_blank(cls, v: str | None) -> str:
        return (v or "").strip() or "고객 요청에 의한 취소"


settings = Settings()


def is_portone_configured() -> bool:
    """PortOne API secret tanımlı ve makul uzunlukta mı?"""
    secret = (settings.portone_api_secret or "").strip()
    return len(secret) >= PORTONE_SECRET_MIN_LENGTH
