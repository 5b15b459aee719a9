"""Tek bir tekrar denemesi kombinatörü; eşleştirme stratejilerinin hepsi bunun üzerinden çalışır."""
import logging
import time
from typing import Callable, TypeVar

from .portone_client import PortOneError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def linear_delay(base_ms: int) -> Callable[[int], float]:
    """n. denemeden sonra base_ms * n milisaniye bekle (saniye döner)."""
    return lambda attempt: base_ms * attempt / 1000


def retry_with_backoff(
    operation: Callable[[int], T | None],
    *,
    attempts: int,
    delay: Callable[[int], float],
    accept: Callable[[T], bool] = lambda result: result is not None,
    sleep: Callable[[float], None] = time.sleep,
    retry_on: tuple[type[BaseException], ...] = (PortOneError,),
    label: str = "operation",
) -> T | None:
    """
    operation(attempt) 1..attempts arası çağrılır; accept'ten geçen ilk sonuç döner.
    retry_on içindeki hatalar loglanıp "sonraki deneme" sayılır, diğerleri yukarı fırlar.
    Son denemeden sonra beklenmez. Hiçbiri kabul edilmezse None.
    """
    for attempt in range(1, attempts + 1):
        try:
            result = operation(attempt)
        except retry_on as e:
            logger.warning("%s attempt %s/%s failed: %s", label, attempt, attempts, e)
            result = None
        if result is not None and accept(result):
            if attempt > 1:
                logger.info("%s succeeded on attempt %s/%s", label, attempt, attempts)
            return result
        if attempt < attempts:
            wait = delay(attempt)
            if wait > 0:
                sleep(wait)
    return None
