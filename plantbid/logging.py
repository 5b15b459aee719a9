"""
Logging configuration.
Uvicorn ve uygulama logger seviyeleri; PortOne hatalarında logger.warning/exception kullanılır
(plantbid/services/portone_client.py, reconciliation.py, cancellation.py).
"""
import logging
import sys


def setup_logging(
    level: int | str = logging.INFO,
    format_string: str | None = None,
) -> None:
    if format_string is None:
        format_string = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
    logging.basicConfig(
        level=level,
        format=format_string,
        stream=sys.stdout,
        force=True,
    )
    # Uvicorn loggers: access ve error seviyelerini uyumlu tut
    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        logging.getLogger(name).setLevel(level)
    # httpx her isteği INFO'da loglar; PortOne çağrıları zaten kendi loglarımızda
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("plantbid").setLevel(level)
