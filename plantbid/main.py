import logging
import time
import traceback
import uuid
from contextlib import asynccontextmanager
from pathlib import Path

from dotenv import load_dotenv

# Uvicorn nereden çalışırsa çalışsın .env proje kökünden yüklensin
_PROJ_ROOT = Path(__file__).resolve().parent.parent
load_dotenv(_PROJ_ROOT / ".env")

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from sqlmodel import Session

from plantbid.api.payments import router as payments_router
from plantbid.core.config import is_portone_configured, settings
from plantbid.core.database import engine, init_db, ping_db
from plantbid.core.rate_limit import limiter
from plantbid.logging import setup_logging
from plantbid.models import ErrorLog
from plantbid.services.errors import PaymentError
from plantbid.services.portone_client import close_portone_client

setup_logging(level=logging.INFO)
log = logging.getLogger("plantbid")


def _cors_origins_list() -> list[str]:
    if not settings.cors_origins or settings.cors_origins.strip() == "*":
        return ["*"]
    return [o.strip() for o in settings.cors_origins.split(",") if o.strip()]


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    log.info("PORTONE_API_SECRET loaded: %s", "yes" if is_portone_configured() else "NO (.env dosyasına PORTONE_API_SECRET=... ekleyin)")
    yield
    close_portone_client()


_is_production = (settings.environment or "").strip().lower() == "production"

app = FastAPI(
    title="PlantBid Payments API",
    description="PortOne ödeme eşleştirme ve iptal servisi",
    lifespan=lifespan,
    # Production'da API şeması dışarı açılmaz
    docs_url=None if _is_production else "/docs",
    redoc_url=None if _is_production else "/redoc",
    openapi_url=None if _is_production else "/openapi.json",
)
app.state.limiter = limiter


def _error_response(request: Request, status_code: int, detail: str) -> JSONResponse:
    rid = getattr(request.state, "request_id", None)
    body = {"success": False, "error": detail, "status_code": status_code}
    if rid:
        body["request_id"] = rid
    return JSONResponse(status_code=status_code, content=body)


def _rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    log.warning("rate limit exceeded: path=%s limit=%s", request.url.path, exc.detail)
    return _error_response(request, 429, "요청이 너무 많습니다. 잠시 후 다시 시도해주세요.")


def _validation_error_message(exc: RequestValidationError) -> str:
    errs = exc.errors()
    if not errs:
        return "잘못된 요청입니다."
    first = errs[0]
    loc = list(first.get("loc") or [])
    field = str(loc[-1]) if loc else None
    if field in ("orderId", "order_id"):
        return "주문 ID가 필요합니다."
    if field == "amount":
        return "취소 금액이 올바르지 않습니다."
    if field == "body" or first.get("type") == "json_invalid":
        return "요청 본문이 올바르지 않습니다."
    return "잘못된 요청입니다."


@app.exception_handler(RequestValidationError)
def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    log.warning(
        "Request validation error (400): path=%s method=%s detail=%s",
        request.url.path,
        request.method,
        exc.errors(),
    )
    return _error_response(request, 400, _validation_error_message(exc))


app.add_exception_handler(RateLimitExceeded, _rate_limit_handler)


@app.exception_handler(PaymentError)
def payment_error_handler(request: Request, exc: PaymentError) -> JSONResponse:
    log.info(
        "payment error: path=%s type=%s order_id=%s status=%s",
        request.url.path,
        type(exc).__name__,
        exc.order_id,
        exc.status_code,
    )
    return _error_response(request, exc.status_code, exc.message)


@app.exception_handler(HTTPException)
def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    return _error_response(request, exc.status_code, exc.detail if isinstance(exc.detail, str) else str(exc.detail))


@app.exception_handler(Exception)
def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    log.exception("Unhandled exception: path=%s %s", request.url.path, exc, exc_info=exc)
    try:
        with Session(engine) as db:
            db.add(ErrorLog(
                request_id=getattr(request.state, "request_id", None),
                endpoint=request.url.path,
                method=request.method,
                order_id=request.path_params.get("order_id"),
                error_message=str(exc)[:2000],
                stack_trace="".join(traceback.format_exception(exc))[:10000],
            ))
            db.commit()
    except Exception as e:
        log.warning("ErrorLog write failed: %s", e)
    return _error_response(request, 500, "서버 오류가 발생했습니다.")


@app.middleware("http")
async def request_id_and_latency(request: Request, call_next):
    request.state.request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
    start = time.perf_counter()
    response = await call_next(request)
    latency_ms = (time.perf_counter() - start) * 1000
    response.headers["X-Request-ID"] = request.state.request_id
    log.info(
        "request_id=%s method=%s path=%s status=%s latency_ms=%.2f",
        request.state.request_id,
        request.method,
        request.url.path,
        response.status_code,
        latency_ms,
    )
    return response


app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins_list(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.include_router(payments_router)


@app.get("/health")
def health():
    db_ok = ping_db()
    return {
        "success": db_ok,
        "status": "ok" if db_ok else "degraded",
        "database": "ok" if db_ok else "error",
        "portone_configured": is_portone_configured(),
    }
