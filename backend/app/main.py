from collections import defaultdict, deque
from contextlib import asynccontextmanager
from datetime import datetime, timezone
import logging
import time

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.api.routes import api_router
from app.core.config import get_settings
from app.db.base import Base
from app.db.session import engine
from app.services.formula import FormulaConfigurationError


settings = get_settings()

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger("targets.api")


@asynccontextmanager
async def lifespan(app: FastAPI):
    # ── startup ──
    if settings.auto_create_schema:
        Base.metadata.create_all(bind=engine)
    logger.info("Marketing targets API ready.")
    yield
    # ── shutdown ──
    engine.dispose()
    logger.info("Marketing targets API shutdown complete.")


app = FastAPI(
    title=settings.app_name,
    debug=settings.debug,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

_request_buckets: dict[str, deque[float]] = defaultdict(deque)


def _account_of(request: Request) -> str:
    return (request.headers.get("x-account-id") or "").strip() or settings.default_account_id


@app.middleware("http")
async def request_log_and_rate_limit(request: Request, call_next):
    started = time.monotonic()
    account_id = _account_of(request)
    client_host = request.client.host if request.client else "unknown"
    key = f"{client_host}:{request.url.path}"
    now = time.time()
    bucket = _request_buckets[key]
    while bucket and now - bucket[0] > settings.rate_limit_window_seconds:
        bucket.popleft()
    if len(bucket) >= settings.rate_limit_requests:
        logger.warning("Rate limit hit for account %s on %s.", account_id, request.url.path)
        return JSONResponse(
            status_code=429,
            content={"detail": "Too many target requests. Please retry later."},
        )
    bucket.append(now)

    try:
        response = await call_next(request)
    except Exception as exc:  # pragma: no cover
        logger.exception("Unhandled error for %s %s", request.method, request.url.path, exc_info=exc)
        return JSONResponse(status_code=500, content={"detail": "Internal server error"})

    logger.info(
        "%s %s [%s] -> %s %.2fms",
        request.method,
        request.url.path,
        account_id,
        response.status_code,
        (time.monotonic() - started) * 1000,
    )
    return response


@app.exception_handler(FormulaConfigurationError)
async def formula_configuration_error(request: Request, exc: FormulaConfigurationError) -> JSONResponse:
    logger.error("Field registry misconfigured while serving %s: %s", request.url.path, exc)
    return JSONResponse(status_code=500, content={"detail": "Target field configuration is invalid."})


@app.get("/healthz")
def healthz() -> dict:
    return {"ok": True, "timestamp": datetime.now(timezone.utc).isoformat()}


@app.get("/", include_in_schema=False)
def root() -> dict[str, str]:
    return {
        "service": settings.app_name,
        "status": "ok",
        "health": "/healthz",
        "fields": f"{settings.api_prefix}/targets/fields",
        "calculate": f"{settings.api_prefix}/targets/calculate",
        "docs": "/docs",
    }


@app.get("/favicon.ico", include_in_schema=False)
def favicon() -> Response:
    return Response(status_code=204)


app.include_router(api_router, prefix=settings.api_prefix)
