import logging
import sys
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from uvicorn.middleware.proxy_headers import ProxyHeadersMiddleware

from growth_game.api.router import api_router
from growth_game.config import settings
from growth_game.core.database import init_db
from growth_game.core.exceptions import LedgerError


def setup_logging() -> None:
    """Configure application logging."""
    # Format: timestamp - level - logger name - message
    log_format = "%(asctime)s | %(levelname)-7s | %(name)s | %(message)s"
    date_format = "%H:%M:%S"

    logging.basicConfig(
        level=logging.DEBUG if settings.debug else logging.INFO,
        format=log_format,
        datefmt=date_format,
        stream=sys.stdout,
        force=True,
    )

    # Reduce noise from third-party libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("apscheduler").setLevel(logging.WARNING)

    # Quieten uvicorn access logs (we'll log requests ourselves)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


logger = logging.getLogger(__name__)

# Paths whose successful calls are worth a log line: they move points around
LEDGER_PATH_KEYWORDS = ("conversion", "contacted", "via-lead", "referring-lead")


@asynccontextmanager
async def lifespan(_app: FastAPI):
    """Application lifespan: startup and shutdown events."""
    from growth_game.services.scheduler import scheduler
    from growth_game.services.settings_sync import settings_syncer

    # Startup
    setup_logging()
    logger.info("Growth Game API starting up")
    if settings.debug:
        await init_db()
    scheduler.start()
    yield
    # Shutdown
    scheduler.stop()
    await settings_syncer.flush_all()
    logger.info("Growth Game API shutting down")


app = FastAPI(
    title="Growth Game API",
    description="Referral rewards CRM for barbershops",
    version="0.1.0",
    lifespan=lifespan,
)

# Proxy headers middleware - trust X-Forwarded-Proto from the reverse proxy
app.add_middleware(ProxyHeadersMiddleware, trusted_hosts=["*"])

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(LedgerError)
async def ledger_error_handler(_request: Request, exc: LedgerError) -> JSONResponse:
    """Render ledger failures as a result object instead of an HTTP error body."""
    return JSONResponse(status_code=exc.status_code, content=exc.to_result())


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log failed requests and ledger mutations, skipping OPTIONS preflight."""
    if request.method == "OPTIONS" or request.url.path == "/health":
        return await call_next(request)

    response = await call_next(request)

    path = request.url.path
    if response.status_code >= 400 or (
        request.method != "GET" and any(keyword in path for keyword in LEDGER_PATH_KEYWORDS)
    ):
        logger.info(f"{request.method} {path} -> {response.status_code}")

    return response


# Include API routes
app.include_router(api_router)


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}
