"""FastAPI application entry point."""
import logging
import logging.config
from contextlib import asynccontextmanager

from fastapi import FastAPI

from reviewdesk.api import admin, auth_routes, client, google_oauth, monitor, reviews
from reviewdesk.config import settings
from reviewdesk.database import init_db
from reviewdesk.middleware.rate_limit import RateLimitMiddleware


def configure_logging(level: str) -> None:
    logging.config.dictConfig({
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "default": {
                "format": "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
                "datefmt": "%Y-%m-%dT%H:%M:%S",
            },
        },
        "handlers": {
            "console": {"class": "logging.StreamHandler", "formatter": "default"},
        },
        "loggers": {
            # Token refreshes and OpenAI calls log every request at INFO
            "urllib3": {"level": "WARNING"},
            "httpx": {"level": "WARNING"},
        },
        "root": {"level": level.upper(), "handlers": ["console"]},
    })


configure_logging(settings.log_level)
logger = logging.getLogger(__name__)


def _warn_missing_credentials() -> None:
    if not (settings.google_client_id and settings.google_client_secret):
        logger.warning("GOOGLE_CLIENT_ID/GOOGLE_CLIENT_SECRET not set: Google connections will fail")
    if not settings.openai_api_key:
        logger.warning("OPENAI_API_KEY not set: AI reply generation will fail")


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("ReviewDesk API starting (environment=%s)", settings.environment)
    _warn_missing_credentials()
    try:
        init_db()
        logger.info("Database tables ready")
    except Exception as e:
        # Still bind so the health probes answer while the database is down
        logger.warning("Database init failed, serving anyway: %s", e)
    yield
    logger.info("ReviewDesk API stopped")


app = FastAPI(
    title="ReviewDesk",
    description="Multi-tenant Google review management with AI-drafted replies.",
    version="0.1.0",
    lifespan=lifespan,
)

# Per-IP and per-bearer-token request budgets
app.add_middleware(
    RateLimitMiddleware,
    requests_per_minute_ip=settings.rate_limit_requests_per_minute_ip,
    requests_per_minute_user=settings.rate_limit_requests_per_minute_user,
    exempt_paths=["/health", "/api/monitor/health"],
)

app.include_router(auth_routes.router, prefix="/api/auth", tags=["auth"])
app.include_router(google_oauth.router, prefix="/api/google-oauth", tags=["google-oauth"])
app.include_router(reviews.router, prefix="/api/reviews", tags=["reviews"])
app.include_router(admin.router, prefix="/api/admin", tags=["admin"])
app.include_router(client.router, prefix="/api/client", tags=["client"])
app.include_router(monitor.router, prefix="/api/monitor", tags=["monitor"])


@app.get("/health")
def health():
    return {"status": "ok", "service": "reviewdesk"}
