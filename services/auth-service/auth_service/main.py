"""FastAPI application wiring for the auth service."""

from __future__ import annotations

from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from psycopg_pool import ConnectionPool

from .api.routes import AuthenticationFailed, authentication_failed_handler, router as v1_router
from .config import get_settings
from .domain.errors import AuthServiceError
from .domain.service import AuthService
from .notifications import LoggingNotifier
from .repository import PostgresCredentialStore
from .security.passwords import PasswordHasher
from .security.tokens import TokenCodec

settings = get_settings()
logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialise shared resources (Postgres pool, services) for the app lifecycle."""
    pool = ConnectionPool(settings.database_url, open=False)
    pool.open()
    app.state.pool = pool
    app.state.auth_service = AuthService(
        PostgresCredentialStore(pool),
        TokenCodec(settings),
        LoggingNotifier(settings.public_base_url),
        PasswordHasher(rounds=settings.bcrypt_rounds),
        settings=settings,
    )
    try:
        yield
    finally:
        pool.close()


app = FastAPI(title=settings.app_name, version=settings.version, lifespan=lifespan)

# CORS for local frontend dev
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173", "http://127.0.0.1:5173"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    max_age=600,
)


@app.exception_handler(AuthServiceError)
async def auth_service_error_handler(request: Request, exc: AuthServiceError) -> JSONResponse:
    """Translate hard service faults into a uniform 500 envelope."""
    logger.error("unhandled auth service failure on %s", request.url.path, exc_info=exc)
    return JSONResponse(
        status_code=500,
        content={"status": "error", "statusCode": 500, "message": str(exc)},
    )


app.add_exception_handler(AuthenticationFailed, authentication_failed_handler)

@app.get("/healthz", tags=["health"])
def healthz() -> dict[str, str]:
    """Return a minimal readiness indicator used by orchestration systems."""
    return {"status": "ok"}


@app.get("/metrics", tags=["health"])
def metrics() -> Response:
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


app.include_router(v1_router)
