"IASDesk API"
from __future__ import annotations

from contextlib import asynccontextmanager
import logging
import os

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse


def _should_load_dotenv() -> bool:
    """Decide if we should load a local .env file.

    - Never load under pytest to avoid contaminating test env.
    - Allow explicit opt-out via IASDESK_ENABLE_DOTENV (default true outside
      pytest).
    """
    import sys
    if "pytest" in sys.modules or os.getenv("PYTEST_CURRENT_TEST"):
        return False
    flag = (os.getenv("IASDESK_ENABLE_DOTENV", "true") or "").strip().lower()
    return flag in ("1", "true", "yes")


from dotenv import load_dotenv

if _should_load_dotenv():
    load_dotenv()

from web import config as _cfg

# Minimal production safety checks (fail-fast on insecure config)
_cfg.ensure_secure_config_on_startup()

from web.config import SETTINGS
from web.repo import seed_default_admin
from web.routes.auth import auth_router
from web.routes.security import fail, private_no_store
from web.routes.teachers import teachers_router
from web.routes.users import users_router

logger = logging.getLogger("iasdesk.web")


@asynccontextmanager
async def lifespan(app: FastAPI):
    seeded = seed_default_admin()
    if seeded is not None:
        logger.info("Default admin ready")
    yield


app = FastAPI(
    title="IASDesk API",
    description="Authentication and session API for the IASDesk learning platform",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=SETTINGS.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type"],
)


@app.exception_handler(RequestValidationError)
async def validation_error_envelope(request: Request, exc: RequestValidationError):
    # Malformed JSON or wrong field types: answer with the regular 400 envelope.
    return fail(400, "Invalid request body")


# --- Security Headers Middleware ----------------------------------------------


@app.middleware("http")
async def security_headers(request: Request, call_next):
    response = await call_next(request)
    response.headers.setdefault("X-Content-Type-Options", "nosniff")
    response.headers.setdefault("X-Frame-Options", "DENY")
    response.headers.setdefault("Referrer-Policy", "no-referrer")
    if SETTINGS.is_prod_like:
        response.headers.setdefault("Strict-Transport-Security", "max-age=31536000; includeSubDomains")
    return response


# --- Routers -------------------------------------------------------------------

app.include_router(auth_router, prefix="/api")
app.include_router(teachers_router, prefix="/api")
app.include_router(users_router)


@app.get("/health")
async def health_check():
    # Security: include no-store to avoid caching any runtime status.
    return JSONResponse({"status": "healthy"}, headers=private_no_store())
