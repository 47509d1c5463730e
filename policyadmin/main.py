# policyadmin/main.py
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from policyadmin.services import config
from policyadmin.services.errors import PolicyAdminError
from policyadmin.utils.request_id import RequestIDMiddleware
from policyadmin.utils.timeout import RequestTimeoutMiddleware

# ── Import routers ──
from policyadmin.api import (
    auth_api,
    claims_api,
    policies_api,
    staff_api,
    health as health_api,
)

config.configure_logging()
logger = logging.getLogger("policyadmin")


# ── Startup: create the upload directory ──
@asynccontextmanager
async def lifespan(app: FastAPI):
    Path(config.UPLOAD_DIR).mkdir(parents=True, exist_ok=True)
    logger.info("policyadmin starting env=%s sms=%s uploads=%s", config.ENV, config.SMS_PROVIDER, config.UPLOAD_DIR)
    yield


# ── App ──
app = FastAPI(title="Policy Administration", version="1.0.0", lifespan=lifespan)

# Optional CORS for local dev UI testing
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost", "http://127.0.0.1", "http://localhost:5173", "http://127.0.0.1:5173"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(RequestTimeoutMiddleware, timeout=config.REQUEST_TIMEOUT_SEC)
app.add_middleware(RequestIDMiddleware)


# ── Errors: domain exceptions carry their own status ──
@app.exception_handler(PolicyAdminError)
async def policy_admin_error_handler(request: Request, exc: PolicyAdminError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s on %s %s: %s", type(exc).__name__, request.method, request.url.path, exc.detail)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


# ── Routers ──
app.include_router(auth_api.router, prefix="")
app.include_router(policies_api.router, prefix="")
app.include_router(claims_api.router, prefix="")
app.include_router(staff_api.router, prefix="")
app.include_router(health_api.router, prefix="")   # /healthz, /readyz


@app.get("/")
def root() -> dict:
    return {"status": "OK", "service": "policyadmin"}
