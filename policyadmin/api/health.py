# policyadmin/api/health.py
from __future__ import annotations
from fastapi import APIRouter, HTTPException
from typing import Dict, Any
from pathlib import Path
import logging

from policyadmin.db import connection
from policyadmin.services import config

logger = logging.getLogger(__name__)

router = APIRouter(prefix="", tags=["Health"])

@router.get("/healthz")
def healthz() -> Dict[str, Any]:
    # App is up
    return {"status": "ok", "service": "policyadmin"}

@router.get("/readyz")
def readyz() -> Dict[str, Any]:
    # DB ping
    try:
        with connection() as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT 1")
                cur.fetchone()
    except Exception as e:
        logger.warning("readiness DB ping failed: %s", e)
        raise HTTPException(status_code=503, detail=f"DB ping failed: {e}")

    # Upload directory exists and is writable
    uploads = Path(config.UPLOAD_DIR)
    try:
        uploads.mkdir(parents=True, exist_ok=True)
        probe = uploads / ".writable.tmp"
        probe.write_text("ok", encoding="utf-8")
        probe.unlink(missing_ok=True)
    except OSError as e:
        raise HTTPException(status_code=503, detail=f"Upload dir check failed: {uploads} ({e})")

    return {"status": "ok", "db": "ok", "upload_dir": str(uploads)}
