# policyadmin/services/security.py
from __future__ import annotations
import logging
import threading
import time
from typing import Dict, List
from fastapi import HTTPException, Request

from policyadmin.services.config import (
    RATE_LIMIT_DISABLED, RL_LOGIN_IP_MAX, RL_LOGIN_USER_MAX, RL_LOGIN_WINDOW_SEC,
)

logger = logging.getLogger(__name__)

# ========================== LOGIN RATE LIMIT ==================================
# Sliding windows, per IP (every attempt) and per user key (failures only)
_login_ip: Dict[str, List[float]] = {}
_login_user: Dict[str, List[float]] = {}
_lock = threading.Lock()

def _prune(store: Dict[str, List[float]], key: str, now: float, window: int) -> None:
    store[key] = [t for t in store.get(key, []) if t >= now - window]

def check_login_rate_limit(request: Request, user_key: str) -> None:
    """
    Called before a login attempt; throttles by IP and by user key.
    """
    if RATE_LIMIT_DISABLED:
        return
    now = time.time()
    ip = request.client.host if request.client else "unknown"

    with _lock:
        _prune(_login_ip, ip, now, RL_LOGIN_WINDOW_SEC)
        if len(_login_ip[ip]) >= RL_LOGIN_IP_MAX:
            logger.warning("login throttled for ip=%s", ip)
            raise HTTPException(status_code=429, detail="Too many login attempts from this IP")
        _login_ip[ip].append(now)

        _prune(_login_user, user_key, now, RL_LOGIN_WINDOW_SEC)
        if len(_login_user[user_key]) >= RL_LOGIN_USER_MAX:
            logger.warning("login throttled for user_key=%s", user_key)
            raise HTTPException(status_code=429, detail="Too many login attempts for this user")

def register_login_failure(user_key: str) -> None:
    if RATE_LIMIT_DISABLED:
        return
    now = time.time()
    with _lock:
        _prune(_login_user, user_key, now, RL_LOGIN_WINDOW_SEC)
        _login_user[user_key].append(now)

def reset_login_attempts(user_key: str) -> None:
    with _lock:
        _login_user.pop(user_key, None)

def clear_rate_limits() -> None:
    with _lock:
        _login_ip.clear()
        _login_user.clear()
