# policyadmin/services/auth_service.py
from __future__ import annotations
from typing import Any, Dict, Optional, Tuple
from datetime import datetime, timedelta, timezone
import jwt  # PyJWT
from passlib.hash import argon2
from policyadmin.services.config import JWT_SECRET, ACCESS_TOKEN_TTL_MIN, TOKEN_ISSUER

ALG = "HS256"

def _utcnow() -> datetime:
    return datetime.now(timezone.utc)

# ───────────────────────────────────────────────────────────────────────────────
# Password hashing (Argon2)
# ───────────────────────────────────────────────────────────────────────────────
def hash_password(plaintext: str) -> str:
    return argon2.hash(plaintext)

def verify_and_upgrade_password(plaintext: str, hashed: str) -> Tuple[bool, Optional[str]]:
    """
    Verify and optionally upgrade hash params. Returns (ok, new_hash_or_None).
    """
    if not hashed or not argon2.identify(hashed):
        return False, None
    try:
        ok = argon2.verify(plaintext, hashed)
    except ValueError:
        return False, None
    if not ok:
        return False, None
    if argon2.needs_update(hashed):
        return True, argon2.hash(plaintext)
    return True, None

# ───────────────────────────────────────────────────────────────────────────────
# JWT helpers
# ───────────────────────────────────────────────────────────────────────────────
def _encode(payload: Dict[str, Any], expires_in: timedelta) -> str:
    now = _utcnow()
    to_encode = {
        "iss": TOKEN_ISSUER,
        **payload,
        "iat": int(now.timestamp()),
        "exp": int((now + expires_in).timestamp()),
    }
    return jwt.encode(to_encode, JWT_SECRET, algorithm=ALG)

def create_access_token(user_id: int, role: str, ttl_minutes: Optional[int] = None) -> str:
    minutes = ACCESS_TOKEN_TTL_MIN if ttl_minutes is None else int(ttl_minutes)
    identity = {"typ": "access", "sub": str(user_id), "user_id": int(user_id), "role": role}
    return _encode(identity, timedelta(minutes=minutes))

def decode_token(token: Optional[str]) -> Optional[Dict[str, Any]]:
    """
    Decode an access token. Returns None for missing, malformed, expired,
    foreign-issuer or non-access tokens.
    """
    if not token:
        return None
    try:
        claims = jwt.decode(
            token,
            JWT_SECRET,
            algorithms=[ALG],
            issuer=TOKEN_ISSUER,
            options={"require": ["exp", "iat", "sub"]},
        )
    except jwt.PyJWTError:
        return None
    if claims.get("typ") != "access" or not claims.get("role"):
        return None
    return claims
