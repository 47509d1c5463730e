# policyadmin/services/roles.py
from __future__ import annotations
from typing import Any, Callable, Dict, Optional, Set
from fastapi import Request

from policyadmin.services.auth_service import decode_token
from policyadmin.services.errors import Forbidden, Unauthorized

ROLES = ("admin", "employee", "client")
STAFF_ROLES = frozenset({"admin", "employee"})


def is_staff(identity: Optional[Dict[str, Any]]) -> bool:
    return str((identity or {}).get("role") or "").lower() in STAFF_ROLES


def _bearer(request: Request) -> Optional[str]:
    header = request.headers.get("Authorization")
    if not header:
        return None
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise Unauthorized("Malformed Authorization header")
    return token.strip()


def optional_identity(request: Request) -> Optional[Dict[str, Any]]:
    """Anonymous callers get None; a presented but bad token is still rejected."""
    token = _bearer(request)
    if token is None:
        return None
    identity = decode_token(token)
    if not identity:
        raise Unauthorized("Invalid or expired token")
    request.state.identity = identity
    return identity


def current_identity(request: Request) -> Dict[str, Any]:
    identity = optional_identity(request)
    if identity is None:
        raise Unauthorized("Not authenticated")
    return identity


def require_role(*allowed: str) -> Callable[[Request], Dict[str, Any]]:
    """
    Dependency factory for role-based access control.

    Use like:
        Depends(require_role("admin"))
        Depends(require_role("admin", "employee"))
    """
    allowed_set: Set[str] = {r.lower() for r in allowed}

    def _dep(request: Request) -> Dict[str, Any]:
        user = current_identity(request)
        role = str(user.get("role") or "").lower()
        if allowed_set and role not in allowed_set:
            raise Forbidden("Insufficient role")
        return user

    return _dep


# Convenience dependencies
require_admin = require_role("admin")
require_staff = require_role(*STAFF_ROLES)
