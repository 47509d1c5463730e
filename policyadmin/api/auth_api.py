# policyadmin/api/auth_api.py
from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Annotated
from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel

from policyadmin.services.auth_service import create_access_token
from policyadmin.services.errors import Forbidden, Unauthorized, ValidationError
from policyadmin.services.roles import current_identity
from policyadmin.services.security import (
    check_login_rate_limit,
    register_login_failure,
    reset_login_attempts,
)
from policyadmin.services.users import authenticate, create_user

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Auth"])

Identity = Annotated[Dict[str, Any], Depends(current_identity)]


class LoginRequest(BaseModel):
    username: Optional[str] = None
    email: Optional[str] = None
    password: str


class RegisterRequest(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None
    phone: Optional[str] = None
    username: Optional[str] = None
    role: Optional[str] = None


@router.post("/login")
def login(payload: LoginRequest, request: Request) -> Dict[str, Any]:
    """Username or email plus password; returns a bearer token."""
    identifier = (payload.username or payload.email or "").strip()
    if not identifier:
        raise ValidationError("username or email is required")

    user_key = f"user:{identifier.lower()}"
    check_login_rate_limit(request, user_key)
    try:
        u = authenticate(identifier, payload.password)
    except Unauthorized:
        register_login_failure(user_key)
        logger.info("failed login for %s", identifier)
        raise
    reset_login_attempts(user_key)

    return {
        "status": "OK",
        "token": create_access_token(int(u["id"]), u["role"]),
        "token_type": "bearer",
        "role": u["role"],
        "user_id": int(u["id"]),
        "name": u.get("name"),
    }


@router.post("/register", status_code=201)
def register(payload: RegisterRequest) -> Dict[str, Any]:
    """Public self-registration; always creates a client."""
    role = (payload.role or "client").strip().lower()
    if role != "client":
        raise Forbidden("Self-registration can only create client accounts")
    if not payload.email or not payload.email.strip():
        raise ValidationError("email is required")
    user_id = create_user(
        name=payload.name or "",
        password=payload.password or "",
        role="client",
        email=payload.email,
        username=payload.username,
        phone=payload.phone,
    )
    return {"status": "SUCCESS", "message": "User registered successfully", "user_id": user_id}


@router.get("/me")
def me(identity: Identity) -> Dict[str, Any]:
    return {"status": "OK", "identity": identity}
