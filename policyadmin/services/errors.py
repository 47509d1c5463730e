# policyadmin/services/errors.py
from __future__ import annotations


class PolicyAdminError(Exception):
    """Base for errors that map onto an HTTP status."""
    status_code = 500

    def __init__(self, detail: str) -> None:
        super().__init__(detail)
        self.detail = detail


class ValidationError(PolicyAdminError):
    status_code = 400


class Unauthorized(PolicyAdminError):
    status_code = 401


class Forbidden(PolicyAdminError):
    status_code = 403


class NotFound(PolicyAdminError):
    status_code = 404


class Conflict(PolicyAdminError):
    status_code = 409


class PolicyNumberCollision(Conflict):
    """A generated policy number already exists; regenerate and retry."""

    def __init__(self, policy_number: str) -> None:
        super().__init__(f"Policy number {policy_number} already exists")
        self.policy_number = policy_number


class InternalError(PolicyAdminError):
    status_code = 500
