# policyadmin/services/users.py
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

import pymysql

from policyadmin.db import connection, is_duplicate_key, transaction
from policyadmin.services.auth_service import hash_password, verify_and_upgrade_password
from policyadmin.services.errors import Conflict, NotFound, Unauthorized, ValidationError
from policyadmin.services.roles import ROLES

logger = logging.getLogger(__name__)

_PUBLIC_COLUMNS = "`id`,`name`,`username`,`email`,`role`,`phone`,`is_active`,`created_at`,`last_login`"


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def create_user(
    name: str,
    password: str,
    role: str,
    email: Optional[str] = None,
    username: Optional[str] = None,
    phone: Optional[str] = None,
) -> int:
    """Insert a user; duplicate username/email -> Conflict. Returns the new id."""
    name, email, username, phone = _clean(name), _clean(email), _clean(username), _clean(phone)
    role = str(role or "").strip().lower()
    if role not in ROLES:
        raise ValidationError(f"Unknown role: {role or '(empty)'}")
    if not name:
        raise ValidationError("name is required")
    if not password or not str(password).strip():
        raise ValidationError("password is required")
    if not email and not username:
        raise ValidationError("email or username is required")
    if email:
        email = email.lower()

    try:
        with transaction() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    INSERT INTO `users`
                    (`name`,`username`,`email`,`password_hash`,`role`,`phone`,`is_active`,`created_at`)
                    VALUES (%s,%s,%s,%s,%s,%s,%s,%s)
                    """,
                    (name, username, email, hash_password(password), role, phone, 1, datetime.now()),
                )
                new_id = int(cur.lastrowid)
    except pymysql.err.IntegrityError as e:
        if is_duplicate_key(e, "ux_users_username"):
            raise Conflict("Username already exists") from e
        if is_duplicate_key(e, "ux_users_email"):
            raise Conflict("Email already registered") from e
        raise
    logger.info("created user id=%s role=%s", new_id, role)
    return new_id


def authenticate(identifier: str, password: str) -> Dict[str, Any]:
    """
    Look a user up by username or email and verify the password. Any failure
    is reported as the same Unauthorized so callers cannot probe accounts.
    """
    ident = _clean(identifier)
    if not ident or not password:
        raise Unauthorized("Invalid credentials")

    with transaction() as conn:
        with conn.cursor() as cur:
            cur.execute(
                "SELECT * FROM `users` WHERE `username`=%s OR `email`=%s ORDER BY `id` LIMIT 1",
                (ident, ident.lower()),
            )
            u = cur.fetchone()

            if not u or int(u.get("is_active") or 0) != 1:
                raise Unauthorized("Invalid credentials")

            ok, new_hash = verify_and_upgrade_password(password, u.get("password_hash") or "")
            if not ok:
                raise Unauthorized("Invalid credentials")

            if new_hash:
                cur.execute(
                    "UPDATE `users` SET `password_hash`=%s, `last_login`=%s WHERE `id`=%s",
                    (new_hash, datetime.now(), u["id"]),
                )
            else:
                cur.execute("UPDATE `users` SET `last_login`=%s WHERE `id`=%s", (datetime.now(), u["id"]))

    u.pop("password_hash", None)
    return u


def get_user(user_id: int) -> Dict[str, Any]:
    with connection() as conn:
        with conn.cursor() as cur:
            cur.execute(f"SELECT {_PUBLIC_COLUMNS} FROM `users` WHERE `id`=%s", (int(user_id),))
            row = cur.fetchone()
    if not row:
        raise NotFound("User not found")
    return row


def list_staff(limit: int = 200, offset: int = 0) -> List[Dict[str, Any]]:
    with connection() as conn:
        with conn.cursor() as cur:
            cur.execute(
                f"""
                SELECT {_PUBLIC_COLUMNS}
                FROM `users`
                WHERE `role` IN ('admin','employee')
                ORDER BY `id` DESC
                LIMIT %s OFFSET %s
                """,
                (int(limit), int(offset)),
            )
            return list(cur.fetchall() or [])


def admin_exists() -> bool:
    with connection() as conn:
        with conn.cursor() as cur:
            cur.execute("SELECT 1 FROM `users` WHERE `role`='admin' LIMIT 1")
            return cur.fetchone() is not None
