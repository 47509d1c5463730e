# policyadmin/cli/bootstrap_admin.py
from __future__ import annotations
import argparse
import getpass
import logging
import sys
from typing import List, Optional

from policyadmin.services.config import configure_logging
from policyadmin.services.errors import PolicyAdminError
from policyadmin.services.users import admin_exists, create_user

logger = logging.getLogger("policyadmin.bootstrap")

def main(argv: Optional[List[str]] = None) -> int:
    ap = argparse.ArgumentParser(description="Create the first admin account (run once at provisioning)")
    ap.add_argument("--username", required=True, help="Admin login name")
    ap.add_argument("--name", default="System Administrator", help="Display name")
    ap.add_argument("--email", default=None, help="Optional email address")
    ap.add_argument("--phone", default=None, help="Optional phone for notifications")
    ap.add_argument("--password", default=None, help="Password (prompted when omitted)")
    args = ap.parse_args(argv)

    configure_logging()

    if admin_exists():
        logger.error("An admin account already exists; nothing to do.")
        return 1

    password = args.password or getpass.getpass("Admin password: ")
    if not password.strip():
        logger.error("Password must not be empty.")
        return 2

    try:
        new_id = create_user(
            name=args.name,
            password=password,
            role="admin",
            email=args.email,
            username=args.username,
            phone=args.phone,
        )
    except PolicyAdminError as e:
        logger.error("Could not create admin: %s", e.detail)
        return 2
    print(f"[OK] Admin '{args.username}' created with id={new_id} (argon2).")
    return 0

if __name__ == "__main__":
    sys.exit(main())
