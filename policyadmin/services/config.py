# policyadmin/services/config.py
from __future__ import annotations
import logging
import os

from dotenv import load_dotenv

# Load .env if present (local/dev). Hosted environments already carry their envs.
load_dotenv()

def env_bool(name: str, default: bool) -> bool:
    v = os.getenv(name)
    if v is None: return default
    try:
        return bool(int(v))
    except ValueError:
        return str(v).strip().lower() in ("true", "yes", "y", "on")

def env_int(name: str, default: int) -> int:
    v = os.getenv(name)
    if v is None: return default
    try:
        return int(v)
    except ValueError:
        return default

def env_str(name: str, default: str) -> str:
    v = os.getenv(name)
    return v if v is not None else default

# Environment
ENV = env_str("ENV", "local")                 # local | dev | prod
LOG_LEVEL = env_str("LOG_LEVEL", "INFO").upper()

# JWT
JWT_SECRET = env_str("JWT_SECRET", "dev-secret-please-change-before-deploying")
ACCESS_TOKEN_TTL_MIN = env_int("ACCESS_TOKEN_TTL_MIN", 24 * 60)   # 24 hours
TOKEN_ISSUER = env_str("TOKEN_ISSUER", "policyadmin.local")

# Policy numbers
POLICY_NUMBER_PREFIX = env_str("POLICY_NUMBER_PREFIX", "POL")
POLICY_NUMBER_MAX_ATTEMPTS = env_int("POLICY_NUMBER_MAX_ATTEMPTS", 5)

# Claim / deactivation documents
UPLOAD_DIR = env_str("UPLOAD_DIR", "data/uploads")
UPLOAD_MAX_BYTES = env_int("UPLOAD_MAX_BYTES", 5 * 1024 * 1024)
UPLOAD_MAX_FILES = env_int("UPLOAD_MAX_FILES", 5)

# Requests
REQUEST_TIMEOUT_SEC = env_int("REQUEST_TIMEOUT_SEC", 30)

# SMS
SMS_PROVIDER = env_str("SMS_PROVIDER", "log").lower()   # log | twilio
TWILIO_ACCOUNT_SID = os.getenv("TWILIO_ACCOUNT_SID")
TWILIO_AUTH_TOKEN = os.getenv("TWILIO_AUTH_TOKEN")
TWILIO_FROM_NUMBER = os.getenv("TWILIO_FROM_NUMBER")
SMS_TIMEOUT_SEC = env_int("SMS_TIMEOUT_SEC", 10)
BUSINESS_NAME = env_str("BUSINESS_NAME", "BONGI TRADE")

# Login rate limits (window & caps)
RL_LOGIN_WINDOW_SEC = env_int("RL_LOGIN_WINDOW_SEC", 15 * 60)
RL_LOGIN_IP_MAX = env_int("RL_LOGIN_IP_MAX", 50)     # per window
RL_LOGIN_USER_MAX = env_int("RL_LOGIN_USER_MAX", 10) # per window
RATE_LIMIT_DISABLED = env_bool("RATE_LIMIT_DISABLED", False)


def configure_logging() -> None:
    """Apply LOG_LEVEL once; leaves an already configured root logger alone."""
    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(
            level=LOG_LEVEL,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )
    else:
        root.setLevel(LOG_LEVEL)
