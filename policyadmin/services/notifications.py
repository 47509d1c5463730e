# policyadmin/services/notifications.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional

import requests
from fastapi import BackgroundTasks, Depends

from policyadmin.services import config

logger = logging.getLogger(__name__)

_TWILIO_MESSAGES_URL = "https://api.twilio.com/2010-04-01/Accounts/{sid}/Messages.json"


class LogSmsGateway:
    """Writes messages to the log only; the default outside production."""

    def send(self, destination: str, message: str) -> None:
        logger.info("SMS (log only) to %s: %s", destination, message)


class TwilioSmsGateway:
    """Sends through the Twilio Messages REST API."""

    def __init__(
        self,
        account_sid: str,
        auth_token: str,
        from_number: str,
        timeout: float = config.SMS_TIMEOUT_SEC,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.url = _TWILIO_MESSAGES_URL.format(sid=account_sid)
        self.auth = (account_sid, auth_token)
        self.from_number = from_number
        self.timeout = timeout
        self.session = session or requests.Session()

    def send(self, destination: str, message: str) -> None:
        resp = self.session.post(
            self.url,
            data={"To": destination, "From": self.from_number, "Body": message},
            auth=self.auth,
            timeout=self.timeout,
        )
        resp.raise_for_status()
        logger.info("SMS sent to %s", destination)


def get_notification_gateway():
    """FastAPI dependency; tests override it with a recording gateway."""
    if config.SMS_PROVIDER == "twilio":
        missing = [
            name for name, val in (
                ("TWILIO_ACCOUNT_SID", config.TWILIO_ACCOUNT_SID),
                ("TWILIO_AUTH_TOKEN", config.TWILIO_AUTH_TOKEN),
                ("TWILIO_FROM_NUMBER", config.TWILIO_FROM_NUMBER),
            ) if not val
        ]
        if missing:
            logger.error("SMS_PROVIDER=twilio but %s not set; falling back to log gateway", ", ".join(missing))
            return LogSmsGateway()
        return TwilioSmsGateway(
            config.TWILIO_ACCOUNT_SID, config.TWILIO_AUTH_TOKEN, config.TWILIO_FROM_NUMBER,
        )
    return LogSmsGateway()


@dataclass(frozen=True)
class Notification:
    destination: str
    message: str


class NotificationOutbox:
    """
    Notification intents collected while a request runs. Routers enqueue only
    after their write committed and hand `dispatch` to a background task, so
    delivery is best-effort and at-most-once: no retry, failures are logged.
    """

    def __init__(self, gateway) -> None:
        self.gateway = gateway
        self.pending: List[Notification] = []

    def enqueue(self, destination: Optional[str], message: str) -> None:
        dest = (destination or "").strip()
        if not dest:
            logger.info("notification skipped, no destination: %s", message)
            return
        self.pending.append(Notification(dest, message))

    def dispatch(self) -> int:
        items, self.pending = self.pending, []
        delivered = 0
        for item in items:
            try:
                self.gateway.send(item.destination, item.message)
                delivered += 1
            except Exception:
                logger.warning("SMS to %s failed", item.destination, exc_info=True)
        return delivered


# ── Message texts ──
def policy_created_message(holder_name: Optional[str], policy_type: str, policy_number: str, status: str) -> str:
    greeting = f"Hello {holder_name}, y" if holder_name else "Y"
    state = "is pending activation" if status == "pending" else "is active"
    return (
        f"{greeting}our {policy_type} policy (No: {policy_number}) has been created and {state}. "
        f"Welcome to {config.BUSINESS_NAME}."
    )

def policy_deactivated_message(policy_number: str, reason: str) -> str:
    return f"Your {config.BUSINESS_NAME} policy {policy_number} has been deactivated. Reason: {reason}"

def policy_activated_message(policy_number: str) -> str:
    return f"Your {config.BUSINESS_NAME} policy {policy_number} is now active. Thank you for trusting us."

def claim_decided_message(policy_number: str, decision: str) -> str:
    if decision == "approved":
        return f"Your claim on {config.BUSINESS_NAME} policy {policy_number} has been approved."
    return (
        f"Your claim on {config.BUSINESS_NAME} policy {policy_number} was not approved. "
        f"Please contact us for details."
    )

def payment_reminder_message(holder_name: Optional[str], policy_number: str, premium_amount) -> str:
    who = f"Dear {holder_name}, p" if holder_name else "P"
    amount = f" of R{premium_amount}" if premium_amount is not None else ""
    return (
        f"REMINDER: {who}lease pay your premium{amount} for policy {policy_number} "
        f"to keep your cover active."
    )


def get_outbox(
    background: BackgroundTasks,
    gateway=Depends(get_notification_gateway),
) -> NotificationOutbox:
    """Per-request outbox, flushed after the response has been sent."""
    outbox = NotificationOutbox(gateway)
    background.add_task(outbox.dispatch)
    return outbox
