"""
SMS adapter for the Scrubbed backend.

Delivers text messages through the Twilio REST API. Without Twilio
credentials outside production the message is only logged, which keeps
phone verification usable in development.
"""

from __future__ import annotations

import logging

import requests

from .config import get_settings

logger = logging.getLogger(__name__)

TWILIO_MESSAGES_URL = "https://api.twilio.com/2010-04-01/Accounts/{sid}/Messages.json"


class SmsNotConfiguredError(Exception):
    """Raised in production when Twilio credentials are missing."""


def send_sms(to_number: str, body: str, *, timeout: int = 10) -> bool:
    """
    Send a text message. Returns False when the provider rejects it or is
    unreachable; raises SmsNotConfiguredError when production lacks credentials.
    """
    settings = get_settings()
    if not settings.twilio_configured:
        if settings.app_env == "prod":
            raise SmsNotConfiguredError("SMS delivery is not configured")
        logger.info("[sms] Development mode, message for %s: %s", to_number, body)
        return True
    url = TWILIO_MESSAGES_URL.format(sid=settings.twilio_account_sid)
    try:
        response = requests.post(
            url,
            data={"From": settings.twilio_from_number, "To": to_number, "Body": body},
            auth=(settings.twilio_account_sid, settings.twilio_auth_token),
            timeout=timeout,
        )
    except requests.RequestException as exc:
        logger.warning("[sms] Failed to reach Twilio for %s: %s", to_number, exc)
        return False
    if not response.ok:
        logger.warning("[sms] Twilio rejected message to %s: %s %s", to_number, response.status_code, response.text)
        return False
    return True
