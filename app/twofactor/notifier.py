"""
Delivery of legacy verification codes.

Without a configured gateway codes only go to the log, which is what you want
in development. Set TWOFA_NOTIFY_WEBHOOK_URL to POST them to an SMS/email
gateway instead.
"""

import os

import httpx

from common.log_handler import log
from .legacy_codes import CODE_VALIDITY

WEBHOOK_URL = os.getenv("TWOFA_NOTIFY_WEBHOOK_URL")
WEBHOOK_TIMEOUT = float(os.getenv("TWOFA_NOTIFY_TIMEOUT", "5"))


def render_message(code: str) -> str:
    minutes = int(CODE_VALIDITY.total_seconds() // 60)
    return (
        f"Your verification code is {code}. This code will expire in {minutes} minutes. "
        "Don't share this code with anyone."
    )


class LogNotifier:
    async def dispatch(self, user, code: str) -> bool:
        log.info(f"2FA message that would be sent to '{user.username}': {render_message(code)}")
        return True


class WebhookNotifier:
    def __init__(self, url: str, timeout: float = WEBHOOK_TIMEOUT, transport: httpx.AsyncBaseTransport = None):
        self.url = url
        self.timeout = timeout
        self.transport = transport

    async def dispatch(self, user, code: str) -> bool:
        payload = {
            "username": user.username,
            "email": user.email,
            "message": render_message(code),
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(self.url, json=payload)
                response.raise_for_status()
        except httpx.HTTPError as e:
            log.error(f"Failed to send 2FA code to user '{user.username}': {e}")
            return False
        return True


def get_notifier():
    if WEBHOOK_URL:
        return WebhookNotifier(WEBHOOK_URL)
    return LogNotifier()
