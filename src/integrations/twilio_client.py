from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from config.settings import get_settings

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class TwilioConfig:
    account_sid: str
    auth_token: str


def get_twilio_config() -> TwilioConfig:
    settings = get_settings()
    if not settings.twilio_account_sid or not settings.twilio_auth_token:
        raise ValueError("Twilio credentials are not configured")

    return TwilioConfig(
        account_sid=settings.twilio_account_sid,
        auth_token=settings.twilio_auth_token,
    )


def build_twilio_client():
    from twilio.rest import Client

    cfg = get_twilio_config()
    return Client(cfg.account_sid, cfg.auth_token)


class TwilioCallUpdater:
    """Replaces the TwiML of a live call through the Twilio REST API."""

    def __init__(self, client) -> None:
        self._client = client

    async def update_call(self, call_sid: str, twiml: str) -> None:
        # The Twilio helper library is synchronous; keep it off the event loop.
        call = await asyncio.to_thread(self._client.calls(call_sid).update, twiml=twiml)
        LOGGER.info("Twilio call %s updated (status=%s)", call_sid, getattr(call, "status", "unknown"))
