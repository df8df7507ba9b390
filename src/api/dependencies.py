"""Shared FastAPI dependencies.

Separated to avoid circular imports between route modules.
"""

from __future__ import annotations

from functools import lru_cache

from integrations.twilio_client import TwilioCallUpdater, build_twilio_client
from llm.base import BaseLLMClient
from llm.factory import build_llm_client
from speech.session import AmiVoiceSession
from telephony.call_stream import SpeechSessionFactory


@lru_cache(maxsize=1)
def _llm_factory() -> BaseLLMClient:
    return build_llm_client()


@lru_cache(maxsize=1)
def _call_updater_factory() -> TwilioCallUpdater:
    return TwilioCallUpdater(build_twilio_client())


def get_llm_client() -> BaseLLMClient:
    return _llm_factory()


def get_call_updater() -> TwilioCallUpdater:
    return _call_updater_factory()


def get_speech_session_factory() -> SpeechSessionFactory:
    def factory(call_sid: str) -> AmiVoiceSession:
        return AmiVoiceSession.from_settings(label=call_sid)

    return factory
