from __future__ import annotations

import pytest

from config.settings import Settings


def test_defaults_match_call_flow(monkeypatch):
    for name in ("DUPLICATE_START_POLICY", "REPLY_OVERLAP_POLICY", "TWILIO_PAUSE_SECONDS"):
        monkeypatch.delenv(name, raising=False)

    settings = Settings(_env_file=None)
    assert settings.amivoice_url == "wss://acp-api.amivoice.com/v1/"
    assert settings.amivoice_grammar == "-a-general"
    assert settings.amivoice_audio_format == "mulaw"
    assert settings.twilio_pause_seconds == 40
    assert settings.twilio_say_voice == "Polly.Takumi-Neural"
    assert settings.twilio_say_language == "ja-JP"
    assert settings.duplicate_start_policy == "reject"
    assert settings.reply_overlap_policy == "supersede"


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("AMIVOICE_GRAMMAR", "-a-medgeneral")
    monkeypatch.setenv("DUPLICATE_START_POLICY", "replace")
    monkeypatch.setenv("twilio_pause_seconds", "0")

    settings = Settings(_env_file=None)
    assert settings.amivoice_grammar == "-a-medgeneral"
    assert settings.duplicate_start_policy == "replace"
    assert settings.twilio_pause_seconds == 1


def test_unknown_policy_is_rejected(monkeypatch):
    monkeypatch.setenv("REPLY_OVERLAP_POLICY", "race")
    with pytest.raises(ValueError):
        Settings(_env_file=None)
