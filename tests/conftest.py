from __future__ import annotations

import os
import sys
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

REPO_ROOT = Path(__file__).resolve().parents[1]
SRC_PATH = REPO_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from fakes import FakeCallUpdater, FakeConnector, FakeLLM  # noqa: E402


@pytest.fixture(scope="session")
def app():
    # Must be set before importing modules that read settings at import time.
    os.environ["AMIVOICE_API_KEY"] = "test-amivoice-key"
    os.environ["TWILIO_ACCOUNT_SID"] = "AC123"
    os.environ["TWILIO_AUTH_TOKEN"] = "token"
    os.environ["LLM_API_KEY"] = "sk-test"

    import importlib

    from config.settings import get_settings

    get_settings.cache_clear()

    # Ensure clean import with the test settings.
    for module_name in [
        "api.dependencies",
        "api.twilio_routes",
        "api.routes",
        "main",
    ]:
        sys.modules.pop(module_name, None)

    main = importlib.import_module("main")
    return main.app


@pytest.fixture()
def fake_llm() -> FakeLLM:
    return FakeLLM(reply="かしこまりました。ご予約の日時を教えてください。")


@pytest.fixture()
def fake_updater() -> FakeCallUpdater:
    return FakeCallUpdater()


@pytest.fixture()
def fake_connector() -> FakeConnector:
    return FakeConnector()


@pytest.fixture()
def client(app, fake_llm, fake_updater, fake_connector):
    # Override provider dependencies so tests never reach AmiVoice, OpenAI or Twilio.
    import api.dependencies as deps
    from speech.session import AmiVoiceSession

    app.dependency_overrides[deps.get_llm_client] = lambda: fake_llm
    app.dependency_overrides[deps.get_call_updater] = lambda: fake_updater
    app.dependency_overrides[deps.get_speech_session_factory] = lambda: (
        lambda call_sid: AmiVoiceSession("test-amivoice-key", connector=fake_connector, label=call_sid)
    )

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
