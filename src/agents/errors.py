"""Domain-specific exceptions for the transcription bridge.

These exceptions are safe to import from API layers without pulling in provider clients.
"""

from __future__ import annotations


class BridgeError(Exception):
    status_code: int = 500
    default_detail: str = "Bridge error"

    def __init__(self, detail: str | None = None) -> None:
        super().__init__(detail or self.default_detail)
        self.detail = detail or self.default_detail


class SpeechProviderError(BridgeError):
    status_code = 502
    default_detail = "Speech recognition provider error."


class CompletionFailedError(BridgeError):
    status_code = 503
    default_detail = "Text completion request failed."


class CallUpdateFailedError(BridgeError):
    status_code = 502
    default_detail = "Call update request failed."
