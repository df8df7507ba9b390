"""AmiVoice WebSocket packet encoding and parsing.

Commands sent to the provider:

- ``s <audio_format> <grammar> authorization=<key>``: open a recognition session.
- ``p<audio>``: one binary frame of audio in the format announced with ``s``.
- ``e``: end the recognition session.

Every text packet received from the provider starts with a one-character code.
``s`` and ``e`` acknowledge the commands (an error message may follow the code),
``A`` carries a final recognition result as JSON starting at offset 2. ``S``,
``E``, ``C``, ``U`` and ``G`` report speech detection and interim progress.
"""

from __future__ import annotations

import base64
import binascii
import json
from dataclasses import dataclass
from typing import Final

from agents.errors import SpeechProviderError

AUDIO_MARKER: Final[int] = 0x70  # ASCII "p"
END_COMMAND: Final[str] = "e"

SESSION_STARTED: Final[str] = "s"
SESSION_ENDED: Final[str] = "e"
RESULT_ACCEPTED: Final[str] = "A"
# Recognised but without effect on the session.
INFORMATIONAL_CODES: Final[frozenset[str]] = frozenset({"S", "E", "C", "U", "G"})


@dataclass(frozen=True, slots=True)
class TranscriptionResult:
    text: str


@dataclass(frozen=True, slots=True)
class ProviderPacket:
    """A decoded provider text packet."""

    code: str
    body: str

    @property
    def error_message(self) -> str | None:
        """Error text carried by an ``s``/``e`` acknowledgement, if any."""

        if self.code not in (SESSION_STARTED, SESSION_ENDED):
            return None
        return self.body.strip() or None


def build_start_command(*, audio_format: str, grammar: str, api_key: str) -> str:
    return f"s {audio_format} {grammar} authorization={api_key}"


def build_audio_frame(payload_b64: str) -> bytes:
    """Decode a base64 mu-law chunk and prefix it with the ``p`` marker byte."""

    try:
        raw = base64.b64decode(payload_b64, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise SpeechProviderError(f"Invalid base64 audio payload: {exc}") from exc
    return bytes((AUDIO_MARKER,)) + raw


def parse_packet(message: str) -> ProviderPacket:
    if not message:
        raise SpeechProviderError("Empty provider packet.")
    return ProviderPacket(code=message[0], body=message[1:])


def parse_result(packet: ProviderPacket) -> TranscriptionResult:
    """Extract the recognized text from an ``A`` packet."""

    # The JSON document starts at offset 2, after the code and a separating space.
    document = packet.body.strip()
    try:
        data = json.loads(document)
    except json.JSONDecodeError as exc:
        raise SpeechProviderError(f"Malformed recognition result: {exc}") from exc
    if not isinstance(data, dict):
        raise SpeechProviderError("Recognition result is not a JSON object.")
    return TranscriptionResult(text=str(data.get("text") or ""))
