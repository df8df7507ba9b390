"""Per-call handler for one Twilio Media Streams connection.

The handler drives its AmiVoice session in lockstep with the call: the session
is created on ``start``, fed on ``media`` and closed on ``closed``/``stop`` or
when the socket goes away. Recognized utterances are handed to the call's reply
pipeline together with the Twilio ``callSid``.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Literal

from pydantic import ValidationError

from agents.reply_pipeline import ReplyPipeline
from speech.packets import TranscriptionResult
from speech.session import AmiVoiceSession
from telephony.events import StreamEnvelope, parse_stream_event

LOGGER = logging.getLogger(__name__)

SpeechSessionFactory = Callable[[str], AmiVoiceSession]
DuplicateStartPolicy = Literal["reject", "replace"]

_CLOSE_EVENTS = frozenset({"closed", "stop"})


class CallStreamHandler:
    def __init__(
        self,
        *,
        session_factory: SpeechSessionFactory,
        reply_pipeline: ReplyPipeline,
        duplicate_start_policy: DuplicateStartPolicy = "reject",
    ) -> None:
        self._session_factory = session_factory
        self._reply_pipeline = reply_pipeline
        self._duplicate_start_policy = duplicate_start_policy

        self.call_sid = ""
        self.stream_sid: str | None = None
        self.message_count = 0
        self.speech_session: AmiVoiceSession | None = None
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def process_message(self, message: str | bytes) -> None:
        if self._closed:
            LOGGER.debug("Twilio WS: message after close ignored")
            return
        if isinstance(message, (bytes, bytearray)):
            LOGGER.warning("Twilio WS: binary message received (not supported)")
            return

        try:
            envelope = parse_stream_event(message)
        except ValidationError as exc:
            LOGGER.warning("Twilio WS: dropping malformed message: %s", exc.errors()[0].get("msg"))
            return

        self.message_count += 1

        if envelope.event == "connected":
            LOGGER.info(
                "Twilio WS: Connected event received (protocol=%s version=%s)",
                envelope.protocol,
                envelope.version,
            )
        elif envelope.event == "start":
            await self._on_start(envelope)
        elif envelope.event == "media":
            await self._on_media(envelope)
        elif envelope.event in _CLOSE_EVENTS:
            LOGGER.info("Twilio WS: %s event received for stream %s", envelope.event, envelope.stream_sid)
            await self.close()
        else:
            LOGGER.debug("Twilio WS: ignoring %s event", envelope.event)

    async def close(self) -> None:
        """Tear down the call; safe to call more than once."""

        if self._closed:
            return
        self._closed = True

        LOGGER.info(
            "Twilio WS: Closed call %s. Received a total of [%d] messages",
            self.call_sid or "<none>",
            self.message_count,
        )
        if self.speech_session is not None:
            await self.speech_session.close()

    async def _on_start(self, envelope: StreamEnvelope) -> None:
        start = envelope.start
        if start is None:
            return

        if self.speech_session is not None:
            if self._duplicate_start_policy == "reject":
                LOGGER.warning(
                    "Twilio WS: duplicate start for call %s ignored (active call %s)",
                    start.call_sid,
                    self.call_sid,
                )
                return
            LOGGER.warning(
                "Twilio WS: start for call %s replaces speech session of call %s",
                start.call_sid,
                self.call_sid,
            )
            previous, self.speech_session = self.speech_session, None
            await previous.close()

        self.call_sid = start.call_sid
        self.stream_sid = start.stream_sid or envelope.stream_sid
        if start.media_format is not None:
            LOGGER.info(
                "Twilio WS: Start event for call %s (%s, %d Hz, %d ch)",
                self.call_sid,
                start.media_format.encoding,
                start.media_format.sample_rate,
                start.media_format.channels,
            )
        else:
            LOGGER.info("Twilio WS: Start event for call %s", self.call_sid)

        session = self._session_factory(self.call_sid)
        session.subscribe(self._on_transcription)
        self.speech_session = session
        session.connect()

    async def _on_media(self, envelope: StreamEnvelope) -> None:
        media = envelope.media
        if media is None or self.speech_session is None:
            return
        if media.track != "inbound":
            return
        await self.speech_session.send(media.payload)

    def _on_transcription(self, result: TranscriptionResult) -> None:
        LOGGER.info("Twilio WS: Received message from AmiVoice for call %s: %s", self.call_sid, result.text)
        self._reply_pipeline.submit(self.call_sid, result.text)
