"""AmiVoice streaming recognition session.

One :class:`AmiVoiceSession` owns one provider connection for the lifetime of a
call. All state changes go through :meth:`AmiVoiceSession._transition`, which
only allows the moves listed in ``_ALLOWED_TRANSITIONS``::

    DISCONNECTED -> CONNECTING -> READY -> STARTED
         ^              |           |        |
         +--------------+           +<-------+  ('e' from the provider)
    any state -> CLOSED (local close or transport closed by the provider)
    CLOSED / DISCONNECTED -> CONNECTING (lazy reconnect on the next send)
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from enum import Enum

from agents.errors import SpeechProviderError
from config.settings import get_settings
from speech.packets import (
    END_COMMAND,
    INFORMATIONAL_CODES,
    RESULT_ACCEPTED,
    SESSION_ENDED,
    SESSION_STARTED,
    ProviderPacket,
    TranscriptionResult,
    build_audio_frame,
    build_start_command,
    parse_packet,
    parse_result,
)
from speech.transport import SpeechConnector, SpeechTransport, websocket_connector

LOGGER = logging.getLogger(__name__)

TranscriptionListener = Callable[[TranscriptionResult], None]


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    READY = "ready"
    STARTED = "started"
    CLOSED = "closed"


_ALLOWED_TRANSITIONS: dict[ConnectionState, frozenset[ConnectionState]] = {
    ConnectionState.DISCONNECTED: frozenset({ConnectionState.CONNECTING, ConnectionState.CLOSED}),
    ConnectionState.CONNECTING: frozenset(
        {ConnectionState.DISCONNECTED, ConnectionState.READY, ConnectionState.CLOSED}
    ),
    ConnectionState.READY: frozenset({ConnectionState.STARTED, ConnectionState.CLOSED}),
    ConnectionState.STARTED: frozenset({ConnectionState.READY, ConnectionState.CLOSED}),
    ConnectionState.CLOSED: frozenset({ConnectionState.CONNECTING}),
}


class AmiVoiceSession:
    """Relay mu-law audio to AmiVoice and surface accepted recognition results."""

    def __init__(
        self,
        api_key: str,
        *,
        connector: SpeechConnector,
        url: str = "wss://acp-api.amivoice.com/v1/",
        grammar: str = "-a-general",
        audio_format: str = "mulaw",
        label: str = "",
    ) -> None:
        if not api_key:
            raise ValueError("AmiVoice API key must be configured.")

        self._api_key = api_key
        self._connector = connector
        self._url = url
        self._grammar = grammar
        self._audio_format = audio_format
        self._label = label

        self._state = ConnectionState.DISCONNECTED
        self._transport: SpeechTransport | None = None
        self._task: asyncio.Task | None = None
        self._listeners: list[TranscriptionListener] = []
        self._connect_attempts = 0

    @classmethod
    def from_settings(cls, *, label: str = "", connector: SpeechConnector | None = None) -> AmiVoiceSession:
        settings = get_settings()
        return cls(
            settings.amivoice_api_key or "",
            connector=connector or websocket_connector(open_timeout=settings.amivoice_connect_timeout),
            url=settings.amivoice_url,
            grammar=settings.amivoice_grammar,
            audio_format=settings.amivoice_audio_format,
            label=label,
        )

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def connect_attempts(self) -> int:
        return self._connect_attempts

    def subscribe(self, listener: TranscriptionListener) -> None:
        """Register a callback invoked once per accepted recognition result."""

        self._listeners.append(listener)

    def connect(self) -> bool:
        """Start one connection attempt in the background.

        Returns False when a connection is already open or in flight.
        """

        if self._task is not None and not self._task.done():
            return False
        if self._state not in (ConnectionState.DISCONNECTED, ConnectionState.CLOSED):
            return False

        self._transition(ConnectionState.CONNECTING)
        self._connect_attempts += 1
        self._task = asyncio.get_running_loop().create_task(self._run())
        return True

    async def send(self, payload: str) -> bool:
        """Forward one base64 mu-law chunk; returns True if a frame was written.

        Chunks are dropped, never queued, unless the session is STARTED. A send on
        a disconnected session triggers one reconnect attempt.
        """

        state = self._state
        if state in (ConnectionState.DISCONNECTED, ConnectionState.CLOSED):
            self.connect()
            return False
        if state is not ConnectionState.STARTED or self._transport is None:
            return False

        try:
            frame = build_audio_frame(payload)
        except SpeechProviderError as exc:
            LOGGER.warning("AmiVoice%s: dropping audio chunk: %s", self._tag(), exc.detail)
            return False

        try:
            await self._transport.send(frame)
        except Exception as exc:
            LOGGER.warning("AmiVoice%s: audio send failed: %s", self._tag(), exc)
            return False
        return True

    async def close(self) -> None:
        """End the recognition session and release the connection."""

        state = self._state
        if state is ConnectionState.CLOSED:
            return

        transport = self._transport
        self._transition(ConnectionState.CLOSED)
        if transport is None:
            # Nothing open yet; an in-flight connect closes its transport on arrival.
            return

        if state is ConnectionState.STARTED:
            LOGGER.info("AmiVoice%s: send close command", self._tag())
            try:
                await transport.send(END_COMMAND)
            except Exception as exc:
                LOGGER.warning("AmiVoice%s: close command failed: %s", self._tag(), exc)

        await transport.close()

    async def _run(self) -> None:
        try:
            transport = await self._connector(self._url)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            LOGGER.warning("AmiVoice%s: connect failed: %s", self._tag(), exc)
            if self._state is ConnectionState.CONNECTING:
                self._transition(ConnectionState.DISCONNECTED)
            return

        if self._state is not ConnectionState.CONNECTING:
            await transport.close()
            return

        LOGGER.info("AmiVoice%s: websocket client connected", self._tag())
        self._transport = transport
        self._transition(ConnectionState.READY)

        try:
            await transport.send(
                build_start_command(
                    audio_format=self._audio_format,
                    grammar=self._grammar,
                    api_key=self._api_key,
                )
            )
            async for message in transport:
                self._handle_message(message)
        except asyncio.CancelledError:
            raise
        except Exception:
            LOGGER.exception("AmiVoice%s: connection error", self._tag())
        finally:
            self._on_transport_closed(transport)

    def _handle_message(self, message: str | bytes) -> None:
        if isinstance(message, bytes):
            LOGGER.debug("AmiVoice%s: ignoring binary frame (%d bytes)", self._tag(), len(message))
            return

        try:
            packet = parse_packet(message)
        except SpeechProviderError as exc:
            LOGGER.warning("AmiVoice%s: %s", self._tag(), exc.detail)
            return

        if packet.code == SESSION_STARTED:
            self._on_session_started(packet)
        elif packet.code == RESULT_ACCEPTED:
            self._on_result(packet)
        elif packet.code == SESSION_ENDED:
            self._on_session_ended(packet)
        elif packet.code in INFORMATIONAL_CODES:
            LOGGER.debug("AmiVoice%s: [%s] %s", self._tag(), packet.code, packet.body.strip())
        else:
            LOGGER.debug("AmiVoice%s: unknown packet %r", self._tag(), message[:32])

    def _on_session_started(self, packet: ProviderPacket) -> None:
        if packet.error_message:
            LOGGER.error("AmiVoice%s: [s] session rejected: %s", self._tag(), packet.error_message)
            return
        if self._state is ConnectionState.READY:
            LOGGER.info("AmiVoice%s: [s] Connection established", self._tag())
            self._transition(ConnectionState.STARTED)

    def _on_result(self, packet: ProviderPacket) -> None:
        if self._state is ConnectionState.CLOSED:
            return
        try:
            result = parse_result(packet)
        except SpeechProviderError as exc:
            LOGGER.warning("AmiVoice%s: dropping result: %s", self._tag(), exc.detail)
            return
        if not result.text.strip():
            LOGGER.debug("AmiVoice%s: [A] empty result", self._tag())
            return

        LOGGER.info("AmiVoice%s: [A] %s", self._tag(), result.text)
        for listener in list(self._listeners):
            try:
                listener(result)
            except Exception:
                LOGGER.exception("AmiVoice%s: transcription listener failed", self._tag())

    def _on_session_ended(self, packet: ProviderPacket) -> None:
        if packet.error_message:
            LOGGER.warning("AmiVoice%s: [e] %s", self._tag(), packet.error_message)
        else:
            LOGGER.info("AmiVoice%s: [e] Connection closed", self._tag())
        if self._state is ConnectionState.STARTED:
            self._transition(ConnectionState.READY)

    def _on_transport_closed(self, transport: SpeechTransport) -> None:
        if self._transport is transport:
            self._transport = None
        if self._state is not ConnectionState.CLOSED:
            self._transition(ConnectionState.CLOSED)
        LOGGER.info("AmiVoice%s: connection closed", self._tag())

    def _transition(self, new_state: ConnectionState) -> None:
        if new_state not in _ALLOWED_TRANSITIONS[self._state]:
            raise RuntimeError(f"Illegal AmiVoice state transition {self._state.value} -> {new_state.value}")
        LOGGER.debug("AmiVoice%s: %s -> %s", self._tag(), self._state.value, new_state.value)
        self._state = new_state

    def _tag(self) -> str:
        return f" [{self._label}]" if self._label else ""
