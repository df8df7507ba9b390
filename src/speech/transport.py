"""Transport seam between the AmiVoice session and the network."""

from __future__ import annotations

from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Protocol

import websockets


class SpeechTransport(Protocol):
    """Minimal duplex message channel to the speech provider.

    ``websockets`` client connections satisfy this protocol as-is.
    """

    async def send(self, message: str | bytes) -> None:  # pragma: no cover - protocol stub
        ...

    async def close(self) -> None:  # pragma: no cover - protocol stub
        ...

    def __aiter__(self) -> AsyncIterator[str | bytes]:  # pragma: no cover - protocol stub
        ...


SpeechConnector = Callable[[str], Awaitable[SpeechTransport]]


def websocket_connector(*, open_timeout: float = 10.0) -> SpeechConnector:
    """Return a connector that opens a WebSocket client connection."""

    async def connect(url: str) -> SpeechTransport:
        return await websockets.connect(
            url,
            open_timeout=open_timeout,
            ping_interval=20,
            ping_timeout=20,
        )

    return connect
