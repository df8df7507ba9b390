"""In-memory stand-ins for AmiVoice, the LLM and the Twilio REST API."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Callable

_EOF = object()


class FakeTransport:
    """Records outgoing frames; incoming frames are pushed by the test."""

    def __init__(self, *, ack_start: bool = True) -> None:
        self.sent: list[str | bytes] = []
        self.closed = False
        self._ack_start = ack_start
        self._incoming: asyncio.Queue = asyncio.Queue()

    async def send(self, message: str | bytes) -> None:
        if self.closed:
            raise RuntimeError("transport is closed")
        self.sent.append(message)
        if self._ack_start and isinstance(message, str) and message.startswith("s "):
            self.push("s")

    def push(self, message: str | bytes) -> None:
        self._incoming.put_nowait(message)

    def drop(self) -> None:
        """Simulate the provider closing the socket."""

        self.closed = True
        self._incoming.put_nowait(_EOF)

    async def close(self) -> None:
        if not self.closed:
            self.drop()

    def __aiter__(self) -> AsyncIterator[str | bytes]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[str | bytes]:
        while True:
            message = await self._incoming.get()
            if message is _EOF:
                return
            yield message

    @property
    def text_frames(self) -> list[str]:
        return [m for m in self.sent if isinstance(m, str)]

    @property
    def binary_frames(self) -> list[bytes]:
        return [m for m in self.sent if isinstance(m, bytes)]


class FakeConnector:
    def __init__(self, *, fail: bool = False, ack_start: bool = True) -> None:
        self.fail = fail
        self.ack_start = ack_start
        self.urls: list[str] = []
        self.transports: list[FakeTransport] = []

    async def __call__(self, url: str) -> FakeTransport:
        self.urls.append(url)
        if self.fail:
            raise OSError("connection refused")
        transport = FakeTransport(ack_start=self.ack_start)
        self.transports.append(transport)
        return transport

    @property
    def last(self) -> FakeTransport:
        return self.transports[-1]


class FakeLLM:
    def __init__(
        self,
        reply: str = "はい",
        *,
        error: Exception | None = None,
        replies: dict[str, str] | None = None,
    ) -> None:
        self.reply = reply
        self.error = error
        self.replies = replies or {}
        self.calls: list[list[dict[str, str]]] = []
        # Per-utterance gates and failures.
        self.gates: dict[str, asyncio.Event] = {}
        self.failing: set[str] = set()

    async def chat(self, messages, *, temperature: float = 0.7) -> str:
        messages = list(messages)
        self.calls.append(messages)
        utterance = messages[-1]["content"]
        gate = self.gates.get(utterance)
        if gate is not None:
            await gate.wait()
        if self.error is not None:
            raise self.error
        if utterance in self.failing:
            raise RuntimeError(f"completion failed for {utterance}")
        return self.replies.get(utterance, self.reply)


class FakeCallUpdater:
    def __init__(self, *, error: Exception | None = None) -> None:
        self.error = error
        self.updates: list[tuple[str, str]] = []
        self.started = 0
        self.gate: asyncio.Event | None = None

    async def update_call(self, call_sid: str, twiml: str) -> None:
        self.started += 1
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        self.updates.append((call_sid, twiml))


async def wait_for(predicate: Callable[[], bool], *, timeout: float = 1.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.001)
