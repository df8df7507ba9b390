"""Turns a recognized utterance into a spoken reply on the live call.

Each utterance runs through two stages: a chat completion, then a call update
that makes Twilio say the completion. Submissions are numbered per call so that
overlapping utterances resolve deterministically:

- ``supersede``: completions run concurrently, call updates one at a time. A
  reply is dropped once a newer one has been spoken on the call, so the call
  never falls back to an older answer. If the newer reply fails, the older one
  is still spoken.
- ``serialize``: replies run one after another in submission order.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Literal, Protocol

from agents.errors import CallUpdateFailedError, CompletionFailedError
from config.settings import get_settings
from llm.base import BaseLLMClient
from telephony.twiml import twiml_say_and_pause

LOGGER = logging.getLogger(__name__)

OverlapPolicy = Literal["supersede", "serialize"]


class CallUpdater(Protocol):
    async def update_call(self, call_sid: str, twiml: str) -> None:  # pragma: no cover - protocol stub
        ...


@dataclass(frozen=True, slots=True)
class ReplyOutcome:
    sequence: int
    utterance: str
    completion: str | None = None
    delivered: bool = False
    superseded: bool = False


class ReplyPipeline:
    """Per-call completion -> call-update pipeline."""

    def __init__(
        self,
        llm: BaseLLMClient,
        updater: CallUpdater,
        *,
        voice: str,
        language: str,
        pause_seconds: int = 40,
        overlap_policy: OverlapPolicy = "supersede",
    ) -> None:
        self._llm = llm
        self._updater = updater
        self._voice = voice
        self._language = language
        self._pause_seconds = pause_seconds
        self._overlap_policy = overlap_policy
        self._sequence = 0
        self._delivered = 0
        self._lock = asyncio.Lock()
        self._tasks: set[asyncio.Task] = set()

    @classmethod
    def from_settings(cls, llm: BaseLLMClient, updater: CallUpdater) -> ReplyPipeline:
        settings = get_settings()
        return cls(
            llm,
            updater,
            voice=settings.twilio_say_voice,
            language=settings.twilio_say_language,
            pause_seconds=settings.twilio_pause_seconds,
            overlap_policy=settings.reply_overlap_policy,
        )

    @property
    def latest_sequence(self) -> int:
        return self._sequence

    def submit(self, call_sid: str, utterance: str) -> asyncio.Task[ReplyOutcome]:
        """Schedule a reply to ``utterance`` on ``call_sid`` without waiting for it."""

        self._sequence += 1
        sequence = self._sequence
        task = asyncio.get_running_loop().create_task(self._process(sequence, call_sid, utterance))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def drain(self) -> None:
        """Wait for all in-flight replies."""

        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def _process(self, sequence: int, call_sid: str, utterance: str) -> ReplyOutcome:
        LOGGER.info("Call %s: utterance #%d received: %s", call_sid, sequence, utterance)

        if self._overlap_policy == "serialize":
            async with self._lock:
                completion = await self._completion_stage(sequence, call_sid, utterance)
                if completion is None:
                    return ReplyOutcome(sequence=sequence, utterance=utterance)
                return await self._update_stage(sequence, call_sid, utterance, completion)

        completion = await self._completion_stage(sequence, call_sid, utterance)
        if completion is None:
            return ReplyOutcome(sequence=sequence, utterance=utterance)
        # Call updates never overlap; the one delivered last is always the newest.
        async with self._lock:
            return await self._update_stage(sequence, call_sid, utterance, completion)

    async def _completion_stage(self, sequence: int, call_sid: str, utterance: str) -> str | None:
        try:
            return await self._complete(utterance)
        except CompletionFailedError as exc:
            LOGGER.error("Call %s: completion #%d failed: %s", call_sid, sequence, exc.detail)
            return None

    async def _update_stage(
        self, sequence: int, call_sid: str, utterance: str, completion: str
    ) -> ReplyOutcome:
        if sequence < self._delivered:
            LOGGER.info(
                "Call %s: reply #%d superseded by #%d", call_sid, sequence, self._delivered
            )
            return ReplyOutcome(
                sequence=sequence, utterance=utterance, completion=completion, superseded=True
            )

        twiml = twiml_say_and_pause(
            text=completion,
            voice=self._voice,
            language=self._language,
            pause_seconds=self._pause_seconds,
        )
        try:
            await self._update(call_sid, twiml)
        except CallUpdateFailedError as exc:
            LOGGER.error("Call %s: call update #%d failed: %s", call_sid, sequence, exc.detail)
            return ReplyOutcome(sequence=sequence, utterance=utterance, completion=completion)

        self._delivered = sequence
        LOGGER.info("Call %s: response sent back with TwiML: %s", call_sid, completion)
        return ReplyOutcome(
            sequence=sequence, utterance=utterance, completion=completion, delivered=True
        )

    async def _complete(self, utterance: str) -> str:
        try:
            completion = await self._llm.chat([{"role": "user", "content": utterance}])
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            raise CompletionFailedError(str(exc)) from exc

        completion = (completion or "").strip()
        if not completion:
            raise CompletionFailedError("Completion was empty.")
        return completion

    async def _update(self, call_sid: str, twiml: str) -> None:
        try:
            await self._updater.update_call(call_sid, twiml)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            raise CallUpdateFailedError(str(exc)) from exc
