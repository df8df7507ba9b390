"""Pydantic models for the Twilio Media Streams WebSocket envelope."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, model_validator


class _TwilioModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class MediaFormat(_TwilioModel):
    encoding: str = "audio/x-mulaw"
    sample_rate: int = Field(default=8000, alias="sampleRate")
    channels: int = 1


class StartPayload(_TwilioModel):
    call_sid: str = Field(alias="callSid", min_length=1)
    stream_sid: str | None = Field(default=None, alias="streamSid")
    account_sid: str | None = Field(default=None, alias="accountSid")
    tracks: list[str] = Field(default_factory=list)
    media_format: MediaFormat | None = Field(default=None, alias="mediaFormat")


class MediaPayload(_TwilioModel):
    payload: str
    track: str = "inbound"
    chunk: int | str | None = None
    timestamp: int | str | None = None


class StreamEnvelope(_TwilioModel):
    """One JSON text frame received on the media stream socket."""

    event: str
    stream_sid: str | None = Field(default=None, alias="streamSid")
    sequence_number: int | str | None = Field(default=None, alias="sequenceNumber")
    protocol: str | None = None
    version: str | None = None
    start: StartPayload | None = None
    media: MediaPayload | None = None

    @model_validator(mode="after")
    def require_event_payload(self) -> StreamEnvelope:
        if self.event == "start" and self.start is None:
            raise ValueError("'start' event without start payload")
        if self.event == "media" and self.media is None:
            raise ValueError("'media' event without media payload")
        return self


def parse_stream_event(text: str) -> StreamEnvelope:
    """Parse a text frame; raises ``pydantic.ValidationError`` on bad input."""

    return StreamEnvelope.model_validate_json(text)
