"""Twilio Voice integration.

This module provides:
- Call-setup webhook (TwiML) that forks the caller's audio to our media stream socket.
- Media stream WebSocket; one CallStreamHandler per connection.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request, Response, WebSocket, WebSocketDisconnect

from agents.reply_pipeline import ReplyPipeline
from api.dependencies import get_call_updater, get_llm_client, get_speech_session_factory
from config.settings import get_settings
from telephony.call_stream import CallStreamHandler
from telephony.twiml import to_ws_url, twiml_stream_and_greet

LOGGER = logging.getLogger(__name__)

router = APIRouter(prefix="/twilio", tags=["twilio"])


def _twiml_response(xml: str) -> Response:
    # Twilio expects application/xml
    return Response(content=xml, media_type="application/xml")


def _stream_url(request: Request) -> str:
    settings = get_settings()
    if settings.public_base_url:
        return to_ws_url(f"{settings.public_base_url.rstrip('/')}/api/twilio/stream")
    # Fallback to request host. This may not work behind proxies; prefer PUBLIC_BASE_URL.
    return to_ws_url(str(request.url_for("twilio_media_stream")))


@router.post("/twiml")
async def twilio_call_setup(request: Request) -> Response:
    """Voice request URL configured on the Twilio number."""

    settings = get_settings()
    xml = twiml_stream_and_greet(
        stream_url=_stream_url(request),
        greeting=settings.twilio_greeting,
        voice=settings.twilio_say_voice,
        language=settings.twilio_say_language,
        pause_seconds=settings.twilio_pause_seconds,
    )
    LOGGER.info("Twilio WS: TwiML response sent back: %s", xml)
    return _twiml_response(xml)


@router.websocket("/stream")
async def twilio_media_stream(
    websocket: WebSocket,
    llm=Depends(get_llm_client),
    updater=Depends(get_call_updater),
    session_factory=Depends(get_speech_session_factory),
) -> None:
    settings = get_settings()
    await websocket.accept()
    LOGGER.info("Twilio WS: Connection accepted")

    handler = CallStreamHandler(
        session_factory=session_factory,
        reply_pipeline=ReplyPipeline.from_settings(llm, updater),
        duplicate_start_policy=settings.duplicate_start_policy,
    )
    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                LOGGER.info("Twilio WS: Connection closed by Twilio")
                break
            if message.get("text") is not None:
                await handler.process_message(message["text"])
            elif message.get("bytes") is not None:
                await handler.process_message(message["bytes"])
    except WebSocketDisconnect:
        LOGGER.info("Twilio WS: Connection closed by Twilio")
    finally:
        await handler.close()
