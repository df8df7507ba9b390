"""TwiML documents sent to Twilio."""

from __future__ import annotations

from xml.sax.saxutils import escape, quoteattr

_XML_HEADER = "<?xml version=\"1.0\" encoding=\"UTF-8\"?>"


def _say(text: str, *, voice: str, language: str) -> str:
    return f"<Say voice={quoteattr(voice)} language={quoteattr(language)}>{escape(text)}</Say>"


def _pause(seconds: int) -> str:
    return f"<Pause length=\"{max(1, int(seconds))}\" />"


def twiml_say_and_pause(*, text: str, voice: str, language: str, pause_seconds: int) -> str:
    """Speak ``text`` on the live call, then hold the line."""

    return (
        _XML_HEADER
        + "<Response>"
        + _say(text, voice=voice, language=language)
        + _pause(pause_seconds)
        + "</Response>"
    )


def twiml_stream_and_greet(
    *,
    stream_url: str,
    greeting: str,
    voice: str,
    language: str,
    pause_seconds: int,
) -> str:
    """Fork inbound call audio to ``stream_url`` while greeting the caller."""

    return (
        _XML_HEADER
        + "<Response>"
        + "<Start>"
        + f"<Stream url={quoteattr(stream_url)} />"
        + "</Start>"
        + _say(greeting, voice=voice, language=language)
        + _pause(pause_seconds)
        + "</Response>"
    )


def to_ws_url(http_url: str) -> str:
    if http_url.startswith("https://"):
        return "wss://" + http_url.removeprefix("https://")
    if http_url.startswith("http://"):
        return "ws://" + http_url.removeprefix("http://")
    return http_url
