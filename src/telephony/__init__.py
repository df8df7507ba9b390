"""Twilio side of the bridge.

Twilio forks the caller's audio to our WebSocket as JSON "media" events
(``<Start><Stream>``); replies go back to the call as TwiML via the REST API.
"""
