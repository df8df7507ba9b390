"""Entry point for the Twilio <-> AmiVoice realtime transcription bridge."""

from __future__ import annotations

import logging

import uvicorn
from fastapi import FastAPI

from api.routes import router as api_router
from config.settings import get_settings

settings = get_settings()

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)

app = FastAPI(
    title="Twilio AmiVoice Bridge",
    description="Relays live call audio to AmiVoice and answers recognized speech on the call.",
)
app.include_router(api_router, prefix="/api")


def run() -> None:
    uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level.lower())


if __name__ == "__main__":
    run()
