"""Text-to-speech proxy for the ElevenLabs API."""
from __future__ import annotations

import logging

import requests

logger = logging.getLogger(__name__)

ELEVENLABS_URL = "https://api.elevenlabs.io/v1/text-to-speech"
DEFAULT_VOICE_ID = "9BWtsMINqrJLrRacOk9x"
VOICE_MODEL = "eleven_monolingual_v1"
VOICE_SETTINGS = {
    "stability": 0.5,
    "similarity_boost": 0.75,
    "style": 0.0,
    "use_speaker_boost": True,
}

# upstream status -> (our status, message)
UPSTREAM_ERRORS = {
    401: (500, "Voice service authentication failed"),
    400: (400, "Invalid voice request"),
    422: (400, "Voice ID not found or invalid"),
}


class VoiceServiceError(Exception):
    def __init__(self, message: str, status: int = 500):
        super().__init__(message)
        self.status = status


def synthesize_speech(text: str, api_key: str, voice_id: str | None = None, timeout: float = 30.0) -> bytes:
    """Returns MP3 bytes for ``text``."""
    voice_id = voice_id or DEFAULT_VOICE_ID
    logger.info("Converting text to speech with voice %s: %r", voice_id, text[:50])
    try:
        r = requests.post(
            f"{ELEVENLABS_URL}/{voice_id}",
            headers={
                "Accept": "audio/mpeg",
                "Content-Type": "application/json",
                "xi-api-key": api_key,
            },
            json={"text": text, "model_id": VOICE_MODEL, "voice_settings": VOICE_SETTINGS},
            timeout=timeout,
        )
    except requests.RequestException as e:
        raise VoiceServiceError(f"Voice generation failed: {e}") from e

    if r.status_code >= 400:
        logger.error("ElevenLabs API error %s: %s", r.status_code, r.text[:200])
        status, msg = UPSTREAM_ERRORS.get(r.status_code, (500, "Voice generation failed"))
        raise VoiceServiceError(msg, status)

    return r.content
