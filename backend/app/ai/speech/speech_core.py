# backend/app/ai/speech/speech_core.py

import logging
import mimetypes
from typing import Iterator, Optional

import requests
from openai import OpenAI

from ... import config
from ...errors import ApiError, openai_error_to_api_error

logger = logging.getLogger(__name__)

# Uses OPENAI_API_KEY from your env
client = OpenAI(api_key=config.OPENAI_API_KEY)

DEFAULT_AUDIO_TYPE = "audio/webm"

SUPPORTED_AUDIO_TYPES = {
    "audio/webm",
    "video/webm",
    "audio/ogg",
    "audio/mp4",
    "audio/m4a",
    "audio/x-m4a",
    "audio/mpeg",
    "audio/mp3",
    "audio/wav",
    "audio/wave",
    "audio/x-wav",
    "audio/flac",
    "audio/x-flac",
    "audio/aac",
}

TTS_CHUNK_SIZE = 16 * 1024


# ─────────────────────────────────────────
# Speech-to-text (Deepgram)
# ─────────────────────────────────────────

def normalize_audio_content_type(content_type: Optional[str], filename: Optional[str] = None) -> str:
    """
    "audio/webm;codecs=opus" → "audio/webm".

    Falls back to the filename extension when the browser sent no type (or a
    generic one), then to audio/webm. Raises ApiError(415) for non-audio types.
    """
    base = (content_type or "").split(";", 1)[0].strip().lower()

    if not base or base == "application/octet-stream":
        guessed, _ = mimetypes.guess_type(filename or "")
        base = (guessed or DEFAULT_AUDIO_TYPE).lower()

    if base not in SUPPORTED_AUDIO_TYPES:
        supported = ", ".join(sorted(SUPPORTED_AUDIO_TYPES))
        raise ApiError(
            415,
            f"Unsupported audio format '{base}'. Supported formats: {supported}",
        )
    return base


def _deepgram_error(status_code: int, body: str) -> ApiError:
    logger.error("Deepgram STT error %s: %s", status_code, body[:500])
    if status_code in (400, 415):
        return ApiError(status_code, "The audio could not be processed. Please try recording again.")
    if status_code in (401, 403):
        return ApiError(502, "The speech-to-text provider rejected the API key.")
    if status_code == 413:
        return ApiError(413, "The recording is too large.")
    if status_code == 429:
        return ApiError(429, "The speech-to-text provider is rate limiting requests. Please try again shortly.")
    return ApiError(502, "Failed to transcribe audio")


def transcribe(audio: bytes, content_type: str) -> str:
    """
    Send the recorded audio to Deepgram and return the transcript of the
    first channel's best alternative.
    """
    if not audio:
        raise ApiError(400, "Audio file is empty")
    if len(audio) > config.MAX_AUDIO_BYTES:
        raise ApiError(413, f"Audio file is too large (max {config.MAX_AUDIO_BYTES} bytes)")

    params = {
        "model": config.DEEPGRAM_MODEL,
        "language": config.DEEPGRAM_LANGUAGE,
        "smart_format": "true",
        "punctuate": "true",
    }
    headers = {
        "Authorization": f"Token {config.DEEPGRAM_API_KEY}",
        "Content-Type": content_type,
    }

    try:
        resp = requests.post(
            config.DEEPGRAM_LISTEN_URL,
            params=params,
            headers=headers,
            data=audio,
            timeout=60,
        )
    except requests.RequestException as e:
        logger.error("Deepgram request failed: %r", e)
        raise ApiError(502, "The speech-to-text provider is unreachable.") from e

    if not resp.ok:
        raise _deepgram_error(resp.status_code, resp.text)

    try:
        data = resp.json()
    except ValueError as e:
        raise ApiError(502, "The speech-to-text provider returned an invalid response.") from e

    channels = (data.get("results") or {}).get("channels") or [{}]
    alternatives = channels[0].get("alternatives") or [{}]
    transcript = (alternatives[0].get("transcript") or "").strip()

    if not transcript:
        raise ApiError(400, "No speech detected")

    logger.info("[stt] %d bytes (%s) → %d chars", len(audio), content_type, len(transcript))
    return transcript


# ─────────────────────────────────────────
# Text-to-speech (OpenAI)
# ─────────────────────────────────────────

def synthesize(text: str) -> Iterator[bytes]:
    """
    Generate MP3 speech for `text`. The provider call happens before this
    returns, so failures surface as ApiError instead of a broken stream.
    """
    text = (text or "").strip()
    if not text:
        raise ApiError(400, "Text is required")
    if len(text) > config.MAX_TTS_CHARS:
        raise ApiError(413, f"Text is too long (max {config.MAX_TTS_CHARS} characters)")

    try:
        response = client.audio.speech.create(
            model=config.TTS_MODEL,
            voice=config.TTS_VOICE,
            input=text,
            response_format="mp3",
        )
    except Exception as e:
        logger.error("TTS error: %r", e)
        raise openai_error_to_api_error(e, service="text-to-speech") from e

    logger.info("[tts] %d chars → audio", len(text))
    return response.iter_bytes(TTS_CHUNK_SIZE)
