# backend/app/config.py

import os
from dotenv import load_dotenv

# Load environment variables from .env
load_dotenv()


def _require(name: str) -> str:
    value = os.getenv(name)
    if not value:
        raise RuntimeError(f"{name} environment variable is not set")
    return value


# ─────────────────────────────────────────
# Required keys (missing → startup failure)
# ─────────────────────────────────────────

OPENAI_API_KEY = _require("OPENAI_API_KEY")
DEEPGRAM_API_KEY = _require("DEEPGRAM_API_KEY")
SUPABASE_URL = _require("SUPABASE_URL")
SUPABASE_SERVICE_ROLE_KEY = _require("SUPABASE_SERVICE_ROLE_KEY")
# read-only DSN, only used for information_schema lookups
DATABASE_URL = _require("DATABASE_URL")


# ─────────────────────────────────────────
# Chat model
# ─────────────────────────────────────────

CHAT_MODEL = os.getenv("CHAT_MODEL", "gpt-4o")
CHAT_TEMPERATURE = float(os.getenv("CHAT_TEMPERATURE", "0.3"))
MAX_TOOL_ROUNDS = int(os.getenv("MAX_TOOL_ROUNDS", "3"))

DEFAULT_QUERY_LIMIT = int(os.getenv("DEFAULT_QUERY_LIMIT", "100"))
MAX_QUERY_LIMIT = int(os.getenv("MAX_QUERY_LIMIT", "1000"))

ASSISTANT_TIMEZONE = os.getenv("ASSISTANT_TIMEZONE", "Europe/Berlin")


# ─────────────────────────────────────────
# Speech
# ─────────────────────────────────────────

DEEPGRAM_LISTEN_URL = os.getenv("DEEPGRAM_LISTEN_URL", "https://api.deepgram.com/v1/listen")
DEEPGRAM_MODEL = os.getenv("DEEPGRAM_MODEL", "nova-2")
DEEPGRAM_LANGUAGE = os.getenv("DEEPGRAM_LANGUAGE", "de")
MAX_AUDIO_BYTES = int(os.getenv("MAX_AUDIO_BYTES", str(25 * 1024 * 1024)))

TTS_MODEL = os.getenv("TTS_MODEL", "tts-1")
TTS_VOICE = os.getenv("TTS_VOICE", "nova")
MAX_TTS_CHARS = int(os.getenv("MAX_TTS_CHARS", "4096"))


# ─────────────────────────────────────────
# Server
# ─────────────────────────────────────────

FRONTEND_URL = os.getenv("FRONTEND_URL")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
