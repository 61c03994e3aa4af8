# backend/app/routers/speech.py

from typing import Optional

from fastapi import APIRouter, File, UploadFile
from fastapi.responses import StreamingResponse
from pydantic import BaseModel

from ..ai.speech import speech_core
from ..errors import ApiError

router = APIRouter(prefix="/api", tags=["speech"])


class TranscriptResp(BaseModel):
    transcript: str


class TTSRequest(BaseModel):
    text: str = ""


@router.post("/stt", response_model=TranscriptResp)
def speech_to_text(audio: Optional[UploadFile] = File(None)):
    """
    Transcribe a recorded audio blob (multipart field `audio`).
    Returns JSON { transcript }.
    """
    if audio is None:
        raise ApiError(400, "Audio file is required")

    content_type = speech_core.normalize_audio_content_type(audio.content_type, audio.filename)
    raw = audio.file.read()

    transcript = speech_core.transcribe(raw, content_type)
    return TranscriptResp(transcript=transcript)


@router.post("/tts")
def text_to_speech(body: TTSRequest):
    """
    Synthesize speech for `text` and stream back MP3 audio.
    """
    chunks = speech_core.synthesize(body.text)
    return StreamingResponse(
        chunks,
        media_type="audio/mpeg",
        headers={"Cache-Control": "no-cache"},
    )
