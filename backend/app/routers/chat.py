# backend/app/routers/chat.py

import logging
from typing import Any, Dict, List, Literal, Optional

from fastapi import APIRouter, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, ValidationError

from ..ai.assistant import assistant_core
from ..errors import ApiError, openai_error_to_api_error

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["chat"])


# ─────────────────────────────────────────
# Models
# ─────────────────────────────────────────

class ChatMessageIn(BaseModel):
    role: Literal["system", "user", "assistant", "function", "tool"]
    content: Optional[str] = None
    name: Optional[str] = None
    tool_calls: Optional[List[Dict[str, Any]]] = None
    tool_call_id: Optional[str] = None


class ChatRequest(BaseModel):
    messages: List[ChatMessageIn]
    stream: bool = False


class ChatMessageOut(BaseModel):
    role: Literal["assistant"] = "assistant"
    content: str


class ChatResponse(BaseModel):
    message: ChatMessageOut


SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


async def _parse_chat_request(request: Request) -> ChatRequest:
    try:
        body = await request.json()
    except ValueError:
        raise ApiError(400, "Messages array is required")

    if not isinstance(body, dict) or not isinstance(body.get("messages"), list):
        raise ApiError(400, "Messages array is required")

    try:
        return ChatRequest.model_validate(body)
    except ValidationError as e:
        logger.info("[chat] invalid request: %s", e.errors())
        raise ApiError(400, "Invalid messages: each message needs a valid role and content")


def _wants_stream(request: Request, body: ChatRequest) -> bool:
    return body.stream or "text/event-stream" in request.headers.get("accept", "")


# ─────────────────────────────────────────
# Routes
# ─────────────────────────────────────────

@router.post("/chat", response_model=ChatResponse)
async def chat(request: Request):
    """
    Forward the conversation to the chat model (with database tools).

    - JSON body: {"messages": [...], "stream": false}
      → {"message": {"role": "assistant", "content": "..."}}
    - stream=true (or Accept: text/event-stream)
      → text/event-stream of {"type": "content"|"tool_start"|"error"|"done", ...}
    """
    body = await _parse_chat_request(request)
    history = [m.model_dump(exclude_none=True) for m in body.messages]

    if _wants_stream(request, body):
        return StreamingResponse(
            assistant_core.stream_chat(history),
            media_type="text/event-stream",
            headers=SSE_HEADERS,
        )

    try:
        content = await run_in_threadpool(assistant_core.call_llm_with_history, history)
    except Exception as e:
        logger.exception("Chat API error")
        raise openai_error_to_api_error(e) from e

    return JSONResponse(ChatResponse(message=ChatMessageOut(content=content)).model_dump())
