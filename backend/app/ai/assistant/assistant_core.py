# backend/app/ai/assistant/assistant_core.py

import json
import logging
from typing import Any, Dict, Iterator, List, Optional

from openai import OpenAI

from ... import config
from ...errors import openai_error_to_api_error
from .db_tools import TOOLS, execute_tool_call
from .prompts import FOLLOW_UP_INSTRUCTION, SYSTEM_PROMPT

logger = logging.getLogger(__name__)

# ─────────────────────────────────────────
# OpenAI client
# ─────────────────────────────────────────
client = OpenAI(api_key=config.OPENAI_API_KEY)


# ─────────────────────────────────────────
# Message plumbing
# ─────────────────────────────────────────

def build_messages(history: List[Dict[str, Any]], follow_up: bool = False) -> List[Dict[str, Any]]:
    """
    history: list of {"role", "content", "tool_calls"?, "tool_call_id"?}
    Returns the provider message list with the system prompt in front.
    """
    system = SYSTEM_PROMPT + FOLLOW_UP_INSTRUCTION if follow_up else SYSTEM_PROMPT
    messages: List[Dict[str, Any]] = [{"role": "system", "content": system}]

    for m in history:
        msg: Dict[str, Any] = {"role": m["role"], "content": m.get("content")}
        # Preserve tool calls (assistant) and tool call IDs (tool)
        if m.get("tool_calls"):
            msg["tool_calls"] = m["tool_calls"]
        if m.get("tool_call_id"):
            msg["tool_call_id"] = m["tool_call_id"]
        if m.get("name"):
            msg["name"] = m["name"]
        messages.append(msg)

    return messages


def _use_follow_up_prompt(messages: List[Dict[str, Any]]) -> None:
    messages[0] = {"role": "system", "content": SYSTEM_PROMPT + FOLLOW_UP_INSTRUCTION}


def _append_tool_round(messages: List[Dict[str, Any]], tool_calls: List[Dict[str, Any]]) -> None:
    """
    Append the assistant turn that requested the tools (without any announcement
    text), then one tool message per call.
    """
    messages.append({"role": "assistant", "content": None, "tool_calls": tool_calls})
    for tc in tool_calls:
        messages.append(execute_tool_call(tc))


def _create_completion(messages: List[Dict[str, Any]], *, tools: bool, stream: bool):
    kwargs: Dict[str, Any] = {
        "model": config.CHAT_MODEL,
        "messages": messages,
        "temperature": config.CHAT_TEMPERATURE,
        "stream": stream,
    }
    if tools:
        kwargs["tools"] = TOOLS
        kwargs["tool_choice"] = "auto"
    return client.chat.completions.create(**kwargs)


def _tool_call_to_dict(tc) -> Dict[str, Any]:
    return {
        "id": tc.id,
        "type": "function",
        "function": {
            "name": tc.function.name,
            "arguments": tc.function.arguments or "",
        },
    }


# ─────────────────────────────────────────
# Chat-style helper (full conversation history)
# ─────────────────────────────────────────

def call_llm_with_history(history: List[Dict[str, Any]]) -> str:
    """
    Non-streaming variant. Calls the model, executes any tool calls, and
    repeats until the model answers without tools. The last allowed round
    is sent without tools so the loop always ends with text.

    Returns: final assistant text content.
    """
    messages = build_messages(history)
    rounds = 0

    while True:
        allow_tools = rounds < config.MAX_TOOL_ROUNDS
        resp = _create_completion(messages, tools=allow_tools, stream=False)
        msg = resp.choices[0].message

        # No tool calls → final answer
        if not msg.tool_calls:
            return msg.content or ""

        tool_calls = [_tool_call_to_dict(tc) for tc in msg.tool_calls]
        _append_tool_round(messages, tool_calls)
        _use_follow_up_prompt(messages)
        rounds += 1


# ─────────────────────────────────────────
# Streaming (Server-Sent Events)
# ─────────────────────────────────────────

def sse_event(payload: Dict[str, Any]) -> str:
    return f"data: {json.dumps(payload, ensure_ascii=False)}\n\n"


def _merge_tool_call_delta(tool_calls: Dict[int, Dict[str, Any]], delta) -> None:
    """
    Tool calls arrive in fragments keyed by index: the first fragment carries
    id and name, later ones append to the JSON arguments.
    """
    fn = getattr(delta, "function", None)
    entry = tool_calls.get(delta.index)

    if entry is None:
        tool_calls[delta.index] = {
            "id": delta.id or "",
            "type": "function",
            "function": {
                "name": (fn.name if fn else None) or "",
                "arguments": (fn.arguments if fn else None) or "",
            },
        }
        return

    if delta.id:
        entry["id"] = delta.id
    if fn is not None:
        if fn.name:
            entry["function"]["name"] = fn.name
        if fn.arguments:
            entry["function"]["arguments"] += fn.arguments


def stream_chat(history: List[Dict[str, Any]]) -> Iterator[str]:
    """
    Yields SSE frames: {"type": "content"|"tool_start"|"error"|"done", ...}

    Rounds that may still call tools: text is held back until the round
    finishes, and dropped if the model decided to call tools (that text would
    only be an announcement).
    Last round (sent without tools): text is forwarded as it arrives.

    Always ends with exactly one "done" frame.
    """
    messages = build_messages(history)
    rounds = 0

    try:
        while True:
            allow_tools = rounds < config.MAX_TOOL_ROUNDS
            live = not allow_tools
            completion = _create_completion(messages, tools=allow_tools, stream=True)

            pending: List[str] = []
            tool_calls: Dict[int, Dict[str, Any]] = {}
            finish_reason: Optional[str] = None

            for chunk in completion:
                if not chunk.choices:
                    continue
                choice = chunk.choices[0]
                delta = choice.delta

                if delta is not None and delta.tool_calls:
                    for tc_delta in delta.tool_calls:
                        _merge_tool_call_delta(tool_calls, tc_delta)

                if delta is not None and delta.content:
                    if live:
                        yield sse_event({"type": "content", "content": delta.content})
                    else:
                        pending.append(delta.content)

                if choice.finish_reason:
                    finish_reason = choice.finish_reason

            if not tool_calls:
                for content in pending:
                    yield sse_event({"type": "content", "content": content})
                logger.info("[chat] finished after %d tool round(s) (%s)", rounds, finish_reason)
                break

            calls = [tool_calls[i] for i in sorted(tool_calls)]
            names = [c["function"]["name"] for c in calls]
            yield sse_event({"type": "tool_start", "tools": names})

            _append_tool_round(messages, calls)
            _use_follow_up_prompt(messages)
            rounds += 1

    except Exception as e:
        logger.exception("[chat] streaming error")
        yield sse_event({"type": "error", "error": openai_error_to_api_error(e).message})

    yield sse_event({"type": "done"})
