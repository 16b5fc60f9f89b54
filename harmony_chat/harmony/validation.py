# =============================================================
# validation.py
# -------------------------------------------------------------
# Gate in front of the model:
#   - validate_messages(): shape, roles, sanitization, turn structure
#   - validate_sampler_params(): field-by-field clamping, never raises
# Nothing here touches the engine.
# =============================================================

from __future__ import annotations
import logging
import math
import re
from typing import Any, List, Mapping, Optional

from harmony_chat.errors import MessageValidationError
from .types import CHANNELS, ROLES, Message, SamplerParams

logger = logging.getLogger(__name__)

MAX_MESSAGE_LENGTH = 10_000
MAX_MESSAGES = 100
MIN_TOKENS = 1
MAX_TOKENS = 4096

# ASCII control characters except \t (0x09) and \n (0x0A)
_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]")


def sanitize_input(text: str) -> str:
    return _CONTROL_CHARS.sub("", text)[:MAX_MESSAGE_LENGTH]


def _coerce_message(index: int, raw: Any) -> Message:
    if not isinstance(raw, Mapping):
        raise MessageValidationError(f"Message at index {index} is not an object")

    role = raw.get("role")
    if role not in ROLES:
        raise MessageValidationError(
            f"Message at index {index} has invalid role: {role}. "
            f"Valid roles are: {', '.join(ROLES)}"
        )

    content = raw.get("content")
    if not isinstance(content, str):
        raise MessageValidationError(f"Message at index {index} has invalid content: must be a string")

    content = sanitize_input(content)
    if not content:
        raise MessageValidationError(f"Message at index {index} has empty content")

    channel = raw.get("channel")
    if channel not in CHANNELS:
        channel = None
    return Message(role=role, content=content, channel=channel)


def _check_structure(messages: List[Message]) -> None:
    last_role: Optional[str] = None
    for i, message in enumerate(messages):
        if message.role == "system" and i != 0:
            raise MessageValidationError("System message must be the first message if present")

        if message.role == last_role:
            raise MessageValidationError(
                f"Consecutive {message.role} messages at index {i}. Messages should alternate between roles."
            )

        if message.role == "tool" and last_role != "assistant":
            raise MessageValidationError(f"Tool message at index {i} must follow an assistant message")

        last_role = message.role

    if messages[-1].role not in ("user", "tool"):
        logger.warning("Last message is not from user or tool - this may not generate a response")


def validate_messages(value: Any) -> List[Message]:
    """Turn an untrusted payload into a sanitized, structurally valid message list."""
    if not isinstance(value, list):
        raise MessageValidationError("Messages must be an array")
    if not value:
        raise MessageValidationError("Messages array cannot be empty")
    if len(value) > MAX_MESSAGES:
        raise MessageValidationError(f"Too many messages. Maximum is {MAX_MESSAGES}")

    messages = [_coerce_message(i, raw) for i, raw in enumerate(value)]
    _check_structure(messages)
    return messages


def _number(value: Any) -> Optional[float]:
    # bool is an int subclass; a JSON true is not a sampling value
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    # ints stay exact until clamped; float() overflows past ~1e308
    if isinstance(value, int):
        return value
    if not math.isfinite(value):
        return None
    return value


def _clamp(value: float, lo: float, hi: float) -> float:
    return float(max(lo, min(hi, value)))


def validate_sampler_params(value: Any) -> SamplerParams:
    """Clamp each known field into range; unknown or non-numeric fields are dropped."""
    if not isinstance(value, Mapping):
        return SamplerParams()

    temperature = _number(value.get("temperature"))
    top_p = _number(value.get("topP"))
    repeat_penalty = _number(value.get("repeatPenalty"))
    max_tokens = _number(value.get("maxTokens"))

    return SamplerParams(
        temperature=_clamp(temperature, 0.0, 2.0) if temperature is not None else None,
        top_p=_clamp(top_p, 0.0, 1.0) if top_p is not None else None,
        repeat_penalty=_clamp(repeat_penalty, 0.1, 2.0) if repeat_penalty is not None else None,
        max_tokens=int(_clamp(math.floor(max_tokens), MIN_TOKENS, MAX_TOKENS)) if max_tokens is not None else None,
    )
