# Render a validated conversation into a single Harmony prompt string.
# Pure: the same (messages, mode) always gives the same prompt.

from __future__ import annotations
from typing import List, Sequence

from .tokens import END, open_turn
from .types import Message, ReasoningMode

FINAL_CHANNEL_DIRECTIVE = "# Always provide your final answer in the 'final' channel after any analysis\n"


def _turn(role: str, content: str, channel: str | None = None) -> str:
    return f"{open_turn(role, channel)}\n{content}\n{END}\n\n"


def build_system_turn(content: str, mode: ReasoningMode) -> str:
    body = f"Reasoning: {mode.value}\n"
    if mode is not ReasoningMode.LOW:
        body += FINAL_CHANNEL_DIRECTIVE
    body += content
    return _turn("system", body)


def encode_prompt(messages: Sequence[Message], mode: ReasoningMode = ReasoningMode.LOW) -> str:
    parts: List[str] = []

    if messages and messages[0].role == "system":
        parts.append(build_system_turn(messages[0].content, mode))

    for message in messages:
        if message.role == "system":
            continue
        if message.role == "assistant":
            parts.append(_turn("assistant", message.content, message.channel))
        else:
            parts.append(_turn(message.role, message.content))

    # low forces a direct answer; otherwise invite the model to reason first
    if mode is ReasoningMode.LOW:
        parts.append(open_turn("assistant", "final"))
    else:
        parts.append(open_turn("assistant", "analysis"))

    return "".join(parts)
