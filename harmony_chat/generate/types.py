# Typed records shared across the generation layer.

from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

REASONING_COMPLETE = "reasoning_complete"
FINAL_ANSWER = "final_answer"

MAX_TOKENS_REASON = "max_tokens"
STOPPED_REASON = "stopped"


@dataclass(frozen=True)
class SamplerConfig:
    """Concrete sampler settings handed to a generation sequence."""
    temperature: float
    top_p: float
    repeat_penalty: float


@dataclass(frozen=True)
class TokenEvent:
    text: str

    def to_json(self) -> Dict[str, Any]:
        return {"token": self.text}


@dataclass(frozen=True)
class PhaseEvent:
    marker: str  # REASONING_COMPLETE | FINAL_ANSWER

    def to_json(self) -> Dict[str, Any]:
        return {"phase": self.marker}


@dataclass(frozen=True)
class DoneEvent:
    reason: Optional[str] = None  # MAX_TOKENS_REASON | STOPPED_REASON | None

    def to_json(self) -> Dict[str, Any]:
        if self.reason is None:
            return {"done": True}
        return {"done": True, "reason": self.reason}


@dataclass(frozen=True)
class ErrorEvent:
    message: str

    def to_json(self) -> Dict[str, Any]:
        return {"error": self.message}


StreamEvent = Union[TokenEvent, PhaseEvent, DoneEvent, ErrorEvent]
