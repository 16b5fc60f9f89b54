# Typed records for the Harmony protocol layer.

from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional

ROLES = ("system", "user", "assistant", "tool")
CHANNELS = ("analysis", "commentary", "final")


class ReasoningMode(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @classmethod
    def parse(cls, value) -> "ReasoningMode":
        """Resolve a wire value; anything unknown falls back to LOW."""
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            return cls.LOW


@dataclass(frozen=True)
class Message:
    """One conversation turn after sanitization."""
    role: str
    content: str
    channel: Optional[str] = None


@dataclass(frozen=True)
class SamplerParams:
    """Clamped sampling parameters. None means "use the configured default"."""
    temperature: Optional[float] = None
    top_p: Optional[float] = None
    repeat_penalty: Optional[float] = None
    max_tokens: Optional[int] = None


@dataclass
class ParsedResponse:
    channels: Dict[str, str] = field(default_factory=dict)
    has_channels: bool = False
    content: str = ""

    @property
    def reasoning(self) -> str:
        return self.channels.get("analysis", "")

    @property
    def commentary(self) -> str:
        return self.channels.get("commentary", "")

    @property
    def final(self) -> str:
        return self.channels.get("final", "")
