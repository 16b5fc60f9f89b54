# Extract named channels ("analysis", "final", ...) from raw assistant output.

from __future__ import annotations
import re

from .types import ParsedResponse

_CHANNEL_RE = re.compile(
    r"<\|channel\|>(\w+)<\|message\|>(.*?)(?=<\|channel\|>|<\|end\|>|\Z)",
    re.DOTALL,
)


def parse_response(text: str) -> ParsedResponse:
    """
    Collect every `<|channel|>NAME<|message|>CONTENT` segment.
    Without any channel markers the whole text is treated as the final answer.
    """
    channels = {}
    has_channels = False
    for match in _CHANNEL_RE.finditer(text):
        channels[match.group(1)] = match.group(2).strip()
        has_channels = True

    if "final" in channels:
        content = channels["final"]
    elif has_channels:
        content = ""
    else:
        content = text

    return ParsedResponse(channels=channels, has_channels=has_channels, content=content)
