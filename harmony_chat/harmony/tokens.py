# Harmony control tokens.

START = "<|start|>"
END = "<|end|>"
MESSAGE = "<|message|>"
CHANNEL = "<|channel|>"
RETURN = "<|return|>"
CALL = "<|call|>"

# Sequences that end a generation pass when the engine surfaces them as tokens.
STOP_TOKENS = (RETURN, CALL)


def open_turn(role: str, channel: str | None = None) -> str:
    if channel:
        return f"{START}{role}{CHANNEL}{channel}{MESSAGE}"
    return f"{START}{role}{MESSAGE}"


def partial_marker_suffix(text: str, marker: str = END) -> int:
    """Length of the longest proper prefix of `marker` that `text` ends with."""
    for size in range(min(len(marker) - 1, len(text)), 0, -1):
        if text.endswith(marker[:size]):
            return size
    return 0
