# Dummy inference engine for local dev and tests: no model file, no weights.
# Tokens are unicode code points; the reply echoes the last user turn.

from __future__ import annotations
from typing import Iterator, List, Sequence

from harmony_chat.harmony.tokens import END, MESSAGE, START, open_turn
from ..engine import GenerationSequence, InferenceEngine
from ..types import SamplerConfig

_USER_TURN = f"{START}user{MESSAGE}\n"


def _last_user_content(prompt: str) -> str:
    start = prompt.rfind(_USER_TURN)
    if start == -1:
        return "(no user input)"
    start += len(_USER_TURN)
    end = prompt.find(f"\n{END}", start)
    return prompt[start:end] if end != -1 else prompt[start:]


class EchoDevSequence(GenerationSequence):
    def __init__(self, engine: "EchoDevEngine"):
        self.engine = engine

    def generate(self, prompt_tokens: Sequence[int], sampler: SamplerConfig) -> Iterator[int]:
        prompt = self.engine.detokenize(prompt_tokens)
        user_input = _last_user_content(prompt)
        if prompt.endswith(open_turn("assistant", "analysis")):
            reply = f"User asked: {user_input}{END}"
        else:
            reply = f"[ECHO RESPONSE]\n{user_input}{END}"
        for ch in reply:
            yield ord(ch)


class EchoDevEngine(InferenceEngine):
    requires_model_file = False

    def __init__(self, context_size: int = 4096):
        self.model = "echo-dev"
        self._context_size = context_size
        self._loaded = False

    @property
    def is_loaded(self) -> bool:
        return self._loaded

    @property
    def context_size(self) -> int:
        return self._context_size

    def load(self, model_path: str) -> None:
        self._loaded = True

    def tokenize(self, text: str) -> List[int]:
        return [ord(ch) for ch in text]

    def detokenize(self, tokens: Sequence[int]) -> str:
        return "".join(chr(t) for t in tokens)

    def create_sequence(self) -> GenerationSequence:
        return EchoDevSequence(self)
