# Shared fixtures: a scripted in-memory engine whose token ids index into a
# vocabulary of text pieces, so tests control exactly how text is split.
import asyncio
import os
from typing import List

import pytest

# the app module builds its engine at import time
os.environ.setdefault("INFERENCE_BACKEND", "echo")

from harmony_chat.errors import DetokenizationError
from harmony_chat.generate.engine import GenerationSequence, InferenceEngine
from harmony_chat.generate.runtime import ModelRuntime

TEST_CONFIG = {
    "temperature": 0.3,
    "top_p": 0.9,
    "repeat_penalty": 1.1,
    "max_tokens": 64,
    "warmup_tokens": 2,
}


class ScriptedSequence(GenerationSequence):
    def __init__(self, engine, pieces):
        self.engine = engine
        self.pieces = pieces

    def generate(self, prompt_tokens, sampler):
        self.engine.prompts.append(self.engine.detokenize(prompt_tokens))
        self.engine.samplers.append(sampler)
        for piece in self.pieces:
            if isinstance(piece, Exception):
                raise piece
            yield self.engine.token_for(piece)

    def dispose(self):
        self.engine.disposed += 1


class ScriptedEngine(InferenceEngine):
    """Each create_sequence() call consumes the next script (an iterable of text pieces)."""

    def __init__(self, *scripts, undecodable=()):
        self.scripts = list(scripts)
        self.undecodable = set(undecodable)
        self.vocab: List[str] = []
        self.prompts: List[str] = []
        self.samplers = []
        self.disposed = 0
        self.load_calls = 0

    @property
    def is_loaded(self):
        return self.load_calls > 0

    @property
    def context_size(self):
        return 4096

    def load(self, model_path):
        self.load_calls += 1

    def token_for(self, piece):
        if piece not in self.vocab:
            self.vocab.append(piece)
        return self.vocab.index(piece)

    def tokenize(self, text):
        return [self.token_for(text)]

    def detokenize(self, tokens):
        # an "undecodable" piece only decodes once another token follows it
        if tokens and self.vocab[tokens[-1]] in self.undecodable:
            raise DetokenizationError("incomplete character")
        return "".join(self.vocab[t] for t in tokens)

    def create_sequence(self):
        pieces = self.scripts.pop(0) if self.scripts else []
        return ScriptedSequence(self, pieces)


@pytest.fixture
def scripted_engine():
    return ScriptedEngine


@pytest.fixture
def make_runtime():
    def _make(engine, sequences=4, **overrides):
        return ModelRuntime(engine, sequences=sequences, config={**TEST_CONFIG, **overrides})
    return _make


@pytest.fixture
def collect():
    """Run an async iterator to completion and return its items."""
    def _collect(agen):
        async def _drain():
            return [item async for item in agen]
        return asyncio.run(_drain())
    return _collect
