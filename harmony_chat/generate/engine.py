# =============================================================
# engine.py
# -------------------------------------------------------------
# Inference engine boundary. Generation code depends only on:
#   - InferenceEngine: load / tokenize / detokenize / create_sequence
#   - GenerationSequence: generate(prompt_tokens, sampler) / dispose
#   - SequencePool: fixed number of sequences shared by all requests
# Concrete engines live in generate/clients/.
# =============================================================

from __future__ import annotations
import logging
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Iterator, List, Sequence

from harmony_chat.errors import GenerationError
from .types import SamplerConfig

logger = logging.getLogger(__name__)


class GenerationSequence(ABC):
    """One exclusive generation session against the loaded model."""

    @abstractmethod
    def generate(self, prompt_tokens: Sequence[int], sampler: SamplerConfig) -> Iterator[int]:
        """
        Lazily yield generated token ids for `prompt_tokens`.

        The iterator is finite: it ends when the model emits an end-of-generation
        token. Prompt tokens take part in the repeat penalty.
        """
        raise NotImplementedError

    def dispose(self) -> None:
        """Free whatever the sequence holds on the model context."""


class InferenceEngine(ABC):
    """Abstract model handle. One instance is created per process and shared."""

    # whether the engine needs a model artifact on disk before load()
    requires_model_file: bool = True

    @property
    @abstractmethod
    def is_loaded(self) -> bool:
        raise NotImplementedError

    @property
    @abstractmethod
    def context_size(self) -> int:
        raise NotImplementedError

    @abstractmethod
    def load(self, model_path: str) -> None:
        raise NotImplementedError

    @abstractmethod
    def tokenize(self, text: str) -> List[int]:
        raise NotImplementedError

    @abstractmethod
    def detokenize(self, tokens: Sequence[int]) -> str:
        """Raise DetokenizationError when the buffer cannot be decoded yet."""
        raise NotImplementedError

    @abstractmethod
    def create_sequence(self) -> GenerationSequence:
        raise NotImplementedError

    def close(self) -> None:
        pass


class SequencePool:
    """
    Hands out at most `size` sequences at a time.

    Exhaustion raises GenerationError instead of waiting, so a request never
    blocks on a sequence held by another request.
    """

    def __init__(self, engine: InferenceEngine, size: int = 4):
        if size < 1:
            raise ValueError("Sequence pool needs at least one sequence")
        self.engine = engine
        self.size = size
        self._in_use = 0
        self._lock = threading.Lock()

    @property
    def available(self) -> int:
        with self._lock:
            return self.size - self._in_use

    def _take_slot(self) -> None:
        with self._lock:
            if self._in_use >= self.size:
                raise GenerationError("No free generation sequence")
            self._in_use += 1

    def _return_slot(self) -> None:
        with self._lock:
            self._in_use -= 1

    @contextmanager
    def sequence(self) -> Iterator[GenerationSequence]:
        self._take_slot()
        try:
            seq = self.engine.create_sequence()
        except Exception:
            self._return_slot()
            raise

        try:
            yield seq
        finally:
            try:
                seq.dispose()
            except Exception:
                # must not replace whatever ended the pass
                logger.warning("Sequence disposal failed", exc_info=True)
            self._return_slot()
