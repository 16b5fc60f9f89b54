# Inference engine backed by llama-cpp-python (GGUF models, e.g. gpt-oss).

from __future__ import annotations
import logging
import threading
from typing import Iterator, List, Optional, Sequence, Set

from llama_cpp import Llama

from harmony_chat.errors import DetokenizationError, ModelNotReadyError
from harmony_chat.harmony.tokens import STOP_TOKENS
from ..engine import GenerationSequence, InferenceEngine
from ..types import SamplerConfig

logger = logging.getLogger(__name__)


class LlamaCppSequence(GenerationSequence):
    """
    llama.cpp keeps a single KV cache per Llama instance, so a sequence holds
    the engine's context lock for as long as its token iterator is open.
    Concurrent sequences therefore take turns on the model.
    """

    def __init__(self, engine: "LlamaCppEngine"):
        self.engine = engine
        self._disposed = False

    def generate(self, prompt_tokens: Sequence[int], sampler: SamplerConfig) -> Iterator[int]:
        llm = self.engine.llm
        stop_ids = self.engine.stop_token_ids
        with self.engine.context_lock:
            if self._disposed:
                return
            # repeat_penalty looks back over the evaluated context, prompt included
            for token in llm.generate(
                list(prompt_tokens),
                temp=sampler.temperature,
                top_p=sampler.top_p,
                repeat_penalty=sampler.repeat_penalty,
                reset=True,
            ):
                if token in stop_ids:
                    return
                yield token

    def dispose(self) -> None:
        self._disposed = True


class LlamaCppEngine(InferenceEngine):
    def __init__(self, context_size_cap: int = 8192, n_gpu_layers: int = -1):
        self.context_size_cap = context_size_cap
        self.n_gpu_layers = n_gpu_layers
        self.context_lock = threading.Lock()
        self.stop_token_ids: Set[int] = set()
        self._llm: Optional[Llama] = None

    @property
    def llm(self) -> Llama:
        if self._llm is None:
            raise ModelNotReadyError("Model not loaded. Call ensure_ready first.")
        return self._llm

    @property
    def is_loaded(self) -> bool:
        return self._llm is not None

    @property
    def context_size(self) -> int:
        if self._llm is None:
            return self.context_size_cap
        return self._llm.n_ctx()

    def load(self, model_path: str) -> None:
        if self._llm is not None:
            return
        logger.info("Loading model from %s (n_ctx=%d)", model_path, self.context_size_cap)
        self._llm = Llama(
            model_path=model_path,
            n_ctx=self.context_size_cap,
            n_gpu_layers=self.n_gpu_layers,
            verbose=False,
        )
        self.stop_token_ids = {self._llm.token_eos()}
        for text in STOP_TOKENS:
            ids = self._llm.tokenize(text.encode("utf-8"), add_bos=False, special=True)
            if len(ids) == 1:
                self.stop_token_ids.add(ids[0])
        logger.info("Model loaded (ctx=%d, stop tokens=%s)", self._llm.n_ctx(), sorted(self.stop_token_ids))

    def tokenize(self, text: str) -> List[int]:
        return self.llm.tokenize(text.encode("utf-8"), add_bos=False, special=True)

    def detokenize(self, tokens: Sequence[int]) -> str:
        raw = self.llm.detokenize(list(tokens), special=True)
        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError as e:
            # usually a multi-byte character split across tokens
            raise DetokenizationError(str(e)) from e

    def create_sequence(self) -> GenerationSequence:
        if self._llm is None:
            raise ModelNotReadyError("Model not loaded. Call ensure_ready first.")
        return LlamaCppSequence(self)

    def close(self) -> None:
        if self._llm is not None:
            self._llm.close()
            self._llm = None
