# Process-wide model handle: created once at startup and passed by reference.
# Owns the engine, the sequence pool, the generation defaults and the set of
# in-flight passes that a stop request cancels.

from __future__ import annotations
import asyncio
import logging
import os
from typing import Any, Dict, Optional, Set

import yaml

from harmony_chat.harmony.prompts import encode_prompt
from harmony_chat.harmony.types import Message, ReasoningMode, SamplerParams
from .engine import InferenceEngine, SequencePool
from .stream import CancelHandle, GenerationPass
from .types import SamplerConfig

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = os.path.join(os.path.dirname(__file__), "config.yaml")


def load_generation_config(path: str = DEFAULT_CONFIG_PATH) -> Dict[str, Any]:
    if not os.path.exists(path):
        return {}
    with open(path, "r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


class ModelRuntime:
    def __init__(
        self,
        engine: InferenceEngine,
        sequences: int = 4,
        config: Optional[Dict[str, Any]] = None,
        log_tokens: bool = False,
    ):
        self.engine = engine
        self.pool = SequencePool(engine, size=sequences)
        self.cfg = config if config is not None else load_generation_config()
        self.log_tokens = log_tokens

        self._active: Set[CancelHandle] = set()
        self._ready_lock = asyncio.Lock()
        self._warmed_up = False

    # -------------------------
    # Defaults
    # -------------------------
    @property
    def default_max_tokens(self) -> int:
        return int(self.cfg.get("max_tokens", 1024))

    def sampler_config(self, params: SamplerParams) -> SamplerConfig:
        return SamplerConfig(
            temperature=params.temperature if params.temperature is not None else float(self.cfg.get("temperature", 0.3)),
            top_p=params.top_p if params.top_p is not None else float(self.cfg.get("top_p", 0.9)),
            repeat_penalty=(
                params.repeat_penalty if params.repeat_penalty is not None
                else float(self.cfg.get("repeat_penalty", 1.1))
            ),
        )

    # -------------------------
    # Readiness
    # -------------------------
    def is_ready(self) -> bool:
        return self.engine.is_loaded

    @property
    def context_size(self) -> int:
        return self.engine.context_size

    async def ensure_ready(self, model_path: str) -> None:
        """Load the model and run warmup, each at most once per process."""
        if self.engine.is_loaded and self._warmed_up:
            return
        async with self._ready_lock:
            if not self.engine.is_loaded:
                logger.info("Loading model...")
                await asyncio.to_thread(self.engine.load, model_path)
            if not self._warmed_up:
                logger.info("Running warmup...")
                await self.warmup()
                self._warmed_up = True
                logger.info("Warmup complete")

    async def warmup(self) -> None:
        prompt = encode_prompt([Message(role="user", content="Hi")], ReasoningMode.LOW)
        generation = self.open_pass(prompt, SamplerParams(), int(self.cfg.get("warmup_tokens", 2)))
        try:
            async for _ in generation.deltas():
                pass
        finally:
            self.release_pass(generation)

    # -------------------------
    # Passes
    # -------------------------
    def track(self) -> CancelHandle:
        """Register a cancel handle that the next stop() will signal."""
        cancel = CancelHandle()
        self._active.add(cancel)
        return cancel

    def untrack(self, cancel: CancelHandle) -> None:
        self._active.discard(cancel)

    def open_pass(
        self,
        prompt: str,
        params: SamplerParams,
        max_tokens: int,
        cancel: Optional[CancelHandle] = None,
    ) -> GenerationPass:
        """Build a pass; without an explicit handle a tracked one is created."""
        return GenerationPass(
            engine=self.engine,
            pool=self.pool,
            prompt=prompt,
            sampler=self.sampler_config(params),
            max_tokens=max_tokens,
            cancel=cancel or self.track(),
            log_tokens=self.log_tokens,
        )

    def release_pass(self, generation: GenerationPass) -> None:
        self.untrack(generation.cancel)

    @property
    def active_passes(self) -> int:
        return len(self._active)

    def stop(self) -> None:
        """Cancel every in-flight pass. Events already emitted stay emitted."""
        logger.info("Stopping %d active generation(s)", len(self._active))
        for cancel in self._active:
            cancel.cancel()
        self._active.clear()

    def close(self) -> None:
        self.stop()
        self.engine.close()
