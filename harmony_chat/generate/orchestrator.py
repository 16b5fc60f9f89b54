# =============================================================
# orchestrator.py
# -------------------------------------------------------------
# Turns one validated request into one ordered event stream:
#   1) analysis pass (or a direct final pass in low mode)
#   2) parse what came back and decide whether a final answer is missing
#   3) if so, replay the analysis as an assistant turn and run a second
#      pass that opens directly in the final channel
# Both passes are sequential and share one cancel handle per request.
# =============================================================

from __future__ import annotations
import logging
from contextlib import aclosing
from typing import AsyncIterator, List, Optional, Sequence

from harmony_chat.errors import HarmonyChatError
from harmony_chat.harmony.parser import parse_response
from harmony_chat.harmony.prompts import encode_prompt
from harmony_chat.harmony.tokens import CHANNEL, END, MESSAGE, open_turn
from harmony_chat.harmony.types import Message, ParsedResponse, ReasoningMode, SamplerParams
from .runtime import ModelRuntime
from .stream import GenerationPass
from .types import (
    FINAL_ANSWER,
    MAX_TOKENS_REASON,
    REASONING_COMPLETE,
    STOPPED_REASON,
    DoneEvent,
    ErrorEvent,
    PhaseEvent,
    StreamEvent,
    TokenEvent,
)

logger = logging.getLogger(__name__)


def needs_continuation(parsed: ParsedResponse, full_response: str, mode: ReasoningMode) -> bool:
    """True when a reasoning-mode pass produced analysis but no final answer."""
    if mode is ReasoningMode.LOW:
        return False
    if parsed.reasoning and not parsed.final:
        return True
    return not parsed.has_channels and bool(full_response)


def build_continuation_messages(messages: Sequence[Message], full_response: str) -> List[Message]:
    """Original messages plus the analysis replayed as an assistant turn ending in an open final channel."""
    if CHANNEL in full_response:
        analysis = f"{full_response}{END}\n\n"
    else:
        analysis = f"{CHANNEL}analysis{MESSAGE}{full_response}{END}\n\n"
    content = analysis + open_turn("assistant", "final")
    return [*messages, Message(role="assistant", content=content)]


class ContinuationOrchestrator:
    def __init__(self, runtime: ModelRuntime):
        self.runtime = runtime

    async def _run_pass(self, generation: GenerationPass, budget: "_TokenBudget") -> AsyncIterator[str]:
        async with aclosing(generation.deltas()) as deltas:
            async for delta in deltas:
                yield delta
                if budget.spend():
                    return

    async def stream(
        self,
        messages: Sequence[Message],
        params: Optional[SamplerParams] = None,
        mode: ReasoningMode = ReasoningMode.LOW,
    ) -> AsyncIterator[StreamEvent]:
        """Main entry point: yields TokenEvent/PhaseEvent and ends with DoneEvent or ErrorEvent."""
        params = params or SamplerParams()
        base_max_tokens = params.max_tokens or self.runtime.default_max_tokens
        max_tokens = base_max_tokens * 2 if mode is not ReasoningMode.LOW else base_max_tokens
        budget = _TokenBudget(max_tokens)

        cancel = self.runtime.track()
        full_response = ""
        try:
            # --- 1) analysis pass ---
            first = self.runtime.open_pass(encode_prompt(messages, mode), params, max_tokens, cancel)
            async with aclosing(self._run_pass(first, budget)) as deltas:
                async for delta in deltas:
                    full_response += delta
                    yield TokenEvent(delta)

            if cancel.cancelled:
                yield DoneEvent(STOPPED_REASON)
                return
            # a capped analysis pass never gets a continuation
            if first.hit_token_cap or budget.exhausted:
                logger.info("Max tokens reached: %d", max_tokens)
                yield DoneEvent(MAX_TOKENS_REASON)
                return

            # --- 2) decision ---
            parsed = parse_response(full_response)
            logger.info(
                "First generation parsed: has_channels=%s has_analysis=%s has_final=%s",
                parsed.has_channels, bool(parsed.reasoning), bool(parsed.final),
            )

            hit_cap = False

            # --- 3) final-answer pass ---
            if needs_continuation(parsed, full_response, mode):
                logger.info("Need continuation for final response")
                yield PhaseEvent(REASONING_COMPLETE)
                continuation = build_continuation_messages(messages, full_response)
                yield PhaseEvent(FINAL_ANSWER)

                second = self.runtime.open_pass(
                    encode_prompt(continuation, ReasoningMode.LOW), params, base_max_tokens, cancel
                )
                async with aclosing(self._run_pass(second, budget)) as deltas:
                    async for delta in deltas:
                        full_response += delta
                        yield TokenEvent(delta)

                if cancel.cancelled:
                    yield DoneEvent(STOPPED_REASON)
                    return
                hit_cap = second.hit_token_cap or budget.exhausted

            logger.info("Generation complete. Total token events: %d", budget.spent)
            logger.debug("Full response: %r", full_response)
            yield DoneEvent(MAX_TOKENS_REASON if hit_cap else None)
        except HarmonyChatError as e:
            logger.error("Generation failed: %s", e)
            yield ErrorEvent(str(e))
        finally:
            self.runtime.untrack(cancel)


class _TokenBudget:
    """Token events counted across both passes against the outer cap."""

    def __init__(self, limit: int):
        self.limit = limit
        self.spent = 0

    @property
    def exhausted(self) -> bool:
        return self.spent >= self.limit

    def spend(self) -> bool:
        self.spent += 1
        return self.exhausted
