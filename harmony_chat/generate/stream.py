# =============================================================
# stream.py
# -------------------------------------------------------------
# One generation pass:
#   - tokenize the prompt once, take a sequence from the pool
#   - pull token ids one by one (off the event loop, raced against cancel)
#   - re-detokenize the whole buffer each step and yield the new text
#   - stop on <|end|>, on the token cap, on cancel, or when the model stops
# The sequence goes back to the pool on every exit path.
# =============================================================

from __future__ import annotations
import asyncio
import logging
from typing import AsyncIterator, List, Optional

from harmony_chat.errors import DetokenizationError, GenerationError, HarmonyChatError
from harmony_chat.harmony.tokens import END, partial_marker_suffix
from .engine import InferenceEngine, SequencePool
from .types import MAX_TOKENS_REASON, STOPPED_REASON, SamplerConfig

logger = logging.getLogger(__name__)

END_OF_TURN_REASON = "end_of_turn"
EXHAUSTED_REASON = "exhausted"

_EXHAUSTED = object()
_CANCELLED = object()


def _engine_failure(e: Exception) -> GenerationError:
    return GenerationError(str(e) or e.__class__.__name__)


class CancelHandle:
    """Signalled by a stop request; a pass checks it between tokens."""

    def __init__(self):
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> None:
        await self._event.wait()


class GenerationPass:
    """
    State of a single pass over the model.

    `text` is the most recent successful detokenization of `tokens`;
    `previous_text` is the prefix of it already handed to the caller.
    After the pass, `stop_reason` is one of end_of_turn, exhausted,
    max_tokens or stopped.
    """

    def __init__(
        self,
        engine: InferenceEngine,
        pool: SequencePool,
        prompt: str,
        sampler: SamplerConfig,
        max_tokens: int,
        cancel: Optional[CancelHandle] = None,
        log_tokens: bool = False,
    ):
        self.engine = engine
        self.pool = pool
        self.prompt = prompt
        self.sampler = sampler
        self.max_tokens = max_tokens
        self.cancel = cancel or CancelHandle()
        self.log_tokens = log_tokens

        self.tokens: List[int] = []
        self.text = ""
        self.previous_text = ""
        self.stop_reason: Optional[str] = None

    @property
    def generated(self) -> int:
        return len(self.tokens)

    @property
    def hit_token_cap(self) -> bool:
        return self.stop_reason == MAX_TOKENS_REASON

    @property
    def was_cancelled(self) -> bool:
        return self.stop_reason == STOPPED_REASON

    # -------------------------
    # Delta extraction
    # -------------------------
    def _advance(self) -> tuple[str, bool]:
        """Return (delta to emit, end of turn reached) for the newest token."""
        try:
            full_text = self.engine.detokenize(self.tokens)
        except DetokenizationError as e:
            # the next successful step emits the skipped text
            logger.warning("Skipping undecodable step %d: %s", len(self.tokens), e)
            return "", False
        except HarmonyChatError:
            raise
        except Exception as e:
            raise _engine_failure(e) from e

        cut = full_text.find(END)
        if cut != -1:
            visible = full_text[:cut]
            remainder = visible[len(self.previous_text):]
            self.text = visible
            if remainder and END not in remainder:
                self.previous_text = visible
                return remainder, True
            return "", True

        self.text = full_text
        # "<|e" may be the start of the end marker; decide next step
        if partial_marker_suffix(full_text):
            return "", False

        delta = full_text[len(self.previous_text):]
        self.previous_text = full_text
        return delta, False

    def _flush(self) -> str:
        tail = self.text[len(self.previous_text):]
        self.previous_text = self.text
        return tail

    # -------------------------
    # Token pulling
    # -------------------------
    async def _next_token(self, pending: "asyncio.Future"):
        waiter = asyncio.ensure_future(self.cancel.wait())
        try:
            await asyncio.wait({pending, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            waiter.cancel()

        if self.cancel.cancelled:
            return _CANCELLED
        try:
            return pending.result()
        except HarmonyChatError:
            raise
        except Exception as e:
            raise _engine_failure(e) from e

    async def deltas(self) -> AsyncIterator[str]:
        try:
            prompt_tokens = self.engine.tokenize(self.prompt)
        except HarmonyChatError:
            raise
        except Exception as e:
            raise _engine_failure(e) from e
        logger.debug("Prompt tokens: %d", len(prompt_tokens))

        with self.pool.sequence() as seq:
            iterator = seq.generate(prompt_tokens, self.sampler)
            pending = None
            try:
                while True:
                    if self.cancel.cancelled:
                        self.stop_reason = STOPPED_REASON
                        return

                    pending = asyncio.ensure_future(asyncio.to_thread(next, iterator, _EXHAUSTED))
                    token = await self._next_token(pending)

                    if token is _CANCELLED:
                        self.stop_reason = STOPPED_REASON
                        return

                    if token is _EXHAUSTED:
                        tail = self._flush()
                        if tail:
                            yield tail
                        self.stop_reason = EXHAUSTED_REASON
                        return

                    self.tokens.append(token)
                    delta, end_of_turn = self._advance()
                    if self.log_tokens:
                        logger.debug("token=%s delta=%r", token, delta)

                    if delta:
                        yield delta
                    if end_of_turn:
                        logger.debug("End of turn after %d tokens", self.generated)
                        self.stop_reason = END_OF_TURN_REASON
                        return

                    if self.generated >= self.max_tokens:
                        tail = self._flush()
                        if tail:
                            yield tail
                        logger.info("Max tokens reached: %d", self.max_tokens)
                        self.stop_reason = MAX_TOKENS_REASON
                        return
            finally:
                await self._close(iterator, pending)

    async def _close(self, iterator, pending) -> None:
        if pending is not None and not pending.done():
            # the worker thread is still inside next(); give it one step to finish
            try:
                await asyncio.shield(pending)
            except asyncio.CancelledError:
                pending.add_done_callback(lambda _: iterator.close())
                raise
            except Exception:
                logger.debug("Pending token pull failed during shutdown", exc_info=True)
        iterator.close()
