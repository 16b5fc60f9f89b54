# Generation package: engine boundary, token streaming and the two-pass orchestrator.

from .engine import GenerationSequence, InferenceEngine, SequencePool
from .stream import CancelHandle, GenerationPass
from .runtime import ModelRuntime
from .orchestrator import ContinuationOrchestrator, needs_continuation
from .types import DoneEvent, ErrorEvent, PhaseEvent, SamplerConfig, StreamEvent, TokenEvent
from .clients.echo_dev_client import EchoDevEngine

__all__ = [
    "GenerationSequence",
    "InferenceEngine",
    "SequencePool",
    "CancelHandle",
    "GenerationPass",
    "ModelRuntime",
    "ContinuationOrchestrator",
    "needs_continuation",
    "DoneEvent",
    "ErrorEvent",
    "PhaseEvent",
    "SamplerConfig",
    "StreamEvent",
    "TokenEvent",
    "EchoDevEngine",
]
