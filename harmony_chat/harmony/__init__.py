# Harmony protocol layer: validation, prompt encoding and response parsing.

from .types import Message, ParsedResponse, ReasoningMode, SamplerParams
from .validation import validate_messages, validate_sampler_params
from .prompts import encode_prompt
from .parser import parse_response

__all__ = [
    "Message",
    "ParsedResponse",
    "ReasoningMode",
    "SamplerParams",
    "validate_messages",
    "validate_sampler_params",
    "encode_prompt",
    "parse_response",
]
