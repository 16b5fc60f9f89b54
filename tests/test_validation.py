# ===============================================
# tests/test_validation.py
# Message gate + sampler clamping
# ===============================================
import logging
import math

import pytest

from harmony_chat.errors import MessageValidationError
from harmony_chat.harmony.types import Message, SamplerParams
from harmony_chat.harmony.validation import (
    MAX_MESSAGE_LENGTH,
    sanitize_input,
    validate_messages,
    validate_sampler_params,
)


def test_accepts_a_plain_conversation():
    out = validate_messages([
        {"role": "system", "content": "Be helpful"},
        {"role": "user", "content": "Hi"},
        {"role": "assistant", "content": "Hello!"},
        {"role": "user", "content": "How are you?"},
    ])
    assert out[0] == Message(role="system", content="Be helpful")
    assert [m.role for m in out] == ["system", "user", "assistant", "user"]


@pytest.mark.parametrize("payload", [None, "hi", {"role": "user", "content": "hi"}, 42])
def test_rejects_non_list(payload):
    with pytest.raises(MessageValidationError, match="must be an array"):
        validate_messages(payload)


def test_rejects_empty_list():
    with pytest.raises(MessageValidationError, match="cannot be empty"):
        validate_messages([])


def test_rejects_more_than_100_messages():
    msgs = [{"role": "user" if i % 2 == 0 else "assistant", "content": "x"} for i in range(101)]
    with pytest.raises(MessageValidationError, match="Too many messages"):
        validate_messages(msgs)


def test_accepts_exactly_100_messages():
    msgs = [{"role": "user" if i % 2 == 0 else "assistant", "content": "x"} for i in range(100)]
    assert len(validate_messages(msgs)) == 100


@pytest.mark.parametrize("item, match", [
    ("hello", "not an object"),
    ({"role": "developer", "content": "x"}, "invalid role"),
    ({"content": "x"}, "invalid role"),
    ({"role": "user", "content": 5}, "must be a string"),
    ({"role": "user"}, "must be a string"),
    ({"role": "user", "content": ""}, "empty content"),
    ({"role": "user", "content": "\x00\x01\x7f"}, "empty content"),
])
def test_rejects_bad_elements(item, match):
    with pytest.raises(MessageValidationError, match=match):
        validate_messages([item])


def test_sanitize_strips_control_chars_but_keeps_newline_and_tab():
    assert sanitize_input("a\x00b\x07c\nd\te\x1b\x7f") == "abc\nd\te"


def test_sanitize_truncates_long_content():
    out = validate_messages([{"role": "user", "content": "y" * (MAX_MESSAGE_LENGTH + 50)}])
    assert len(out[0].content) == MAX_MESSAGE_LENGTH


def test_system_only_at_index_zero():
    with pytest.raises(MessageValidationError, match="System message must be the first"):
        validate_messages([
            {"role": "user", "content": "Hi"},
            {"role": "system", "content": "late"},
        ])


def test_consecutive_roles_rejected():
    with pytest.raises(MessageValidationError, match="Consecutive user messages at index 1"):
        validate_messages([
            {"role": "user", "content": "a"},
            {"role": "user", "content": "b"},
        ])


def test_tool_must_follow_assistant():
    with pytest.raises(MessageValidationError, match="Tool message at index 1"):
        validate_messages([
            {"role": "user", "content": "a"},
            {"role": "tool", "content": "result"},
        ])

    out = validate_messages([
        {"role": "user", "content": "a"},
        {"role": "assistant", "content": "calling"},
        {"role": "tool", "content": "result"},
    ])
    assert out[-1].role == "tool"


def test_last_message_advisory_is_only_a_warning(caplog):
    with caplog.at_level(logging.WARNING):
        out = validate_messages([
            {"role": "user", "content": "a"},
            {"role": "assistant", "content": "b"},
        ])
    assert len(out) == 2
    assert "Last message is not from user or tool" in caplog.text


def test_channel_kept_only_when_recognised():
    out = validate_messages([
        {"role": "user", "content": "a"},
        {"role": "assistant", "content": "b", "channel": "analysis"},
        {"role": "user", "content": "c", "channel": "bogus"},
    ])
    assert out[1].channel == "analysis"
    assert out[2].channel is None


# --- sampler params ---

def test_sampler_params_are_clamped():
    p = validate_sampler_params({"temperature": 5, "topP": -1, "repeatPenalty": 0, "maxTokens": 100000})
    assert p == SamplerParams(temperature=2.0, top_p=0.0, repeat_penalty=0.1, max_tokens=4096)


def test_sampler_params_in_range_pass_through():
    p = validate_sampler_params({"temperature": 0.7, "topP": 0.5, "repeatPenalty": 1.2, "maxTokens": 256.9})
    assert p == SamplerParams(temperature=0.7, top_p=0.5, repeat_penalty=1.2, max_tokens=256)


def test_max_tokens_floor_is_one():
    assert validate_sampler_params({"maxTokens": 0.5}).max_tokens == 1
    assert validate_sampler_params({"maxTokens": -20}).max_tokens == 1


@pytest.mark.parametrize("bad", ["0.5", None, True, [1], {"v": 1}, math.nan, math.inf])
def test_non_numeric_sampler_fields_are_dropped(bad):
    p = validate_sampler_params({"temperature": bad, "topP": bad, "repeatPenalty": bad, "maxTokens": bad})
    assert p == SamplerParams()


@pytest.mark.parametrize("payload", [None, "fast", 3, ["temperature", 1]])
def test_non_mapping_params_give_defaults(payload):
    assert validate_sampler_params(payload) == SamplerParams()


def test_unknown_sampler_fields_ignored():
    p = validate_sampler_params({"temperature": 1.0, "seed": 7, "reasoningMode": "high"})
    assert p == SamplerParams(temperature=1.0)


def test_huge_integers_are_clamped_not_rejected():
    p = validate_sampler_params({
        "temperature": 10**400,
        "topP": -(10**400),
        "repeatPenalty": 10**400,
        "maxTokens": 10**400,
    })
    assert p == SamplerParams(temperature=2.0, top_p=0.0, repeat_penalty=2.0, max_tokens=4096)
    assert validate_sampler_params({"maxTokens": -(10**400)}).max_tokens == 1
