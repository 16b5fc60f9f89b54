# ===============================================
# tests/test_prompts.py
# Harmony prompt encoding
# ===============================================
from harmony_chat.harmony.prompts import FINAL_CHANNEL_DIRECTIVE, encode_prompt
from harmony_chat.harmony.types import Message, ReasoningMode


def _conversation():
    return [
        Message(role="system", content="Be helpful"),
        Message(role="user", content="Hi"),
    ]


def test_low_mode_prompt_opens_final_channel():
    prompt = encode_prompt(_conversation(), ReasoningMode.LOW)
    assert prompt == (
        "<|start|>system<|message|>\nReasoning: low\nBe helpful\n<|end|>\n\n"
        "<|start|>user<|message|>\nHi\n<|end|>\n\n"
        "<|start|>assistant<|channel|>final<|message|>"
    )


def test_reasoning_mode_adds_directive_and_opens_analysis():
    prompt = encode_prompt(_conversation(), ReasoningMode.HIGH)
    assert prompt.startswith("<|start|>system<|message|>\nReasoning: high\n" + FINAL_CHANNEL_DIRECTIVE + "Be helpful\n<|end|>")
    assert prompt.endswith("<|start|>assistant<|channel|>analysis<|message|>")


def test_medium_and_high_only_differ_in_directive_value():
    medium = encode_prompt(_conversation(), ReasoningMode.MEDIUM)
    high = encode_prompt(_conversation(), ReasoningMode.HIGH)
    assert medium.replace("Reasoning: medium", "Reasoning: high") == high


def test_encoding_is_deterministic():
    msgs = _conversation() + [
        Message(role="assistant", content="Hello", channel="final"),
        Message(role="user", content="Again"),
    ]
    for mode in ReasoningMode:
        assert encode_prompt(msgs, mode) == encode_prompt(list(msgs), mode)


def test_without_system_message_no_system_turn():
    prompt = encode_prompt([Message(role="user", content="Hi")], ReasoningMode.MEDIUM)
    assert "<|start|>system" not in prompt
    assert "Reasoning:" not in prompt
    assert prompt.startswith("<|start|>user<|message|>\nHi\n<|end|>\n\n")


def test_assistant_channel_is_tagged():
    prompt = encode_prompt([
        Message(role="user", content="Q"),
        Message(role="assistant", content="thinking", channel="analysis"),
        Message(role="assistant", content="plain"),
    ])
    assert "<|start|>assistant<|channel|>analysis<|message|>\nthinking\n<|end|>\n\n" in prompt
    assert "<|start|>assistant<|message|>\nplain\n<|end|>\n\n" in prompt


def test_tool_turn_rendered_in_order():
    prompt = encode_prompt([
        Message(role="user", content="Q"),
        Message(role="assistant", content="call"),
        Message(role="tool", content="42"),
    ])
    assert prompt.index("<|start|>assistant<|message|>\ncall") < prompt.index("<|start|>tool<|message|>\n42\n<|end|>")


def test_only_first_system_message_is_honoured():
    prompt = encode_prompt([
        Message(role="system", content="first"),
        Message(role="user", content="Hi"),
        Message(role="system", content="second"),
    ])
    assert "first" in prompt
    assert "second" not in prompt
