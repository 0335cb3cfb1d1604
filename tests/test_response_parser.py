"""Tests for thinking extraction and tool-call assembly."""

from __future__ import annotations

from fluid_llm.llm.response_parser import (
    ToolCallAccumulator,
    ToolCallAssembler,
    parse_message_tool_calls,
    strip_thinking_tags,
)


def _fragment(index=0, id=None, name=None, arguments=None) -> dict:
    function = {}
    if name is not None:
        function["name"] = name
    if arguments is not None:
        function["arguments"] = arguments
    fragment = {"index": index, "function": function}
    if id is not None:
        fragment["id"] = id
    return fragment


# ---------------------------------------------------------------------------
# strip_thinking_tags
# ---------------------------------------------------------------------------

class TestStripThinkingTags:
    def test_orphan_closing_tag(self):
        assert strip_thinking_tags("Thinking text</think>Hello!") == (
            "Thinking text", "Hello!",
        )

    def test_paired_tags(self):
        assert strip_thinking_tags("<think>Let me see.</think>\nThe answer is 42.") == (
            "Let me see.", "The answer is 42.",
        )

    def test_thinking_variant(self):
        assert strip_thinking_tags("<thinking>\nhmm\n</thinking>ok") == ("hmm", "ok")

    def test_multiple_spans(self):
        thinking, content = strip_thinking_tags(
            "<think>one</think>A <think>two</think>B",
        )
        assert thinking == "one\ntwo"
        assert content == "A B"

    def test_paired_then_orphan(self):
        assert strip_thinking_tags("<think>a</think>b</think>c") == ("a\nb", "c")

    def test_stray_open_tag_removed(self):
        assert strip_thinking_tags("Answer <think>") == ("", "Answer")

    def test_no_tags(self):
        assert strip_thinking_tags("  plain  ") == ("", "plain")

    def test_empty_result_falls_back_to_original(self):
        assert strip_thinking_tags("<think></think>") == ("", "<think></think>")
        assert strip_thinking_tags("") == ("", "")

    def test_thinking_only(self):
        assert strip_thinking_tags("<think>only this</think>") == ("only this", "")


# ---------------------------------------------------------------------------
# Streaming assembly
# ---------------------------------------------------------------------------

class TestToolCallAccumulator:
    def test_first_id_and_name_win(self):
        acc = ToolCallAccumulator()
        assert acc.feed(_fragment(id="call_1", name="shell", arguments='{"a"')) == "shell"
        assert acc.feed(_fragment(id="call_2", name="other", arguments=": 1}")) is None
        assert acc.id == "call_1"
        assert acc.name == "shell"
        assert acc.arguments_text == '{"a": 1}'

    def test_to_tool_call(self):
        acc = ToolCallAccumulator(id="call_9", name="read", arguments_text='{"path": "x"}')
        call = acc.to_tool_call()
        assert call.id == "call_9"
        assert call.name == "read"
        assert call.arguments == {"path": "x"}

    def test_missing_name(self):
        assert ToolCallAccumulator(arguments_text="{}").to_tool_call() is None

    def test_bad_arguments(self):
        assert ToolCallAccumulator(name="t", arguments_text="{oops").to_tool_call() is None
        assert ToolCallAccumulator(name="t", arguments_text="[1]").to_tool_call() is None
        assert ToolCallAccumulator(name="t", arguments_text="").to_tool_call() is None


class TestToolCallAssembler:
    def test_fragments_across_deltas(self):
        asm = ToolCallAssembler()
        assert asm.feed({"tool_calls": [_fragment(id="call_x", name="shell")]}) == ["shell"]
        assert asm.feed({"tool_calls": [_fragment(arguments='{"comma')]}) == []
        assert asm.feed({"tool_calls": [_fragment(arguments='nd": "ls"}')]}) == []
        calls = asm.finalize()
        assert len(calls) == 1
        assert calls[0].id == "call_x"
        assert calls[0].name == "shell"
        assert calls[0].arguments == {"command": "ls"}

    def test_generated_id(self):
        asm = ToolCallAssembler()
        asm.feed({"tool_calls": [{"function": {"name": "f", "arguments": "{}"}}]})
        call = asm.finalize()[0]
        assert call.id.startswith("call_")
        assert len(call.id) == len("call_") + 8

    def test_parallel_indices(self):
        asm = ToolCallAssembler()
        asm.feed({"tool_calls": [
            _fragment(index=1, name="b", arguments='{"n": 2}'),
            _fragment(index=0, name="a", arguments='{"n": 1}'),
        ]})
        assert [c.name for c in asm.finalize()] == ["a", "b"]

    def test_unparsable_call_dropped(self):
        asm = ToolCallAssembler()
        asm.feed({"tool_calls": [_fragment(name="broken", arguments="not json")]})
        assert asm.has_calls()
        assert asm.finalize() == []

    def test_delta_without_tool_calls(self):
        asm = ToolCallAssembler()
        assert asm.feed({"content": "hello"}) == []
        assert asm.feed({"tool_calls": None}) == []
        assert not asm.has_calls()


# ---------------------------------------------------------------------------
# Non-streaming tool calls
# ---------------------------------------------------------------------------

class TestParseMessageToolCalls:
    def test_bad_entry_dropped(self):
        calls = parse_message_tool_calls([
            {"id": "call_a", "function": {"name": "good", "arguments": '{"k": "v"}'}},
            {"id": "call_b", "function": {"name": "bad", "arguments": "{nope"}},
            {"id": "call_c", "function": {"arguments": "{}"}},
            "garbage",
        ])
        assert [(c.id, c.name, c.arguments) for c in calls] == [
            ("call_a", "good", {"k": "v"}),
        ]

    def test_object_arguments_accepted(self):
        calls = parse_message_tool_calls([
            {"function": {"name": "pwd", "arguments": {"dir": "/"}}},
        ])
        assert calls[0].arguments == {"dir": "/"}
        assert calls[0].id.startswith("call_")

    def test_not_a_list(self):
        assert parse_message_tool_calls(None) == []
        assert parse_message_tool_calls({"x": 1}) == []
