"""Tests for the fluid-llm command line."""

from unittest.mock import AsyncMock, patch

import yaml
from click.testing import CliRunner
from rich.console import Console

from fluid_llm import cli
from fluid_llm.errors import ProtocolError
from fluid_llm.llm.client import AsyncLLMClient
from fluid_llm.types import LLMResponse, ToolCall


def _write_config(tmp_path):
    path = tmp_path / "fluid_llm.yaml"
    path.write_text(yaml.dump({
        "profiles": {
            "local": {"url": "http://localhost:1234/v1", "model": "qwen3-think"},
        },
    }))
    return str(path)


def _invoke(tmp_path, args, response=None, side_effect=None):
    runner = CliRunner()
    console = Console(width=200, force_terminal=False)
    with patch.object(AsyncLLMClient, "call", new_callable=AsyncMock) as mock_call, \
         patch.object(cli, "console", console):
        mock_call.return_value = response
        mock_call.side_effect = side_effect
        result = runner.invoke(cli.main, ["-c", _write_config(tmp_path), *args])
    return result, mock_call


class TestMain:
    def test_prints_non_streamed_response(self, tmp_path):
        result, mock_call = _invoke(
            tmp_path, ["hello"],
            response=LLMResponse(content="Hi there", thinking="greeting"),
        )
        assert result.exit_code == 0
        assert "Hi there" in result.output
        assert "greeting" in result.output

        request = mock_call.await_args.args[0]
        assert request.model == "qwen3-think"
        assert request.base_url == "http://localhost:1234/v1"
        assert request.messages == [{"role": "user", "content": "hello"}]
        assert request.streaming is True
        assert request.callbacks is not None

    def test_options_reach_request(self, tmp_path):
        result, mock_call = _invoke(
            tmp_path,
            ["-m", "other-model", "-s", "be brief", "--no-stream", "hello"],
            response=LLMResponse(content="ok"),
        )
        assert result.exit_code == 0
        request = mock_call.await_args.args[0]
        assert request.model == "other-model"
        assert request.streaming is False
        assert request.messages[0] == {"role": "system", "content": "be brief"}

    def test_hide_thinking(self, tmp_path):
        result, _ = _invoke(
            tmp_path, ["--hide-thinking", "hello"],
            response=LLMResponse(content="answer", thinking="secret reasoning"),
        )
        assert result.exit_code == 0
        assert "answer" in result.output
        assert "secret reasoning" not in result.output

    def test_tool_calls_printed(self, tmp_path):
        call = ToolCall(id="call_1", name="shell", arguments={"command": "ls"})
        result, _ = _invoke(
            tmp_path, ["list files"],
            response=LLMResponse(tool_calls=[call], finish_reason="tool_calls"),
        )
        assert result.exit_code == 0
        assert "shell" in result.output
        assert '"command": "ls"' in result.output

    def test_error_exits_nonzero(self, tmp_path):
        result, _ = _invoke(
            tmp_path, ["hello"], side_effect=ProtocolError(401, "unauthorized"),
        )
        assert result.exit_code == 1
        assert "HTTP 401: unauthorized" in result.output

    def test_error_body_with_brackets(self, tmp_path):
        result, _ = _invoke(
            tmp_path, ["hello"],
            side_effect=ProtocolError(400, '{"error": "[/bad] tag"}'),
        )
        assert result.exit_code == 1
        assert '[/bad] tag' in result.output
        assert "HTTP 400" in result.output

    def test_tool_arguments_with_brackets(self, tmp_path):
        call = ToolCall(id="call_1", name="write", arguments={"text": "[/b] done"})
        result, _ = _invoke(
            tmp_path, ["go"], response=LLMResponse(tool_calls=[call]),
        )
        assert result.exit_code == 0
        assert "[/b] done" in result.output

    def test_unknown_profile(self, tmp_path):
        result, mock_call = _invoke(tmp_path, ["-p", "missing", "hello"])
        assert result.exit_code == 1
        assert "Unknown profile: missing" in result.output
        mock_call.assert_not_awaited()


class TestStreamingDisplay:
    def _display(self, show_thinking=True):
        console = Console(record=True, width=200, force_terminal=False)
        return cli.StreamingDisplay(console, show_thinking=show_thinking), console

    def test_streamed_content_not_repeated(self):
        display, console = self._display()
        hooks = display.callbacks()
        hooks.on_thinking_start()
        hooks.on_thinking_chunk("pondering")
        hooks.on_thinking_end()
        hooks.on_content_chunk("Hello ")
        hooks.on_content_chunk("World")
        display.finish(LLMResponse(content="Hello World", thinking="pondering"))

        text = console.export_text()
        assert "Thinking..." in text
        assert text.count("pondering") == 1
        assert text.count("Hello World") == 1

    def test_hidden_thinking_not_rendered(self):
        display, console = self._display(show_thinking=False)
        hooks = display.callbacks()
        hooks.on_thinking_start()
        hooks.on_thinking_chunk("pondering")
        hooks.on_thinking_end()
        hooks.on_content_chunk("answer")
        display.finish(LLMResponse(content="answer", thinking="pondering"))

        text = console.export_text()
        assert "pondering" not in text
        assert "Thinking..." not in text
        assert "answer" in text

    def test_tool_call_start_announced(self):
        display, console = self._display()
        display.callbacks().on_tool_call_start("run_command")
        assert "Tool call: run_command" in console.export_text()

    def test_tool_name_with_brackets(self):
        display, console = self._display()
        display.callbacks().on_tool_call_start("[/odd]")
        assert "Tool call: [/odd]" in console.export_text()
