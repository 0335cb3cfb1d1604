"""Command line front end: send one prompt and stream the answer."""

from __future__ import annotations

import asyncio
import json
import logging
import sys

import click
from rich.console import Console
from rich.markup import escape

from fluid_llm.config import load_config
from fluid_llm.errors import LLMError
from fluid_llm.llm.client import AsyncLLMClient
from fluid_llm.llm.request import RequestConfig
from fluid_llm.types import LLMResponse, StreamCallbacks

console = Console()


class StreamingDisplay:
    """Render streamed fragments: thinking dimmed, content plain."""

    def __init__(self, console: Console, show_thinking: bool = True) -> None:
        self.console = console
        self.show_thinking = show_thinking
        self.streamed_content = False

    def callbacks(self) -> StreamCallbacks:
        return StreamCallbacks(
            on_thinking_start=self.thinking_start,
            on_thinking_chunk=self.thinking_chunk,
            on_thinking_end=self.thinking_end,
            on_content_chunk=self.content_chunk,
            on_tool_call_start=self.tool_call_start,
        )

    def thinking_start(self) -> None:
        if self.show_thinking:
            self.console.print("[dim]Thinking...[/dim]")

    def thinking_chunk(self, text: str) -> None:
        if self.show_thinking:
            self.console.print(text, style="dim", end="", markup=False, highlight=False)

    def thinking_end(self) -> None:
        if self.show_thinking:
            self.console.print()

    def content_chunk(self, text: str) -> None:
        self.streamed_content = True
        self.console.print(text, end="", markup=False, highlight=False)

    def tool_call_start(self, name: str) -> None:
        self.console.print(f"\n[yellow]Tool call: {escape(name)}[/yellow]")

    def finish(self, response: LLMResponse) -> None:
        if self.streamed_content:
            self.console.print()
        else:
            if response.thinking and self.show_thinking:
                self.console.print(response.thinking, style="dim", markup=False)
            if response.content:
                self.console.print(response.content, markup=False)
        for call in response.tool_calls or []:
            self.console.print(
                f"[yellow]{escape(call.name)}[/yellow] ({escape(call.id)}) "
                f"{escape(json.dumps(call.arguments, ensure_ascii=False))}",
                highlight=False,
            )


async def _run(request: RequestConfig, timeout: float) -> LLMResponse:
    async with AsyncLLMClient(timeout) as client:
        return await client.call(request)


@click.command()
@click.argument("prompt")
@click.option("--config", "-c", "config_path", default=None,
              help="Path to fluid_llm.yaml (auto-detected from CWD or ~/.config/fluid-llm/)")
@click.option("--profile", "-p", default=None, help="Provider profile name")
@click.option("--model", "-m", default=None, help="Override the profile's model")
@click.option("--system", "-s", "system_prompt", default=None, help="System prompt")
@click.option("--no-stream", is_flag=True, help="Wait for the complete response")
@click.option("--hide-thinking", is_flag=True, help="Do not print reasoning text")
@click.option("--verbose", "-v", is_flag=True, help="Verbose logging")
def main(prompt: str, config_path: str | None, profile: str | None,
         model: str | None, system_prompt: str | None, no_stream: bool,
         hide_thinking: bool, verbose: bool):
    """fluid-llm - send PROMPT to a chat-completion API."""
    if verbose:
        logging.basicConfig(level=logging.DEBUG)
    else:
        logging.basicConfig(level=logging.WARNING)

    config = load_config(config_path)
    if profile:
        if profile not in config.profiles:
            console.print(f"[red]Unknown profile: {escape(profile)}[/red]")
            sys.exit(1)
        config.profile = profile

    messages = []
    if system_prompt:
        messages.append({"role": "system", "content": system_prompt})
    messages.append({"role": "user", "content": prompt})

    display = StreamingDisplay(console, show_thinking=not hide_thinking)
    overrides = {"callbacks": display.callbacks()}
    if model:
        overrides["model"] = model
    if no_stream:
        overrides["streaming"] = False
    request = config.request_for(messages, **overrides)

    try:
        response = asyncio.run(_run(request, config.timeout))
    except LLMError as e:
        console.print(f"\n[red]Error: {escape(str(e))}[/red]")
        sys.exit(1)
    display.finish(response)


if __name__ == "__main__":
    main()
