#!/usr/bin/env python3
"""main.py

Entry point for the research assistant.
Provides an interactive CLI using the Rich library; ``main.py serve`` starts
the HTTP API instead.
"""

from __future__ import annotations

# Standard Library
import dataclasses
import json
import logging
import sys
from typing import Any, NoReturn

# Third-Party Libraries
from dotenv import load_dotenv
from rich.panel import Panel
from rich.theme import Theme
from rich.prompt import Prompt
from rich.console import Console
from rich.markdown import Markdown

# Local Modules
from research_assistant.config import AssistantSettings
from research_assistant.errors import PipelineError
from research_assistant.models import QueryMode
from research_assistant.pipeline import AnswerPipeline, build_pipeline, build_query

# Load environment variables from .env file
load_dotenv()

custom_theme = Theme(
    {
        "info": "cyan",
        "warning": "yellow",
        "error": "bold red",
        "success": "bold green",
        "user": "bold blue",
        "assistant": "green",
    }
)
console = Console(theme=custom_theme)

TOGGLES: dict[str, str] = {
    "/rag": "use_rag",
    "/tool": "use_tool",
    "/reason": "use_reasoning",
    "/debug": "debug",
}


@dataclasses.dataclass(slots=True)
class ReplState:
    """Switches applied to every question typed at the prompt."""

    mode: QueryMode = QueryMode.AUTO
    use_rag: bool = False
    use_tool: bool = False
    use_reasoning: bool = False
    debug: bool = False

    def describe(self) -> str:
        enabled = [name for name in ("use_rag", "use_tool", "use_reasoning", "debug") if getattr(self, name)]
        return f"mode={self.mode} flags={', '.join(enabled) or 'none'}"


def display_help() -> None:
    """Display available commands and usage information."""
    help_text = """
**Available Commands:**

- `/help` - Show this help message
- `/mode <auto|zero-shot|one-shot|few-shot>` - Set the prompt mode
- `/rag` - Toggle answering from the document index
- `/tool` - Toggle web search routing
- `/reason` - Toggle step-by-step reasoning before the answer
- `/debug` - Toggle raw model output on errors
- `/status` - Show the current mode and flags
- `/quit` or `/exit` - Exit
- Any other text - Ask a question
    """
    console.print(Panel(Markdown(help_text), title="Help", border_style="cyan"))


def handle_command(state: ReplState, command: str) -> str:
    """Apply a slash command to ``state``.

    Args:
        state: The REPL state, mutated in place.
        command: The raw command line, e.g. ``"/mode few-shot"``.

    Returns:
        A short confirmation message.

    Raises:
        ValueError: For an unknown command or mode.
    """
    name, _, argument = command.strip().partition(" ")
    name = name.lower()

    if name == "/mode":
        state.mode = QueryMode(argument.strip().lower() or "auto")
        return f"Mode set to {state.mode}"
    if name in TOGGLES:
        attr = TOGGLES[name]
        setattr(state, attr, not getattr(state, attr))
        return f"{attr} = {getattr(state, attr)}"
    if name == "/status":
        return state.describe()
    raise ValueError(f"Unknown command: {name}")


def render_envelope(envelope: dict[str, Any]) -> Panel:
    """Render a pipeline envelope as a Rich panel."""
    if "response" not in envelope:
        return Panel(
            json.dumps(envelope, indent=2, ensure_ascii=False),
            title=f"[bold red]{envelope.get('error', 'Error')}[/bold red]",
            border_style="red",
        )

    answer = envelope["response"]
    lines = [answer["summary"], ""]
    if answer["key_points"]:
        lines.append("**Key points:**")
        lines.extend(f"- {point}" for point in answer["key_points"])
        lines.append("")
    if answer["source_links"]:
        lines.append("**Sources:**")
        lines.extend(f"- {link}" for link in answer["source_links"])
    if "debug" in envelope:
        lines.extend(["", f"`{json.dumps(envelope['debug'])}`"])
    return Panel(
        Markdown("\n".join(lines)),
        title="[bold green]Answer[/bold green]",
        border_style="green",
    )


def ask(pipeline: AnswerPipeline, state: ReplState, text: str, settings: AssistantSettings) -> dict[str, Any]:
    """Run one question through the pipeline with the current REPL state."""
    try:
        query = build_query(
            text,
            mode=state.mode,
            use_rag=state.use_rag,
            use_tool=state.use_tool,
            use_reasoning=state.use_reasoning,
            debug=state.debug,
            defaults=settings.default_sampling(),
        )
    except PipelineError as exc:
        return exc.to_envelope()
    return pipeline.answer(query)


def repl() -> NoReturn:
    """Interactive question loop."""
    settings = AssistantSettings()
    console.print("Initializing research assistant...", style="info")
    console.print(f"Ollama host: {settings.ollama_host}", style="info")
    console.print(f"Model: {settings.ollama_model}\n", style="info")

    try:
        pipeline = build_pipeline(settings)
    except Exception as exc:
        console.print(f"Failed to initialize: {exc}", style="error")
        console.print(f"Try running: ollama pull {settings.ollama_model}\n", style="info")
        sys.exit(1)

    state = ReplState()
    console.print("Type [bold]/help[/bold] for commands, or ask a question.\n", style="info")

    while True:
        try:
            user_input = Prompt.ask("[bold blue]You[/bold blue]").strip()
            if not user_input:
                continue

            if user_input.lower() in ["/quit", "/exit"]:
                console.print("\nGoodbye!\n", style="success")
                sys.exit(0)
            if user_input.lower() == "/help":
                display_help()
                continue
            if user_input.startswith("/"):
                try:
                    console.print(handle_command(state, user_input) + "\n", style="success")
                except ValueError as exc:
                    console.print(f"{exc}\n", style="warning")
                continue

            console.print()
            with console.status("[bold green]Thinking...", spinner="dots"):
                envelope = ask(pipeline, state, user_input, settings)
            console.print(render_envelope(envelope))
            console.print()

        except KeyboardInterrupt:
            console.print("\n\nInterrupted. Goodbye!\n", style="warning")
            sys.exit(0)


def main() -> None:
    """Run the REPL, or the HTTP API when invoked as ``main.py serve``."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    if len(sys.argv) > 1 and sys.argv[1] == "serve":
        from research_assistant.api import run_api

        run_api()
        return
    repl()


if __name__ == "__main__":
    main()
