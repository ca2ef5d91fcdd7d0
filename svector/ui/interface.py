"""
interface.py - Rich/prompt_toolkit rendering for the svector CLI: panels,
model tables, streamed markdown with <think> blocks and the REPL prompt.
"""

import os
from typing import AsyncIterator, Iterable

from rich.console import Console, Group
from rich.live import Live
from rich.markdown import Markdown
from rich.panel import Panel
from rich.rule import Rule
from rich.spinner import Spinner
from rich.table import Table

from prompt_toolkit import PromptSession
from prompt_toolkit.history import FileHistory
from prompt_toolkit.styles import Style

CODE_THEME = "monokai"
HISTORY_FILE = os.path.join(os.path.expanduser("~"), ".svector_history")


def split_thinking(text: str):
    """Split ``<think>...</think>`` reasoning from the answer.

    Returns (thinking, answer, still_thinking).
    """
    if "<think>" not in text:
        return "", text.strip(), False
    if "</think>" in text:
        thinking, answer = text.split("</think>", 1)
        return thinking.replace("<think>", "").strip(), answer.strip(), False
    return text.replace("<think>", "").strip(), "", True


class UI:
    """Terminal rendering for the svector CLI"""

    def __init__(self, console: Console = None, history_file: str = HISTORY_FILE):
        self.console = console or Console()
        self.pt_style = Style.from_dict({
            'prompt': 'ansicyan bold',
        })
        self._history_file = history_file
        self._session = None

    @property
    def session(self) -> PromptSession:
        # Created on first use; only the repl needs a terminal prompt
        if self._session is None:
            self._session = PromptSession(history=FileHistory(self._history_file))
        return self._session

    def header(self, title: str, subtitle: str = None):
        self.console.print(Rule(f"[bold bright_cyan]{title}[/bold bright_cyan]", style="bright_blue"))
        if subtitle:
            self.console.print(f"[dim]{subtitle}[/]")

    def show_msg(self, title: str, content: str, color: str = "white"):
        self.console.print(Panel(content, title=f"[bold]{title}[/]", border_style=color, padding=(1, 2)))

    def show_error(self, error: Exception):
        title = "Error"
        kind = getattr(error, "kind", None)
        if kind is not None:
            title = f"Error: {kind.value}"
        lines = [str(error)]
        request_id = getattr(error, "request_id", None)
        if request_id:
            lines.append(f"[dim]request id: {request_id}[/]")
        self.show_msg(title, "\n".join(lines), color="red")

    def show_models(self, models: Iterable[str]):
        table = Table(show_header=True, header_style="bold magenta", border_style="dim white")
        table.add_column("#", style="cyan", justify="right", width=4)
        table.add_column("Model", style="bold bright_white")
        for idx, model in enumerate(models, 1):
            table.add_row(str(idx), str(model))
        self.console.print(table)

    def show_markdown(self, title: str, text: str):
        self.console.print(Rule(f"[bold bright_cyan]{title}[/bold bright_cyan]", style="bright_blue"))
        self.console.print(Markdown(text, code_theme=CODE_THEME))
        self.console.print(Rule(style="dim bright_blue"))

    async def get_input(self, label: str = "YOU") -> str:
        """Read one line. EOF (Ctrl-D) reads as ``/exit``."""
        self.console.print(f"[bold bright_cyan]◆ {label}[/]")
        try:
            return await self.session.prompt_async(
                [('class:prompt', ' ╰─> ')],
                style=self.pt_style,
            )
        except EOFError:
            return "/exit"

    async def stream_markdown(self, title: str, chunks: AsyncIterator[str]) -> str:
        """
        Render Markdown while text chunks arrive, then print the final answer.
        """
        full_response = ""

        self.console.print(Rule(f"[bold bright_cyan]{title}[/bold bright_cyan]", style="bright_blue"))

        with Live(
            Spinner("dots", text="Waiting for response...", style="bright_cyan"),
            console=self.console,
            refresh_per_second=15,
            transient=True
        ) as live:
            async for chunk in chunks:
                if not chunk:
                    continue
                full_response += chunk

                thinking, answer, still_thinking = split_thinking(full_response)
                ui_elements = []
                if thinking:
                    ui_elements.append(Panel(
                        thinking,
                        title="[italic dim bright_cyan]Thought Process[/]",
                        border_style="dim blue",
                        subtitle="[dim]Analyzing...[/]" if still_thinking else None,
                        padding=(0, 1)
                    ))
                if answer:
                    ui_elements.append(Markdown(answer, code_theme=CODE_THEME))

                if ui_elements:
                    live.update(Group(*ui_elements))
                else:
                    live.update(Spinner("dots", text="Generating response...", style="bright_cyan"))

        if not full_response:
            self.console.print("[bold red]✗ The stream ended without any content.[/]")

        thinking, answer, _ = split_thinking(full_response)
        if thinking:
            self.console.print(Panel(
                thinking,
                title="[bold bright_cyan]Thought Process[/]",
                border_style="bright_blue",
                style="dim",
                padding=(1, 2)
            ))
        self.console.print(Markdown(answer, code_theme=CODE_THEME))
        self.console.print(Rule(style="dim bright_blue"))

        return full_response
