"""Shared console helpers for the backend build.

Provides the Rich console used for all progress reporting, stage headers,
summary tables and duration formatting.
"""

from __future__ import annotations

from rich.console import Console
from rich.rule import Rule
from rich.table import Table

console = Console()


# ---------------------------------------------------------------------------
# Formatting helpers
# ---------------------------------------------------------------------------


def format_duration(seconds: float) -> str:
    """Render a stage or compile duration.

    Sub-minute values keep one decimal (``3.7s``); longer ones are split into
    whole units (``1m 5s``, ``1h 1m 1s``). Negative input renders as ``0.0s``.
    """
    seconds = max(seconds, 0.0)
    if seconds < 60:
        return f"{seconds:.1f}s"

    minutes, secs = divmod(int(seconds), 60)
    hours, minutes = divmod(minutes, 60)
    if hours:
        return f"{hours}h {minutes}m {secs}s"
    return f"{minutes}m {secs}s"


def truncate(text: str, limit: int = 300) -> str:
    """Shorten *text* to at most *limit* characters, marking the cut."""
    text = text.strip()
    if len(text) <= limit:
        return text
    return text[: limit - 3] + "..."


# ---------------------------------------------------------------------------
# Rich output helpers
# ---------------------------------------------------------------------------


STAGE_COLORS: dict[str, str] = {
    "clean": "bright_red",
    "stage": "bright_cyan",
    "link": "bright_green",
    "compile": "bright_yellow",
}


def print_stage_header(index: int, name: str) -> None:
    """Print a full-width rule announcing a build stage.

    Args:
        index: 1-based position of the stage in the sequence.
        name: Stage name (``clean``, ``stage``, ``link``, ``compile``).
    """
    color = STAGE_COLORS.get(name, "white")
    console.print(
        Rule(
            f"[bold {color}] Stage {index}: {name.upper()} [/bold {color}]",
            style=color,
        )
    )


def print_summary_table(data: dict[str, str], title: str = "Summary") -> None:
    """Print a two-column key/value summary table.

    Args:
        data: Mapping of label -> value.
        title: Table title.
    """
    table = Table(title=title, show_header=True, header_style="bold cyan")
    table.add_column("Item", style="dim", no_wrap=True)
    table.add_column("Value")

    for key, value in data.items():
        table.add_row(key, str(value))

    console.print(table)
    console.print()


_MESSAGE_STYLES: dict[str, tuple[str, str]] = {
    "success": ("bold green", "ok"),
    "error": ("bold red", "error"),
    "warning": ("bold yellow", "warn"),
}


def _print_message(kind: str, message: str) -> None:
    style, tag = _MESSAGE_STYLES[kind]
    console.print(f"[{style}]\\[{tag}][/{style}] {message}", highlight=False)


def print_success(message: str) -> None:
    _print_message("success", message)


def print_error(message: str) -> None:
    _print_message("error", message)


def print_warning(message: str) -> None:
    _print_message("warning", message)
