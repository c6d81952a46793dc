"""
Rich console utilities for dual-mode CLI output.

Provides terminal output for humans and structured JSON for scripts and
agents. All output functions adapt to the global output_mode setting.

This module provides:
- OutputMode: Class to manage output format (table/markdown/json) and quiet mode
- Context managers: spinner()
- Output functions: success(), error(), warning(), info()
- Display functions: print_results(), print_services_table(),
  print_cookie_summary(), print_login_instructions(), print_banner(),
  print_final_summary()

Human Mode (--format table / markdown):
    - Rich spinners, colored tables, panels
    - Markdown mode prints plain Markdown sections to stdout so it can be
      redirected into a file

Agent Mode (--format json):
    - Structured JSON output to stdout
    - No ANSI codes or spinners

Quiet Mode (--quiet):
    - Minimal output
    - Tab-separated values

Examples:
    >>> from multi_ai.utils.console import output_mode, spinner, success
    >>> output_mode.format = "table"
    >>> with spinner("Launching browser..."):
    ...     await manager.initialize()
    >>> success("Browser ready")
"""

from __future__ import annotations

import json
import sys
from collections.abc import Sequence
from contextlib import contextmanager
from typing import Any

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from ..models import PromptResult

OUTPUT_FORMATS = ("table", "json", "markdown")


class OutputMode:
    """
    Output mode configuration for dual-mode CLI.

    Attributes:
        format: "table" or "markdown" (human) or "json" (agent)
        quiet: If True, suppress non-essential output
        _json_buffer: Internal buffer for JSON output in agent mode

    Examples:
        >>> mode = OutputMode()
        >>> mode.is_human()
        True
        >>> mode.format = "json"
        >>> mode.is_agent()
        True
    """

    def __init__(self, format_type: str = "table", quiet: bool = False):
        """
        Initialize output mode.

        Args:
            format_type: One of "table", "markdown" or "json"
            quiet: If True, suppress non-essential output

        Raises:
            ValueError: If format_type is not a known format
        """
        if format_type not in OUTPUT_FORMATS:
            raise ValueError(
                f"Invalid format: {format_type}. Must be one of {', '.join(OUTPUT_FORMATS)}"
            )

        self.format = format_type
        self.quiet = quiet
        self._json_buffer: dict[str, Any] = {}

    def is_human(self) -> bool:
        """Return True for table and markdown output."""
        return self.format != "json"

    def is_agent(self) -> bool:
        """Return True for JSON output."""
        return self.format == "json"

    def add_json(self, key: str, value: Any) -> None:
        """
        Add key-value pair to JSON buffer.

        Used in agent mode to accumulate structured data before final
        output via flush_json().
        """
        self._json_buffer[key] = value

    def flush_json(self) -> None:
        """
        Output buffered JSON to stdout and clear buffer.

        Only outputs in agent mode. In human mode, this is a no-op.
        """
        if self.is_agent() and self._json_buffer:
            json.dump(self._json_buffer, sys.stdout, indent=2, ensure_ascii=False)
            sys.stdout.write("\n")
            sys.stdout.flush()
            self._json_buffer.clear()


# Global output mode instance (set by CLI flags)
output_mode = OutputMode()

# Global Rich console instances for human mode
console = Console()  # stdout
console_err = Console(stderr=True)  # stderr


@contextmanager
def spinner(message: str):
    """
    Context manager for showing a spinner during operations.

    Silent in agent/quiet modes. The spinner goes to stderr so Markdown
    output on stdout stays clean.

    Args:
        message: Status message to display
    """
    if output_mode.is_human() and not output_mode.quiet:
        with console_err.status(f"[bold blue]{message}", spinner="dots") as status:
            yield status
    else:
        yield None


def success(message: str) -> None:
    """
    Print a success message.

    Human mode: Green checkmark with message
    Agent mode: Buffer to JSON
    """
    if output_mode.is_human():
        if not output_mode.quiet:
            console_err.print(f"[green]✓[/green] {message}")
    elif output_mode.is_agent():
        output_mode.add_json("status", "success")
        output_mode.add_json("message", message)


def error(message: str) -> None:
    """
    Print an error message.

    Human mode: Red X with message to stderr
    Agent mode: Buffer to JSON
    """
    if output_mode.is_human():
        console_err.print(f"[red]✗[/red] {message}", style="red")
    elif output_mode.is_agent():
        output_mode.add_json("status", "error")
        output_mode.add_json("error", message)


def warning(message: str) -> None:
    """
    Print a warning message.

    Human mode: Yellow warning symbol with message
    Agent mode: Appended to the "warnings" list in the JSON buffer
    """
    if output_mode.is_human():
        console_err.print(f"[yellow]⚠[/yellow] {message}", style="yellow")
    elif output_mode.is_agent():
        warnings = output_mode._json_buffer.setdefault("warnings", [])
        warnings.append(message)


def info(message: str) -> None:
    """
    Print an info message.

    Human mode: Blue info symbol with message
    Agent/Quiet mode: Silent
    """
    if output_mode.is_human() and not output_mode.quiet:
        console_err.print(f"[blue]ℹ[/blue] {message}")


def truncate(text: str, max_length: int) -> str:
    """
    Shorten text for table cells.

    Args:
        text: Text to shorten
        max_length: Maximum length (0 disables truncation)

    Returns:
        str: ``text`` unchanged, or cut to ``max_length`` ending in "..."

    Examples:
        >>> truncate("abcdefghij", 8)
        'abcde...'
    """
    if max_length <= 0 or len(text) <= max_length:
        return text
    if max_length <= 3:
        return text[:max_length]
    return text[: max_length - 3] + "..."


def _status_markup(status: str) -> str:
    if status == "success":
        return "[green]success[/green]"
    if status == "timeout":
        return "[yellow]timeout[/yellow]"
    return f"[red]{status}[/red]"


def print_results(
    results: Sequence[PromptResult],
    labels: dict[str, str] | None = None,
    *,
    max_content_length: int = 500,
    include_timestamp: bool = True,
    include_response_time: bool = True,
) -> None:
    """
    Render prompt results in the current output format.

    Table: one row per service with colored status and truncated content.
    Markdown: one "## Service" section per result with the full reply.
    JSON: results buffered under "results" (flushed by print_final_summary).
    Quiet: tab-separated service, status, time and first content line.

    Args:
        results: Results in dispatch order
        labels: service_name → display name
        max_content_length: Table cell limit (0 for unlimited)
        include_timestamp: Show completion timestamps
        include_response_time: Show response times
    """
    labels = labels or {}

    if output_mode.is_agent():
        output_mode.add_json("results", [r.to_dict() for r in results])
        return

    if output_mode.quiet:
        for r in results:
            first_line = (r.content or r.error or "").splitlines()[:1]
            print(
                f"{r.service_name}\t{r.status.value}\t{r.response_time_ms}\t"
                f"{first_line[0] if first_line else ''}"
            )
        return

    if output_mode.format == "markdown":
        _print_markdown(results, labels, include_timestamp, include_response_time)
        return

    table = Table(title="Responses", box=box.ROUNDED, show_lines=True)
    table.add_column("Service", style="cyan", no_wrap=True)
    table.add_column("Status", justify="center")
    if include_response_time:
        table.add_column("Time", justify="right", style="magenta")
    table.add_column("Response", overflow="fold")
    if include_timestamp:
        table.add_column("Completed (UTC)", style="dim")

    for r in results:
        body = r.content if r.ok else f"[red]{r.error or ''}[/red]"
        if r.ok:
            body = truncate(body, max_content_length)
        row = [labels.get(r.service_name, r.service_name), _status_markup(r.status.value)]
        if include_response_time:
            row.append(f"{r.response_time_ms / 1000:.1f}s")
        row.append(body)
        if include_timestamp:
            row.append(r.timestamp_utc)
        table.add_row(*row)

    console.print(table)


def _print_markdown(
    results: Sequence[PromptResult],
    labels: dict[str, str],
    include_timestamp: bool,
    include_response_time: bool,
) -> None:
    sections = []
    for r in results:
        lines = [f"## {labels.get(r.service_name, r.service_name)}", ""]
        meta = [f"**Status:** {r.status.value}"]
        if include_response_time:
            meta.append(f"**Time:** {r.response_time_ms}ms")
        if include_timestamp:
            meta.append(f"**Completed:** {r.timestamp_utc}")
        lines.append(" | ".join(meta))
        lines.append("")
        lines.append(r.content if r.ok else f"> Error: {r.error}")
        sections.append("\n".join(lines))

    print("\n\n".join(sections))


def print_login_instructions(services: Sequence[str]) -> None:
    """
    Explain interactive login for services that have no stored cookies.

    Human mode only; agent mode records the list under "login_required".
    """
    if not services:
        return

    if output_mode.is_agent():
        output_mode.add_json("login_required", list(services))
        return

    if output_mode.quiet:
        return

    text = (
        f"No cookies stored for: [bold]{', '.join(services)}[/bold]\n\n"
        "A browser window will open for each of these services.\n"
        "Log in there; the prompt is sent automatically once the chat is ready.\n\n"
        "To skip this next time, export cookies from a logged-in browser and run:\n"
        "  [cyan]multi-ai cookies import <file> --service <name>[/cyan]"
    )
    console_err.print(
        Panel(text, title="[bold yellow]Login required[/bold yellow]", box=box.ROUNDED)
    )


def print_services_table(rows: Sequence[dict]) -> None:
    """
    Print available services.

    Expected dict keys: name, display_name, url, cookies (int), default (bool)
    """
    if output_mode.is_agent():
        output_mode.add_json("services", list(rows))
        output_mode.flush_json()
        return

    if output_mode.quiet:
        for row in rows:
            print(f"{row['name']}\t{row['url']}\t{row['cookies']}")
        return

    table = Table(title="Available Services", box=box.ROUNDED)
    table.add_column("Service", style="cyan", no_wrap=True)
    table.add_column("Name")
    table.add_column("URL", style="blue")
    table.add_column("Cookies", justify="center")
    table.add_column("Default", justify="center")

    for row in rows:
        cookie_cell = (
            f"[green]✓ {row['cookies']}[/green]" if row["cookies"] else "[dim]-[/dim]"
        )
        table.add_row(
            row["name"],
            row["display_name"],
            row["url"],
            cookie_cell,
            "[green]✓[/green]" if row.get("default") else "",
        )

    console.print(table)


def print_cookie_summary(rows: Sequence[dict]) -> None:
    """
    Print stored cookie counts per service.

    Expected dict keys: service, count, last_updated
    """
    if output_mode.is_agent():
        output_mode.add_json("cookies", list(rows))
        output_mode.flush_json()
        return

    if output_mode.quiet:
        for row in rows:
            print(f"{row['service']}\t{row['count']}\t{row['last_updated']}")
        return

    if not rows:
        info("No cookies stored")
        return

    table = Table(title="Stored Cookies", box=box.ROUNDED)
    table.add_column("Service", style="cyan", no_wrap=True)
    table.add_column("Cookies", justify="right")
    table.add_column("Last Updated (UTC)", style="dim")
    for row in rows:
        table.add_row(row["service"], str(row["count"]), row["last_updated"])

    console.print(table)


def print_banner(version: str) -> None:
    """
    Print a startup banner.

    Silent in agent/quiet modes and for Markdown output.
    """
    if output_mode.format != "table" or output_mode.quiet:
        return

    banner = f"""
[bold cyan]╔{"═" * 39}╗
║   multi-ai v{version:<26}║
║   One prompt, every AI chat service   ║
╚{"═" * 39}╝[/bold cyan]
"""

    console_err.print(banner)


def print_final_summary(successful: int, total: int, elapsed_ms: int) -> None:
    """
    Print final summary with batch statistics.

    Human mode: Rich panel with colored border (green if all succeeded)
    Agent mode: Flush all buffered JSON including these final stats
    Quiet mode: Tab-separated values

    Args:
        successful: Number of services that answered
        total: Number of services prompted
        elapsed_ms: Wall-clock time for the whole batch
    """
    if output_mode.is_agent():
        output_mode.add_json(
            "summary",
            {"successful": successful, "total": total, "elapsed_ms": elapsed_ms},
        )
        output_mode.flush_json()
        return

    if output_mode.quiet:
        print(f"{successful}\t{total}\t{elapsed_ms}")
        return

    summary_text = (
        f"[bold]Services:[/bold] {successful}/{total} answered\n"
        f"[bold]Elapsed:[/bold] {elapsed_ms / 1000:.1f}s"
    )

    if successful == total:
        border_style = "green"
        title = "[bold green]✓ All services answered[/bold green]"
    elif successful > 0:
        border_style = "yellow"
        title = "[bold yellow]⚠ Completed with partial failures[/bold yellow]"
    else:
        border_style = "red"
        title = "[bold red]✗ No service answered[/bold red]"

    console_err.print(
        Panel(summary_text, title=title, border_style=border_style, box=box.ROUNDED)
    )
