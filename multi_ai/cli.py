"""
CLI entrypoint for multi-ai.

Provides a dual-mode command-line interface with:
- Human-friendly output: Rich spinners, tables, panels, colored text
- Agent-friendly output: Structured JSON for scripts and AI automation
- Quiet mode: Tab-separated minimal output for shell scripts

Commands:
    prompt: Send one prompt to several AI chat services in parallel
    list: Show available services and their cookie status
    config: Show, change or reset ~/.multi-ai/config.yaml
    cookies: Import, list or delete stored login cookies

Exit codes:
    0: Success - every service answered
    1: Configuration error (invalid YAML, unknown service, bad cookie file)
    2: Browser launch failure
    3: Partial failure (some services failed, but the batch completed)
    4: Complete failure (no service answered)

Examples:
    # Ask the default services (from config.yaml)
    multi-ai prompt "What is the capital of Australia?"

    # Pick services and render Markdown
    multi-ai prompt "Explain CRDTs" -s chatgpt,claude,gemini -f markdown > answers.md

    # JSON for automation, using imported cookies and no window
    multi-ai prompt "2+2?" -s chatgpt --headless -f json

Security:
    - Cookie values are never printed or logged
    - Errors may contain file paths but never cookie values
"""

import asyncio
import time
from pathlib import Path

import typer
import yaml
from rich.syntax import Syntax
from rich.traceback import install as install_rich_traceback

from multi_ai.browser.manager import BrowserManager
from multi_ai.config.loader import (
    default_config_path,
    load_config,
    reset_config,
    save_config,
    update_config_value,
)
from multi_ai.config.schema import MultiAIConfig
from multi_ai.cookies.store import CookieStore
from multi_ai.exceptions import (
    BrowserInitializationError,
    ConfigurationError,
    UnknownServiceError,
)
from multi_ai.models import CookieRecord, PromptResult
from multi_ai.services.agent import AgentTimings
from multi_ai.services.cancel import CancelToken
from multi_ai.services.descriptors import SERVICE_DESCRIPTORS, get_descriptor
from multi_ai.services.dispatcher import Dispatcher
from multi_ai.services.factory import build_agents
from multi_ai.utils.console import (
    OUTPUT_FORMATS,
    console,
    error,
    info,
    output_mode,
    print_banner,
    print_cookie_summary,
    print_final_summary,
    print_login_instructions,
    print_results,
    print_services_table,
    spinner,
    success,
    warning,
)
from multi_ai.utils.logging import setup_logging
from multi_ai.utils.time import elapsed_ms

# Install Rich tracebacks for better error messages
install_rich_traceback(show_locals=False)

# Exit codes
EXIT_SUCCESS = 0  # Every service answered
EXIT_CONFIG_ERROR = 1  # Config, service name or cookie file invalid
EXIT_BROWSER_ERROR = 2  # Browser could not be launched
EXIT_PARTIAL_FAILURE = 3  # Some services failed
EXIT_COMPLETE_FAILURE = 4  # No service answered
EXIT_INTERRUPTED = 130  # Ctrl+C

# Create Typer app
app = typer.Typer(
    name="multi-ai",
    help="Send one prompt to many AI chat services through a real browser",
    add_completion=False,
)


def _set_output(format: str | None, quiet: bool, verbose: bool, default: str) -> None:
    """Apply --format/--quiet/--verbose, exiting on an unknown format."""
    chosen = (format or default).lower()
    if chosen not in OUTPUT_FORMATS:
        output_mode.format = "table"
        error(
            f"Invalid format: {chosen}. Must be one of {', '.join(OUTPUT_FORMATS)}"
        )
        raise typer.Exit(EXIT_CONFIG_ERROR)

    output_mode.format = chosen
    output_mode.quiet = quiet

    # JSON log lines would interleave with Rich output in human mode
    setup_logging(verbose=verbose, quiet_logs=output_mode.is_human())


def _load_config_or_exit(config_path: Path | None) -> MultiAIConfig:
    try:
        return load_config(config_path)
    except ConfigurationError as e:
        error(f"Configuration error: {e}")
        output_mode.flush_json()
        raise typer.Exit(EXIT_CONFIG_ERROR)


def _resolve_services(services: str | None, config: MultiAIConfig) -> list[str]:
    """
    Turn the --services value (or the configured default) into names.

    Raises:
        UnknownServiceError: If any name has no descriptor
    """
    if services:
        names = [s.strip().lower() for s in services.split(",") if s.strip()]
    else:
        names = list(config.services)

    resolved = []
    for name in names:
        get_descriptor(name)
        if name not in resolved:
            resolved.append(name)
    return resolved


async def _run_prompt(
    text: str,
    service_names: list[str],
    cookies_by_service: dict[str, list[CookieRecord]],
    config: MultiAIConfig,
    timeout_ms: int,
) -> list[PromptResult]:
    """
    Launch the browser, run the batch and always close the browser.

    Raises:
        BrowserInitializationError: If the browser cannot be launched
    """
    timings = AgentTimings(
        login_timeout_s=config.login_timeout_s,
        login_poll_interval_s=config.login_poll_interval_s,
    )
    async with BrowserManager(config.browser) as manager:
        agents = build_agents(
            manager, service_names, cookies_by_service, timings=timings
        )
        dispatcher = Dispatcher(max_concurrent=config.max_concurrent)
        return await dispatcher.run(text, agents, timeout_ms, cancel=CancelToken())


@app.command()
def prompt(
    text: str = typer.Argument(..., help="Prompt to send to every service"),
    services: str = typer.Option(
        None,
        "--services",
        "-s",
        help="Comma-separated services (default: services from config.yaml)",
    ),
    format: str = typer.Option(
        None,
        "--format",
        "-f",
        help="Output format: 'table', 'markdown' or 'json' (default from config)",
    ),
    headless: bool = typer.Option(
        None,
        "--headless/--headed",
        help="Run the browser without a window (login requires --headed)",
    ),
    timeout: int = typer.Option(
        None,
        "--timeout",
        "-t",
        help="Per-service response timeout in milliseconds",
        min=1,
    ),
    config_path: Path = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to config.yaml (default: ~/.multi-ai/config.yaml)",
    ),
    cookies_path: Path = typer.Option(
        None,
        "--cookies",
        help="Path to the cookie store (default: ~/.multi-ai/cookies.json)",
    ),
    quiet: bool = typer.Option(
        False,
        "--quiet",
        "-q",
        help="Minimal output (tab-separated values)",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable debug logging",
    ),
):
    """
    Send one prompt to several AI chat services in parallel.

    Services without stored cookies open a browser window so you can log
    in; the prompt is sent once the chat is ready.

    Exit codes:
      0: Every service answered
      1: Configuration error
      2: Browser launch failure
      3: Partial failure (some services failed)
      4: Complete failure (no service answered)

    Examples:
      multi-ai prompt "What is 2+2?"
      multi-ai prompt "Summarize RFC 9110" -s claude,perplexity -f markdown
    """
    # Format default comes from config, so peek at it before logging is set up
    output_mode.format = "table"
    config = _load_config_or_exit(config_path)
    _set_output(format, quiet, verbose, default=config.output.format)

    print_banner(_read_version())

    if headless is not None:
        config = config.model_copy(
            update={"browser": config.browser.model_copy(update={"headless": headless})}
        )
    timeout_ms = timeout or config.response_timeout_ms

    try:
        service_names = _resolve_services(services, config)
    except UnknownServiceError as e:
        error(str(e))
        output_mode.flush_json()
        raise typer.Exit(EXIT_CONFIG_ERROR)

    if not service_names:
        error("No services selected")
        output_mode.flush_json()
        raise typer.Exit(EXIT_CONFIG_ERROR)

    try:
        cookies_by_service = CookieStore(cookies_path).cookies_for(service_names)
    except ConfigurationError as e:
        error(f"Cookie store error: {e}")
        output_mode.flush_json()
        raise typer.Exit(EXIT_CONFIG_ERROR)

    missing = [name for name in service_names if name not in cookies_by_service]
    if missing and config.browser.headless:
        warning(
            f"Headless mode cannot complete interactive login for: "
            f"{', '.join(missing)}. Import cookies or use --headed."
        )
    else:
        print_login_instructions(missing)

    info(
        f"Sending prompt to {len(service_names)} services: {', '.join(service_names)}"
    )

    start = time.monotonic()
    try:
        with spinner(f"Waiting for {len(service_names)} services..."):
            results = asyncio.run(
                _run_prompt(
                    text, service_names, cookies_by_service, config, timeout_ms
                )
            )
    except BrowserInitializationError as e:
        error(f"Browser launch failed: {e}")
        info("Install the browser with: playwright install chromium")
        output_mode.flush_json()
        raise typer.Exit(EXIT_BROWSER_ERROR)
    except KeyboardInterrupt:
        error("Interrupted")
        output_mode.flush_json()
        raise typer.Exit(EXIT_INTERRUPTED)

    labels = {name: SERVICE_DESCRIPTORS[name].label for name in service_names}
    print_results(
        results,
        labels,
        max_content_length=config.output.max_content_length,
        include_timestamp=config.output.include_timestamp,
        include_response_time=config.output.include_response_time,
    )

    successful = sum(1 for r in results if r.ok)
    print_final_summary(successful, len(results), elapsed_ms(start))

    if successful == 0:
        raise typer.Exit(EXIT_COMPLETE_FAILURE)
    if successful < len(results):
        raise typer.Exit(EXIT_PARTIAL_FAILURE)
    raise typer.Exit(EXIT_SUCCESS)


@app.command("list")
def list_services(
    format: str = typer.Option(
        "table", "--format", "-f", help="Output format: 'table' or 'json'"
    ),
    config_path: Path = typer.Option(None, "--config", "-c", help="Path to config.yaml"),
    cookies_path: Path = typer.Option(None, "--cookies", help="Path to the cookie store"),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Tab-separated output"),
):
    """
    List available services, their URLs and whether cookies are stored.
    """
    _set_output(format, quiet, verbose=False, default="table")
    config = _load_config_or_exit(config_path)

    try:
        counts = {row["service"]: row["count"] for row in CookieStore(cookies_path).summary()}
    except ConfigurationError as e:
        warning(f"Cookie store unreadable: {e}")
        counts = {}

    rows = [
        {
            "name": name,
            "display_name": descriptor.label,
            "url": descriptor.base_url,
            "cookies": counts.get(name, 0),
            "default": name in config.services,
        }
        for name, descriptor in SERVICE_DESCRIPTORS.items()
    ]
    print_services_table(rows)


# Create config command subapp
config_app = typer.Typer(help="Show or change configuration")
app.add_typer(config_app, name="config")


@config_app.command("show")
def config_show(
    format: str = typer.Option(
        "table", "--format", "-f", help="Output format: 'table' (YAML) or 'json'"
    ),
    config_path: Path = typer.Option(None, "--config", "-c", help="Path to config.yaml"),
):
    """
    Print the effective configuration (defaults merged with config.yaml).
    """
    _set_output(format, quiet=False, verbose=False, default="table")
    config = _load_config_or_exit(config_path)

    if output_mode.is_agent():
        output_mode.add_json("config", config.model_dump())
        output_mode.add_json("path", str(config_path or default_config_path()))
        output_mode.flush_json()
        return

    rendered = yaml.safe_dump(config.model_dump(), sort_keys=False)
    console.print(Syntax(rendered, "yaml", theme="ansi_dark", background_color="default"))


@config_app.command("set")
def config_set(
    key: str = typer.Argument(..., help="Dot-separated key, e.g. browser.headless"),
    value: str = typer.Argument(..., help="New value (parsed as YAML)"),
    config_path: Path = typer.Option(None, "--config", "-c", help="Path to config.yaml"),
):
    """
    Change one configuration value and save config.yaml.

    Examples:
      multi-ai config set browser.headless true
      multi-ai config set services chatgpt,claude
      multi-ai config set response_timeout_ms 90000
    """
    _set_output("table", quiet=False, verbose=False, default="table")
    config = _load_config_or_exit(config_path)

    try:
        updated = update_config_value(config, key, value)
        path = save_config(updated, config_path)
    except ConfigurationError as e:
        error(str(e))
        raise typer.Exit(EXIT_CONFIG_ERROR)

    success(f"Set {key} in {path}")


@config_app.command("reset")
def config_reset(
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
    config_path: Path = typer.Option(None, "--config", "-c", help="Path to config.yaml"),
):
    """
    Overwrite config.yaml with the default configuration.
    """
    _set_output("table", quiet=False, verbose=False, default="table")
    path = config_path or default_config_path()

    if not yes and not typer.confirm(f"Reset {path} to defaults?"):
        info("Reset cancelled")
        raise typer.Exit(EXIT_SUCCESS)

    try:
        reset_config(path)
    except ConfigurationError as e:
        error(str(e))
        raise typer.Exit(EXIT_CONFIG_ERROR)

    success(f"Configuration reset: {path}")


@config_app.command("path")
def config_path_command():
    """
    Print the configuration file location.
    """
    print(default_config_path())


# Create cookies command subapp
cookies_app = typer.Typer(help="Manage stored login cookies")
app.add_typer(cookies_app, name="cookies")


@cookies_app.command("import")
def cookies_import(
    file: Path = typer.Argument(
        ...,
        help="Cookie export (Netscape cookies.txt or JSON)",
        exists=True,
        file_okay=True,
        dir_okay=False,
    ),
    service: str = typer.Option(
        ..., "--service", "-s", help="Service the cookies belong to"
    ),
    domain: str = typer.Option(
        None, "--domain", "-d", help="Keep only cookies for this domain"
    ),
    cookies_path: Path = typer.Option(None, "--cookies", help="Path to the cookie store"),
):
    """
    Import cookies exported from a logged-in browser.

    Examples:
      multi-ai cookies import ~/Downloads/cookies.txt -s chatgpt --domain chatgpt.com
      multi-ai cookies import claude-cookies.json -s claude
    """
    _set_output("table", quiet=False, verbose=False, default="table")

    try:
        name = get_descriptor(service).service_name
        count = CookieStore(cookies_path).import_file(file, name, domain)
    except ConfigurationError as e:
        error(str(e))
        raise typer.Exit(EXIT_CONFIG_ERROR)

    success(f"Imported {count} cookies for {name}")


@cookies_app.command("list")
def cookies_list(
    format: str = typer.Option(
        "table", "--format", "-f", help="Output format: 'table' or 'json'"
    ),
    cookies_path: Path = typer.Option(None, "--cookies", help="Path to the cookie store"),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Tab-separated output"),
):
    """
    Show how many cookies are stored per service (values are never shown).
    """
    _set_output(format, quiet, verbose=False, default="table")

    try:
        rows = CookieStore(cookies_path).summary()
    except ConfigurationError as e:
        error(str(e))
        output_mode.flush_json()
        raise typer.Exit(EXIT_CONFIG_ERROR)

    print_cookie_summary(rows)


@cookies_app.command("delete")
def cookies_delete(
    service: str = typer.Argument(..., help="Service whose cookies to delete"),
    cookies_path: Path = typer.Option(None, "--cookies", help="Path to the cookie store"),
):
    """
    Delete stored cookies for one service.
    """
    _set_output("table", quiet=False, verbose=False, default="table")

    try:
        deleted = CookieStore(cookies_path).delete_cookies(service)
    except ConfigurationError as e:
        error(str(e))
        raise typer.Exit(EXIT_CONFIG_ERROR)

    if deleted:
        success(f"Deleted cookies for {service}")
    else:
        warning(f"No cookies stored for {service}")


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        help="Show version and exit",
    ),
):
    """
    multi-ai - Send one prompt to many AI chat services at once.

    Drives ChatGPT, Claude, Gemini, Perplexity, Grok, DeepSeek and Z.ai in
    a real browser, in parallel, and collects every answer.

    Use 'multi-ai COMMAND --help' for detailed command documentation.
    """
    if version:
        console.print(f"[bold cyan]multi-ai[/bold cyan] version {_read_version()}")
        raise typer.Exit(EXIT_SUCCESS)

    if ctx.invoked_subcommand is None:
        console.print("[yellow]Use --help to see available commands[/yellow]")
        console.print()
        console.print("Quick start:")
        console.print('  multi-ai prompt "What is 2+2?" -s chatgpt,claude')
        console.print()
        console.print("Commands:")
        console.print("  prompt   Send a prompt to several services in parallel")
        console.print("  list     Show available services")
        console.print("  config   Show or change configuration")
        console.print("  cookies  Import, list or delete login cookies")


def _read_version() -> str:
    """
    Read version from package metadata (pyproject.toml).

    Returns:
        Version string (e.g., "0.1.0")
    """
    from importlib.metadata import PackageNotFoundError, version

    try:
        return version("multi-ai")
    except PackageNotFoundError:
        return "0.1.0"


if __name__ == "__main__":
    app()
