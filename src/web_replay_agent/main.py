"""
Web Replay Agent - CLI Entry Point.

Configuration Priority:
    1. CLI arguments (--visible, --retry-attempts, etc.)
    2. Environment variables (WEB_REPLAY_AGENT__REPLAY__RETRY_ATTEMPTS, etc.)
    3. Config file (config.yaml)

Usage:
    web-replay-agent record https://app.example.com -o flow.json --base-domain example.com
    web-replay-agent replay flow.json --visible
"""

import asyncio
import logging
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from web_replay_agent import __version__
from web_replay_agent.browsers.playwright_browser import PlaywrightBrowser
from web_replay_agent.capture.manager import CaptureSessionManager
from web_replay_agent.capture.sink import JsonFileActionSink
from web_replay_agent.config import get_settings, load_config
from web_replay_agent.config.settings import DomainScopeConfig, Settings
from web_replay_agent.exceptions import WebReplayAgentError
from web_replay_agent.models import ReplaySession, load_actions
from web_replay_agent.replay.manager import ReplaySessionManager
from web_replay_agent.utils.logging import setup_logging

app = typer.Typer(
    name="web-replay-agent",
    help="Record browser interactions and replay them with robust selectors",
    add_completion=False,
)

console = Console()
logger = logging.getLogger(__name__)


def _load_settings(config: Optional[Path], visible: bool, cdp_url: Optional[str]) -> Settings:
    settings = load_config(config_path=config) if config else get_settings()
    browser: dict = {"headless": not visible}
    if cdp_url:
        browser["cdp_url"] = cdp_url
    return settings.merge_with({"browser": browser})


def _configure_logging(settings: Settings, verbose: bool) -> None:
    setup_logging(
        level="DEBUG" if verbose else settings.logging.level,
        log_file=settings.logging.file,
        json_format=settings.logging.json_format,
    )


@app.command()
def record(
    url: str = typer.Argument(..., help="Starting URL of the workflow"),
    workflow_id: str = typer.Option("workflow", "--workflow-id", "-w", help="Workflow identifier"),
    output: Path = typer.Option(Path("actions.json"), "--output", "-o", help="Where to write the recorded actions"),
    base_domain: Optional[str] = typer.Option(None, "--base-domain", help="Only record on this domain and its subdomains"),
    allow: List[str] = typer.Option([], "--allow", help="Extra allowed domain pattern (repeatable, '*.' wildcards)"),
    strategy: str = typer.Option("css", "--strategy", "-s", help="Selector strategy: css, xpath, text, hybrid"),
    duration: Optional[float] = typer.Option(None, "--duration", "-d", help="Stop after this many seconds"),
    visible: bool = typer.Option(True, "--visible/--headless", help="Show the browser window"),
    cdp_url: Optional[str] = typer.Option(None, "--cdp-url", help="Attach to a running Chromium instead of launching"),
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="YAML config file"),
    verbose: bool = typer.Option(False, "--verbose", help="Enable verbose output"),
):
    """
    Record interactions on URL until the page is closed.

    Examples:
        web-replay-agent record https://app.example.com --base-domain example.com
        web-replay-agent record https://app.example.com --duration 60 -o login.json
    """
    settings = _load_settings(config, visible, cdp_url)
    _configure_logging(settings, verbose)

    if strategy not in ("css", "xpath", "text", "hybrid"):
        console.print(f"[red]Error: unknown selector strategy '{strategy}'[/red]")
        raise typer.Exit(2)

    capture_config = settings.capture.model_copy(update={"selector_strategy": strategy})
    if base_domain:
        capture_config = capture_config.model_copy(update={
            "domain_scope": DomainScopeConfig(base_domain=base_domain, allowed_domains=list(allow)),
        })

    console.print(Panel.fit(
        f"[bold blue]● Web Replay Agent - Recording[/bold blue]\n"
        f"[dim]URL:[/dim] {url}\n"
        f"[dim]Workflow:[/dim] {workflow_id}\n"
        f"[dim]Output:[/dim] {output}"
        + (f"\n[dim]Scope:[/dim] {base_domain}" if base_domain else ""),
        border_style="blue",
    ))

    try:
        manager = asyncio.run(_record_async(settings, capture_config, url, workflow_id, output, duration))
    except WebReplayAgentError as e:
        console.print(f"\n[red]Error: {e}[/red]")
        raise typer.Exit(1)
    except KeyboardInterrupt:
        console.print("[dim]Interrupted[/dim]")
        raise typer.Exit(130)

    _print_quality(manager)
    console.print(f"\n[green]✓ Saved to {output}[/green]")


async def _record_async(settings, capture_config, url, workflow_id, output, duration) -> CaptureSessionManager:
    manager = CaptureSessionManager(
        capture_config,
        action_sink=JsonFileActionSink(output),
        on_recording_paused=lambda reason: console.print(f"[yellow]⏸ {reason}[/yellow]"),
        on_recording_resumed=lambda: console.print("[green]▶ Recording resumed[/green]"),
    )
    browser = PlaywrightBrowser(settings.browser)
    try:
        await browser.start()
        page = await browser.new_page()
        await manager.start_capture(page, workflow_id, url)
        console.print("[dim]Recording. Close the page (or press Ctrl+C) to finish.[/dim]")
        try:
            await manager.wait_until_stopped(timeout=duration)
        finally:
            await manager.stop_capture()
    finally:
        await manager.cleanup()
        await browser.close()
    return manager


def _print_quality(manager: CaptureSessionManager) -> None:
    report = manager.get_quality_report()
    table = Table(title="Recording quality")
    table.add_column("Metric", style="cyan")
    table.add_column("Value")
    table.add_row("Actions", str(report["totalActions"]))
    table.add_row("By type", ", ".join(f"{k}={v}" for k, v in sorted(report["byType"].items())) or "-")
    table.add_row("Stability", ", ".join(f"{k}={v}" for k, v in sorted(report["stability"].items())) or "-")
    table.add_row("Uniqueness", ", ".join(f"{k}={v}" for k, v in sorted(report["uniqueness"].items())) or "-")
    table.add_row("Average confidence", f"{report['averageConfidence']:.2f}")
    table.add_row("Coerced selectors", str(report["coercedSelectors"]))
    table.add_row("Dropped events", str(report["droppedEvents"]))
    table.add_row("Invalid actions", str(report["invalidActions"]))
    console.print(table)


@app.command()
def replay(
    file_path: Path = typer.Argument(..., help="Recorded actions (JSON)"),
    retry_attempts: Optional[int] = typer.Option(None, "--retry-attempts", "-r", help="Attempts per element lookup"),
    timeout: Optional[int] = typer.Option(None, "--timeout", "-t", help="Per-action timeout in ms"),
    visible: bool = typer.Option(False, "--visible", "-v", help="Run with visible browser"),
    cdp_url: Optional[str] = typer.Option(None, "--cdp-url", help="Attach to a running Chromium instead of launching"),
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="YAML config file"),
    verbose: bool = typer.Option(False, "--verbose", help="Enable verbose output"),
):
    """
    Replay a recorded action file.

    Exits with status 1 when any action failed.
    """
    settings = _load_settings(config, visible, cdp_url)
    _configure_logging(settings, verbose)

    if not file_path.exists():
        console.print(f"[red]Error: File not found: {file_path}[/red]")
        raise typer.Exit(1)

    updates = {}
    if retry_attempts is not None:
        updates["retry_attempts"] = retry_attempts
    if timeout is not None:
        updates["timeout"] = timeout
    replay_config = settings.replay.model_copy(update=updates)

    try:
        actions = load_actions(file_path)
    except WebReplayAgentError as e:
        console.print(f"[red]Error: {e.message}[/red]")
        raise typer.Exit(1)

    console.print(Panel.fit(
        f"[bold blue]▶ Web Replay Agent - Replay[/bold blue]\n"
        f"[dim]File:[/dim] {file_path}\n"
        f"[dim]Actions:[/dim] {len(actions)}",
        border_style="blue",
    ))

    try:
        session = asyncio.run(_replay_async(settings, replay_config, actions))
    except WebReplayAgentError as e:
        console.print(f"\n[red]Error: {e}[/red]")
        raise typer.Exit(1)
    except KeyboardInterrupt:
        console.print("[dim]Interrupted[/dim]")
        raise typer.Exit(130)

    _print_results(session)
    if session.error_count:
        raise typer.Exit(1)


async def _replay_async(settings, replay_config, actions) -> ReplaySession:
    manager = ReplaySessionManager(replay_config)
    browser = PlaywrightBrowser(settings.browser)
    try:
        await browser.start()
        page = await browser.new_page()
        await manager.initialize(page)
        return await manager.replay(actions)
    finally:
        await manager.cleanup()
        await browser.close()


def _print_results(session: ReplaySession) -> None:
    by_id = {a.id: a for a in session.actions}
    table = Table(title="Replay results")
    table.add_column("#", justify="right")
    table.add_column("Action")
    table.add_column("Target")
    table.add_column("Result")
    table.add_column("ms", justify="right")
    for index, result in enumerate(session.results, 1):
        action = by_id.get(result.action_id)
        kind = action.type.value if action else "?"
        target = result.selector or (action.url if action and action.url else "")
        status = "[green]✓[/green]" if result.success else f"[red]✗ {result.error}[/red]"
        table.add_row(str(index), kind, target, status, str(result.duration))
    console.print(table)

    colour = "green" if session.error_count == 0 else "red"
    console.print(
        f"\n[{colour}]Success rate: {session.success_rate:.0%}[/{colour}] "
        f"({session.error_count} failed, {session.total_duration}ms)"
    )


@app.command()
def version():
    """Show version information."""
    console.print(f"[bold]Web Replay Agent[/bold] v{__version__}")


if __name__ == "__main__":
    app()
