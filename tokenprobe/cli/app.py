"""
Main CLI application for tokenprobe.

Usage:
    tp investigate ADDRESS [--model ID]... [--skill ID] [--json]
    tp tools list|info
    tp config show|validate
    tp version
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import List, Optional

import typer
import yaml
from rich.console import Console
from rich.logging import RichHandler

from tokenprobe.config import TokenProbeConfig, find_config_path, load_config
from tokenprobe.errors import ConfigError

app = typer.Typer(name="tp", help="tokenprobe - agentic token investigation")
tools_app = typer.Typer(help="Investigation tool catalogue")
config_app = typer.Typer(help="Configuration management")

app.add_typer(tools_app, name="tools")
app.add_typer(config_app, name="config")

console = Console()

VERSION = "0.1.0"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def _parse_sets(pairs: Optional[List[str]]) -> dict:
    """``KEY=VALUE`` pairs; values are read as YAML scalars (``12``, ``true``)."""
    overrides: dict = {}
    for pair in pairs or []:
        key, sep, value = pair.partition("=")
        if not sep or not key.strip():
            raise ConfigError(f"Expected KEY=VALUE, got {pair!r}")
        try:
            overrides[key.strip()] = yaml.safe_load(value)
        except yaml.YAMLError as e:
            raise ConfigError(f"Bad value for {key.strip()}: {e}") from e
    return overrides


def _load(
    config: Optional[Path],
    profile: Optional[str],
    sets: Optional[List[str]] = None,
) -> TokenProbeConfig:
    try:
        return load_config(
            config or find_config_path(),
            profile=profile,
            session_overrides=_parse_sets(sets),
        )
    except ConfigError as e:
        console.print(f"[red]Config error:[/red] {e}")
        raise typer.Exit(1)


def build_investigator(cfg: TokenProbeConfig):
    """Wire up router, executor and summary source from config."""
    from tokenprobe.llm.providers.openai_compat import OpenAICompatProvider
    from tokenprobe.llm.router import LLMRouter
    from tokenprobe.orchestrator.core import Investigator
    from tokenprobe.tools.catalog import default_tools
    from tokenprobe.tools.executor import HttpToolExecutor
    from tokenprobe.tools.registry import ToolRegistry
    from tokenprobe.tools.summary import HttpSummarySource

    registry = ToolRegistry(default_tools())

    router = LLMRouter()
    router.register_provider(
        cfg.llm.name,
        OpenAICompatProvider(
            url=cfg.llm.api_base,
            model=cfg.llm.model,
            api_key=cfg.llm.api_key,
        ),
    )

    executor = HttpToolExecutor(
        base_url=cfg.tools.base_url,
        registry=registry,
        internal_token=cfg.tools.internal_token,
        timeout=cfg.tools.timeout_seconds,
    )
    summary = HttpSummarySource(cfg.tools.base_url, timeout=cfg.tools.timeout_seconds)

    return Investigator(router, executor, registry, cfg, summary_source=summary)


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

@app.command()
def investigate(
    address: str = typer.Argument(..., help="Token contract address (0x...)"),
    model: Optional[List[str]] = typer.Option(None, "--model", "-m", help="Scoring model ID (repeatable)"),
    skill: Optional[str] = typer.Option(None, help="Investigation strategy ID"),
    as_json: bool = typer.Option(False, "--json", help="Print events as event-stream frames"),
    config: Optional[Path] = typer.Option(None, "--config", help="Config file path"),
    profile: Optional[str] = typer.Option(None, help="Config profile name"),
    sets: Optional[List[str]] = typer.Option(None, "--set", help="Override for this run, KEY=VALUE (repeatable)"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
):
    """Run one investigation and stream its timeline."""
    from tokenprobe.cli.output import OutputFormatter
    from tokenprobe.orchestrator.core import stream_investigation
    from tokenprobe.timeline.emitter import Timeline, encode_sse, fan_out
    from tokenprobe.timeline.events import ErrorEvent

    _setup_logging(verbose)
    cfg = _load(config, profile, sets)
    investigator = build_investigator(cfg)
    formatter = OutputFormatter(console)
    timeline = Timeline()

    def _echo_frame(event) -> None:
        typer.echo(encode_sse(event), nl=False)

    # The reduced timeline still records every event if rendering fails.
    sink = fan_out(timeline, _echo_frame if as_json else formatter.format_event)

    async def _run():
        async for event in stream_investigation(investigator, address, model or None, skill):
            sink(event)

    asyncio.run(_run())

    if not as_json:
        formatter.format_summary(timeline)
    if isinstance(timeline.terminal, ErrorEvent):
        raise typer.Exit(1)


@tools_app.command("list")
def tools_list(
    tier: Optional[int] = typer.Option(None, help="Only show tools of this tier (1-3)"),
):
    """List the investigation tools offered to the model."""
    from tokenprobe.cli.output import OutputFormatter
    from tokenprobe.tools.base import ToolTier
    from tokenprobe.tools.catalog import default_tools
    from tokenprobe.tools.registry import ToolRegistry

    registry = ToolRegistry(default_tools())
    tier_filter = None
    if tier is not None:
        try:
            tier_filter = ToolTier(tier)
        except ValueError:
            console.print(f"[red]Unknown tier:[/red] {tier}")
            raise typer.Exit(1)

    formatter = OutputFormatter(console)
    formatter.format_tool_list(registry.list(tier=tier_filter))


@tools_app.command("info")
def tools_info(tool_name: str = typer.Argument(..., help="Tool name")):
    """Show tool details and schema."""
    from tokenprobe.cli.output import OutputFormatter
    from tokenprobe.tools.catalog import default_tools
    from tokenprobe.tools.registry import ToolRegistry

    registry = ToolRegistry(default_tools())
    tool = registry.get(tool_name)
    if not tool:
        console.print(f"[red]Tool not found:[/red] {tool_name}")
        raise typer.Exit(1)

    formatter = OutputFormatter(console)
    formatter.format_tool_info(tool)


@config_app.command("show")
def config_show(
    config: Optional[Path] = typer.Option(None, "--config", help="Config file path"),
    profile: Optional[str] = typer.Option(None, help="Config profile name"),
    sets: Optional[List[str]] = typer.Option(None, "--set", help="Override, KEY=VALUE (repeatable)"),
):
    """Show effective config."""
    from tokenprobe.cli.output import OutputFormatter

    cfg = _load(config, profile, sets)
    formatter = OutputFormatter(console)
    formatter.format_config(cfg.to_dict())


@config_app.command("validate")
def config_validate(
    config: Optional[Path] = typer.Option(None, "--config", help="Config file path"),
):
    """Validate config and summarise the effective settings."""
    config_path = config or find_config_path()
    cfg = _load(config_path, None)
    console.print("[green]Config is valid.[/green]")
    if config_path:
        console.print(f"  Loaded from: {config_path}")
    else:
        console.print("  [dim]No config file found, using defaults.[/dim]")
    console.print(f"  LLM: {cfg.llm.name} ({cfg.llm.model}) at {cfg.llm.api_base}")
    console.print(f"  Max turns: {cfg.agent.max_turns}")
    console.print(f"  Signal cut points: SAFE<={cfg.risk.safe_max:g} CAUTION<={cfg.risk.caution_max:g}")
    console.print(f"  Tools endpoint: {cfg.tools.base_url}")


@app.command()
def version():
    """Show version."""
    console.print(f"tokenprobe v{VERSION}")


def main():
    app()


if __name__ == "__main__":
    main()
