"""Output formatting utilities for the CLI."""

from __future__ import annotations

import json
from datetime import datetime

from rich.console import Console
from rich.panel import Panel
from rich.syntax import Syntax
from rich.table import Table
from rich.text import Text

from tokenprobe.timeline.emitter import Timeline
from tokenprobe.timeline.events import (
    ConfidenceEvent,
    DoneEvent,
    ErrorEvent,
    ResultEvent,
    StepEvent,
    ThinkingEvent,
    TimelineEvent,
    ToolCallEvent,
)
from tokenprobe.tools.base import ToolSpec, ToolTier
from tokenprobe.types import Severity, Signal

TIER_COLORS = {
    ToolTier.PRIMARY: "green",
    ToolTier.DEEP: "yellow",
    ToolTier.COMPOSITE: "magenta",
}

SEVERITY_COLORS = {
    Severity.INFO: "cyan",
    Severity.WARNING: "yellow",
    Severity.CRITICAL: "bold red",
}

SIGNAL_COLORS = {
    Signal.SAFE: "green",
    Signal.CAUTION: "yellow",
    Signal.DANGER: "bold red",
}


def _ts(event: TimelineEvent) -> str:
    return datetime.fromtimestamp(event.timestamp / 1000).strftime("%H:%M:%S")


class OutputFormatter:
    """Rich-based output formatting for the tokenprobe CLI."""

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console()

    # ------------------------------------------------------------------
    # Live timeline
    # ------------------------------------------------------------------

    def format_event(self, event: TimelineEvent) -> None:
        ts = _ts(event)
        if isinstance(event, StepEvent):
            color = "red" if event.status == "error" else "blue"
            detail = f" [dim]{event.detail}[/dim]" if event.detail else ""
            self.console.print(f"  [{color}]{ts} step[/{color}]  {event.step}: {event.status}{detail}")
        elif isinstance(event, ThinkingEvent):
            self.console.print(f"  [dim]{ts} thinking  {event.reasoning}[/dim]")
        elif isinstance(event, ToolCallEvent):
            if event.status == "running":
                self.console.print(f"  [yellow]{ts} tool[/yellow]  {event.tool_name} ...")
                return
            color = SEVERITY_COLORS.get(event.severity, "white")
            delta = f"{event.risk_delta:+g}" if event.risk_delta is not None else "?"
            self.console.print(
                f"  [{color}]{ts} tool[/{color}]  {event.tool_name} ({delta}): {event.finding}"
            )
        elif isinstance(event, ConfidenceEvent):
            color = SIGNAL_COLORS.get(event.signal, "white")
            self.console.print(
                f"  [{color}]{ts} risk  {event.risk_score:g}/100 {event.signal.value}[/{color}]"
            )
        elif isinstance(event, ResultEvent):
            r = event.record
            self.console.print(f"  [cyan]{ts} model[/cyan] {r.model_name}: {r.score}/100 {r.signal}")
        elif isinstance(event, DoneEvent):
            self.console.print(f"  [green]{ts} done[/green]  {event.token_info.address}")
        elif isinstance(event, ErrorEvent):
            self.console.print(f"  [red]{ts} error[/red] {event.message}")

    def format_summary(self, timeline: Timeline) -> None:
        table = Table(title="Investigation", show_lines=False)
        table.add_column("Tool", style="cyan", no_wrap=True)
        table.add_column("Severity", no_wrap=True)
        table.add_column("Delta", justify="right")
        table.add_column("Finding")

        for ev in timeline.of_type(ToolCallEvent.type):
            sev = ev.severity or Severity.INFO
            table.add_row(
                ev.tool_name,
                Text(sev.value, style=SEVERITY_COLORS.get(sev, "white")),
                f"{ev.risk_delta:+g}" if ev.risk_delta is not None else "",
                ev.finding or ev.status,
            )
        self.console.print(table)

        confidence = timeline.of_type(ConfidenceEvent.type)
        if confidence:
            last = confidence[-1]
            color = SIGNAL_COLORS.get(last.signal, "white")
            self.console.print(
                f"Risk score: [{color}]{last.risk_score:g}/100 ({last.signal.value})[/{color}]"
            )

    # ------------------------------------------------------------------
    # Tools & config
    # ------------------------------------------------------------------

    def format_tool_list(self, tools: list[ToolSpec]) -> None:
        table = Table(title="Investigation Tools", show_lines=True)
        table.add_column("Name", style="cyan", no_wrap=True)
        table.add_column("Tier", no_wrap=True)
        table.add_column("Description")

        for t in tools:
            color = TIER_COLORS.get(t.tier, "white")
            table.add_row(t.name, Text(t.tier.name, style=color), t.description)

        self.console.print(table)

    def format_tool_info(self, tool: ToolSpec) -> None:
        color = TIER_COLORS.get(tool.tier, "white")
        self.console.print(Panel(
            f"[bold]{tool.display_name}[/bold]\n\n"
            f"[dim]Tier:[/dim] [{color}]{tool.tier.name}[/{color}]\n\n"
            f"{tool.description}",
            title=f"Tool: {tool.name}",
        ))
        schema_json = json.dumps(tool.parameters, indent=2)
        self.console.print(Syntax(schema_json, "json", theme="monokai"))

    def format_config(self, config: dict) -> None:
        json_str = json.dumps(config, indent=2, default=str)
        self.console.print(Syntax(json_str, "json", theme="monokai"))
