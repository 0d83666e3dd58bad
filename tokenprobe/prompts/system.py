"""Seed prompts for an investigation run."""

from __future__ import annotations

from tokenprobe.orchestrator.risk import SignalThresholds
from tokenprobe.tools.base import ToolSpec


def build_system_prompt(
    skill_name: str,
    token_address: str,
    model_ids: list[str],
    tools: list[ToolSpec] | None = None,
    thresholds: SignalThresholds | None = None,
    initial_score: float = 50,
) -> str:
    """
    Build the system prompt: role, strategy, scoring rules, and the
    instruction to finish with ``score_token`` and a summary.
    """
    thresholds = thresholds or SignalThresholds()
    sections: list[str] = []

    sections.append(
        "You are an autonomous token research agent. "
        f'You are using the "{skill_name}" investigation strategy.\n\n'
        f"Your task: Investigate token {token_address} on the Monad blockchain "
        "to determine its safety and quality."
    )

    tool_count = len(tools) if tools else 0
    sections.append(
        f"## Strategy\n\nYou have access to {tool_count} investigation tools. "
        "Use them according to your strategy:\n"
        "1. Start with collect_token_data to fetch all on-chain data\n"
        "2. Run primary scans (scan_liquidity, scan_creator, scan_trading_activity, scan_token_maturity)\n"
        "3. Based on findings, run conditional deep investigations\n"
        "4. If compound patterns emerge, run composite analysis\n"
        f"5. End with score_token to get final scores (modelIds: {', '.join(model_ids)})"
    )

    sections.append(
        "## Risk Scoring\n\n"
        f"Risk starts at {initial_score:g} (neutral). Each tool reports riskDelta. "
        f"SAFE=0-{thresholds.safe_max:g}, "
        f"CAUTION={thresholds.safe_max + 1:g}-{thresholds.caution_max:g}, "
        f"DANGER={thresholds.caution_max + 1:g}-100."
    )

    sections.append(REASONING_SECTION)

    return "\n\n".join(sections)


def build_user_prompt(skill_name: str, token_address: str, model_ids: list[str]) -> str:
    return (
        f"Investigate token {token_address} on Monad blockchain. "
        f"Use the {skill_name} strategy. "
        f"Available model IDs for scoring: {', '.join(model_ids)}."
    )


REASONING_SECTION = """## Reasoning

Think step-by-step. Explain your reasoning between tool calls. Be specific with data.

IMPORTANT: After receiving tool results, analyze them and decide what to investigate next. When you have gathered enough data, call score_token and then provide your final summary."""
