"""Investigation tool catalogue and the execution boundary."""

from tokenprobe.tools.base import ToolSpec, ToolTier
from tokenprobe.tools.catalog import default_tools
from tokenprobe.tools.executor import HttpToolExecutor, ToolExecutor
from tokenprobe.tools.registry import ToolRegistry
from tokenprobe.tools.summary import HttpSummarySource, SummarySource, TokenSummary

__all__ = [
    "HttpSummarySource",
    "HttpToolExecutor",
    "SummarySource",
    "TokenSummary",
    "ToolExecutor",
    "ToolRegistry",
    "ToolSpec",
    "ToolTier",
    "default_tools",
]
