"""The fixed catalogue of investigation tools offered to the model."""

from __future__ import annotations

from tokenprobe.tools.base import ToolSpec, ToolTier

TOKEN_ADDRESS_ARG = "tokenAddress"
MODEL_IDS_ARG = "modelIds"

COLLECT_TOKEN_DATA = "collect_token_data"
SCORE_TOKEN = "score_token"

# Extra keys the model adds are forwarded to the tool endpoint untouched.

ADDRESS_PARAMS = {
    "type": "object",
    "properties": {
        TOKEN_ADDRESS_ARG: {
            "type": "string",
            "description": "The token contract address on Monad (0x...)",
        },
    },
    "required": [TOKEN_ADDRESS_ARG],
    "additionalProperties": True,
}

SCORE_PARAMS = {
    "type": "object",
    "properties": {
        TOKEN_ADDRESS_ARG: {
            "type": "string",
            "description": "The token contract address on Monad (0x...)",
        },
        MODEL_IDS_ARG: {
            "type": "array",
            "items": {"type": "string"},
            "description": "Model IDs to run (rug-detector, whale-tracker, liquidity-scout)",
        },
    },
    "required": [TOKEN_ADDRESS_ARG],
    "additionalProperties": True,
}

_PRIMARY = [
    (COLLECT_TOKEN_DATA, "Fetch all on-chain and API data for a Monad token. Call first."),
    ("scan_liquidity", "Analyze bonding curve reserve, graduation progress, and price impact"),
    ("scan_creator", "Analyze creator wallet history, token count, and track record"),
    ("scan_trading_activity", "Analyze buy/sell ratio, unique traders, and volume patterns"),
    ("scan_token_maturity", "Analyze token age, holder count, and market cap stage"),
]

_DEEP = [
    ("investigate_whale_concentration", "Deep analysis of trader concentration and whale dominance"),
    ("investigate_price_impact", "Deep analysis of slippage and liquidity depth"),
    ("investigate_wash_trading", "Detect self-trading and round-trip patterns"),
    ("investigate_buy_sell_imbalance", "Deep analysis of extreme buy or sell pressure"),
]

_COMPOSITE = [
    ("investigate_serial_rug_pattern", "Cross-reference creator history with token health"),
    ("investigate_coordinated_pump", "Cross-reference whale activity with pump patterns"),
    ("investigate_dump_risk", "Assess dump pressure with low liquidity exit risk"),
]


def default_tools() -> list[ToolSpec]:
    """All thirteen tools in the order they are described to the model."""
    tools: list[ToolSpec] = []
    for name, desc in _PRIMARY:
        tools.append(ToolSpec(name, desc, ADDRESS_PARAMS, ToolTier.PRIMARY))
    for name, desc in _DEEP:
        tools.append(ToolSpec(name, desc, ADDRESS_PARAMS, ToolTier.DEEP))
    for name, desc in _COMPOSITE:
        tools.append(ToolSpec(name, desc, ADDRESS_PARAMS, ToolTier.COMPOSITE))
    tools.append(
        ToolSpec(
            SCORE_TOKEN,
            "Run scoring models for final risk assessment",
            SCORE_PARAMS,
            ToolTier.COMPOSITE,
        )
    )
    return tools
