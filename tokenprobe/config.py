"""
Typed configuration model with precedence-based loader.

Precedence (lowest to highest):
    defaults < config file (YAML) < profile < env vars < CLI flags < per-session overrides

The loaded config is process-wide and treated as read-only once a run starts.
"""

from __future__ import annotations

import os
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any

import yaml

from tokenprobe.errors import ConfigError


# ---------------------------------------------------------------------------
# Section dataclasses
# ---------------------------------------------------------------------------

@dataclass
class LLMProviderConfig:
    name: str = "deepseek"
    model: str = "deepseek-chat"
    api_base: str = "https://api.deepseek.com"
    api_key_env: str = "DEEPSEEK_API_KEY"
    timeout_seconds: float = 120

    @property
    def api_key(self) -> str:
        return os.environ.get(self.api_key_env, "")


@dataclass
class AgentConfig:
    max_turns: int = 12
    initial_score: float = 50
    thinking_flush_chars: int = 80
    default_skill: str = "token-investigator"
    skills: dict[str, str] = field(default_factory=lambda: {
        "token-investigator": "Token Investigator",
        "whale-tracker": "Whale Tracker",
        "rug-detector": "Rug Detector",
        "liquidity-scout": "Liquidity Scout",
    })
    default_models: list[str] = field(default_factory=lambda: [
        "rug-detector",
        "whale-tracker",
        "liquidity-scout",
    ])

    def skill_name(self, skill_id: str | None) -> str:
        resolved = skill_id or self.default_skill
        return self.skills.get(resolved, resolved)


@dataclass
class RiskConfig:
    safe_max: float = 33
    caution_max: float = 66


@dataclass
class ToolsConfig:
    base_url: str = "http://localhost:3000"
    internal_token_env: str = "OPENCLAW_GATEWAY_TOKEN"
    timeout_seconds: float = 60

    @property
    def internal_token(self) -> str:
        return os.environ.get(self.internal_token_env, "")


# ---------------------------------------------------------------------------
# Root config
# ---------------------------------------------------------------------------

@dataclass
class TokenProbeConfig:
    llm: LLMProviderConfig = field(default_factory=LLMProviderConfig)
    agent: AgentConfig = field(default_factory=AgentConfig)
    risk: RiskConfig = field(default_factory=RiskConfig)
    tools: ToolsConfig = field(default_factory=ToolsConfig)
    profiles: dict[str, dict[str, Any]] = field(default_factory=dict)

    # ----- per-session overrides (applied last) ----
    _overrides: dict[str, Any] = field(default_factory=dict, repr=False)

    def set_override(self, dotpath: str, value: Any) -> None:
        """Set a per-session override using dot notation (e.g. 'llm.model')."""
        self._overrides[dotpath] = value
        _apply_dotpath(self, dotpath, value)

    def get_override(self, dotpath: str) -> Any | None:
        return self._overrides.get(dotpath)

    def validate(self) -> None:
        """Raise ``ConfigError`` for values the agent cannot run with."""
        if self.agent.max_turns < 1:
            raise ConfigError("agent.max_turns must be at least 1")
        if not 0 <= self.agent.initial_score <= 100:
            raise ConfigError("agent.initial_score must be within [0, 100]")
        if not self.risk.safe_max < self.risk.caution_max:
            raise ConfigError("risk.safe_max must be below risk.caution_max")
        if self.llm.timeout_seconds <= 0:
            raise ConfigError("llm.timeout_seconds must be positive")

    def to_dict(self) -> dict:
        d = asdict(self)
        d.pop("_overrides", None)
        return d


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _apply_dotpath(obj: Any, dotpath: str, value: Any) -> None:
    """Walk obj via dotpath and set the final attribute."""
    *parents, leaf = dotpath.split(".")
    for part in parents:
        if part.startswith("_") or not hasattr(obj, part):
            raise ConfigError(f"Unknown config key: {dotpath}")
        obj = getattr(obj, part)
    if leaf.startswith("_") or not hasattr(obj, leaf):
        raise ConfigError(f"Unknown config key: {dotpath}")
    setattr(obj, leaf, value)


def _deep_merge(base: dict, overlay: dict) -> dict:
    """Recursively merge overlay into base, returning a new dict."""
    merged = dict(base)
    for k, v in overlay.items():
        if k in merged and isinstance(merged[k], dict) and isinstance(v, dict):
            merged[k] = _deep_merge(merged[k], v)
        else:
            merged[k] = v
    return merged


def _coerce(value: str, target_type: type) -> Any:
    """Coerce a string env value to the target type."""
    if target_type is bool:
        return value.lower() in ("1", "true", "yes", "on")
    if target_type is int:
        return int(value)
    if target_type is float:
        return float(value)
    if target_type is list:
        return [s.strip() for s in value.split(",") if s.strip()]
    return value


def _build_section(cls: type, raw: dict) -> Any:
    """Build a dataclass section from a raw dict, ignoring unknown keys."""
    valid_fields = {f.name for f in fields(cls)}
    filtered = {k: v for k, v in raw.items() if k in valid_fields}
    return cls(**filtered)


# ---------------------------------------------------------------------------
# ENV var mapping
# ---------------------------------------------------------------------------

_ENV_MAP: dict[str, tuple[str, type]] = {
    "TOKENPROBE_LLM_NAME":            ("llm.name", str),
    "TOKENPROBE_LLM_MODEL":           ("llm.model", str),
    "TOKENPROBE_LLM_API_BASE":        ("llm.api_base", str),
    "TOKENPROBE_LLM_API_KEY_ENV":     ("llm.api_key_env", str),
    "TOKENPROBE_LLM_TIMEOUT":         ("llm.timeout_seconds", float),
    "TOKENPROBE_AGENT_MAX_TURNS":     ("agent.max_turns", int),
    "TOKENPROBE_AGENT_INITIAL_SCORE": ("agent.initial_score", float),
    "TOKENPROBE_AGENT_FLUSH_CHARS":   ("agent.thinking_flush_chars", int),
    "TOKENPROBE_AGENT_DEFAULT_SKILL": ("agent.default_skill", str),
    "TOKENPROBE_AGENT_MODELS":        ("agent.default_models", list),
    "TOKENPROBE_RISK_SAFE_MAX":       ("risk.safe_max", float),
    "TOKENPROBE_RISK_CAUTION_MAX":    ("risk.caution_max", float),
    "TOKENPROBE_TOOLS_BASE_URL":      ("tools.base_url", str),
    "TOKENPROBE_TOOLS_TOKEN_ENV":     ("tools.internal_token_env", str),
    "TOKENPROBE_TOOLS_TIMEOUT":       ("tools.timeout_seconds", float),
}


# ---------------------------------------------------------------------------
# Loader
# ---------------------------------------------------------------------------

def find_config_path() -> Path | None:
    """Find a config file in the standard locations."""
    candidates = [
        Path.cwd() / "tokenprobe.yaml",
        Path.cwd() / "tokenprobe.yml",
        Path.home() / ".config" / "tokenprobe" / "config.yaml",
    ]
    for p in candidates:
        if p.is_file():
            return p
    return None


def load_config(
    config_path: str | Path | None = None,
    *,
    profile: str | None = None,
    cli_overrides: dict[str, Any] | None = None,
    session_overrides: dict[str, Any] | None = None,
) -> TokenProbeConfig:
    """
    Build a TokenProbeConfig by layering sources in precedence order:

        defaults  <  config file  <  profile  <  env vars  <  CLI flags
                  <  per-session overrides

    Parameters
    ----------
    config_path : path to YAML config file (optional)
    profile : name of a profile to apply from the config file
    cli_overrides : dict of dotpath -> value CLI flag overrides
    session_overrides : dict of dotpath -> value applied last and recorded
        with ``set_override`` so ``get_override`` reports them

    Raises ``ConfigError`` for unreadable YAML, bad env values, unknown
    override keys, or a config that fails ``validate``.
    """
    raw: dict[str, Any] = {}

    # --- 1. Config file ---
    if config_path is not None:
        p = Path(config_path).expanduser()
        if p.is_file():
            try:
                with p.open("r", encoding="utf-8") as f:
                    file_data = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise ConfigError(f"Invalid YAML in {p}: {e}") from e
            if not isinstance(file_data, dict):
                raise ConfigError(f"Config file {p} must contain a mapping")
            raw = _deep_merge(raw, file_data)

    # --- 2. Profile overlay ---
    if profile and "profiles" in raw:
        profile_data = raw.get("profiles", {}).get(profile, {})
        if profile_data:
            raw = _deep_merge(raw, profile_data)

    # --- Build sections from raw ---
    cfg = TokenProbeConfig(
        llm=_build_section(LLMProviderConfig, raw.get("llm") or {}),
        agent=_build_section(AgentConfig, raw.get("agent") or {}),
        risk=_build_section(RiskConfig, raw.get("risk") or {}),
        tools=_build_section(ToolsConfig, raw.get("tools") or {}),
        profiles=raw.get("profiles", {}),
    )

    # --- 3. Env var overrides ---
    for env_var, (dotpath, target_type) in _ENV_MAP.items():
        val = os.environ.get(env_var)
        if val is not None:
            try:
                _apply_dotpath(cfg, dotpath, _coerce(val, target_type))
            except ValueError as e:
                raise ConfigError(f"{env_var}: {e}") from e

    # --- 4. CLI flag overrides ---
    if cli_overrides:
        for dotpath, value in cli_overrides.items():
            _apply_dotpath(cfg, dotpath, value)

    # --- 5. Per-session overrides ---
    for dotpath, value in (session_overrides or {}).items():
        cfg.set_override(dotpath, value)

    cfg.validate()
    return cfg
