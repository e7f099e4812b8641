"""
Typed configuration model with precedence-based loader.

Precedence (lowest to highest):
    defaults < config file (YAML) < env vars < explicit overrides < per-context overrides

Nothing here is global: ``load_config`` returns a fresh ``UnillmConfig``
which is handed to a ``Context`` (or straight to a ``Chat``).
"""

from __future__ import annotations

import logging
import os
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any

import yaml

from unillm.errors import ConfigurationError

# ---------------------------------------------------------------------------
# Section dataclasses
# ---------------------------------------------------------------------------

@dataclass
class ChatConfig:
    default_model: str = "gpt-4o-mini"
    temperature: float | None = 0.7
    stream: bool = False
    max_rounds: int | None = None


@dataclass
class ProviderConfig:
    api_base: str = ""
    api_key_env: str = ""
    timeout_seconds: int = 120
    max_retries: int = 2
    extra: dict = field(default_factory=dict)

    def api_key(self) -> str:
        if not self.api_key_env:
            return ""
        return os.environ.get(self.api_key_env, "")


def _default_providers() -> dict[str, ProviderConfig]:
    return {
        "openai": ProviderConfig("https://api.openai.com/v1", "OPENAI_API_KEY"),
        "anthropic": ProviderConfig("https://api.anthropic.com/v1", "ANTHROPIC_API_KEY"),
        "gemini": ProviderConfig(
            "https://generativelanguage.googleapis.com/v1beta", "GEMINI_API_KEY"
        ),
        "deepseek": ProviderConfig("https://api.deepseek.com", "DEEPSEEK_API_KEY"),
        "openrouter": ProviderConfig("https://openrouter.ai/api/v1", "OPENROUTER_API_KEY"),
        "ollama": ProviderConfig("http://localhost:11434/v1", ""),
    }


# ---------------------------------------------------------------------------
# Root config
# ---------------------------------------------------------------------------

@dataclass
class UnillmConfig:
    chat: ChatConfig = field(default_factory=ChatConfig)
    providers: dict[str, ProviderConfig] = field(default_factory=_default_providers)
    log_level: str = "WARNING"
    profiles: dict[str, dict[str, Any]] = field(default_factory=dict)

    # ----- per-context overrides (applied last) ----
    _overrides: dict[str, Any] = field(default_factory=dict, repr=False)

    def provider(self, slug: str) -> ProviderConfig:
        """Settings for *slug*; unknown slugs get an empty ``ProviderConfig``."""
        return self.providers.get(slug) or ProviderConfig()

    def set_override(self, dotpath: str, value: Any) -> None:
        """Set a per-context override using dot notation (e.g. 'chat.default_model')."""
        self._overrides[dotpath] = value
        _apply_dotpath(self, dotpath, value)

    def get_override(self, dotpath: str) -> Any | None:
        return self._overrides.get(dotpath)

    def to_dict(self) -> dict:
        d = asdict(self)
        d.pop("_overrides", None)
        return d


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _apply_dotpath(obj: Any, dotpath: str, value: Any) -> None:
    """Walk obj via dotpath and set the final attribute (or dict key)."""
    parts = dotpath.split(".")
    for part in parts[:-1]:
        if isinstance(obj, dict):
            obj = obj.setdefault(part, ProviderConfig())
        else:
            try:
                obj = getattr(obj, part)
            except AttributeError:
                raise ConfigurationError(f"Unknown config key: {dotpath}") from None
    if isinstance(obj, dict):
        obj[parts[-1]] = value
        return
    if not hasattr(obj, parts[-1]):
        raise ConfigurationError(f"Unknown config key: {dotpath}")
    setattr(obj, parts[-1], value)


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
    return value


def _build_section(cls: type, raw: dict) -> Any:
    """Build a dataclass section from a raw dict, ignoring unknown keys."""
    valid_fields = {f.name for f in fields(cls)}
    filtered = {k: v for k, v in (raw or {}).items() if k in valid_fields}
    return cls(**filtered)


def _build_providers(raw: dict) -> dict[str, ProviderConfig]:
    providers = _default_providers()
    for slug, section in (raw or {}).items():
        base = asdict(providers[slug]) if slug in providers else {}
        providers[slug] = _build_section(ProviderConfig, _deep_merge(base, section or {}))
    return providers


# ---------------------------------------------------------------------------
# ENV var mapping
# ---------------------------------------------------------------------------

_ENV_MAP: dict[str, tuple[str, type]] = {
    "UNILLM_DEFAULT_MODEL":  ("chat.default_model", str),
    "UNILLM_TEMPERATURE":    ("chat.temperature", float),
    "UNILLM_STREAM":         ("chat.stream", bool),
    "UNILLM_MAX_ROUNDS":     ("chat.max_rounds", int),
    "UNILLM_LOG_LEVEL":      ("log_level", str),
}


def _provider_env(cfg: UnillmConfig) -> None:
    """``UNILLM_<SLUG>_API_BASE`` / ``_TIMEOUT`` / ``_MAX_RETRIES`` per provider."""
    for slug, settings in cfg.providers.items():
        prefix = f"UNILLM_{slug.upper()}_"
        if (val := os.environ.get(prefix + "API_BASE")) is not None:
            settings.api_base = val
        if (val := os.environ.get(prefix + "TIMEOUT")) is not None:
            settings.timeout_seconds = int(val)
        if (val := os.environ.get(prefix + "MAX_RETRIES")) is not None:
            settings.max_retries = int(val)


# ---------------------------------------------------------------------------
# Loader
# ---------------------------------------------------------------------------

def load_config(
    config_path: str | Path | None = None,
    *,
    profile: str | None = None,
    overrides: dict[str, Any] | None = None,
) -> UnillmConfig:
    """
    Build a UnillmConfig by layering sources in precedence order:

        defaults  <  config file  <  env vars  <  overrides

    Parameters
    ----------
    config_path : path to YAML config file (optional)
    profile : name of a profile to apply from the config file
    overrides : dict of dotpath -> value overrides
    """
    raw: dict[str, Any] = {}

    # --- 1. Config file ---
    if config_path is not None:
        p = Path(config_path).expanduser()
        if p.is_file():
            with p.open("r", encoding="utf-8") as f:
                try:
                    file_data = yaml.safe_load(f) or {}
                except yaml.YAMLError as e:
                    raise ConfigurationError(f"Invalid config file {p}: {e}") from e
            if not isinstance(file_data, dict):
                raise ConfigurationError(f"Config file {p} must contain a mapping")
            raw = _deep_merge(raw, file_data)

    # --- 2. Profile overlay ---
    if profile:
        profile_data = raw.get("profiles", {}).get(profile)
        if profile_data is None:
            raise ConfigurationError(f"Unknown profile: {profile}")
        raw = _deep_merge(raw, profile_data)

    # --- Build sections from raw ---
    cfg = UnillmConfig(
        chat=_build_section(ChatConfig, raw.get("chat", {})),
        providers=_build_providers(raw.get("providers", {})),
        log_level=str(raw.get("log_level", "WARNING")),
        profiles=raw.get("profiles", {}),
    )

    # --- 3. Env var overrides ---
    for env_var, (dotpath, target_type) in _ENV_MAP.items():
        val = os.environ.get(env_var)
        if val is not None:
            _apply_dotpath(cfg, dotpath, _coerce(val, target_type))
    _provider_env(cfg)

    # --- 4. Explicit overrides ---
    if overrides:
        for dotpath, value in overrides.items():
            _apply_dotpath(cfg, dotpath, value)

    return cfg


def configure_logging(config: UnillmConfig) -> logging.Logger:
    """Apply ``config.log_level`` to the ``unillm`` logger hierarchy."""
    level = logging.getLevelName(config.log_level.upper())
    if not isinstance(level, int):
        raise ConfigurationError(f"Unknown log level: {config.log_level}")
    log = logging.getLogger("unillm")
    log.setLevel(level)
    return log
