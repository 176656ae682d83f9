"""
Configuration loader for the seller agent.
Reads settings from YAML file with environment variable substitution,
then applies SELLER_* environment overrides for the job queue.
"""
from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import yaml

DEFAULT_MAX_CONCURRENCY = 3
DEFAULT_MAX_ATTEMPTS = 5
DEFAULT_RETRY_DELAY_MS = 5_000
DEFAULT_SIGNAL_API_URL = "https://api.sqdgn.ai/api/rest/signals?limit=5&chainType=evm"


@dataclass
class QueueConfig:
    max_concurrency: int = DEFAULT_MAX_CONCURRENCY
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    base_retry_delay_ms: int = DEFAULT_RETRY_DELAY_MS


@dataclass
class SignalConfig:
    api_url: str = DEFAULT_SIGNAL_API_URL
    api_key: str = ""
    max_attempts: int = 3
    base_delay_s: float = 1.0
    timeout_s: float = 30.0


@dataclass
class GatewayConfig:
    type: str = "rest"
    base_url: str = ""                  # empty → mock gateway
    auth_type: str = "bearer"           # "bearer" | "api_key"
    auth_credentials: dict[str, Any] = field(default_factory=dict)
    endpoints: dict[str, str] = field(default_factory=lambda: {
        "respond_job": "/jobs/{job_id}/respond",
        "deliver_job": "/jobs/{job_id}/deliver",
    })


@dataclass
class Settings:
    app_name: str = "SellerAgent"
    debug: bool = False
    queue: QueueConfig = field(default_factory=QueueConfig)
    signals: SignalConfig = field(default_factory=SignalConfig)
    gateway: GatewayConfig = field(default_factory=GatewayConfig)


_settings: Optional[Settings] = None


def _substitute_env_vars(value: str) -> str:
    """Replace ${VAR_NAME} patterns with environment variable values (unset → "")."""
    pattern = re.compile(r'\$\{(\w+)\}')
    def replacer(match):
        var_name = match.group(1)
        return os.environ.get(var_name, "")
    return pattern.sub(replacer, value)


def _process_values(obj: Any) -> Any:
    """Recursively substitute env vars in all string values."""
    if isinstance(obj, str):
        return _substitute_env_vars(obj)
    elif isinstance(obj, dict):
        return {k: _process_values(v) for k, v in obj.items()}
    elif isinstance(obj, list):
        return [_process_values(v) for v in obj]
    return obj


def positive_number(raw: Any, fallback: int) -> int:
    """Parse a positive integer, returning fallback when absent or invalid."""
    if raw is None or raw == "":
        return fallback
    try:
        parsed = int(float(raw))
    except (TypeError, ValueError):
        return fallback
    return parsed if parsed > 0 else fallback


def _apply_env_overrides(settings: Settings) -> None:
    q = settings.queue
    q.max_concurrency = positive_number(os.environ.get("SELLER_MAX_CONCURRENCY"), q.max_concurrency)
    q.max_attempts = positive_number(os.environ.get("SELLER_MAX_ATTEMPTS"), q.max_attempts)
    q.base_retry_delay_ms = positive_number(os.environ.get("SELLER_RETRY_DELAY_MS"), q.base_retry_delay_ms)

    s = settings.signals
    s.api_url = os.environ.get("SIGNAL_API_URL") or s.api_url
    s.api_key = os.environ.get("SQDGN_API_KEY") or s.api_key


def load_settings(config_path: str = None) -> Settings:
    """Load settings from YAML file, then apply environment overrides."""
    global _settings

    if config_path is None:
        config_path = os.environ.get(
            "SELLER_CONFIG",
            str(Path(__file__).parent / "settings.yaml"),
        )

    settings = Settings()

    if Path(config_path).exists():
        with open(config_path) as f:
            raw = yaml.safe_load(f) or {}
        raw = _process_values(raw)

        settings.app_name = raw.get("app_name", settings.app_name)
        settings.debug = raw.get("debug", settings.debug)

        if "queue" in raw:
            q = raw["queue"] or {}
            settings.queue = QueueConfig(
                max_concurrency=positive_number(q.get("max_concurrency"), DEFAULT_MAX_CONCURRENCY),
                max_attempts=positive_number(q.get("max_attempts"), DEFAULT_MAX_ATTEMPTS),
                base_retry_delay_ms=positive_number(q.get("base_retry_delay_ms"), DEFAULT_RETRY_DELAY_MS),
            )

        if "signals" in raw:
            sg = raw["signals"] or {}
            settings.signals = SignalConfig(
                api_url=sg.get("api_url", DEFAULT_SIGNAL_API_URL),
                api_key=sg.get("api_key", ""),
                max_attempts=positive_number(sg.get("max_attempts"), 3),
                base_delay_s=float(sg.get("base_delay_s", 1.0)),
                timeout_s=float(sg.get("timeout_s", 30.0)),
            )

        if "gateway" in raw:
            gw = raw["gateway"] or {}
            defaults = GatewayConfig()
            settings.gateway = GatewayConfig(
                type=gw.get("type", "rest"),
                base_url=gw.get("base_url", ""),
                auth_type=gw.get("auth_type", "bearer"),
                auth_credentials=gw.get("auth_credentials", {}),
                endpoints={**defaults.endpoints, **(gw.get("endpoints") or {})},
            )

    _apply_env_overrides(settings)
    _settings = settings
    return settings


def get_settings() -> Settings:
    """Return cached settings or load from default path."""
    global _settings
    if _settings is None:
        _settings = load_settings()
    return _settings
