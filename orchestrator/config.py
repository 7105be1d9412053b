"""
Loop configuration.

Values resolve in this order:
  1. Explicit keyword overrides (CLI flags, tests)
  2. YAML overlay file (LOOP_CONFIG env var or an explicit path)
  3. Environment variables: LOOP_MAX_ATTEMPTS, LOOP_QUIESCENCE_SECONDS, ...
  4. Built-in defaults

LLM provider selection is not configured here; it stays with the router
(LLM_PROVIDER, OLLAMA_MODEL, OLLAMA_BASE_URL).
"""

import logging
import os
import shlex
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

ERROR_POLICIES = ("any", "diagnostics_only", "console_only")

# env var -> (field name, parser)
_ENV_VARS: dict[str, tuple[str, Any]] = {
    "LOOP_MAX_ATTEMPTS": ("max_attempts", int),
    "LOOP_QUIESCENCE_SECONDS": ("quiescence_window", float),
    "LOOP_COLLECT_TIMEOUT": ("collect_timeout", float),
    "LOOP_CONSOLE_TIMEOUT": ("console_timeout", float),
    "LOOP_INSTALL_TIMEOUT": ("install_timeout", float),
    "LOOP_ERROR_POLICY": ("error_policy", str),
    "LOOP_ENTRY_COMMAND": ("entry_command", shlex.split),
    "LOOP_BLUEPRINT_PATH": ("blueprint_path", str),
}


@dataclass
class LoopConfig:
    # Small fixed bound: more than one plausible fix, never unbounded thrash
    max_attempts: int = 3
    # Seconds without new signals before a reading counts as stable
    quiescence_window: float = 0.5
    # Upper bound on a single collect() call regardless of signal churn
    collect_timeout: float = 30.0
    console_timeout: float = 15.0
    install_timeout: float = 300.0
    error_policy: str = "any"
    manifest_names: list[str] = field(
        default_factory=lambda: ["requirements.txt", "pyproject.toml"]
    )
    # Command run by the runtime console; empty disables the console feed
    entry_command: list[str] = field(default_factory=list)
    blueprint_path: str = ".blueprint.yaml"

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")
        if self.error_policy not in ERROR_POLICIES:
            raise ValueError(
                f"error_policy must be one of {ERROR_POLICIES}, got {self.error_policy!r}"
            )
        if self.quiescence_window < 0 or self.collect_timeout <= 0:
            raise ValueError("quiescence_window must be >= 0 and collect_timeout > 0")


def _from_env() -> dict[str, Any]:
    values: dict[str, Any] = {}
    for env_name, (field_name, parser) in _ENV_VARS.items():
        raw = os.environ.get(env_name)
        if raw is None or raw == "":
            continue
        try:
            values[field_name] = parser(raw)
        except ValueError as exc:
            raise ValueError(f"Invalid value for {env_name}: {raw!r}") from exc
    return values


def _from_yaml(path: Path) -> dict[str, Any]:
    data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Config file {path} must contain a mapping")
    known = {f.name for f in fields(LoopConfig)}
    unknown = set(data) - known
    if unknown:
        logger.warning("Ignoring unknown config keys in %s: %s", path, sorted(unknown))
    values = {k: v for k, v in data.items() if k in known}
    if isinstance(values.get("entry_command"), str):
        values["entry_command"] = shlex.split(values["entry_command"])
    return values


def load_config(path: str | Path | None = None, **overrides: Any) -> LoopConfig:
    """Build a LoopConfig from defaults, environment, YAML overlay and overrides."""
    values = _from_env()

    config_path = path or os.environ.get("LOOP_CONFIG")
    if config_path:
        config_path = Path(config_path)
        if config_path.exists():
            values.update(_from_yaml(config_path))
        else:
            logger.warning("Config file %s not found; using defaults", config_path)

    values.update({k: v for k, v in overrides.items() if v is not None})
    return LoopConfig(**values)
