#===============================================================================
#  CDP_Bootstrap_Agent | config.py
#===============================================================================
#  Author      : Edwin A. Rodriguez
#  Role/Team   : SAP COE / SAP SRE (GRM-Testing-Automation & Governance)
#  Created     : 2026-10-19
#  Last Update : 2026-10-19
#
#  Summary
#  -------
#  Agent settings: defaults, optional JSON settings file, CDP_BOOTSTRAP_*
#  environment overrides.
#
#  Copyright (c) 2026 Edwin A. Rodriguez. All rights reserved.
#  Provided "AS IS", without warranty of any kind.
#===============================================================================

from __future__ import annotations

import json
import logging
import os
import sys
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Optional

from .constants import (
    APP_SLUG,
    BASE_CDP_PORT,
    CDP_PORT_WINDOW,
    COMPAT_ARGS,
    DEFAULT_BLOCKED_PATTERNS,
    DEFAULT_POLL_INTERVAL_MS,
    HEAL_DELAY_S,
    LOCK_STALE_MS,
    LOCK_TICK_S,
    PROBE_TIMEOUT_S,
    PROMPT_COOLDOWN_MS,
    QUIT_DELAY_S,
    RELAUNCH_COOLDOWN_MS,
    STORE_DIR_NAME,
)

logger = logging.getLogger(__name__)

ENV_PREFIX = "CDP_BOOTSTRAP_"


class ConfigError(RuntimeError):
    pass


def default_base_dir(env: Optional[dict] = None, platform: Optional[str] = None) -> Path:
    """Per-user data directory for the store, logs and settings."""
    env = env if env is not None else os.environ
    platform = platform or sys.platform
    if platform.startswith("win"):
        root = env.get("APPDATA") or str(Path.home() / "AppData" / "Roaming")
        return Path(root) / APP_SLUG
    if platform == "darwin":
        return Path.home() / "Library" / "Application Support" / APP_SLUG
    root = env.get("XDG_DATA_HOME") or str(Path.home() / ".local" / "share")
    return Path(root) / APP_SLUG


@dataclass
class AgentConfig:
    port: int = BASE_CDP_PORT
    port_window: int = CDP_PORT_WINDOW
    probe_timeout_s: float = PROBE_TIMEOUT_S
    host_name: Optional[str] = None
    host_executable: Optional[str] = None
    poll_interval_ms: int = DEFAULT_POLL_INTERVAL_MS
    lock_tick_s: float = LOCK_TICK_S
    lock_stale_ms: int = LOCK_STALE_MS
    relaunch_cooldown_ms: int = RELAUNCH_COOLDOWN_MS
    prompt_cooldown_ms: int = PROMPT_COOLDOWN_MS
    heal_delay_s: float = HEAL_DELAY_S
    quit_delay_s: float = QUIT_DELAY_S
    relaunch_grace_s: Optional[int] = None
    compat_args: List[str] = field(default_factory=lambda: list(COMPAT_ARGS))
    blocked_patterns: List[str] = field(default_factory=lambda: list(DEFAULT_BLOCKED_PATTERNS))
    pro_mode: bool = True
    background_mode: bool = False
    base_dir: Optional[str] = None
    store_dir: Optional[str] = None
    log_dir: Optional[str] = None

    def resolved_base_dir(self) -> Path:
        return Path(self.base_dir) if self.base_dir else default_base_dir()

    def resolved_store_dir(self) -> Path:
        return Path(self.store_dir) if self.store_dir else self.resolved_base_dir() / STORE_DIR_NAME

    def resolved_log_dir(self) -> Path:
        return Path(self.log_dir) if self.log_dir else self.resolved_base_dir() / "logs"

    def validate(self) -> None:
        try:
            port = int(self.port)
        except (TypeError, ValueError):
            raise ConfigError(f"Port is not a number: {self.port!r}")
        if not (1 <= port <= 65535):
            raise ConfigError(f"Port out of range: {self.port}")
        if self.lock_tick_s <= 0:
            raise ConfigError("lock_tick_s must be positive")
        if self.relaunch_grace_s is not None and self.relaunch_grace_s < 0:
            raise ConfigError("relaunch_grace_s must not be negative")

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


_ENV_FIELDS = {
    "PORT": ("port", int),
    "HOST_NAME": ("host_name", str),
    "HOST_EXECUTABLE": ("host_executable", str),
    "STORE_DIR": ("store_dir", str),
    "LOG_DIR": ("log_dir", str),
}


_OPTIONAL_INT_FIELDS = {"relaunch_grace_s"}


def _coerce(name: str, value: Any, default: Any) -> Any:
    """Convert a settings value to the type of the field's default."""
    if value is None and (default is None or name in _OPTIONAL_INT_FIELDS):
        return None
    if isinstance(default, bool):
        if isinstance(value, bool):
            return value
        raise ValueError(f"expected true/false, got {value!r}")
    if isinstance(value, bool):
        raise ValueError(f"expected a number or text, got {value!r}")
    if isinstance(default, int) or name in _OPTIONAL_INT_FIELDS:
        return int(value)
    if isinstance(default, float):
        return float(value)
    if isinstance(default, list):
        if not isinstance(value, list):
            raise ValueError(f"expected a list, got {value!r}")
        return [str(v) for v in value]
    return str(value)


def _apply_setting(cfg: AgentConfig, name: str, value: Any) -> None:
    default = getattr(cfg, name)
    try:
        setattr(cfg, name, _coerce(name, value, default))
    except (TypeError, ValueError) as e:
        logger.warning("Invalid setting %s (%s); keeping default %r", name, e, default)


def load_config(path: Optional[Path] = None, env: Optional[dict] = None) -> AgentConfig:
    """Load settings from disk (or defaults) and apply environment overrides."""
    env = env if env is not None else os.environ
    cfg = AgentConfig()
    known = {f.name for f in fields(AgentConfig)}

    if path is not None and Path(path).exists():
        try:
            data = json.loads(Path(path).read_text(encoding="utf-8"))
            if not isinstance(data, dict):
                raise ValueError("settings root must be an object")
            for k, v in data.items():
                if k in known:
                    _apply_setting(cfg, k, v)
                else:
                    logger.debug("Ignoring unknown setting %s", k)
        except Exception as e:
            logger.warning("Settings file %s unreadable (%s); using defaults", path, e)
            cfg = AgentConfig()

    for suffix, (attr, cast) in _ENV_FIELDS.items():
        raw = env.get(ENV_PREFIX + suffix)
        if raw:
            try:
                setattr(cfg, attr, cast(raw))
            except ValueError:
                logger.warning("Ignoring invalid %s%s=%r", ENV_PREFIX, suffix, raw)
    return cfg


def save_config(path: Path, cfg: AgentConfig) -> None:
    Path(path).parent.mkdir(parents=True, exist_ok=True)
    Path(path).write_text(json.dumps(cfg.to_dict(), indent=2), encoding="utf-8")
