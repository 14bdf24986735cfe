#===============================================================================
#  CDP_Bootstrap_Agent | driver.py
#===============================================================================
#  Author      : Edwin A. Rodriguez
#  Role/Team   : SAP COE / SAP SRE (GRM-Testing-Automation & Governance)
#  Created     : 2026-10-19
#  Last Update : 2026-10-19
#
#  Summary
#  -------
#  Control interface of the port-controlled driver, plus a minimal driver
#  that tracks the debug targets exposed on the port window. The UI
#  automation that runs on top of those targets lives elsewhere.
#
#  Copyright (c) 2026 Edwin A. Rodriguez. All rights reserved.
#  Provided "AS IS", without warranty of any kind.
#===============================================================================

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional, Protocol

from .constants import BASE_CDP_PORT, CDP_PORT_WINDOW, DEFAULT_POLL_INTERVAL_MS, PROBE_TIMEOUT_S
from .prober import list_targets, probe

logger = logging.getLogger(__name__)


@dataclass
class DriverConfig:
    pro_mode: bool = True
    background_mode: bool = False
    poll_interval_ms: int = DEFAULT_POLL_INTERVAL_MS
    host_name: str = "Code"
    blocked_patterns: List[str] = field(default_factory=list)


@dataclass
class SessionSummary:
    clicks: int = 0
    terminal_commands: int = 0
    file_edits: int = 0
    blocked: int = 0
    estimated_time_saved_minutes: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class PortControlledDriver(Protocol):
    def is_available(self) -> bool: ...

    def start(self, config: DriverConfig) -> None: ...

    def stop(self) -> None: ...

    def get_connection_count(self) -> int: ...

    def get_session_summary(self) -> SessionSummary: ...

    def reset_stats(self) -> Dict[str, int]: ...

    def get_away_actions(self) -> int: ...

    def set_focus_state(self, focused: bool) -> None: ...


class CdpTargetDriver:
    """Tracks page targets on ``port .. port + window``."""

    def __init__(self, port: int = BASE_CDP_PORT, window: int = CDP_PORT_WINDOW, timeout_s: float = PROBE_TIMEOUT_S):
        self.port = port
        self.window = window
        self.timeout_s = timeout_s
        self.config: Optional[DriverConfig] = None
        self.focused = True
        self.summary = SessionSummary()
        self.away_actions = 0
        self._targets: Dict[int, List[Dict[str, Any]]] = {}

    def ports(self) -> List[int]:
        return list(range(self.port, self.port + self.window + 1))

    def is_available(self) -> bool:
        return any(probe(p, self.timeout_s) for p in self.ports())

    def start(self, config: DriverConfig) -> None:
        """(Re)sync sessions with the current configuration."""
        self.config = config
        found: Dict[int, List[Dict[str, Any]]] = {}
        for p in self.ports():
            targets = list_targets(p, self.timeout_s)
            if targets is None:
                continue
            pages = [t for t in targets if isinstance(t, dict) and t.get("type") == "page"]
            if pages:
                found[p] = pages
        self._targets = found
        logger.debug("Driver sync: %d page targets on %d ports", self.get_connection_count(), len(found))

    def stop(self) -> None:
        self._targets = {}
        self.config = None

    def get_connection_count(self) -> int:
        return sum(len(v) for v in self._targets.values())

    def get_session_summary(self) -> SessionSummary:
        return self.summary

    def reset_stats(self) -> Dict[str, int]:
        out = {"clicks": self.summary.clicks, "blocked": self.summary.blocked}
        self.summary = SessionSummary()
        return out

    def get_away_actions(self) -> int:
        count, self.away_actions = self.away_actions, 0
        return count

    def set_focus_state(self, focused: bool) -> None:
        self.focused = focused
