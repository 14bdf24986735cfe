#===============================================================================
#  CDP_Bootstrap_Agent | session.py
#===============================================================================
#  Author      : Edwin A. Rodriguez
#  Role/Team   : SAP COE / SAP SRE (GRM-Testing-Automation & Governance)
#  Created     : 2026-10-19
#  Last Update : 2026-10-19
#
#  Summary
#  -------
#  Per-process session context. Owned by the agent lifecycle and handed to
#  every component; nothing here is shared between instances (that goes
#  through the persistent store).
#
#  Copyright (c) 2026 Edwin A. Rodriguez. All rights reserved.
#  Provided "AS IS", without warranty of any kind.
#===============================================================================

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Awaitable, Callable, List, Optional

from .config import AgentConfig
from .driver import PortControlledDriver
from .host_shell import HostShell
from .instance_lock import InstanceLockArbiter
from .launch_env import LaunchEnvironment
from .models import EnvironmentState
from .relaunch import RelaunchConductor
from .scheduler import DelayedTask, PeriodicTask, now_ms
from .state import KeyValueStore, MarkerStore


@dataclass
class SessionContext:
    config: AgentConfig
    host_name: str
    store: KeyValueStore
    markers: MarkerStore
    shell: HostShell
    driver: PortControlledDriver
    env: LaunchEnvironment
    conductor: RelaunchConductor
    arbiter: InstanceLockArbiter
    probe: Callable[[int], Awaitable[bool]]
    clock: Callable[[], int] = now_ms

    enabled: bool = False
    background_mode: bool = False
    poll_interval_ms: int = 1000
    blocked_patterns: List[str] = field(default_factory=list)

    state: Optional[EnvironmentState] = None
    connection_limited: bool = False
    had_connection: bool = False
    last_prompt_ms: int = 0

    poll_task: Optional[PeriodicTask] = None
    heal_task: Optional[DelayedTask] = None

    @property
    def port(self) -> int:
        return self.config.port
