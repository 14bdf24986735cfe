#===============================================================================
#  CDP_Bootstrap_Agent | models.py
#===============================================================================
#  Author      : Edwin A. Rodriguez
#  Role/Team   : SAP COE / SAP SRE (GRM-Testing-Automation & Governance)
#  Created     : 2026-10-19
#  Last Update : 2026-10-19
#
#  Summary
#  -------
#  Shared data models used across the bootstrap agent.
#
#  Copyright (c) 2026 Edwin A. Rodriguez. All rights reserved.
#  Provided "AS IS", without warranty of any kind.
#===============================================================================

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional


class EntryKind:
    START_MENU = "start-menu"
    DESKTOP = "desktop"
    TASKBAR = "taskbar"
    REGISTRY = "registry"
    APP_BUNDLE = "app-bundle"
    WRAPPER_SCRIPT = "wrapper-script"
    DESKTOP_FILE_USER = "desktop-file-user"
    DESKTOP_FILE_SYSTEM = "desktop-file-system"

    # Relaunch prefers these over everything else.
    PRIMARY = (START_MENU, WRAPPER_SCRIPT, DESKTOP_FILE_USER)


@dataclass
class LaunchEntry:
    """One way the host application can be started.

    Built fresh on every locate pass; only the patcher mutates it.
    """
    path: str                    # shortcut / registry key / desktop file / wrapper
    kind: str                    # one of EntryKind
    target_executable: str = ""  # may be empty when unresolved
    argument_string: str = ""    # raw arguments as currently configured
    has_required_flag: bool = False
    extra: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "path": self.path,
            "kind": self.kind,
            "targetExecutable": self.target_executable,
            "argumentString": self.argument_string,
            "hasRequiredFlag": self.has_required_flag,
        }


@dataclass(frozen=True)
class PatchResult:
    success: bool
    modified: bool
    message: str


@dataclass(frozen=True)
class RelaunchResult:
    success: bool
    action: str   # "none" | "relaunched" | "error"
    message: str

    @property
    def relaunched(self) -> bool:
        return self.success and self.action == "relaunched"


class EnvironmentState(str, Enum):
    AVAILABLE = "Available"
    FIRST_RUN = "Unreachable-FirstRun"
    USER_SKIPPED = "Unreachable-UserSkipped"
    REGISTRY_STALE = "Unreachable-RegistryStaleOrBypassed"
    CONNECTION_LIMITED = "Unreachable-ConnectionLimited"


@dataclass(frozen=True)
class BootstrapOutcome:
    state: EnvironmentState
    action: str   # "none" | "relaunched" | "limited" | "prompted" | "failed"
    message: str = ""
    relaunch: Optional[RelaunchResult] = None


@dataclass(frozen=True)
class InstanceLock:
    owner_id: str
    heartbeat_ms: int
