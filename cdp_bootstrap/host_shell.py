#===============================================================================
#  CDP_Bootstrap_Agent | host_shell.py
#===============================================================================
#  Author      : Edwin A. Rodriguez
#  Role/Team   : SAP COE / SAP SRE (GRM-Testing-Automation & Governance)
#  Created     : 2026-10-19
#  Last Update : 2026-10-19
#
#  Summary
#  -------
#  What the agent needs from its host: prompts, a status indicator, a quit
#  request, the settings surface and the open workspace folders.
#  ConsoleHostShell is the headless implementation (logs instead of UI).
#
#  Copyright (c) 2026 Edwin A. Rodriguez. All rights reserved.
#  Provided "AS IS", without warranty of any kind.
#===============================================================================

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional, Protocol, Sequence, Tuple

from .host_process import terminate_host

logger = logging.getLogger(__name__)

_LEVELS = {"info": logging.INFO, "warning": logging.WARNING, "error": logging.ERROR}


class HostShell(Protocol):
    async def show_message(
        self, text: str, choices: Sequence[str] = (), modal: bool = False, level: str = "info"
    ) -> Optional[str]: ...

    def show_status(self, text: str, tooltip: str = "") -> None: ...

    def request_quit(self) -> None: ...

    def open_settings(self) -> None: ...

    def workspace_paths(self) -> List[str]: ...

    def pump(self) -> None: ...


class ConsoleHostShell:
    """Headless shell: messages go to the log, prompts take a fixed answer."""

    def __init__(
        self,
        workspaces: Sequence[str] = (),
        host_pid: Optional[int] = None,
        default_choice: Optional[str] = None,
        settings_path: Optional[Path] = None,
        host_name: Optional[str] = None,
    ):
        self._workspaces = [str(w) for w in workspaces]
        self.host_pid = host_pid
        self.host_name = host_name
        self.default_choice = default_choice
        self.settings_path = settings_path
        self.messages: List[Tuple[str, str]] = []
        self.status: Tuple[str, str] = ("", "")
        self.quit_requested = False

    async def show_message(
        self, text: str, choices: Sequence[str] = (), modal: bool = False, level: str = "info"
    ) -> Optional[str]:
        self.messages.append((level, text))
        suffix = f" [{' / '.join(choices)}]" if choices else ""
        logger.log(_LEVELS.get(level, logging.INFO), "%s%s", text, suffix)
        if self.default_choice and self.default_choice in choices:
            return self.default_choice
        return None

    def show_status(self, text: str, tooltip: str = "") -> None:
        if (text, tooltip) != self.status:
            logger.info("Status: %s%s", text, f" ({tooltip})" if tooltip else "")
        self.status = (text, tooltip)

    def request_quit(self) -> None:
        self.quit_requested = True
        if self.host_pid or self.host_name:
            terminate_host(self.host_name, self.host_pid)

    def open_settings(self) -> None:
        logger.info("Settings file: %s", self.settings_path or "(none)")

    def workspace_paths(self) -> List[str]:
        return list(self._workspaces)

    def pump(self) -> None:
        pass
