#===============================================================================
#  CDP_Bootstrap_Agent | launch_env.py
#===============================================================================
#  Author      : Edwin A. Rodriguez
#  Role/Team   : SAP COE / SAP SRE (GRM-Testing-Automation & Governance)
#  Created     : 2026-10-19
#  Last Update : 2026-10-19
#
#  Summary
#  -------
#  Launch-environment capability shared by the Windows, macOS and Linux
#  variants: flag helpers, patch-all, primary-entry choice and the factory
#  that picks the variant for the running platform.
#
#  Copyright (c) 2026 Edwin A. Rodriguez. All rights reserved.
#  Provided "AS IS", without warranty of any kind.
#===============================================================================

from __future__ import annotations

import asyncio
import logging
import re
import sys
from typing import List, Optional, Sequence, Tuple

from .constants import BASE_CDP_PORT, CDP_FLAG_NAME, RELAUNCH_GRACE_POSIX_S
from .models import EntryKind, LaunchEntry, PatchResult

logger = logging.getLogger(__name__)

FLAG_RE = re.compile(re.escape(CDP_FLAG_NAME) + r"=(\d+)")
# First token of a command line: "quoted path" or bare word, then the rest.
COMMAND_RE = re.compile(r'^\s*("[^"]*"|\S+)\s*(.*)$', re.DOTALL)


def cdp_flag(port: int = BASE_CDP_PORT) -> str:
    return f"{CDP_FLAG_NAME}={port}"


def flag_ports(args: str) -> List[int]:
    return [int(m) for m in FLAG_RE.findall(args or "")]


def has_required_flag(args: str, port: int = BASE_CDP_PORT) -> bool:
    """True iff the flag is present and every occurrence names ``port``."""
    ports = flag_ports(args)
    return bool(ports) and all(p == port for p in ports)


def ensure_flag(args: str, port: int = BASE_CDP_PORT) -> str:
    """Return ``args`` carrying the flag for ``port``.

    A stale port number is substituted in place; otherwise the flag is
    prepended. Other arguments keep their text and order.
    """
    args = args or ""
    if FLAG_RE.search(args):
        return FLAG_RE.sub(cdp_flag(port), args)
    if not args.strip():
        return cdp_flag(port)
    return f"{cdp_flag(port)} {args}"


def split_command(command: str) -> Tuple[str, str]:
    """Split a command line into (first token as written, remaining text)."""
    m = COMMAND_RE.match(command or "")
    if not m:
        return "", ""
    return m.group(1), m.group(2).strip()


def unquote(token: str) -> str:
    if len(token) >= 2 and token[0] == token[-1] == '"':
        return token[1:-1]
    return token


class LaunchEnvironment:
    """Locate and patch the host's launch entries on one platform."""

    platform = ""
    grace_s = RELAUNCH_GRACE_POSIX_S
    script_suffix = ".sh"

    def __init__(self, host_name: str, port: int = BASE_CDP_PORT):
        self.host_name = host_name
        self.port = port

    @property
    def flag(self) -> str:
        return cdp_flag(self.port)

    # ----------------------------
    # Variant hooks
    # ----------------------------
    def locate(self) -> List[LaunchEntry]:
        raise NotImplementedError

    def _patch(self, entry: LaunchEntry) -> PatchResult:
        raise NotImplementedError

    def relaunch_script(
        self,
        entry: LaunchEntry,
        workspace_paths: Sequence[str],
        fallback_executable: Optional[str] = None,
    ) -> str:
        """Script text that waits out the grace period then starts the host."""
        raise NotImplementedError

    def script_command(self, script_path: str) -> List[str]:
        return ["/bin/bash", script_path]

    # ----------------------------
    # Shared behaviour
    # ----------------------------
    def patch(self, entry: LaunchEntry) -> PatchResult:
        """Idempotently make ``entry`` carry the flag. Never raises."""
        try:
            result = self._patch(entry)
        except Exception as e:
            logger.warning("Patch failed for %s: %s", entry.path, e)
            return PatchResult(success=False, modified=False, message=str(e))
        if result.modified:
            logger.info("Patched %s (%s): %s", entry.kind, entry.path, result.message)
        else:
            logger.debug("No change for %s: %s", entry.path, result.message)
        return result

    def patch_all(self, entries: Sequence[LaunchEntry]) -> List[PatchResult]:
        results: List[PatchResult] = []
        for entry in entries:
            if not entry.path:
                continue
            results.append(self.patch(entry))
        modified = sum(1 for r in results if r.modified)
        logger.info("Configured %d launch entries (%d modified)", len(results), modified)
        return results

    async def locate_async(self) -> List[LaunchEntry]:
        return await asyncio.to_thread(self.locate)

    async def patch_all_async(self, entries: Sequence[LaunchEntry]) -> List[PatchResult]:
        return await asyncio.to_thread(self.patch_all, entries)

    @staticmethod
    def pick_primary(entries: Sequence[LaunchEntry]) -> Optional[LaunchEntry]:
        for entry in entries:
            if entry.kind in EntryKind.PRIMARY:
                return entry
        return entries[0] if entries else None


def select_environment(
    host_name: str,
    port: int = BASE_CDP_PORT,
    platform: Optional[str] = None,
) -> LaunchEnvironment:
    platform = platform or sys.platform
    if platform.startswith("win"):
        from .env_windows import WindowsLaunchEnvironment
        return WindowsLaunchEnvironment(host_name, port)
    if platform == "darwin":
        from .env_macos import MacLaunchEnvironment
        return MacLaunchEnvironment(host_name, port)
    from .env_linux import LinuxLaunchEnvironment
    return LinuxLaunchEnvironment(host_name, port)
