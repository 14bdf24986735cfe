#===============================================================================
#  CDP_Bootstrap_Agent | relaunch.py
#===============================================================================
#  Author      : Edwin A. Rodriguez
#  Role/Team   : SAP COE / SAP SRE (GRM-Testing-Automation & Governance)
#  Created     : 2026-10-19
#  Last Update : 2026-10-19
#
#  Summary
#  -------
#  Relaunches the host with the remote-debugging flag. Tiers, in order:
#    1) port already open  -> nothing to do
#    2) launch entries     -> patch all, relaunch through the primary entry
#    3) running executable -> spawn it directly with the flag
#    4) nothing resolvable -> report a manual-fix message
#  Spawns are detached and fire-and-forget; the host is asked to quit shortly
#  after so the delayed script can start the replacement.
#
#  Copyright (c) 2026 Edwin A. Rodriguez. All rights reserved.
#  Provided "AS IS", without warranty of any kind.
#===============================================================================

from __future__ import annotations

import asyncio
import logging
import os
import re
import subprocess
import tempfile
from pathlib import Path
from typing import Any, Awaitable, Callable, List, Optional, Sequence

from .constants import COMPAT_ARGS, QUIT_DELAY_S
from .launch_env import LaunchEnvironment, cdp_flag
from .models import LaunchEntry, RelaunchResult
from .prober import probe_async
from .scheduler import DelayedTask, now_ms

logger = logging.getLogger(__name__)


def spawn_detached(cmd: List[str]) -> None:
    """Start ``cmd`` outside our process group. Raises OSError on failure."""
    kwargs: dict = {
        "stdin": subprocess.DEVNULL,
        "stdout": subprocess.DEVNULL,
        "stderr": subprocess.DEVNULL,
        "close_fds": True,
    }
    if os.name == "nt":
        kwargs["creationflags"] = subprocess.DETACHED_PROCESS | subprocess.CREATE_NEW_PROCESS_GROUP
    else:
        kwargs["start_new_session"] = True
    subprocess.Popen(cmd, **kwargs)


def write_relaunch_script(content: str, suffix: str, host_name: str, directory: Optional[Path] = None) -> Path:
    directory = Path(directory) if directory else Path(tempfile.gettempdir())
    directory.mkdir(parents=True, exist_ok=True)
    slug = re.sub(r"\s+", "_", host_name)
    path = directory / f"relaunch_{slug}_{now_ms()}{suffix}"
    # newline="" keeps the batch file's CRLF endings as written
    with open(path, "w", encoding="utf-8", newline="") as f:
        f.write(content)
    if os.name != "nt":
        path.chmod(0o755)
    return path


class RelaunchConductor:
    def __init__(
        self,
        env: LaunchEnvironment,
        request_quit: Callable[[], Any],
        resolve_executable: Callable[[], Optional[str]],
        probe: Optional[Callable[[int], Awaitable[bool]]] = None,
        spawn: Callable[[List[str]], None] = spawn_detached,
        compat_args: Sequence[str] = tuple(COMPAT_ARGS),
        quit_delay_s: float = QUIT_DELAY_S,
        script_dir: Optional[Path] = None,
    ):
        self.env = env
        self.request_quit = request_quit
        self.resolve_executable = resolve_executable
        self.probe = probe or probe_async
        self.spawn = spawn
        self.compat_args = list(compat_args)
        self.quit_delay_s = quit_delay_s
        self.script_dir = script_dir
        self.pending_quit: Optional[DelayedTask] = None
        self.spawned: List[List[str]] = []

    @property
    def port(self) -> int:
        return self.env.port

    async def relaunch(
        self,
        preferred: Optional[LaunchEntry] = None,
        workspace_paths: Sequence[str] = (),
        entries: Optional[List[LaunchEntry]] = None,
    ) -> RelaunchResult:
        logger.info("Starting relaunch flow (port %s)", self.port)

        # the port may have opened since the caller's own probe
        if await self.probe(self.port):
            logger.info("CDP already running, no relaunch needed")
            return RelaunchResult(True, "none", "CDP already available")

        if entries is None:
            entries = await self.env.locate_async()

        if entries:
            results = await self.env.patch_all_async(entries)
            modified = any(r.modified for r in results)
            # patching can create new entries (wrapper script, user .desktop copy)
            fresh = await self.env.locate_async() or entries
            primary = self._choose_primary(fresh, preferred)
            logger.info("Found %d launch entries. Using primary: %s", len(fresh), primary.path)

            check = await asyncio.to_thread(self.env.patch, primary)
            if check.success:
                error = self._relaunch_via_entry(primary, workspace_paths)
                if error is None:
                    if modified or check.modified:
                        return RelaunchResult(True, "relaunched", "Shortcut updated. Relaunching with remote debugging enabled...")
                    return RelaunchResult(True, "relaunched", "Relaunching with remote debugging enabled...")
                logger.warning("Entry relaunch failed: %s", error)
            else:
                logger.warning("Primary entry could not be patched: %s", check.message)
        else:
            logger.info("No launch entries found to modify")

        return self._relaunch_direct(workspace_paths)

    def _choose_primary(self, entries: Sequence[LaunchEntry], preferred: Optional[LaunchEntry]) -> LaunchEntry:
        if preferred is not None:
            for entry in entries:
                if entry.path == preferred.path:
                    return entry
            return preferred
        primary = self.env.pick_primary(entries)
        assert primary is not None
        return primary

    def _relaunch_via_entry(self, entry: LaunchEntry, workspace_paths: Sequence[str]) -> Optional[str]:
        fallback = None if entry.target_executable else self.resolve_executable()
        try:
            content = self.env.relaunch_script(entry, workspace_paths, fallback_executable=fallback)
            script = write_relaunch_script(content, self.env.script_suffix, self.env.host_name, self.script_dir)
            cmd = self.env.script_command(str(script))
            logger.info("Relaunch script %s via %s", script, cmd[0])
            self.spawn(cmd)
        except OSError as e:
            return str(e)
        self.spawned.append(cmd)
        self._schedule_quit()
        return None

    def _relaunch_direct(self, workspace_paths: Sequence[str]) -> RelaunchResult:
        logger.info("Falling back to a direct relaunch of the running executable")
        exe = self.resolve_executable()
        if not exe:
            return RelaunchResult(
                False,
                "error",
                "No launch entry found and the host executable could not be determined. "
                f"Add {cdp_flag(self.port)} to the host's shortcut manually.",
            )

        cmd = [exe, cdp_flag(self.port), *self.compat_args, *workspace_paths]
        logger.info("Spawning direct relaunch: %s", " ".join(cmd))
        try:
            self.spawn(cmd)
        except OSError as e:
            return RelaunchResult(False, "error", f"Direct relaunch failed: {e}")
        self.spawned.append(cmd)
        self._schedule_quit()
        return RelaunchResult(True, "relaunched", "No usable shortcut found. Relaunching the host executable directly...")

    def _schedule_quit(self) -> None:
        if self.pending_quit is not None and self.pending_quit.pending:
            return
        self.pending_quit = DelayedTask(self.quit_delay_s, self.request_quit, name="relaunch-quit").start()
