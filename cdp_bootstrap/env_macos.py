#===============================================================================
#  CDP_Bootstrap_Agent | env_macos.py
#===============================================================================
#  Author      : Edwin A. Rodriguez
#  Role/Team   : SAP COE / SAP SRE (GRM-Testing-Automation & Governance)
#  Created     : 2026-10-19
#  Last Update : 2026-10-19
#
#  Summary
#  -------
#  macOS launch entries. App bundles ignore arguments when double-clicked, so
#  the flag lives in a user-local wrapper script (~/.local/bin/<host>-cdp)
#  that this agent writes and owns.
#
#  Copyright (c) 2026 Edwin A. Rodriguez. All rights reserved.
#  Provided "AS IS", without warranty of any kind.
#===============================================================================

from __future__ import annotations

import shlex
from pathlib import Path
from typing import List, Optional, Sequence

from .launch_env import LaunchEnvironment, has_required_flag, split_command, unquote
from .models import EntryKind, LaunchEntry, PatchResult


class MacLaunchEnvironment(LaunchEnvironment):
    platform = "darwin"

    def __init__(
        self,
        host_name: str,
        port: int,
        home: Optional[Path] = None,
        applications_dir: Optional[Path] = None,
    ):
        super().__init__(host_name, port)
        self.home = Path(home) if home else Path.home()
        self.applications_dir = Path(applications_dir) if applications_dir else Path("/Applications")

    @property
    def wrapper_path(self) -> Path:
        slug = self.host_name.lower().replace(" ", "-")
        return self.home / ".local" / "bin" / f"{slug}-cdp"

    @property
    def bundle_path(self) -> Path:
        return self.applications_dir / f"{self.host_name}.app"

    def resolve_bundle_binary(self) -> Optional[Path]:
        contents = self.bundle_path / "Contents"
        candidates = [
            contents / "MacOS" / self.host_name,
            contents / "Resources" / "app" / "bin" / self.host_name.lower(),
            contents / "MacOS" / "Electron",
        ]
        for p in candidates:
            if p.exists():
                return p
        return None

    @staticmethod
    def _launch_line(content: str) -> str:
        lines = [ln.strip() for ln in content.splitlines()]
        lines = [ln for ln in lines if ln and not ln.startswith("#")]
        return lines[-1] if lines else ""

    def locate(self) -> List[LaunchEntry]:
        entries: List[LaunchEntry] = []

        wrapper = self.wrapper_path
        if wrapper.is_file():
            entry = LaunchEntry(path=str(wrapper), kind=EntryKind.WRAPPER_SCRIPT)
            try:
                line = self._launch_line(wrapper.read_text(encoding="utf-8"))
                exe_token, args = split_command(line)
                if unquote(exe_token) != "open":
                    entry.target_executable = unquote(exe_token)
                entry.argument_string = args
                entry.has_required_flag = has_required_flag(args, self.port)
            except OSError as e:
                entry.extra["error"] = str(e)
            entries.append(entry)

        bundle = self.bundle_path
        if bundle.exists():
            binary = self.resolve_bundle_binary()
            entries.append(
                LaunchEntry(
                    path=str(bundle),
                    kind=EntryKind.APP_BUNDLE,
                    target_executable=str(binary) if binary else "",
                    has_required_flag=False,
                )
            )
        return entries

    def wrapper_content(self) -> str:
        binary = self.resolve_bundle_binary()
        header = f"#!/bin/bash\n# CDP Bootstrap Agent - {self.host_name} with remote debugging enabled\n"
        if binary is None:
            return header + f'open -a "{self.bundle_path}" --args {self.flag} "$@"\n'
        return header + f'"{binary}" {self.flag} "$@"\n'

    def _patch(self, entry: LaunchEntry) -> PatchResult:
        wrapper = self.wrapper_path
        content = self.wrapper_content()
        current = wrapper.read_text(encoding="utf-8") if wrapper.is_file() else None

        if current != content:
            wrapper.parent.mkdir(parents=True, exist_ok=True)
            wrapper.write_text(content, encoding="utf-8")
            wrapper.chmod(0o755)
            modified = True
            message = f"Created wrapper script. Launch via: {wrapper}"
        else:
            modified = False
            message = "Wrapper script already up to date"

        entry.extra["wrapper_path"] = str(wrapper)
        if entry.kind == EntryKind.WRAPPER_SCRIPT:
            exe_token, args = split_command(self._launch_line(content))
            entry.argument_string = args
            entry.has_required_flag = True
        return PatchResult(True, modified, message)

    def relaunch_script(
        self,
        entry: LaunchEntry,
        workspace_paths: Sequence[str],
        fallback_executable: Optional[str] = None,
    ) -> str:
        folder_args = " ".join(shlex.quote(p) for p in workspace_paths)
        if entry.kind == EntryKind.WRAPPER_SCRIPT:
            command = f"{shlex.quote(entry.path)} {folder_args}"
        else:
            command = f"open -a {shlex.quote(entry.path)} --args {self.flag} {folder_args}"
        return f"#!/bin/bash\nsleep {self.grace_s}\n{command.rstrip()}\n"
