#===============================================================================
#  CDP_Bootstrap_Agent | env_linux.py
#===============================================================================
#  Author      : Edwin A. Rodriguez
#  Role/Team   : SAP COE / SAP SRE (GRM-Testing-Automation & Governance)
#  Created     : 2026-10-19
#  Last Update : 2026-10-19
#
#  Summary
#  -------
#  Linux launch entries: user-level and system-level .desktop files.
#  System files are never edited; a corrected copy goes into the user's
#  applications directory, which takes precedence.
#
#  Copyright (c) 2026 Edwin A. Rodriguez. All rights reserved.
#  Provided "AS IS", without warranty of any kind.
#===============================================================================

from __future__ import annotations

import os
import re
import shlex
from pathlib import Path
from typing import List, Optional, Sequence

from .launch_env import LaunchEnvironment, ensure_flag, has_required_flag, split_command, unquote
from .models import EntryKind, LaunchEntry, PatchResult

EXEC_RE = re.compile(r"^Exec=(.*)$", re.MULTILINE)
# Desktop Entry field codes (%f, %U, ...) are meaningless outside a launcher.
FIELD_CODE_RE = re.compile(r"%[fFuUdDnNickvm]")


def user_applications_dir(home: Optional[Path] = None, env: Optional[dict] = None) -> Path:
    env = env if env is not None else os.environ
    data_home = env.get("XDG_DATA_HOME")
    if data_home:
        return Path(data_home) / "applications"
    return (Path(home) if home else Path.home()) / ".local" / "share" / "applications"


def rewrite_exec_lines(content: str, port: int) -> str:
    """Ensure every Exec= line carries the flag right after the executable."""
    def _fix(m: "re.Match[str]") -> str:
        exe_token, args = split_command(m.group(1))
        if not exe_token:
            return m.group(0)
        updated = ensure_flag(args, port)
        return f"Exec={exe_token} {updated}"

    return EXEC_RE.sub(_fix, content)


class LinuxLaunchEnvironment(LaunchEnvironment):
    platform = "linux"

    def __init__(
        self,
        host_name: str,
        port: int,
        user_dir: Optional[Path] = None,
        system_dirs: Optional[Sequence[Path]] = None,
    ):
        super().__init__(host_name, port)
        self.user_dir = Path(user_dir) if user_dir else user_applications_dir()
        self.system_dirs = [Path(p) for p in system_dirs] if system_dirs is not None else [
            Path("/usr/share/applications"),
            Path("/usr/local/share/applications"),
        ]

    @property
    def desktop_file_name(self) -> str:
        return f"{self.host_name.lower().replace(' ', '-')}.desktop"

    def locate(self) -> List[LaunchEntry]:
        entries: List[LaunchEntry] = []
        candidates = [(self.user_dir / self.desktop_file_name, EntryKind.DESKTOP_FILE_USER)]
        candidates += [(d / self.desktop_file_name, EntryKind.DESKTOP_FILE_SYSTEM) for d in self.system_dirs]

        for path, kind in candidates:
            if not path.is_file():
                continue
            entry = LaunchEntry(path=str(path), kind=kind)
            try:
                content = path.read_text(encoding="utf-8")
            except OSError as e:
                entry.extra["error"] = str(e)
                entries.append(entry)
                continue
            exec_lines = EXEC_RE.findall(content)
            if exec_lines:
                exe_token, args = split_command(exec_lines[0])
                entry.target_executable = unquote(exe_token)
                entry.argument_string = args
                entry.extra["exec_line"] = exec_lines[0]
                entry.has_required_flag = all(
                    has_required_flag(split_command(line)[1], self.port) for line in exec_lines
                )
            entries.append(entry)
        return entries

    def _target_path(self, entry: LaunchEntry) -> Path:
        if entry.kind == EntryKind.DESKTOP_FILE_USER:
            return Path(entry.path)
        return self.user_dir / Path(entry.path).name

    def _patch(self, entry: LaunchEntry) -> PatchResult:
        source = Path(entry.path)
        content = source.read_text(encoding="utf-8")
        updated = rewrite_exec_lines(content, self.port)
        target = self._target_path(entry)

        existing: Optional[str] = None
        if target == source:
            existing = content
        elif target.is_file():
            existing = target.read_text(encoding="utf-8")
        elif updated == content:
            # system file already correct and no user override to maintain
            existing = updated

        if existing == updated:
            entry.has_required_flag = True
            return PatchResult(True, False, "Already configured with correct port")

        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(updated, encoding="utf-8")

        exec_lines = EXEC_RE.findall(updated)
        if exec_lines:
            entry.argument_string = split_command(exec_lines[0])[1]
            entry.extra["exec_line"] = exec_lines[0]
        entry.has_required_flag = True
        return PatchResult(True, True, f"Modified: {target.name}")

    def relaunch_script(
        self,
        entry: LaunchEntry,
        workspace_paths: Sequence[str],
        fallback_executable: Optional[str] = None,
    ) -> str:
        folder_args = " ".join(shlex.quote(p) for p in workspace_paths)
        slug = self.host_name.lower().replace(" ", "-")
        exec_line = entry.extra.get("exec_line") or ""
        exec_command = FIELD_CODE_RE.sub("", exec_line).strip()
        desktop_id = Path(entry.path).stem

        binaries = [f"/usr/bin/{slug}", f"/usr/share/{slug}/bin/{slug}", f"/opt/{slug}/bin/{slug}"]
        if fallback_executable:
            binaries.insert(0, fallback_executable)
        bin_list = " ".join(shlex.quote(b) for b in binaries)

        lines = [
            "#!/bin/bash",
            f"sleep {self.grace_s}",
            "",
            "if command -v gio >/dev/null 2>&1; then",
            f"    gio launch {shlex.quote(entry.path)} {folder_args} 2>/dev/null && exit 0",
            "fi",
            "",
        ]
        if exec_command:
            lines.append(f"{exec_command} {folder_args} 2>/dev/null && exit 0")
            lines.append("")
        lines += [
            "if command -v gtk-launch >/dev/null 2>&1; then",
            f"    gtk-launch {shlex.quote(desktop_id)} {folder_args} 2>/dev/null && exit 0",
            "fi",
            "",
            f"for bin in {bin_list}; do",
            '    if [ -x "$bin" ]; then',
            f'        "$bin" {self.flag} {folder_args} &',
            "        exit 0",
            "    fi",
            "done",
            "",
            'echo "Failed to launch host" >&2',
            "exit 1",
        ]
        return "\n".join(lines) + "\n"
