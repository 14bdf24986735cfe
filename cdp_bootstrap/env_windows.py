#===============================================================================
#  CDP_Bootstrap_Agent | env_windows.py
#===============================================================================
#  Author      : Edwin A. Rodriguez
#  Role/Team   : SAP COE / SAP SRE (GRM-Testing-Automation & Governance)
#  Created     : 2026-10-19
#  Last Update : 2026-10-19
#
#  Summary
#  -------
#  Windows launch entries: .lnk shortcuts (start menu, desktop, taskbar pin)
#  and HKCU shell\open\command keys for the file association and the URL
#  protocol handler.
#
#  Copyright (c) 2026 Edwin A. Rodriguez. All rights reserved.
#  Provided "AS IS", without warranty of any kind.
#===============================================================================

from __future__ import annotations

import os
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from .constants import RELAUNCH_GRACE_WINDOWS_S
from .launch_env import (
    LaunchEnvironment,
    ensure_flag,
    flag_ports,
    has_required_flag,
    split_command,
    unquote,
)
from .models import EntryKind, LaunchEntry, PatchResult

REGISTRY_ROOT = "HKCU"


class WindowsShellIO:
    """Shell-link and registry access through pywin32 / winreg."""

    def read_shortcut(self, path: str) -> Tuple[str, str]:
        """Return (target path, arguments) of a .lnk file."""
        import pythoncom
        import win32com.client

        pythoncom.CoInitialize()
        try:
            link = win32com.client.Dispatch("WScript.Shell").CreateShortCut(path)
            return str(link.TargetPath or ""), str(link.Arguments or "")
        finally:
            pythoncom.CoUninitialize()

    def write_shortcut_arguments(self, path: str, arguments: str) -> None:
        import pythoncom
        import win32com.client

        pythoncom.CoInitialize()
        try:
            link = win32com.client.Dispatch("WScript.Shell").CreateShortCut(path)
            link.Arguments = arguments
            link.Save()
        finally:
            pythoncom.CoUninitialize()

    def read_registry_command(self, subkey: str) -> Optional[str]:
        """Default value of HKCU\\<subkey>, or None when the key is missing."""
        import winreg

        try:
            with winreg.OpenKey(winreg.HKEY_CURRENT_USER, subkey) as key:
                value, _kind = winreg.QueryValueEx(key, "")
        except FileNotFoundError:
            return None
        return str(value)

    def write_registry_command(self, subkey: str, value: str) -> None:
        import winreg

        with winreg.OpenKey(winreg.HKEY_CURRENT_USER, subkey, 0, winreg.KEY_SET_VALUE) as key:
            winreg.SetValueEx(key, "", 0, winreg.REG_SZ, value)


class WindowsLaunchEnvironment(LaunchEnvironment):
    platform = "win32"
    grace_s = RELAUNCH_GRACE_WINDOWS_S
    script_suffix = ".bat"

    def __init__(self, host_name: str, port: int, io: Optional[WindowsShellIO] = None, env: Optional[dict] = None):
        super().__init__(host_name, port)
        self.io = io or WindowsShellIO()
        self.env = env if env is not None else os.environ

    # ----------------------------
    # Discovery
    # ----------------------------
    def shortcut_candidates(self) -> List[Tuple[Path, str]]:
        name = self.host_name
        out: List[Tuple[Path, str]] = []
        if self.env.get("APPDATA"):
            appdata = Path(self.env["APPDATA"])
            programs = appdata / "Microsoft" / "Windows" / "Start Menu" / "Programs"
            out.append((programs / name / f"{name}.lnk", EntryKind.START_MENU))
            out.append((programs / f"{name}.lnk", EntryKind.START_MENU))
        if self.env.get("USERPROFILE"):
            out.append((Path(self.env["USERPROFILE"]) / "Desktop" / f"{name}.lnk", EntryKind.DESKTOP))
        if self.env.get("APPDATA"):
            pinned = Path(self.env["APPDATA"]) / "Microsoft" / "Internet Explorer" / "Quick Launch" / "User Pinned"
            out.append((pinned / "TaskBar" / f"{name}.lnk", EntryKind.TASKBAR))
        return out

    def registry_subkeys(self) -> List[str]:
        slug = self.host_name.lower().replace(" ", "")
        return [
            rf"Software\Classes\{slug}\shell\open\command",
            rf"Software\Classes\{slug}-url\shell\open\command",
        ]

    def locate(self) -> List[LaunchEntry]:
        entries: List[LaunchEntry] = []
        for path, kind in self.shortcut_candidates():
            if not path.is_file():
                continue
            entry = LaunchEntry(path=str(path), kind=kind)
            try:
                target, args = self.io.read_shortcut(str(path))
                entry.target_executable = target
                entry.argument_string = args
                entry.has_required_flag = has_required_flag(args, self.port)
            except Exception as e:
                # keep it: the caller still needs to know the shortcut exists
                entry.extra["error"] = str(e)
            entries.append(entry)

        for subkey in self.registry_subkeys():
            try:
                command = self.io.read_registry_command(subkey)
            except Exception as e:
                entries.append(LaunchEntry(path=self._registry_path(subkey), kind=EntryKind.REGISTRY,
                                           extra={"subkey": subkey, "error": str(e)}))
                continue
            if command is None:
                continue
            exe_token, args = split_command(command)
            entries.append(
                LaunchEntry(
                    path=self._registry_path(subkey),
                    kind=EntryKind.REGISTRY,
                    target_executable=unquote(exe_token),
                    argument_string=args,
                    has_required_flag=has_required_flag(args, self.port),
                    extra={"subkey": subkey},
                )
            )
        return entries

    @staticmethod
    def _registry_path(subkey: str) -> str:
        return f"{REGISTRY_ROOT}\\{subkey}"

    # ----------------------------
    # Patching
    # ----------------------------
    def _patch(self, entry: LaunchEntry) -> PatchResult:
        if entry.kind == EntryKind.REGISTRY:
            return self._patch_registry(entry)
        return self._patch_shortcut(entry)

    def _patch_shortcut(self, entry: LaunchEntry) -> PatchResult:
        target, current = self.io.read_shortcut(entry.path)
        updated = ensure_flag(current, self.port)
        entry.target_executable = entry.target_executable or target
        if updated == current:
            entry.argument_string = current
            entry.has_required_flag = True
            return PatchResult(True, False, "Already configured with correct port")
        self.io.write_shortcut_arguments(entry.path, updated)
        entry.argument_string = updated
        entry.has_required_flag = True
        verb = "Updated port" if flag_ports(current) else "Modified"
        return PatchResult(True, True, f"{verb}: {Path(entry.path).name}")

    def _patch_registry(self, entry: LaunchEntry) -> PatchResult:
        subkey = entry.extra.get("subkey") or entry.path.split("\\", 1)[-1]
        command = self.io.read_registry_command(subkey)
        if command is None:
            return PatchResult(False, False, f"Registry key not found: {entry.path}")
        exe_token, args = split_command(command)
        if not exe_token:
            return PatchResult(False, False, f"Unparseable registry command: {command}")
        updated_args = ensure_flag(args, self.port)
        if updated_args == args:
            entry.has_required_flag = True
            return PatchResult(True, False, "Already configured with correct port")
        # the %1 placeholder travels inside args untouched
        self.io.write_registry_command(subkey, f"{exe_token} {updated_args}")
        entry.argument_string = updated_args
        entry.target_executable = unquote(exe_token)
        entry.has_required_flag = True
        return PatchResult(True, True, f"Updated registry: {entry.path}")

    # ----------------------------
    # Relaunch
    # ----------------------------
    def relaunch_script(
        self,
        entry: LaunchEntry,
        workspace_paths: Sequence[str],
        fallback_executable: Optional[str] = None,
    ) -> str:
        folder_args = " ".join(f'"{p}"' for p in workspace_paths)
        target = entry.target_executable or fallback_executable or ""
        if not target or target.lower().endswith(".lnk"):
            command = f'start "" "{entry.path}" {folder_args}'
        else:
            command = f'start "" "{target}" {self.flag} {folder_args}'
        return (
            "@echo off\r\n"
            "REM CDP Bootstrap Agent - host relaunch script\r\n"
            f"timeout /t {self.grace_s} /nobreak >nul\r\n"
            f"{command.rstrip()}\r\n"
            'del "%~f0" & exit\r\n'
        )

    def script_command(self, script_path: str) -> List[str]:
        # explorer detaches the batch from the host's job object
        return ["explorer.exe", script_path]
