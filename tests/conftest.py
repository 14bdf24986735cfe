from __future__ import annotations

from typing import Dict, List, Optional, Sequence, Tuple

import pytest

from cdp_bootstrap.agent import build_agent
from cdp_bootstrap.config import AgentConfig
from cdp_bootstrap.driver import DriverConfig, SessionSummary
from cdp_bootstrap.host_shell import ConsoleHostShell
from cdp_bootstrap.launch_env import LaunchEnvironment, ensure_flag, has_required_flag
from cdp_bootstrap.models import EntryKind, LaunchEntry, PatchResult


class MemoryLaunchEnvironment(LaunchEnvironment):
    """Launch entries kept in a dict: path -> (kind, target, args)."""

    platform = "memory"
    script_suffix = ".sh"

    def __init__(self, host_name: str = "Code", port: int = 9000, entries=None, fail_paths=()):
        super().__init__(host_name, port)
        self.entries: Dict[str, Tuple[str, str, str]] = dict(entries or {})
        self.fail_paths = set(fail_paths)
        self.patch_calls: List[str] = []
        self.writes: List[str] = []

    def locate(self) -> List[LaunchEntry]:
        return [
            LaunchEntry(path=p, kind=k, target_executable=t, argument_string=a,
                        has_required_flag=has_required_flag(a, self.port))
            for p, (k, t, a) in self.entries.items()
        ]

    def _patch(self, entry: LaunchEntry) -> PatchResult:
        self.patch_calls.append(entry.path)
        if entry.path in self.fail_paths:
            raise PermissionError(f"Access is denied: {entry.path}")
        kind, target, args = self.entries[entry.path]
        updated = ensure_flag(args, self.port)
        entry.has_required_flag = True
        if updated == args:
            return PatchResult(True, False, "Already configured with correct port")
        self.entries[entry.path] = (kind, target, updated)
        self.writes.append(entry.path)
        entry.argument_string = updated
        return PatchResult(True, True, f"Modified: {entry.path}")

    def relaunch_script(self, entry, workspace_paths: Sequence[str], fallback_executable: Optional[str] = None) -> str:
        target = entry.target_executable or fallback_executable or entry.path
        return f"#!/bin/sh\nsleep {self.grace_s}\n{target} {self.flag} {' '.join(workspace_paths)}\n"

    def script_command(self, script_path: str) -> List[str]:
        return ["sh", script_path]

    def args_of(self, path: str) -> str:
        return self.entries[path][2]


class FakeProbe:
    def __init__(self, reachable: bool = False):
        self.reachable = reachable
        self.calls = 0

    async def __call__(self, port: int) -> bool:
        self.calls += 1
        return self.reachable


class FakeSpawner:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.commands: List[List[str]] = []

    def __call__(self, cmd: List[str]) -> None:
        if self.fail:
            raise OSError("spawn failed")
        self.commands.append(list(cmd))


class FakeDriver:
    def __init__(self, counts=()):
        self.counts = list(counts)
        self.count = 0
        self.started: List[DriverConfig] = []
        self.stopped = 0
        self.focused = True
        self.away = 0

    def is_available(self) -> bool:
        return True

    def start(self, config: DriverConfig) -> None:
        self.started.append(config)
        if self.counts:
            self.count = self.counts.pop(0)

    def stop(self) -> None:
        self.stopped += 1

    def get_connection_count(self) -> int:
        return self.count

    def get_session_summary(self) -> SessionSummary:
        return SessionSummary()

    def reset_stats(self):
        return {"clicks": 0, "blocked": 0}

    def get_away_actions(self) -> int:
        count, self.away = self.away, 0
        return count

    def set_focus_state(self, focused: bool) -> None:
        self.focused = focused


class FakeClock:
    def __init__(self, start: int = 1_700_000_000_000):
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


START_MENU = r"C:\Users\me\AppData\Roaming\Microsoft\Windows\Start Menu\Programs\Code\Code.lnk"
DESKTOP = r"C:\Users\me\Desktop\Code.lnk"
CODE_EXE = r"C:\Program Files\Code\Code.exe"


@pytest.fixture
def make_env():
    def _make(entries=None, **kw) -> MemoryLaunchEnvironment:
        return MemoryLaunchEnvironment(entries=entries, **kw)
    return _make


@pytest.fixture
def config(tmp_path) -> AgentConfig:
    cfg = AgentConfig(
        host_name="Code",
        base_dir=str(tmp_path / "data"),
        heal_delay_s=0,
        quit_delay_s=0,
        lock_tick_s=60,
    )
    return cfg


@pytest.fixture
def make_agent(tmp_path, config):
    def _make(env=None, reachable=False, driver=None, shell=None, clock=None, exe=None, spawn_fail=False):
        env = env if env is not None else MemoryLaunchEnvironment()
        probe = FakeProbe(reachable)
        spawner = FakeSpawner(fail=spawn_fail)
        shell = shell or ConsoleHostShell(["/work/project"])
        agent = build_agent(
            config,
            shell,
            driver=driver or FakeDriver(),
            env=env,
            probe=probe,
            spawn=spawner,
            clock=clock or FakeClock(),
        )
        agent.ctx.conductor.script_dir = tmp_path / "scripts"
        agent.ctx.conductor.resolve_executable = lambda: exe
        return agent, probe, spawner
    return _make


def shortcut_entries(args: str = "") -> Dict[str, Tuple[str, str, str]]:
    return {START_MENU: (EntryKind.START_MENU, CODE_EXE, args)}
