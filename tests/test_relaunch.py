import asyncio
import os

from cdp_bootstrap.constants import COMPAT_ARGS
from cdp_bootstrap.launch_env import has_required_flag
from cdp_bootstrap.models import EntryKind
from cdp_bootstrap.relaunch import RelaunchConductor, write_relaunch_script

from conftest import CODE_EXE, DESKTOP, START_MENU, FakeProbe, FakeSpawner, MemoryLaunchEnvironment

REG = r"HKCU\Software\Classes\code\shell\open\command"


def _conductor(tmp_path, env, reachable=False, exe=None, spawn_fail=False):
    quits = []
    spawner = FakeSpawner(fail=spawn_fail)
    conductor = RelaunchConductor(
        env,
        request_quit=lambda: quits.append(True),
        resolve_executable=lambda: exe,
        probe=FakeProbe(reachable),
        spawn=spawner,
        quit_delay_s=0,
        script_dir=tmp_path,
    )
    return conductor, spawner, quits


async def _relaunch_and_settle(conductor, **kw):
    result = await conductor.relaunch(**kw)
    if conductor.pending_quit is not None:
        await conductor.pending_quit.wait()
    return result


def test_no_relaunch_when_port_already_open(tmp_path):
    env = MemoryLaunchEnvironment(entries={START_MENU: (EntryKind.START_MENU, CODE_EXE, "")})
    conductor, spawner, quits = _conductor(tmp_path, env, reachable=True)

    result = asyncio.run(_relaunch_and_settle(conductor))

    assert (result.success, result.action) == (True, "none")
    assert spawner.commands == [] and quits == []
    assert env.patch_calls == []


def test_relaunch_patches_every_entry_and_uses_primary(tmp_path):
    env = MemoryLaunchEnvironment(entries={
        REG: (EntryKind.REGISTRY, CODE_EXE, '"%1"'),
        DESKTOP: (EntryKind.DESKTOP, CODE_EXE, ""),
        START_MENU: (EntryKind.START_MENU, CODE_EXE, "--new-window"),
    })
    conductor, spawner, quits = _conductor(tmp_path, env)

    result = asyncio.run(_relaunch_and_settle(conductor, workspace_paths=["/work/a"]))

    assert result.success and result.relaunched
    assert all(has_required_flag(env.args_of(p), 9000) for p in (REG, DESKTOP, START_MENU))
    assert len(spawner.commands) == 1
    shell, script = spawner.commands[0]
    assert shell == "sh"
    content = open(script, encoding="utf-8").read()
    assert f"{CODE_EXE} --remote-debugging-port=9000 /work/a" in content
    assert quits == [True]


def test_preferred_entry_wins(tmp_path):
    env = MemoryLaunchEnvironment(entries={
        START_MENU: (EntryKind.START_MENU, CODE_EXE, ""),
        DESKTOP: (EntryKind.DESKTOP, r"D:\portable\Code.exe", ""),
    })
    conductor, spawner, _ = _conductor(tmp_path, env)
    preferred = env.locate()[1]

    asyncio.run(_relaunch_and_settle(conductor, preferred=preferred))

    content = open(spawner.commands[0][1], encoding="utf-8").read()
    assert r"D:\portable\Code.exe" in content


def test_direct_fallback_when_no_entries(tmp_path):
    env = MemoryLaunchEnvironment()
    conductor, spawner, quits = _conductor(tmp_path, env, exe="/usr/share/code/code")

    result = asyncio.run(_relaunch_and_settle(conductor, workspace_paths=["/work/a"]))

    assert (result.success, result.action) == (True, "relaunched")
    assert spawner.commands == [["/usr/share/code/code", "--remote-debugging-port=9000", *COMPAT_ARGS, "/work/a"]]
    assert quits == [True]


def test_unrecoverable_without_entries_or_executable(tmp_path):
    env = MemoryLaunchEnvironment()
    conductor, spawner, quits = _conductor(tmp_path, env, exe=None)

    result = asyncio.run(_relaunch_and_settle(conductor))

    assert (result.success, result.action) == (False, "error")
    assert "--remote-debugging-port=9000" in result.message
    assert spawner.commands == [] and quits == []


def test_falls_back_to_direct_when_primary_cannot_be_patched(tmp_path):
    env = MemoryLaunchEnvironment(
        entries={START_MENU: (EntryKind.START_MENU, CODE_EXE, "")},
        fail_paths={START_MENU},
    )
    conductor, spawner, _ = _conductor(tmp_path, env, exe=CODE_EXE)

    result = asyncio.run(_relaunch_and_settle(conductor))

    assert result.relaunched
    assert spawner.commands[0][:2] == [CODE_EXE, "--remote-debugging-port=9000"]


def test_spawn_failure_is_reported(tmp_path):
    env = MemoryLaunchEnvironment(entries={START_MENU: (EntryKind.START_MENU, CODE_EXE, "")})
    conductor, _, quits = _conductor(tmp_path, env, exe=CODE_EXE, spawn_fail=True)

    result = asyncio.run(_relaunch_and_settle(conductor))

    assert result.success is False
    assert "spawn failed" in result.message
    assert quits == []


def test_write_relaunch_script_keeps_line_endings(tmp_path):
    path = write_relaunch_script("@echo off\r\nexit\r\n", ".bat", "Visual Studio Code", tmp_path)
    assert path.parent == tmp_path
    assert path.name.startswith("relaunch_Visual_Studio_Code_")
    assert path.read_bytes() == b"@echo off\r\nexit\r\n"
    if os.name != "nt":
        assert os.access(path, os.X_OK)
