import asyncio

from cdp_bootstrap.bootstrap import self_heal
from cdp_bootstrap.constants import CHOICE_NEVER, CHOICE_RELAUNCH, RELAUNCH_COOLDOWN_MS
from cdp_bootstrap.host_shell import ConsoleHostShell
from cdp_bootstrap.launch_env import has_required_flag
from cdp_bootstrap.models import EntryKind, EnvironmentState

from conftest import CODE_EXE, START_MENU, FakeClock, MemoryLaunchEnvironment, shortcut_entries


async def _run(agent):
    outcome = await agent.machine.run()
    pending = agent.ctx.conductor.pending_quit
    if pending is not None:
        await pending.wait()
    return outcome


def test_first_run_patches_marks_and_relaunches(make_agent):
    env = MemoryLaunchEnvironment(entries=shortcut_entries(""))
    agent, probe, spawner = make_agent(env=env)

    outcome = asyncio.run(_run(agent))

    assert outcome.state == EnvironmentState.FIRST_RUN
    assert outcome.action == "relaunched"
    assert env.writes == [START_MENU]
    assert has_required_flag(env.args_of(START_MENU), 9000)
    assert agent.ctx.markers.registry_configured is True
    assert len(spawner.commands) == 1
    assert agent.ctx.shell.quit_requested is True


def test_first_run_failure_names_the_flag_and_disables(make_agent):
    agent, _, spawner = make_agent(env=MemoryLaunchEnvironment(), exe=None)
    agent.ctx.enabled = True

    outcome = asyncio.run(_run(agent))

    assert outcome.action == "failed"
    assert agent.ctx.enabled is False
    assert agent.ctx.markers.registry_configured is True
    assert spawner.commands == []
    level, text = agent.ctx.shell.messages[-1]
    assert level == "warning"
    assert "--remote-debugging-port=9000" in text


def test_already_correct_resolves_to_available(make_agent):
    env = MemoryLaunchEnvironment(entries=shortcut_entries("--remote-debugging-port=9000"))
    agent, _, spawner = make_agent(env=env, reachable=True)
    agent.ctx.markers.registry_configured = True

    outcome = asyncio.run(_run(agent))

    assert outcome.state == EnvironmentState.AVAILABLE
    assert outcome.action == "none"
    assert env.patch_calls == []
    assert spawner.commands == []


def test_reachable_port_marks_configured_and_restores_enabled(make_agent):
    agent, _, _ = make_agent(reachable=True)
    agent.ctx.markers.feature_enabled = True

    asyncio.run(_run(agent))

    assert agent.ctx.markers.registry_configured is True
    assert agent.ctx.enabled is True


def test_self_heal_repatches_without_relaunch(make_agent):
    env = MemoryLaunchEnvironment(entries=shortcut_entries("--new-window"))
    agent, _, spawner = make_agent(env=env, reachable=True)
    agent.ctx.markers.feature_enabled = True

    async def scenario():
        await agent.machine.run()
        await agent.ctx.heal_task.wait()

    asyncio.run(scenario())

    assert env.args_of(START_MENU) == "--remote-debugging-port=9000 --new-window"
    assert spawner.commands == []
    assert asyncio.run(self_heal(agent.ctx)) == 0


def test_auto_relaunch_respects_cooldown(make_agent):
    clock = FakeClock()
    env = MemoryLaunchEnvironment(entries=shortcut_entries(""))
    agent, _, spawner = make_agent(env=env, clock=clock)
    agent.ctx.markers.registry_configured = True
    stamps = []

    async def scenario():
        for step in (0, 60_000, 60_000, 60_000):
            clock.advance(step)
            # the host's updater resets the shortcut between starts
            env.entries[START_MENU] = (EntryKind.START_MENU, CODE_EXE, "")
            before = len(spawner.commands)
            outcome = await _run(agent)
            if len(spawner.commands) > before:
                stamps.append(agent.ctx.markers.last_auto_relaunch_ms)
                assert outcome.action == "relaunched"
            else:
                assert outcome.action == "limited"

    asyncio.run(scenario())

    assert len(stamps) == 2
    assert stamps[1] - stamps[0] >= RELAUNCH_COOLDOWN_MS


def test_timestamp_is_stamped_before_the_attempt(make_agent):
    clock = FakeClock()
    env = MemoryLaunchEnvironment(entries=shortcut_entries(""))
    agent, _, _ = make_agent(env=env, clock=clock, spawn_fail=True)
    agent.ctx.markers.registry_configured = True

    outcome = asyncio.run(_run(agent))

    assert outcome.action == "limited"
    assert agent.ctx.markers.last_auto_relaunch_ms == clock.now


def test_nothing_to_fix_enters_limited_mode(make_agent):
    env = MemoryLaunchEnvironment(entries=shortcut_entries("--remote-debugging-port=9000"))
    agent, _, spawner = make_agent(env=env)
    agent.ctx.markers.registry_configured = True

    outcome = asyncio.run(_run(agent))

    assert outcome.state == EnvironmentState.REGISTRY_STALE
    assert outcome.action == "limited"
    assert spawner.commands == []
    assert agent.ctx.connection_limited is True
    assert agent.ctx.shell.status[0] == "Connection limited"


def test_user_skipped_never_prompts_or_patches(make_agent):
    env = MemoryLaunchEnvironment(entries=shortcut_entries(""))
    agent, _, spawner = make_agent(env=env)
    agent.ctx.markers.skip_prompt_requested = True

    outcome = asyncio.run(_run(agent))

    assert outcome.state == EnvironmentState.USER_SKIPPED
    assert env.patch_calls == []
    assert spawner.commands == []
    assert agent.ctx.shell.messages == []


def test_limited_prompt_dont_ask_again(make_agent):
    env = MemoryLaunchEnvironment(entries=shortcut_entries("--remote-debugging-port=9000"))
    shell = ConsoleHostShell(default_choice=CHOICE_NEVER)
    agent, _, _ = make_agent(env=env, shell=shell)
    agent.ctx.markers.registry_configured = True

    asyncio.run(_run(agent))

    assert agent.ctx.markers.skip_prompt_requested is True


def test_limited_prompt_relaunch_now(make_agent):
    env = MemoryLaunchEnvironment(entries=shortcut_entries("--remote-debugging-port=9000"))
    shell = ConsoleHostShell(default_choice=CHOICE_RELAUNCH)
    agent, _, spawner = make_agent(env=env, shell=shell)
    agent.ctx.markers.registry_configured = True

    outcome = asyncio.run(_run(agent))

    assert outcome.action == "relaunched"
    assert len(spawner.commands) == 1


def test_connection_limited_is_reset_each_pass(make_agent):
    agent, _, _ = make_agent(reachable=True)
    agent.ctx.connection_limited = True

    asyncio.run(_run(agent))

    assert agent.ctx.connection_limited is False
