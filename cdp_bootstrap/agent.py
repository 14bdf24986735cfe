#===============================================================================
#  CDP_Bootstrap_Agent | agent.py
#===============================================================================
#  Author      : Edwin A. Rodriguez
#  Role/Team   : SAP COE / SAP SRE (GRM-Testing-Automation & Governance)
#  Created     : 2026-10-19
#  Last Update : 2026-10-19
#
#  Summary
#  -------
#  Top-level agent lifecycle: builds the session, runs the bootstrap pass,
#  polls the driver under the instance lock and exposes the user commands
#  (toggle, cycle, relaunch, reset, settings updates).
#
#  Copyright (c) 2026 Edwin A. Rodriguez. All rights reserved.
#  Provided "AS IS", without warranty of any kind.
#===============================================================================

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, List, Optional

from .bootstrap import BootstrapStateMachine, schedule_self_heal
from .config import AgentConfig
from .constants import (
    CHOICE_NEVER,
    CHOICE_NOT_NOW,
    CHOICE_RELAUNCH,
    KEY_BLOCKED_PATTERNS,
    KEY_POLL_INTERVAL,
)
from .driver import CdpTargetDriver, DriverConfig, PortControlledDriver
from .host_process import guess_host_name, resolve_host_executable
from .host_shell import HostShell
from .instance_lock import InstanceLockArbiter
from .launch_env import LaunchEnvironment, select_environment
from .models import BootstrapOutcome, EnvironmentState, RelaunchResult
from .prober import probe_async
from .relaunch import RelaunchConductor, spawn_detached
from .scheduler import PeriodicTask, now_ms
from .session import SessionContext
from .state import KeyValueStore, MarkerStore

logger = logging.getLogger(__name__)

PUMP_INTERVAL_S = 0.05


class Agent:
    def __init__(self, ctx: SessionContext):
        self.ctx = ctx
        self.machine = BootstrapStateMachine(ctx)
        self._stopped: Optional[asyncio.Event] = None
        self._stop_requested = False
        self._pump_task: Optional[PeriodicTask] = None

    # ----------------------------
    # Lifecycle
    # ----------------------------
    async def activate(self) -> BootstrapOutcome:
        ctx = self.ctx
        ctx.enabled = ctx.markers.feature_enabled
        ctx.background_mode = ctx.markers.background_mode
        ctx.poll_interval_ms = int(ctx.store.get(KEY_POLL_INTERVAL, ctx.config.poll_interval_ms))
        ctx.blocked_patterns = list(ctx.store.get(KEY_BLOCKED_PATTERNS, ctx.config.blocked_patterns))
        logger.info("Activating for %s (instance %s)", ctx.host_name, ctx.arbiter.instance_id)

        try:
            outcome = await self.machine.run()
        except Exception as e:
            # activation must survive a broken environment check
            logger.exception("Error in environment check")
            outcome = BootstrapOutcome(EnvironmentState.CONNECTION_LIMITED, "failed", str(e))

        logger.info("Bootstrap outcome: %s / %s", outcome.state.value, outcome.action)
        if outcome.action == "relaunched":
            return outcome

        if ctx.enabled:
            await self.start_polling()
        self.update_status()
        return outcome

    async def deactivate(self) -> None:
        await self.stop_polling()
        if self.ctx.heal_task is not None:
            self.ctx.heal_task.cancel()
        if self._pump_task is not None:
            self._pump_task.cancel()
        self.ctx.arbiter.release()
        logger.info("Agent deactivated")

    async def run_until_quit(self) -> None:
        """Keep the session alive until the host is asked to quit."""
        self._stopped = asyncio.Event()
        if self._stop_requested:
            self._stopped.set()
        self._pump_task = PeriodicTask(PUMP_INTERVAL_S, self.ctx.shell.pump, name="shell-pump")
        self._pump_task.start()
        try:
            await self._stopped.wait()
        finally:
            await self.deactivate()

    def stop(self) -> None:
        self._stop_requested = True
        if self._stopped is not None:
            self._stopped.set()

    def request_host_quit(self) -> None:
        logger.info("Closing current host session...")
        self.ctx.shell.request_quit()
        self.stop()

    # ----------------------------
    # Polling
    # ----------------------------
    async def start_polling(self) -> None:
        ctx = self.ctx
        if ctx.poll_task is not None:
            ctx.poll_task.cancel()
        logger.info("Monitoring session...")
        if ctx.arbiter.tick():
            await self.sync_sessions()
        else:
            self.update_status()
        ctx.poll_task = PeriodicTask(ctx.config.lock_tick_s, self._poll_tick, name="poll")
        ctx.poll_task.start()

    async def stop_polling(self) -> None:
        ctx = self.ctx
        if ctx.poll_task is not None:
            ctx.poll_task.cancel()
            ctx.poll_task = None
        await asyncio.to_thread(ctx.driver.stop)
        logger.info("Polling stopped")

    async def _poll_tick(self) -> None:
        ctx = self.ctx
        if not ctx.enabled:
            return
        was_standby = ctx.arbiter.standby
        if not ctx.arbiter.tick():
            if not was_standby:
                self.update_status()
            return
        if was_standby:
            self.update_status()
        await self.sync_sessions()

    def driver_config(self) -> DriverConfig:
        ctx = self.ctx
        return DriverConfig(
            pro_mode=ctx.config.pro_mode,
            background_mode=ctx.background_mode,
            poll_interval_ms=ctx.poll_interval_ms,
            host_name=ctx.host_name,
            blocked_patterns=list(ctx.blocked_patterns),
        )

    async def sync_sessions(self) -> None:
        ctx = self.ctx
        if ctx.arbiter.standby:
            return
        logger.debug("Syncing sessions (mode: %s)", "background" if ctx.background_mode else "simple")
        try:
            await asyncio.to_thread(ctx.driver.start, self.driver_config())
        except Exception as e:
            logger.warning("Sync error: %s", e)
            return

        count = ctx.driver.get_connection_count()
        if count > 0:
            if not ctx.had_connection:
                ctx.markers.connection_ever_established = True
            ctx.had_connection = True
            if ctx.state != EnvironmentState.AVAILABLE:
                ctx.state = EnvironmentState.AVAILABLE
                ctx.connection_limited = False
                schedule_self_heal(ctx)
                self.update_status()
            return

        if ctx.had_connection and ctx.enabled:
            if ctx.markers.skip_prompt_requested:
                if not ctx.connection_limited:
                    ctx.state = EnvironmentState.CONNECTION_LIMITED
                    ctx.connection_limited = True
                    logger.warning("CDP connection lost; relaunch prompt disabled by user choice")
                    self.update_status()
                return
            now = ctx.clock()
            if now - ctx.last_prompt_ms > ctx.config.prompt_cooldown_ms:
                ctx.last_prompt_ms = now
                ctx.state = EnvironmentState.CONNECTION_LIMITED
                ctx.connection_limited = True
                logger.warning("CDP connection lost; the host may have restarted without the flag")
                self.update_status()
                await self.show_relaunch_prompt()

    # ----------------------------
    # Commands
    # ----------------------------
    async def toggle(self) -> bool:
        ctx = self.ctx
        ctx.enabled = not ctx.enabled
        ctx.markers.feature_enabled = ctx.enabled
        if ctx.enabled:
            logger.info("Enabled")
            await self.ensure_cdp_or_prompt(show_prompt=True)
            await self.start_polling()
        else:
            logger.info("Disabled")
            await self._disable()
        self.update_status()
        return ctx.enabled

    async def cycle_state(self) -> None:
        """OFF -> ON (single tab) -> ON (multi tab) -> OFF."""
        ctx = self.ctx
        if not ctx.enabled:
            ctx.enabled = True
            ctx.background_mode = False
            ctx.markers.feature_enabled = True
            ctx.markers.background_mode = False
            await self.ensure_cdp_or_prompt(show_prompt=True)
            await self.start_polling()
        elif not ctx.background_mode:
            ctx.background_mode = True
            ctx.markers.background_mode = True
            await self.sync_sessions()
        else:
            ctx.enabled = False
            ctx.background_mode = False
            ctx.markers.feature_enabled = False
            ctx.markers.background_mode = False
            await self._disable()
        self.update_status()

    async def _disable(self) -> None:
        ctx = self.ctx
        summary = ctx.driver.get_session_summary()
        logger.info("Session summary: %s", summary)
        await self.stop_polling()
        ctx.had_connection = False
        ctx.markers.connection_ever_established = False

    async def ensure_cdp_or_prompt(self, show_prompt: bool = False) -> bool:
        ctx = self.ctx
        available = await ctx.probe(ctx.port)
        logger.info("Environment check: CDP available = %s", available)
        if available:
            schedule_self_heal(ctx)
            return True
        if show_prompt:
            await self.show_relaunch_prompt()
        return False

    async def show_relaunch_prompt(self) -> str:
        ctx = self.ctx
        choice = await ctx.shell.show_message(
            "The agent needs to restart the host to connect to its debugging port. "
            "Shortcuts will be repaired automatically where possible.",
            choices=(CHOICE_RELAUNCH, CHOICE_NOT_NOW, CHOICE_NEVER),
        )
        logger.info("User chose: %s", choice)
        if choice == CHOICE_RELAUNCH:
            result = await self.relaunch()
            return "relaunched" if result.success else "failed"
        if choice == CHOICE_NEVER:
            ctx.markers.skip_prompt_requested = True
        return "cancelled"

    async def relaunch(self) -> RelaunchResult:
        logger.info("Initiating relaunch...")
        return await self.machine.manual_relaunch()

    async def reset_cdp_settings(self) -> None:
        self.ctx.markers.reset_cdp_settings()
        await self.ctx.shell.show_message("Remote-debugging settings reset. You will be asked again on next start.")

    async def set_poll_interval(self, interval_ms: int) -> None:
        ctx = self.ctx
        ctx.poll_interval_ms = int(interval_ms)
        ctx.store.set(KEY_POLL_INTERVAL, ctx.poll_interval_ms)
        logger.info("Poll frequency updated to %sms", interval_ms)
        if ctx.enabled:
            await self.sync_sessions()

    async def set_blocked_patterns(self, patterns: List[str]) -> None:
        ctx = self.ctx
        ctx.blocked_patterns = [str(p) for p in patterns] if isinstance(patterns, list) else []
        ctx.store.set(KEY_BLOCKED_PATTERNS, ctx.blocked_patterns)
        logger.info("Blocked patterns updated: %d patterns", len(ctx.blocked_patterns))
        if ctx.enabled:
            await self.sync_sessions()

    async def on_focus_changed(self, focused: bool) -> None:
        ctx = self.ctx
        ctx.driver.set_focus_state(focused)
        if focused and ctx.enabled:
            away = ctx.driver.get_away_actions()
            if away:
                logger.info("%d actions handled while the window was unfocused", away)

    def open_settings(self) -> None:
        self.ctx.shell.open_settings()

    def update_status(self) -> None:
        ctx = self.ctx
        if ctx.enabled and ctx.arbiter.standby:
            ctx.shell.show_status("Standby", "Another window is driving the host.")
        elif ctx.connection_limited:
            ctx.shell.show_status("Connection limited", "Relaunch the host with remote debugging enabled.")
        elif not ctx.enabled:
            ctx.shell.show_status("Off", "Click to enable (single tab)")
        elif not ctx.background_mode:
            ctx.shell.show_status("On", "Single tab mode. Click for multi tab mode.")
        else:
            ctx.shell.show_status("On (multi)", "Multi tab mode. Click to turn off.")


def build_agent(
    config: AgentConfig,
    shell: HostShell,
    host_pid: Optional[int] = None,
    driver: Optional[PortControlledDriver] = None,
    env: Optional[LaunchEnvironment] = None,
    store: Optional[KeyValueStore] = None,
    probe: Optional[Callable[[int], Awaitable[bool]]] = None,
    spawn: Callable[[List[str]], None] = spawn_detached,
    clock: Callable[[], int] = now_ms,
) -> Agent:
    config.validate()
    host_name = config.host_name or guess_host_name(host_pid)
    store = store or KeyValueStore(config.resolved_store_dir())
    env = env or select_environment(host_name, config.port)
    if config.relaunch_grace_s is not None:
        env.grace_s = int(config.relaunch_grace_s)
    if probe is None:
        async def probe(port: int) -> bool:
            return await probe_async(port, config.probe_timeout_s)

    agent_ref: List[Agent] = []

    def _request_quit() -> None:
        agent_ref[0].request_host_quit()

    conductor = RelaunchConductor(
        env,
        request_quit=_request_quit,
        resolve_executable=lambda: resolve_host_executable(host_name, config.host_executable, host_pid),
        probe=probe,
        spawn=spawn,
        compat_args=config.compat_args,
        quit_delay_s=config.quit_delay_s,
    )
    ctx = SessionContext(
        config=config,
        host_name=host_name,
        store=store,
        markers=MarkerStore(store),
        shell=shell,
        driver=driver or CdpTargetDriver(config.port, config.port_window, config.probe_timeout_s),
        env=env,
        conductor=conductor,
        arbiter=InstanceLockArbiter(store, host_name, stale_ms=config.lock_stale_ms, clock=clock),
        probe=probe,
        clock=clock,
        poll_interval_ms=config.poll_interval_ms,
        blocked_patterns=list(config.blocked_patterns),
    )
    agent = Agent(ctx)
    agent_ref.append(agent)
    return agent
