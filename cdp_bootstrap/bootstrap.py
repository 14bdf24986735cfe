#===============================================================================
#  CDP_Bootstrap_Agent | bootstrap.py
#===============================================================================
#  Author      : Edwin A. Rodriguez
#  Role/Team   : SAP COE / SAP SRE (GRM-Testing-Automation & Governance)
#  Created     : 2026-10-19
#  Last Update : 2026-10-19
#
#  Summary
#  -------
#  Start-of-process decision: probe the debug port, classify the environment
#  and pick one of {nothing, self-heal, prompt, one auto-relaunch, limited}.
#
#  Notes
#  -----
#  - The auto-relaunch timestamp is written BEFORE the attempt. A crash in
#    the middle of a relaunch must not allow a second one inside the cooldown.
#  - Another instance may rewrite any marker between our read and our write.
#
#  Copyright (c) 2026 Edwin A. Rodriguez. All rights reserved.
#  Provided "AS IS", without warranty of any kind.
#===============================================================================

from __future__ import annotations

import logging

from .constants import CHOICE_NEVER, CHOICE_NOT_NOW, CHOICE_RELAUNCH
from .launch_env import cdp_flag
from .models import BootstrapOutcome, EnvironmentState, RelaunchResult
from .scheduler import DelayedTask
from .session import SessionContext

logger = logging.getLogger(__name__)


async def self_heal(ctx: SessionContext) -> int:
    """Re-patch every launch entry without relaunching. Returns #modified."""
    entries = await ctx.env.locate_async()
    results = await ctx.env.patch_all_async(entries)
    modified = sum(1 for r in results if r.modified)
    if modified:
        logger.info("Self-heal restored the flag on %d launch entries", modified)
    return modified


def schedule_self_heal(ctx: SessionContext) -> DelayedTask:
    if ctx.heal_task is not None and ctx.heal_task.pending:
        return ctx.heal_task
    ctx.heal_task = DelayedTask(ctx.config.heal_delay_s, lambda: self_heal(ctx), name="self-heal").start()
    return ctx.heal_task


class BootstrapStateMachine:
    def __init__(self, ctx: SessionContext):
        self.ctx = ctx

    async def run(self) -> BootstrapOutcome:
        ctx = self.ctx
        ctx.connection_limited = False
        logger.info("Bootstrapping %s environment (port %s)", ctx.host_name, ctx.port)

        reachable = await ctx.probe(ctx.port)
        logger.info("CDP availability check: %s", reachable)
        if reachable:
            return self._available()

        if ctx.markers.skip_prompt_requested:
            return self._user_skipped()
        if not ctx.markers.registry_configured:
            return await self._first_run()
        return await self._configured_but_closed()

    # ----------------------------
    # States
    # ----------------------------
    def _available(self) -> BootstrapOutcome:
        ctx = self.ctx
        # evidently configured correctly, whoever did it
        ctx.markers.registry_configured = True
        ctx.enabled = ctx.markers.feature_enabled
        ctx.state = EnvironmentState.AVAILABLE
        if ctx.enabled:
            schedule_self_heal(ctx)
        logger.info("CDP available. Agent ready (enabled=%s)", ctx.enabled)
        return BootstrapOutcome(EnvironmentState.AVAILABLE, "none", "CDP available")

    def _user_skipped(self) -> BootstrapOutcome:
        ctx = self.ctx
        ctx.state = EnvironmentState.USER_SKIPPED
        logger.info("CDP not available and the user opted out. Running in limited mode.")
        ctx.shell.show_status("Limited mode", "Remote debugging is off. Use Relaunch to enable it.")
        return BootstrapOutcome(EnvironmentState.USER_SKIPPED, "limited", "Remote debugging disabled by user choice")

    async def _first_run(self) -> BootstrapOutcome:
        ctx = self.ctx
        ctx.state = EnvironmentState.FIRST_RUN
        logger.info("First time setup: configuring launch entries and restarting...")
        await ctx.shell.show_message(
            "First-time setup: configuring the host's shortcuts and restarting once to enable full functionality..."
        )

        entries = await ctx.env.locate_async()
        await ctx.env.patch_all_async(entries)
        # marked even if the relaunch fails, so setup never repeats
        ctx.markers.registry_configured = True

        result = await ctx.conductor.relaunch(workspace_paths=ctx.shell.workspace_paths(), entries=entries)
        if result.relaunched:
            logger.info("First-time relaunch initiated")
            return BootstrapOutcome(EnvironmentState.FIRST_RUN, "relaunched", result.message, result)
        if result.success:
            return self._available()

        logger.warning("Auto-relaunch failed: %s", result.message)
        ctx.enabled = False
        await ctx.shell.show_message(
            f"Automatic setup failed: {result.message}\n\n"
            f"Add {cdp_flag(ctx.port)} to the target of the shortcut you start the host with, then restart it.",
            level="warning",
        )
        return BootstrapOutcome(EnvironmentState.FIRST_RUN, "failed", result.message, result)

    async def _configured_but_closed(self) -> BootstrapOutcome:
        ctx = self.ctx
        now = ctx.clock()
        elapsed = now - ctx.markers.last_auto_relaunch_ms

        if elapsed >= ctx.config.relaunch_cooldown_ms:
            ctx.markers.last_auto_relaunch_ms = now
            entries = await ctx.env.locate_async()
            results = await ctx.env.patch_all_async(entries)
            if any(r.modified for r in results):
                logger.info("Launch entries were reset; attempting one automatic relaunch")
                result = await ctx.conductor.relaunch(workspace_paths=ctx.shell.workspace_paths(), entries=entries)
                if result.relaunched:
                    ctx.state = EnvironmentState.REGISTRY_STALE
                    return BootstrapOutcome(EnvironmentState.REGISTRY_STALE, "relaunched", result.message, result)
                if result.success:
                    return self._available()
                logger.warning("Automatic relaunch failed: %s", result.message)
            else:
                logger.info("Launch entries already correct; host was started another way")
        else:
            remaining = (ctx.config.relaunch_cooldown_ms - elapsed) // 1000
            logger.info("Automatic relaunch on cooldown (%ss left)", remaining)

        return await self._limited()

    async def _limited(self) -> BootstrapOutcome:
        ctx = self.ctx
        ctx.state = EnvironmentState.REGISTRY_STALE
        ctx.connection_limited = True
        ctx.shell.show_status(
            "Connection limited",
            "Start the host from its shortcut to enable full functionality, or relaunch now.",
        )
        choice = await ctx.shell.show_message(
            "The remote debugging port is still closed, so the agent runs with limited functionality. "
            "Relaunch the host with remote debugging enabled?",
            choices=(CHOICE_RELAUNCH, CHOICE_NOT_NOW, CHOICE_NEVER),
            level="warning",
        )
        if choice == CHOICE_RELAUNCH:
            result = await self.manual_relaunch()
            if result.relaunched:
                return BootstrapOutcome(EnvironmentState.REGISTRY_STALE, "relaunched", result.message, result)
        elif choice == CHOICE_NEVER:
            ctx.markers.skip_prompt_requested = True
        return BootstrapOutcome(EnvironmentState.REGISTRY_STALE, "limited", "Connection limited")

    async def manual_relaunch(self) -> RelaunchResult:
        ctx = self.ctx
        result = await ctx.conductor.relaunch(workspace_paths=ctx.shell.workspace_paths())
        if not result.success:
            await ctx.shell.show_message(f"Relaunch failed: {result.message}", level="error")
        return result
