#===============================================================================
#  CDP_Bootstrap_Agent  |  Remote-Debugging Bootstrap & Relaunch Agent
#===============================================================================
#  Author      : Edwin A. Rodriguez
#  Role/Team   : SAP COE / SAP SRE (GRM-Testing-Automation & Governance)
#  Created     : 2026-10-19
#  Last Update : 2026-10-19
#
#  Summary
#  -------
#  Background agent that makes sure the host application (Cursor, Windsurf,
#  VS Code, ...) exposes its remote-debugging port. It discovers every launch
#  entry of the host on the current OS, adds the --remote-debugging-port flag
#  where it is missing and, when the port is still closed, relaunches the host
#  once with the flag and the open workspace.
#  Supports:
#    - run      : start the agent (console or tray UI)
#    - status   : probe the port and list discovered launch entries
#    - patch    : add the flag to every launch entry, no relaunch
#    - relaunch : run the relaunch flow once
#    - reset    : forget "Don't ask again"
#
#  Data Conventions
#  ----------------
#    <data dir>/settings.json   -> optional settings (see cdp_bootstrap/config.py)
#    <data dir>/store/*.json    -> persisted markers and instance lock
#    <data dir>/logs/agent.log  -> rotating log
#
#  Copyright & License Notes
#  -------------------------
#  Copyright (c) 2026 Edwin A. Rodriguez. All rights reserved.
#
#  This source code is provided "AS IS", without warranty of any kind, express
#  or implied, including but not limited to the warranties of merchantability,
#  fitness for a particular purpose, and noninfringement.
#
#  Permission Notice (Personal/Internal Use)
#  -----------------------------------------
#  You may use, copy, and modify this software for personal or internal use.
#  Redistribution or public release should include this header and credit the
#  author. If you plan to open-source this project, consider replacing this
#  section with an OSI-approved license (e.g., MIT) for clarity.
#
#  Third-Party Components
#  ----------------------
#  This project uses third-party libraries (PySide6, requests, psutil, pywin32)
#  which are licensed separately by their respective authors. Ensure compliance
#  with their license terms when distributing this software.
#===============================================================================

import argparse
import asyncio
import json
import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import List, Optional

from cdp_bootstrap.agent import Agent, build_agent
from cdp_bootstrap.config import AgentConfig, ConfigError, default_base_dir, load_config
from cdp_bootstrap.constants import APP_TITLE, CHOICE_NEVER, CHOICE_NOT_NOW, CHOICE_RELAUNCH, CONFIG_FILE_NAME, LOG_FILE_NAME
from cdp_bootstrap.host_process import guess_host_name
from cdp_bootstrap.host_shell import ConsoleHostShell
from cdp_bootstrap.launch_env import cdp_flag, select_environment
from cdp_bootstrap.prober import endpoint_url, probe
from cdp_bootstrap.state import KeyValueStore, MarkerStore

logger = logging.getLogger("cdp_bootstrap")

LOG_FORMAT = "[%(asctime)s] %(levelname)s %(name)s: %(message)s"


def configure_logging(log_dir: Optional[Path], verbose: bool = False) -> None:
    """Rotating file log under ``log_dir`` plus stderr."""
    level = logging.DEBUG if verbose else logging.INFO
    formatter = logging.Formatter(LOG_FORMAT)
    root = logging.getLogger()
    root.setLevel(level)
    for h in list(root.handlers):
        root.removeHandler(h)

    stream = logging.StreamHandler(sys.stderr)
    stream.setFormatter(formatter)
    root.addHandler(stream)

    if log_dir is not None:
        try:
            Path(log_dir).mkdir(parents=True, exist_ok=True)
            fh = RotatingFileHandler(Path(log_dir) / LOG_FILE_NAME, maxBytes=1_000_000, backupCount=3, encoding="utf-8")
            fh.setFormatter(formatter)
            root.addHandler(fh)
        except OSError as e:
            logger.warning("File logging disabled (%s)", e)


# ----------------------------
# Arguments / config
# ----------------------------
def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="cdp-bootstrap", description=APP_TITLE)
    p.add_argument("--config", type=Path, default=None, help="settings JSON (default: <data dir>/settings.json)")
    p.add_argument("--port", type=int, default=None, help="remote-debugging port (default 9000)")
    p.add_argument("--host-name", default=None, help="host application name, e.g. Cursor")
    p.add_argument("-v", "--verbose", action="store_true")
    sub = p.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="start the agent")
    run.add_argument("--ui", choices=("console", "qt"), default="console")
    run.add_argument("--workspace", action="append", default=[], help="workspace folder to reopen (repeatable)")
    run.add_argument("--host-pid", type=int, default=None, help="pid of the running host")
    run.add_argument("--enable", action="store_true", help="turn the feature on before bootstrapping")
    run.add_argument(
        "--answer",
        choices=(CHOICE_RELAUNCH, CHOICE_NOT_NOW, CHOICE_NEVER),
        default=CHOICE_NOT_NOW,
        help="console UI: answer given to relaunch prompts",
    )

    status = sub.add_parser("status", help="probe the port and list launch entries")
    status.add_argument("--json", action="store_true", dest="as_json")

    sub.add_parser("patch", help="add the flag to every launch entry")

    relaunch = sub.add_parser("relaunch", help="relaunch the host with the flag")
    relaunch.add_argument("--workspace", action="append", default=[])
    relaunch.add_argument("--host-pid", type=int, default=None)

    sub.add_parser("reset", help="ask about remote debugging again on next start")
    return p


def resolve_config(args: argparse.Namespace) -> AgentConfig:
    path = args.config or (default_base_dir() / CONFIG_FILE_NAME)
    cfg = load_config(path)
    if args.port is not None:
        cfg.port = args.port
    if args.host_name:
        cfg.host_name = args.host_name
    cfg.validate()
    return cfg


def settings_path(args: argparse.Namespace, cfg: AgentConfig) -> Path:
    return args.config or (cfg.resolved_base_dir() / CONFIG_FILE_NAME)


# ----------------------------
# Commands
# ----------------------------
def cmd_status(args: argparse.Namespace, cfg: AgentConfig) -> int:
    host_name = cfg.host_name or guess_host_name()
    env = select_environment(host_name, cfg.port)
    reachable = probe(cfg.port, cfg.probe_timeout_s)
    entries = env.locate()
    markers = MarkerStore(KeyValueStore(cfg.resolved_store_dir()))

    if args.as_json:
        print(json.dumps({
            "host": host_name,
            "port": cfg.port,
            "endpoint": endpoint_url(cfg.port),
            "reachable": reachable,
            "entries": [e.to_dict() for e in entries],
            "markers": {
                "registryConfigured": markers.registry_configured,
                "skipPromptRequested": markers.skip_prompt_requested,
                "lastAutoRelaunchTimestamp": markers.last_auto_relaunch_ms,
                "connectionEverEstablished": markers.connection_ever_established,
            },
        }, indent=2))
        return 0

    print(f"Host     : {host_name}")
    print(f"Endpoint : {endpoint_url(cfg.port)} -> {'reachable' if reachable else 'unreachable'}")
    if not entries:
        print("No launch entries found.")
    for e in entries:
        mark = "ok " if e.has_required_flag else "-- "
        print(f"  [{mark}] {e.kind:<20} {e.path}")
    return 0


def cmd_patch(args: argparse.Namespace, cfg: AgentConfig) -> int:
    host_name = cfg.host_name or guess_host_name()
    env = select_environment(host_name, cfg.port)
    entries = [e for e in env.locate() if e.path]
    if not entries:
        print(f"No launch entries found for {host_name}. Add {cdp_flag(cfg.port)} to its shortcut manually.")
        return 1
    results = env.patch_all(entries)
    failed = 0
    for entry, result in zip(entries, results):
        state = "modified" if result.modified else ("ok" if result.success else "FAILED")
        failed += 0 if result.success else 1
        print(f"  {state:<8} {entry.path}: {result.message}")
    return 1 if failed else 0


def cmd_reset(args: argparse.Namespace, cfg: AgentConfig) -> int:
    MarkerStore(KeyValueStore(cfg.resolved_store_dir())).reset_cdp_settings()
    print("Remote-debugging prompt re-enabled.")
    return 0


async def _relaunch_once(agent: Agent) -> int:
    result = await agent.relaunch()
    print(result.message)
    pending = agent.ctx.conductor.pending_quit
    if pending is not None:
        await pending.wait()
    return 0 if result.success else 1


def cmd_relaunch(args: argparse.Namespace, cfg: AgentConfig) -> int:
    cfg.host_name = cfg.host_name or guess_host_name(args.host_pid)
    shell = ConsoleHostShell(
        args.workspace,
        host_pid=args.host_pid,
        settings_path=settings_path(args, cfg),
        host_name=cfg.host_name,
    )
    agent = build_agent(cfg, shell, host_pid=args.host_pid)
    return asyncio.run(_relaunch_once(agent))


async def _run_agent(agent: Agent, enable: bool) -> None:
    if enable:
        agent.ctx.markers.feature_enabled = True
    outcome = await agent.activate()
    if outcome.action == "relaunched":
        # the replacement host starts its own agent
        pending = agent.ctx.conductor.pending_quit
        if pending is not None:
            await pending.wait()
        await agent.deactivate()
        return
    await agent.run_until_quit()


def _build_qt_agent(args: argparse.Namespace, cfg: AgentConfig) -> Agent:
    from PySide6.QtWidgets import QApplication

    from cdp_bootstrap.qt_shell import QtHostShell

    app = QApplication.instance() or QApplication(sys.argv)
    app.setQuitOnLastWindowClosed(False)
    shell = QtHostShell(
        app,
        args.workspace,
        host_pid=args.host_pid,
        settings_path=settings_path(args, cfg),
        host_name=cfg.host_name,
    )
    agent = build_agent(cfg, shell, host_pid=args.host_pid)
    shell.add_action("Toggle on/off", agent.toggle)
    shell.add_action("Cycle mode", agent.cycle_state)
    shell.add_action("Relaunch with remote debugging", agent.relaunch)
    shell.add_action("Reset remote-debugging prompt", agent.reset_cdp_settings)
    shell.add_action("Open settings", agent.open_settings)
    shell.add_action("Quit agent", agent.stop)
    return agent


def cmd_run(args: argparse.Namespace, cfg: AgentConfig) -> int:
    cfg.host_name = cfg.host_name or guess_host_name(args.host_pid)
    if args.ui == "qt":
        agent = _build_qt_agent(args, cfg)
    else:
        shell = ConsoleHostShell(
            args.workspace,
            host_pid=args.host_pid,
            default_choice=args.answer,
            settings_path=settings_path(args, cfg),
            host_name=cfg.host_name,
        )
        agent = build_agent(cfg, shell, host_pid=args.host_pid)
    try:
        asyncio.run(_run_agent(agent, args.enable))
    except KeyboardInterrupt:
        logger.info("Interrupted")
    return 0


COMMANDS = {
    "run": cmd_run,
    "status": cmd_status,
    "patch": cmd_patch,
    "relaunch": cmd_relaunch,
    "reset": cmd_reset,
}


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        cfg = resolve_config(args)
    except ConfigError as e:
        print(f"error: {e}", file=sys.stderr)
        return 2
    configure_logging(cfg.resolved_log_dir(), args.verbose)
    logger.debug("Config: %s", cfg.to_dict())
    return COMMANDS[args.command](args, cfg)


if __name__ == "__main__":
    sys.exit(main())
