#===============================================================================
#  CDP_Bootstrap_Agent | host_process.py
#===============================================================================
#  Author      : Edwin A. Rodriguez
#  Role/Team   : SAP COE / SAP SRE (GRM-Testing-Automation & Governance)
#  Created     : 2026-10-19
#  Last Update : 2026-10-19
#
#  Summary
#  -------
#  Identifies the host application the agent runs inside and resolves the
#  executable that is currently running it.
#
#  Copyright (c) 2026 Edwin A. Rodriguez. All rights reserved.
#  Provided "AS IS", without warranty of any kind.
#===============================================================================

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import psutil

from .constants import KNOWN_HOSTS

logger = logging.getLogger(__name__)


def _known_host(name: str) -> Optional[str]:
    low = (name or "").lower()
    for needle, canonical in KNOWN_HOSTS:
        if needle in low:
            return canonical
    return None


def detect_host_name(app_name: str) -> str:
    """Map an application name (e.g. "Cursor - Insiders") to a canonical host."""
    return _known_host(app_name) or app_name or "Code"


def guess_host_name(pid: Optional[int] = None) -> str:
    """Canonical host name from the host pid or the agent's parent chain."""
    try:
        chain = [psutil.Process(pid)] if pid else psutil.Process().parents()
        for proc in chain:
            name = proc.name() or ""
            if _known_host(name):
                return detect_host_name(name)
    except (psutil.NoSuchProcess, psutil.AccessDenied) as e:
        logger.debug("Host name detection failed: %s", e)
    return "Code"


def _matches_host(proc: psutil.Process, host_name: str) -> bool:
    needle = host_name.lower().replace(" ", "")
    try:
        name = (proc.name() or "").lower().replace(" ", "")
    except (psutil.NoSuchProcess, psutil.AccessDenied):
        return False
    return needle in name


def find_host_process(host_name: str, pid: Optional[int] = None) -> Optional[psutil.Process]:
    """Return the host process.

    With ``pid`` that process is used as-is; otherwise the parent chain of the
    agent is searched for the first process named after the host.
    """
    try:
        if pid:
            return psutil.Process(pid)
        for parent in psutil.Process().parents():
            if _matches_host(parent, host_name):
                return parent
    except (psutil.NoSuchProcess, psutil.AccessDenied) as e:
        logger.debug("Host process lookup failed: %s", e)
    return None


def resolve_host_executable(
    host_name: str,
    configured: Optional[str] = None,
    pid: Optional[int] = None,
) -> Optional[str]:
    """Return the path of the executable running the host.

    Resolution order:
      1) configured path (settings / CLI) if it exists
      2) exe() of the host process (explicit pid or parent chain)
      3) None -> no direct relaunch possible
    """
    if configured:
        p = Path(configured)
        if p.exists():
            return str(p)
        logger.warning("Configured host executable does not exist: %s", configured)

    proc = find_host_process(host_name, pid)
    if proc is None:
        return None
    try:
        exe = proc.exe()
    except (psutil.NoSuchProcess, psutil.AccessDenied) as e:
        logger.warning("Cannot read host executable: %s", e)
        return None
    return exe or None


def terminate_process(pid: int, timeout_s: float = 5.0) -> bool:
    """Ask a process to exit; kill it if it ignores the request."""
    try:
        proc = psutil.Process(pid)
        proc.terminate()
        try:
            proc.wait(timeout=timeout_s)
        except psutil.TimeoutExpired:
            proc.kill()
    except psutil.NoSuchProcess:
        return True
    except psutil.AccessDenied as e:
        logger.warning("Not allowed to stop process %s: %s", pid, e)
        return False
    return True


def terminate_host(host_name: Optional[str], pid: Optional[int] = None, timeout_s: float = 5.0) -> bool:
    """Stop the host: the given pid, else the host found in the parent chain."""
    if not pid and host_name:
        proc = find_host_process(host_name)
        pid = proc.pid if proc is not None else None
    if not pid:
        logger.warning("No running %s process found to stop", host_name or "host")
        return False
    logger.info("Asking host process %s to exit", pid)
    return terminate_process(pid, timeout_s)
