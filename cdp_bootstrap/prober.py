#===============================================================================
#  CDP_Bootstrap_Agent | prober.py
#===============================================================================
#  Author      : Edwin A. Rodriguez
#  Role/Team   : SAP COE / SAP SRE (GRM-Testing-Automation & Governance)
#  Created     : 2026-10-19
#  Last Update : 2026-10-19
#
#  Summary
#  -------
#  Checks whether the host's remote-debugging endpoint answers.
#
#  Copyright (c) 2026 Edwin A. Rodriguez. All rights reserved.
#  Provided "AS IS", without warranty of any kind.
#===============================================================================

from __future__ import annotations

import asyncio
import logging
from typing import Any, List, Optional

import requests

from .constants import PROBE_PATH, PROBE_TIMEOUT_S

logger = logging.getLogger(__name__)


def endpoint_url(port: int, path: str = PROBE_PATH) -> str:
    return f"http://127.0.0.1:{port}{path}"


def probe(port: int, timeout_s: float = PROBE_TIMEOUT_S) -> bool:
    """True iff GET /json on 127.0.0.1:<port> answers HTTP 200. Never raises."""
    try:
        r = requests.get(endpoint_url(port), timeout=timeout_s)
    except requests.RequestException as e:
        logger.debug("Probe %s failed: %s", port, e)
        return False
    return r.status_code == 200


async def probe_async(port: int, timeout_s: float = PROBE_TIMEOUT_S) -> bool:
    return await asyncio.to_thread(probe, port, timeout_s)


def list_targets(port: int, timeout_s: float = PROBE_TIMEOUT_S) -> Optional[List[Any]]:
    """Return the endpoint's target list, or None if it is not reachable."""
    try:
        r = requests.get(endpoint_url(port, "/json/list"), timeout=timeout_s)
        if r.status_code != 200:
            return None
        data = r.json()
    except (requests.RequestException, ValueError) as e:
        logger.debug("Target listing on %s failed: %s", port, e)
        return None
    return data if isinstance(data, list) else None
