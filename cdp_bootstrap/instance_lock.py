#===============================================================================
#  CDP_Bootstrap_Agent | instance_lock.py
#===============================================================================
#  Author      : Edwin A. Rodriguez
#  Role/Team   : SAP COE / SAP SRE (GRM-Testing-Automation & Governance)
#  Created     : 2026-10-19
#  Last Update : 2026-10-19
#
#  Summary
#  -------
#  Heartbeat-based election of the single active poller among agent
#  instances (one per host window) sharing the persistent store.
#
#  Notes
#  -----
#  - Best effort: two instances may briefly both own the lock. A double poll
#    is cheap and transient, so this is tolerated rather than prevented.
#
#  Copyright (c) 2026 Edwin A. Rodriguez. All rights reserved.
#  Provided "AS IS", without warranty of any kind.
#===============================================================================

from __future__ import annotations

import logging
import uuid
from typing import Callable, Optional

from .constants import LOCK_STALE_MS
from .models import InstanceLock
from .scheduler import now_ms
from .state import KeyValueStore

logger = logging.getLogger(__name__)


def new_instance_id() -> str:
    return uuid.uuid4().hex[:12]


class InstanceLockArbiter:
    def __init__(
        self,
        store: KeyValueStore,
        host_name: str,
        instance_id: Optional[str] = None,
        stale_ms: int = LOCK_STALE_MS,
        clock: Callable[[], int] = now_ms,
    ):
        self.store = store
        self.instance_id = instance_id or new_instance_id()
        self.stale_ms = stale_ms
        self.clock = clock
        self.lock_key = f"{host_name.lower().replace(' ', '-')}-instance-lock"
        self.ping_key = f"{self.lock_key}-ping"
        self.standby = False

    def read(self) -> Optional[InstanceLock]:
        owner = self.store.get(self.lock_key)
        if not owner:
            return None
        try:
            heartbeat = int(self.store.get(self.ping_key, 0) or 0)
        except (TypeError, ValueError):
            heartbeat = 0
        return InstanceLock(owner_id=str(owner), heartbeat_ms=heartbeat)

    def tick(self) -> bool:
        """Claim, refresh or yield the lock. True when this instance owns it."""
        now = self.clock()
        lock = self.read()

        if lock is not None and lock.owner_id != self.instance_id:
            if now - lock.heartbeat_ms < self.stale_ms:
                if not self.standby:
                    logger.info("Locked by another instance (%s). Standby mode.", lock.owner_id)
                self.standby = True
                return False
            logger.info("Lock held by %s is stale; taking over", lock.owner_id)

        # claim or refresh; only the owner writes the heartbeat
        self.store.set(self.lock_key, self.instance_id)
        self.store.set(self.ping_key, now)
        if self.standby:
            logger.info("Lock acquired. Resuming control.")
        self.standby = False
        return True

    def release(self) -> None:
        lock = self.read()
        if lock is not None and lock.owner_id == self.instance_id:
            self.store.delete(self.lock_key)
            self.store.delete(self.ping_key)
