#===============================================================================
#  CDP_Bootstrap_Agent | state.py
#===============================================================================
#  Author      : Edwin A. Rodriguez
#  Role/Team   : SAP COE / SAP SRE (GRM-Testing-Automation & Governance)
#  Created     : 2026-10-19
#  Last Update : 2026-10-19
#
#  Summary
#  -------
#  Persistent key/value store shared by every agent instance of one
#  installation, plus typed accessors for the bootstrap markers.
#
#  Notes
#  -----
#  - One JSON file per key. A set is a temp-file write followed by os.replace,
#    so each key-set is atomic but there is no read-modify-write guarantee.
#  - Other instances may change a key between our read and our write.
#
#  Copyright (c) 2026 Edwin A. Rodriguez. All rights reserved.
#  Provided "AS IS", without warranty of any kind.
#===============================================================================

from __future__ import annotations

import json
import logging
import os
import re
import tempfile
from pathlib import Path
from typing import Any, List

from .constants import (
    KEY_BACKGROUND_MODE,
    KEY_CONNECTION_EVER,
    KEY_ENABLED,
    KEY_LAST_AUTO_RELAUNCH,
    KEY_REGISTRY_CONFIGURED,
    KEY_SKIP_PROMPT,
)

logger = logging.getLogger(__name__)

_SAFE_KEY_RE = re.compile(r"[^A-Za-z0-9._-]+")


class KeyValueStore:
    """Directory-backed key/value store (string keys, JSON values)."""

    def __init__(self, directory: Path):
        self.directory = Path(directory)

    def _path_for(self, key: str) -> Path:
        name = _SAFE_KEY_RE.sub("_", key).strip("_") or "_"
        return self.directory / f"{name}.json"

    def get(self, key: str, default: Any = None) -> Any:
        p = self._path_for(key)
        if not p.exists():
            return default
        try:
            return json.loads(p.read_text(encoding="utf-8"))["value"]
        except Exception as e:
            logger.warning("Unreadable store key %s (%s); using default", key, e)
            return default

    def set(self, key: str, value: Any) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        target = self._path_for(key)
        fd, tmp = tempfile.mkstemp(prefix=".tmp-", suffix=".json", dir=str(self.directory))
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump({"key": key, "value": value}, f)
            os.replace(tmp, target)
        except BaseException:
            try:
                os.unlink(tmp)
            except OSError:
                pass
            raise

    def delete(self, key: str) -> None:
        try:
            self._path_for(key).unlink()
        except FileNotFoundError:
            pass

    def keys(self) -> List[str]:
        if not self.directory.exists():
            return []
        out: List[str] = []
        for p in sorted(self.directory.glob("*.json")):
            if p.name.startswith(".tmp-"):
                continue
            try:
                out.append(json.loads(p.read_text(encoding="utf-8"))["key"])
            except Exception:
                continue
        return out


class MarkerStore:
    """Typed view over the bootstrap markers that survive restarts."""

    def __init__(self, store: KeyValueStore):
        self.store = store

    @property
    def registry_configured(self) -> bool:
        return bool(self.store.get(KEY_REGISTRY_CONFIGURED, False))

    @registry_configured.setter
    def registry_configured(self, value: bool) -> None:
        self.store.set(KEY_REGISTRY_CONFIGURED, bool(value))

    @property
    def skip_prompt_requested(self) -> bool:
        return bool(self.store.get(KEY_SKIP_PROMPT, False))

    @skip_prompt_requested.setter
    def skip_prompt_requested(self, value: bool) -> None:
        self.store.set(KEY_SKIP_PROMPT, bool(value))

    @property
    def last_auto_relaunch_ms(self) -> int:
        try:
            return int(self.store.get(KEY_LAST_AUTO_RELAUNCH, 0) or 0)
        except (TypeError, ValueError):
            return 0

    @last_auto_relaunch_ms.setter
    def last_auto_relaunch_ms(self, value: int) -> None:
        self.store.set(KEY_LAST_AUTO_RELAUNCH, int(value))

    @property
    def connection_ever_established(self) -> bool:
        return bool(self.store.get(KEY_CONNECTION_EVER, False))

    @connection_ever_established.setter
    def connection_ever_established(self, value: bool) -> None:
        self.store.set(KEY_CONNECTION_EVER, bool(value))

    @property
    def feature_enabled(self) -> bool:
        return bool(self.store.get(KEY_ENABLED, False))

    @feature_enabled.setter
    def feature_enabled(self, value: bool) -> None:
        self.store.set(KEY_ENABLED, bool(value))

    @property
    def background_mode(self) -> bool:
        return bool(self.store.get(KEY_BACKGROUND_MODE, False))

    @background_mode.setter
    def background_mode(self, value: bool) -> None:
        self.store.set(KEY_BACKGROUND_MODE, bool(value))

    def reset_cdp_settings(self) -> None:
        """Forget the user's opt-out so the next start prompts again."""
        self.skip_prompt_requested = False
