#===============================================================================
#  CDP_Bootstrap_Agent | constants.py
#===============================================================================
#  Author      : Edwin A. Rodriguez
#  Role/Team   : SAP COE / SAP SRE (GRM-Testing-Automation & Governance)
#  Created     : 2026-10-19
#  Last Update : 2026-10-19
#
#  Summary
#  -------
#  Central place for ports, flags, timings and persisted key names.
#
#  Copyright (c) 2026 Edwin A. Rodriguez. All rights reserved.
#  Provided "AS IS", without warranty of any kind.
#===============================================================================

from __future__ import annotations

APP_TITLE = "CDP Bootstrap Agent"
APP_SLUG = "cdp-bootstrap"
LOG_FILE_NAME = "agent.log"
CONFIG_FILE_NAME = "settings.json"
STORE_DIR_NAME = "store"

# --- Remote-debugging endpoint ---
BASE_CDP_PORT = 9000
CDP_PORT_WINDOW = 10
CDP_FLAG_NAME = "--remote-debugging-port"
PROBE_PATH = "/json"
PROBE_TIMEOUT_S = 2.0

# Conservative extras for the direct-executable fallback only.
COMPAT_ARGS = [
    "--disable-gpu-driver-bug-workarounds",
    "--ignore-gpu-blacklist",
]

# --- Timings (ms unless noted) ---
RELAUNCH_COOLDOWN_MS = 3 * 60 * 1000
PROMPT_COOLDOWN_MS = 60 * 1000
LOCK_STALE_MS = 15 * 1000
LOCK_TICK_S = 5.0
HEAL_DELAY_S = 10.0
QUIT_DELAY_S = 1.0
RELAUNCH_GRACE_WINDOWS_S = 5
RELAUNCH_GRACE_POSIX_S = 2
DEFAULT_POLL_INTERVAL_MS = 1000

# --- Persisted keys (shared store) ---
KEY_ENABLED = "auto-all-enabled-global"
KEY_BACKGROUND_MODE = "auto-all-background-mode"
KEY_POLL_INTERVAL = "auto-all-frequency"
KEY_BLOCKED_PATTERNS = "auto-all-banned-commands"
KEY_REGISTRY_CONFIGURED = "auto-all-cdp-registry-configured"
KEY_SKIP_PROMPT = "auto-all-cdp-skip-prompt"
KEY_LAST_AUTO_RELAUNCH = "auto-all-cdp-last-auto-relaunch"
KEY_CONNECTION_EVER = "auto-all-cdp-connection-established"

# --- Prompt choices ---
CHOICE_RELAUNCH = "Relaunch now"
CHOICE_NOT_NOW = "Not now"
CHOICE_NEVER = "Don't ask again"

# Known hosts: lowercase needle -> canonical name
KNOWN_HOSTS = [
    ("cursor", "Cursor"),
    ("antigravity", "Antigravity"),
    ("windsurf", "Windsurf"),
    ("trae", "Trae"),
    ("code", "Code"),
    ("vs", "Code"),
]

DEFAULT_BLOCKED_PATTERNS = [
    "rm -rf /",
    "rm -rf ~",
    "rm -rf *",
    "format c:",
    "del /f /s /q",
    "rd /s /q",
    "rmdir /s /q",
    ":(){:|:&};:",
    "dd if=",
    "mkfs.",
    "> /dev/sda",
    "chmod -R 777 /",
    "shutdown",
    "reboot",
    "powershell -Command Clear-Disk",
    "Initialize-Disk",
    "Invoke-WebRequest",
    "curl",
    "wget",
    "nc -e",
    "bash -i",
    "cp /dev/zero",
    "mv ~ /dev/null",
]
