#===============================================================================
#  CDP_Bootstrap_Agent | qt_shell.py
#===============================================================================
#  Author      : Edwin A. Rodriguez
#  Role/Team   : SAP COE / SAP SRE (GRM-Testing-Automation & Governance)
#  Created     : 2026-10-19
#  Last Update : 2026-10-19
#
#  Summary
#  -------
#  PySide6 host shell: tray icon as the status indicator, QMessageBox prompts.
#  The agent's asyncio loop drives Qt through pump().
#
#  Copyright (c) 2026 Edwin A. Rodriguez. All rights reserved.
#  Provided "AS IS", without warranty of any kind.
#===============================================================================

from __future__ import annotations

import asyncio
import inspect
import logging
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence

from PySide6.QtCore import QUrl
from PySide6.QtGui import QAction, QDesktopServices
from PySide6.QtWidgets import QApplication, QMenu, QMessageBox, QStyle, QSystemTrayIcon

from .constants import APP_TITLE
from .host_process import terminate_host

logger = logging.getLogger(__name__)

_ICONS = {
    "info": QMessageBox.Information,
    "warning": QMessageBox.Warning,
    "error": QMessageBox.Critical,
}


class QtHostShell:
    def __init__(
        self,
        app: QApplication,
        workspaces: Sequence[str] = (),
        host_pid: Optional[int] = None,
        settings_path: Optional[Path] = None,
        host_name: Optional[str] = None,
    ):
        self.app = app
        self._workspaces = [str(w) for w in workspaces]
        self.host_pid = host_pid
        self.host_name = host_name
        self.settings_path = settings_path
        self.quit_requested = False
        self._open_boxes: List[QMessageBox] = []

        self.menu = QMenu()
        self.tray = QSystemTrayIcon(app.style().standardIcon(QStyle.SP_ComputerIcon))
        self.tray.setToolTip(APP_TITLE)
        self.tray.setContextMenu(self.menu)
        self.tray.show()

    def add_action(self, label: str, callback: Callable[[], Any]) -> QAction:
        """Tray menu entry; coroutine callbacks are scheduled on the agent loop."""
        def _fire() -> None:
            result = callback()
            if inspect.isawaitable(result):
                asyncio.ensure_future(result)

        action = QAction(label, self.menu)
        action.triggered.connect(_fire)
        self.menu.addAction(action)
        return action

    async def show_message(
        self, text: str, choices: Sequence[str] = (), modal: bool = False, level: str = "info"
    ) -> Optional[str]:
        if not choices and not modal:
            self.tray.showMessage(APP_TITLE, text)
            return None

        box = QMessageBox()
        box.setWindowTitle(APP_TITLE)
        box.setIcon(_ICONS.get(level, QMessageBox.Information))
        box.setText(text)
        buttons: Dict[Any, str] = {}
        for label in choices:
            buttons[box.addButton(label, QMessageBox.AcceptRole)] = label
        if not choices:
            box.addButton(QMessageBox.Ok)

        # open()/show() return at once; the agent loop keeps pumping Qt events
        answer: asyncio.Future = asyncio.get_running_loop().create_future()

        def _finished(_result: int) -> None:
            if not answer.done():
                answer.set_result(buttons.get(box.clickedButton()))

        box.finished.connect(_finished)
        self._open_boxes.append(box)
        if modal:
            box.open()
        else:
            box.show()
        try:
            return await answer
        finally:
            self._open_boxes.remove(box)
            box.deleteLater()

    def show_status(self, text: str, tooltip: str = "") -> None:
        self.tray.setToolTip(f"{APP_TITLE}: {text}" + (f"\n{tooltip}" if tooltip else ""))

    def request_quit(self) -> None:
        self.quit_requested = True
        if self.host_pid or self.host_name:
            terminate_host(self.host_name, self.host_pid)
        self.tray.hide()
        self.app.quit()

    def open_settings(self) -> None:
        if self.settings_path is None:
            return
        if not self.settings_path.exists():
            logger.info("Settings file %s does not exist yet", self.settings_path)
            return
        QDesktopServices.openUrl(QUrl.fromLocalFile(str(self.settings_path)))

    def workspace_paths(self) -> List[str]:
        return list(self._workspaces)

    def pump(self) -> None:
        self.app.processEvents()
