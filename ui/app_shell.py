# ui/app_shell.py
from __future__ import annotations

import asyncio
import flet as ft

from core.settings import CONNECTIVITY, UI
from services.bootstrap import build_services
from services.connectivity import ConnectivityMonitor
from services.sync_service import TRIGGER_MANUAL, TRIGGER_ONLINE

from .dialogs import notify_synced
from .emergency_form import EmergencyFormPage


class AppShell:
    def __init__(self, page: ft.Page):
        self.page = page

        self.page.title = UI.app_title
        self.page.horizontal_alignment = ft.CrossAxisAlignment.STRETCH
        self.page.vertical_alignment = ft.MainAxisAlignment.START

        self.services = build_services()
        self.monitor = ConnectivityMonitor(
            self.services.client.is_reachable,
            lambda: self.trigger_sync(manual=False),
            debounce_seconds=CONNECTIVITY.debounce_sec,
            on_change=lambda online: self._form.refresh_status(),
        )
        self._sync_lock = asyncio.Lock()

        self._form = EmergencyFormPage(self)

    # ---------- sync ----------
    def trigger_sync(self, *, manual: bool):
        trigger = TRIGGER_MANUAL if manual else TRIGGER_ONLINE

        async def _run():
            # a pass already running covers this trigger too
            if self._sync_lock.locked():
                return
            async with self._sync_lock:
                report = await asyncio.to_thread(self.services.coordinator.run_pass, trigger)
            self._form.refresh_status()
            notify_synced(self.page, report.delivered)

        self.page.run_task(_run)

    # ---------- mount ----------
    def mount(self):
        self.page.controls.clear()
        self.page.add(self._form.view)
        self._form.refresh_status()
        if CONNECTIVITY.enabled:
            self.page.run_task(self.monitor.run, CONNECTIVITY.poll_interval_sec)

    def unmount(self):
        self.monitor.stop()
