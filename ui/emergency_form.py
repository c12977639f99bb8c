# ui/emergency_form.py
from __future__ import annotations

import flet as ft

from core.settings import EMERGENCY
from services.submission import ValidationError
from .dialogs import open_fallback_dialog


ISSUES = [
    ("flat", "Flat tyre"),
    ("puncture", "Puncture"),
    ("blowout", "Blowout"),
    ("valve", "Valve problem"),
    ("other", "Something else"),
]


class EmergencyFormPage:
    def __init__(self, app):
        self.app = app

        self.name = ft.TextField(label="Your name", autofocus=True)
        self.phone = ft.TextField(label="Phone", keyboard_type=ft.KeyboardType.PHONE)
        self.location = ft.TextField(label="Where are you?", hint_text="Road, postcode or landmark")
        self.vehicle = ft.TextField(label="Vehicle (make / model)")
        self.issue = ft.Dropdown(
            label="What happened?",
            options=[ft.dropdown.Option(key, text) for key, text in ISSUES],
            value="flat",
        )
        self.details = ft.TextField(label="Anything else we should know", multiline=True, min_lines=2)

        self.submit_btn = ft.ElevatedButton(
            "Request emergency help",
            icon=ft.Icons.WARNING,
            on_click=self.on_submit,
        )
        self.retry_btn = ft.OutlinedButton(
            "Retry now",
            icon=ft.Icons.SYNC,
            on_click=self.on_retry,
        )
        self.connection_text = ft.Text("")
        self.pending_text = ft.Text("")
        self.feedback = ft.Text("")

        content = ft.Column(
            controls=[
                ft.Text("Emergency tyre help", size=24, weight=ft.FontWeight.BOLD),
                ft.Text(f"Or call us any time on {EMERGENCY.phone}", selectable=True),
                self.name,
                self.phone,
                self.location,
                self.vehicle,
                self.issue,
                self.details,
                self.submit_btn,
                self.feedback,
                ft.Divider(),
                ft.Row([self.connection_text, self.pending_text], spacing=16),
                self.retry_btn,
            ],
            expand=True,
            spacing=12,
            scroll=ft.ScrollMode.AUTO,
        )
        self.view = ft.Container(content=content, expand=True, padding=20)

    # ---------- form ----------
    def _form_values(self) -> dict:
        return {
            "name": self.name.value or "",
            "phone": self.phone.value or "",
            "location": self.location.value or "",
            "vehicle": self.vehicle.value or "",
            "issue": self.issue.value or "",
            "details": self.details.value or "",
        }

    def _clear(self):
        for field in (self.name, self.phone, self.location, self.vehicle, self.details):
            field.value = ""

    def on_submit(self, e):
        self.submit_btn.disabled = True
        self.submit_btn.text = "Submitting..."
        self.feedback.value = ""
        self.app.page.update()
        try:
            outcome = self.app.services.submitter.submit(self._form_values())
        except ValidationError as exc:
            self.feedback.value = "Please fill in: " + ", ".join(exc.missing)
            return
        finally:
            self.submit_btn.disabled = False
            self.submit_btn.text = "Request emergency help"
            self.app.page.update()

        if outcome.sent:
            self.feedback.value = outcome.message
            self._clear()
        else:
            open_fallback_dialog(
                self.app.page,
                title="Request saved on this device",
                message=outcome.message,
                phone=outcome.fallback_phone or EMERGENCY.phone,
            )
        self.refresh_status()

    def on_retry(self, e):
        self.app.trigger_sync(manual=True)

    # ---------- status ----------
    def refresh_status(self):
        online = self.app.monitor.online
        if online is None:
            self.connection_text.value = "Checking connection..."
        elif online:
            self.connection_text.value = "Online"
        else:
            self.connection_text.value = f"Offline: call {EMERGENCY.phone} for immediate help"

        pending = self.app.services.queue.count()
        self.pending_text.value = (
            f"{pending} request{'s' if pending != 1 else ''} waiting to send" if pending else ""
        )
        self.retry_btn.visible = pending > 0
        self.app.page.update()
