import flet as ft


def open_alert_dialog(page: ft.Page, *, title: str, content: ft.Control, actions: list[ft.Control]):
    dlg = ft.AlertDialog(
        modal=True,
        title=ft.Text(title),
        content=content,
        actions=actions,
        actions_alignment=ft.MainAxisAlignment.END,
    )
    page.overlay.append(dlg)
    dlg.open = True
    page.update()
    return dlg


def close_alert_dialog(page: ft.Page, dlg: ft.AlertDialog | None):
    if dlg is None:
        return
    dlg.open = False
    try:
        page.overlay.remove(dlg)
    except ValueError:
        pass
    page.update()


def open_fallback_dialog(page: ft.Page, *, title: str, message: str, phone: str):
    """Failure dialog: the direct phone number is always offered."""

    holder: dict = {}

    def _close(_):
        close_alert_dialog(page, holder.get("dlg"))

    holder["dlg"] = open_alert_dialog(
        page,
        title=title,
        content=ft.Column(
            [
                ft.Text(message),
                ft.Text(phone, size=22, weight=ft.FontWeight.BOLD, selectable=True),
            ],
            tight=True,
            spacing=12,
        ),
        actions=[
            ft.ElevatedButton(
                f"Call {phone}",
                icon=ft.Icons.PHONE,
                url=f"tel:{phone}",
            ),
            ft.TextButton("Close", on_click=_close),
        ],
    )
    return holder["dlg"]


def show_snack(page: ft.Page, text: str) -> ft.SnackBar:
    snack = ft.SnackBar(ft.Text(text))
    page.overlay.append(snack)
    snack.open = True
    page.update()
    return snack


def notify_synced(page: ft.Page, delivered: int) -> ft.SnackBar | None:
    """Tell the user that requests saved while offline have now been sent."""

    if delivered <= 0:
        return None
    if delivered == 1:
        text = "Emergency request synced successfully. Our team has your details."
    else:
        text = f"{delivered} emergency requests synced successfully. Our team has your details."
    return show_snack(page, text)
