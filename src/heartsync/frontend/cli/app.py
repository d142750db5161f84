"""Textual "Secure Sync" screen for HeartSync.

Start here with `python -m heartsync.frontend.cli.app`
"""

from __future__ import annotations

from typing import Optional

import pyperclip
from textual import on
from textual.app import App, ComposeResult
from textual.containers import Horizontal, Vertical
from textual.screen import ModalScreen
from textual.widgets import (
    Button,
    Checkbox,
    Footer,
    Header,
    Input,
    Label,
    Static,
    TextArea,
)

from heartsync.core.exceptions import ValidationError
from heartsync.core.models import ImportPreview, SyncResult
from heartsync.core.registry import KEYS
from heartsync.core.state import AppState
from heartsync.frontend.cli.clipboard import copy_to_clipboard, paste_from_clipboard
from heartsync.frontend.cli.context import AppContext, build_context
from heartsync.frontend.cli.logging_config import configure_logging
from heartsync.security.pin import PIN_LENGTH, PinLock
from heartsync.sync.exporter import load_package, save_package


def format_preview(preview: ImportPreview) -> str:
    """Summarise a decrypted snapshot for the confirmation step."""
    if not preview.success:
        return preview.message
    names = " & ".join(n for n in (preview.partner1, preview.partner2) if n) or "(no names)"
    lines = [
        preview.message,
        f"Couple: {names}",
        f"Start date: {preview.start_date or '-'}",
        f"Exported at: {preview.exported_at or 'unknown'}",
    ]
    if preview.counts:
        counts = ", ".join(f"{label}: {n}" for label, n in sorted(preview.counts.items()))
        lines.append(f"Records: {counts}")
    return "\n".join(lines)


def format_status(state: AppState, last_sync: str) -> str:
    rel = state.relationship
    names = " & ".join(n for n in (rel.get("partner1"), rel.get("partner2")) if n) or "Not set up yet"
    events = rel.get("events") or []
    return f"{names}\nSince: {rel.get('start_date') or '-'}\nEvents: {len(events)}\nLast sync: {last_sync or 'never'}"


# === Modal definitions ===


class ConfirmReplaceModal(ModalScreen[bool]):
    """Explicit confirmation before a destructive replace import."""

    def compose(self) -> ComposeResult:  # pragma: no cover - UI only
        with Vertical(classes="dialog"):
            yield Static("Overwrite warning", classes="title")
            yield Label("This will replace your current app data with the imported backup.")
            yield Label("Data that exists only on this device will be lost. Are you sure?")
            with Horizontal():
                yield Button("Cancel (Esc)", id="cancel")
                yield Button("Replace", id="ok", variant="error")

    def on_button_pressed(self, event: Button.Pressed) -> None:  # pragma: no cover
        self.dismiss(event.button.id == "ok")

    def on_key(self, event) -> None:  # pragma: no cover
        if event.key == "escape":
            self.dismiss(False)


class UnlockModal(ModalScreen[bool]):
    """Blocks the app until the device PIN is entered."""

    def __init__(self, pin_lock: PinLock):
        super().__init__()
        self.pin_lock = pin_lock
        self.failed_attempts = 0

    def compose(self) -> ComposeResult:
        with Vertical(classes="dialog"):
            yield Static("HeartSync is locked", classes="title")
            yield Input(placeholder=f"{PIN_LENGTH}-digit PIN", password=True, max_length=PIN_LENGTH, id="pin")
            yield Static("", id="pin-error")
            with Horizontal():
                yield Button("Quit", id="quit")
                yield Button("Unlock", id="unlock", variant="primary")

    @on(Input.Submitted, "#pin")
    @on(Button.Pressed, "#unlock")
    def on_unlock(self) -> None:
        pin_input = self.query_one("#pin", Input)
        if self.pin_lock.verify(pin_input.value):
            self.dismiss(True)
            return
        self.failed_attempts += 1
        pin_input.value = ""
        self.query_one("#pin-error", Static).update("Incorrect PIN")

    @on(Button.Pressed, "#quit")
    def on_quit(self) -> None:
        self.dismiss(False)


class HeartSyncApp(App):
    """Export and import encrypted snapshots between partners' devices."""

    TITLE = "HeartSync"
    SUB_TITLE = "Secure Sync"

    CSS = """
    #status-pane { width: 30%; min-width: 24; border: heavy $surface; }
    #export-pane, #import-pane { border: heavy $surface; padding: 0 1; }
    .title { padding: 1 1; text-style: bold; }
    #status, #preview, #export-message { padding: 0 1; color: $text-muted; }
    #export-output { height: 6; }
    #import-data { height: 6; }
    ModalScreen { align: center middle; background: rgba(0,0,0,0.45); }
    .dialog { width: 60%; height: auto; padding: 1; border: heavy $surface; background: $boost; }
    """

    BINDINGS = [
        ("q", "quit", "Quit"),
        ("r", "refresh", "Refresh"),
        ("c", "copy_package", "Copy"),
    ]

    def __init__(self, ctx: AppContext | None = None):
        self.ctx = ctx or build_context()
        super().__init__()
        self.package: str = ""
        self.preview: Optional[ImportPreview] = None
        self._unsubscribe = None

    def compose(self) -> ComposeResult:
        yield Header()
        with Horizontal():
            with Vertical(id="status-pane"):
                yield Static("Us", classes="title")
                yield Static("", id="status")
            with Vertical(id="export-pane"):
                yield Static("Send Data", classes="title")
                yield Input(placeholder="Pairing code (min 6 chars)", password=True, id="export-pass")
                yield Label("Privacy check: this creates an encrypted copy of your relationship data.")
                yield Checkbox("I understand, generate the key.", id="privacy")
                yield Button("Generate Secure Data", id="generate", variant="primary")
                yield TextArea("", id="export-output", read_only=True)
                with Horizontal():
                    yield Button("Copy", id="copy")
                    yield Input(placeholder="Save as file (path)", id="save-path")
                    yield Button("Save", id="save")
                yield Static("", id="export-message")
            with Vertical(id="import-pane"):
                yield Static("Receive Data", classes="title")
                yield Input(placeholder="Pairing code", password=True, id="import-pass")
                yield TextArea("", id="import-data")
                with Horizontal():
                    yield Input(placeholder="...or load a file (path)", id="import-file")
                    yield Button("Load", id="load")
                    yield Button("Paste", id="paste")
                yield Button("Decrypt & Preview", id="decrypt", variant="primary")
                yield Static("", id="preview")
                with Horizontal():
                    yield Button("Merge", id="merge", disabled=True)
                    yield Button("Replace", id="replace", variant="error", disabled=True)
        yield Footer()

    def on_mount(self) -> None:
        self._unsubscribe = self.ctx.controller.subscribe(self._on_state_reloaded)
        self.action_refresh()
        if self.ctx.pin.is_lock_required():
            self.push_screen(UnlockModal(self.ctx.pin), self._on_unlock_result)

    def _on_unlock_result(self, unlocked: bool) -> None:
        if not unlocked:
            self.exit()

    def on_unmount(self) -> None:
        if self._unsubscribe:
            self._unsubscribe()
            self._unsubscribe = None

    def _on_state_reloaded(self, state: AppState) -> None:
        if self._unsubscribe is None or not self.is_running:
            return
        # reloads arrive on the change-feed thread
        try:
            self.call_from_thread(self.action_refresh)
        except RuntimeError:
            self.action_refresh()

    def action_refresh(self) -> None:
        last_sync = self.ctx.store.get(KEYS.LAST_SYNC)
        self.query_one("#status", Static).update(format_status(self.ctx.controller.state, last_sync))

    # --- export ---

    def _export_message(self, text: str) -> None:
        self.query_one("#export-message", Static).update(text)

    @on(Button.Pressed, "#generate")
    def on_generate(self) -> None:
        passphrase = self.query_one("#export-pass", Input).value
        if not self.query_one("#privacy", Checkbox).value:
            self._export_message("Please accept the privacy warning")
            return
        self._export_message("Encrypting data...")
        self.run_worker(
            lambda: self._export_worker(passphrase),
            name="export_worker",
            exclusive=True,
            thread=True,
        )

    def _export_worker(self, passphrase: str) -> dict:
        try:
            return {"package": self.ctx.exporter.export(passphrase)}
        except ValidationError as e:
            return {"error": str(e)}

    def action_copy_package(self) -> None:
        if not self.package:
            self._export_message("Generate data first")
            return
        try:
            copy_to_clipboard(self.package)
            self._export_message("Copied!")
        except pyperclip.PyperclipException:
            self.notify("Could not copy to clipboard", severity="error")

    @on(Button.Pressed, "#copy")
    def on_copy(self) -> None:
        self.action_copy_package()

    @on(Button.Pressed, "#save")
    def on_save(self) -> None:
        path = self.query_one("#save-path", Input).value.strip()
        if not self.package or not path:
            self._export_message("Generate data and enter a path first")
            return
        try:
            saved = save_package(path, self.package)
        except OSError as e:
            self.notify(f"Could not save file: {e}", severity="error")
            return
        self._export_message(f"Saved to {saved}")

    # --- import ---

    @on(Button.Pressed, "#load")
    def on_load(self) -> None:
        path = self.query_one("#import-file", Input).value.strip()
        if not path:
            return
        try:
            self.query_one("#import-data", TextArea).text = load_package(path)
        except OSError as e:
            self.notify(f"Could not read file: {e}", severity="error")

    @on(Button.Pressed, "#paste")
    def on_paste(self) -> None:
        try:
            text = paste_from_clipboard()
        except pyperclip.PyperclipException:
            self.notify("Could not read the clipboard", severity="error")
            return
        if text:
            self.query_one("#import-data", TextArea).text = text

    @on(Button.Pressed, "#decrypt")
    def on_decrypt(self) -> None:
        passphrase = self.query_one("#import-pass", Input).value
        package = self.query_one("#import-data", TextArea).text.strip()
        if not passphrase or not package:
            self.query_one("#preview", Static).update("Missing code or data block")
            return
        self.query_one("#preview", Static).update("Decrypting & verifying...")
        self.run_worker(
            lambda: self.ctx.importer.decrypt_and_preview(package, passphrase),
            name="preview_worker",
            exclusive=True,
            thread=True,
        )

    def _show_preview(self, preview: ImportPreview) -> None:
        self.preview = preview
        self.query_one("#preview", Static).update(format_preview(preview))
        ready = preview.success and preview.snapshot is not None
        self.query_one("#merge", Button).disabled = not ready
        self.query_one("#replace", Button).disabled = not ready

    @on(Button.Pressed, "#merge")
    def on_merge(self) -> None:
        self._commit(merge_mode=True)

    @on(Button.Pressed, "#replace")
    def on_replace(self) -> None:
        def _confirmed(ok: bool) -> None:
            if ok:
                self._commit(merge_mode=False)

        self.push_screen(ConfirmReplaceModal(), _confirmed)

    def _commit(self, merge_mode: bool) -> None:
        if self.preview is None or self.preview.snapshot is None:
            return
        # any unknown-version warning was shown in the preview
        result = self.ctx.importer.commit(
            self.preview.snapshot,
            merge_mode,
            allow_unknown_version=True,
        )
        self._show_result(result)

    def _show_result(self, result: SyncResult) -> None:
        self.query_one("#preview", Static).update(result.message)
        self.notify(result.message, severity="information" if result.success else "error")
        self.preview = None
        self.query_one("#merge", Button).disabled = True
        self.query_one("#replace", Button).disabled = True
        # our own writes do not come back through the change feed
        self.ctx.controller.reload()

    def on_worker_state_changed(self, event) -> None:
        """Handle worker completion to update UI."""
        if not event.worker.is_finished:
            return
        name = event.worker.name
        result = event.worker.result
        if name == "export_worker" and result:
            if "error" in result:
                self._export_message(result["error"])
                return
            self.package = result["package"]
            self.query_one("#export-output", TextArea).text = self.package
            self._export_message("Ready to share!")
            self.action_refresh()
        elif name == "preview_worker" and result:
            self._show_preview(result)


def main() -> None:  # pragma: no cover
    configure_logging()
    HeartSyncApp().run()


if __name__ == "__main__":  # pragma: no cover
    main()
