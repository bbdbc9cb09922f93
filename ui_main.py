import logging
import queue
import threading

import customtkinter as ctk
from tkinter import messagebox

from credential import CredentialRecord
from credential_registry import CredentialRegistry
from secure_store import SecureStore, StoreError
from ui_token_editor import TokenEditorPanel
from ui_token_list import TokenListPanel

logger = logging.getLogger(__name__)

REFRESH_INTERVAL_MS = 1000
QUEUE_POLL_MS = 100


class MainApplication(ctk.CTk):
    def __init__(self, store: SecureStore):
        super().__init__()
        self.title("Keychain OTP")
        self.geometry("900x560")
        self.minsize(760, 460)

        ctk.set_appearance_mode("system")
        ctk.set_default_color_theme("blue")

        # Keychain calls can sit behind an unlock prompt, so they run on a
        # worker thread and report back through this queue.
        self._events: queue.Queue = queue.Queue()
        self._busy = False

        self.registry = CredentialRegistry(store)
        self.registry.add_listener(lambda registry: self._events.put(("changed",)))

        self._build_panels()
        self._build_status_bar()
        self._update_status_count()

        if self.registry.load_error:
            self.after(200, lambda: messagebox.showwarning(
                "Keychain", f"{self.registry.load_error}\n\nNew credentials can't be saved until the keychain is available."))

        self._tick()
        self._poll_events()

    def _build_panels(self):
        body = ctk.CTkFrame(self, fg_color="transparent")
        body.pack(fill="both", expand=True, padx=15, pady=(15, 5))
        body.grid_columnconfigure(0, weight=1, minsize=380)
        body.grid_columnconfigure(1, weight=1, minsize=320)
        body.grid_rowconfigure(0, weight=1)

        self.list_panel = TokenListPanel(
            body, self.registry,
            on_edit_callback=self._on_edit,
            on_delete_callback=self._on_delete,
            on_new_callback=self._on_new,
        )
        self.list_panel.grid(row=0, column=0, sticky="nsew", padx=(0, 8))

        self.editor = TokenEditorPanel(body, on_save_callback=self._on_save,
                                       status_callback=self._update_status)
        self.editor.grid(row=0, column=1, sticky="nsew")

    def _build_status_bar(self):
        bar = ctk.CTkFrame(self, height=32, corner_radius=0, fg_color=("gray90", "#1a1a1a"))
        bar.pack(fill="x", side="bottom")
        bar.pack_propagate(False)

        self.status_left = ctk.StringVar(value="Ready")
        self.status_right = ctk.StringVar(value="")
        ctk.CTkLabel(bar, textvariable=self.status_left, anchor="w",
                     font=ctk.CTkFont(size=12)).pack(side="left", padx=15)
        ctk.CTkLabel(bar, textvariable=self.status_right, anchor="e",
                     font=ctk.CTkFont(family="Consolas", size=12, weight="bold"),
                     text_color=("gray40", "gray60")).pack(side="right", padx=15)

    # ── Status ─────────────────────────────────────────────────

    def _update_status(self, message: str):
        self.status_left.set(message)

    def _update_status_count(self):
        self.status_right.set(f"{len(self.registry)} credential(s)")

    # ── Refresh ────────────────────────────────────────────────

    def _tick(self):
        self.registry.touch()
        self.after(REFRESH_INTERVAL_MS, self._tick)

    def _poll_events(self):
        changed = False
        try:
            while True:
                event = self._events.get_nowait()
                kind = event[0]
                if kind == "changed":
                    changed = True
                elif kind == "done":
                    _, on_success, message = event
                    self._busy = False
                    on_success()
                    self._update_status(message)
                elif kind == "failed":
                    _, title, error = event
                    self._busy = False
                    self._update_status(f"{title}: {error.reason}")
                    messagebox.showerror(title, str(error))
        except queue.Empty:
            pass
        if changed:
            self.list_panel.refresh()
            self._update_status_count()
        self.after(QUEUE_POLL_MS, self._poll_events)

    # ── Keychain tasks ─────────────────────────────────────────

    def _run_store_task(self, title: str, action, on_success, message: str):
        if self._busy:
            self._update_status("Waiting for the keychain...")
            return
        self._busy = True
        self._update_status(f"{title}...")

        def worker():
            try:
                action()
            except StoreError as e:
                logger.error("%s failed: %s", title, e)
                self._events.put(("failed", title, e))
                return
            self._events.put(("done", on_success, message))

        threading.Thread(target=worker, daemon=True).start()

    def _on_new(self):
        self.editor.new_record()

    def _on_edit(self, record: CredentialRecord):
        self.editor.edit_record(record)

    def _on_save(self, record: CredentialRecord):
        def on_success():
            saved = self.registry.find(record.id)
            if saved is not None:
                self.editor.edit_record(saved)

        self._run_store_task("Save", lambda: self.registry.save(record), on_success,
                             f"Saved {record.label}")

    def _on_delete(self, record: CredentialRecord):
        def on_success():
            if self.editor.record.id == record.id:
                self.editor.new_record()

        self._run_store_task("Delete", lambda: self.registry.delete(record), on_success,
                             f"Deleted {record.label}")
