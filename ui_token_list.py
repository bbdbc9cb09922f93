import time

import customtkinter as ctk
from tkinter import messagebox

from credential import CredentialRecord
from totp_engine import OTPError, TOTPEngine


class TokenRow(ctk.CTkFrame):
    """One credential: labels, current code and a progress bar for its window."""

    def __init__(self, parent, record: CredentialRecord, on_edit, on_delete):
        super().__init__(parent, corner_radius=10, fg_color=("gray90", "gray20"))
        self.record = record
        self._seen_refresh = -1

        text_frame = ctk.CTkFrame(self, fg_color="transparent")
        text_frame.pack(side="left", fill="x", expand=True, padx=(12, 6), pady=8)

        self.issuer_var = ctk.StringVar()
        self.account_var = ctk.StringVar()
        ctk.CTkLabel(text_frame, textvariable=self.issuer_var, anchor="w",
                     font=ctk.CTkFont(size=14, weight="bold")).pack(fill="x")
        ctk.CTkLabel(text_frame, textvariable=self.account_var, anchor="w",
                     font=ctk.CTkFont(size=11), text_color=("gray40", "gray60")).pack(fill="x")

        self.progress_var = ctk.DoubleVar(value=1.0)
        ctk.CTkProgressBar(text_frame, variable=self.progress_var, height=5).pack(fill="x", pady=(6, 0))

        self.code_var = ctk.StringVar(value="— — —")
        ctk.CTkLabel(self, textvariable=self.code_var, width=130,
                     font=ctk.CTkFont(family="Consolas", size=22, weight="bold"),
                     text_color=("#1a73e8", "#8ab4f8")).pack(side="left", padx=6)

        btn_style = {"width": 34, "height": 30, "fg_color": ("gray75", "gray30"),
                     "hover_color": ("gray65", "gray40")}
        ctk.CTkButton(self, text="✎", command=lambda: on_edit(self.record), **btn_style
                      ).pack(side="left", padx=(0, 4))
        ctk.CTkButton(self, text="🗑", command=lambda: on_delete(self.record), **btn_style
                      ).pack(side="left", padx=(0, 10))

        self.tick()

    def tick(self):
        if self.record.refresh == self._seen_refresh:
            return
        self._seen_refresh = self.record.refresh
        self.issuer_var.set(self.record.issuer or "—")
        self.account_var.set(self.record.account)
        try:
            code = TOTPEngine.generate_code(self.record)
        except OTPError:
            self.code_var.set("invalid")
            self.progress_var.set(0)
            return
        half = len(code) // 2
        self.code_var.set(code[:half] + " " + code[half:])
        age = TOTPEngine.token_age(time.time(), self.record.start_time, self.record.period)
        self.progress_var.set(1.0 - age)


class TokenListPanel(ctk.CTkFrame):
    def __init__(self, parent, registry, on_edit_callback, on_delete_callback, on_new_callback):
        super().__init__(parent, corner_radius=0)
        self.registry = registry
        self.on_edit_callback = on_edit_callback
        self.on_delete_callback = on_delete_callback
        self._rows: list[TokenRow] = []

        header_frame = ctk.CTkFrame(self, fg_color="transparent")
        header_frame.pack(fill="x", padx=15, pady=(15, 8))
        ctk.CTkLabel(header_frame, text="Credentials", font=ctk.CTkFont(size=15, weight="bold")
                     ).pack(side="left")
        ctk.CTkButton(header_frame, text="+ New", width=70, height=28,
                      fg_color="#2ecc71", hover_color="#27ae60",
                      command=on_new_callback).pack(side="right")

        self.scroll_frame = ctk.CTkScrollableFrame(self, corner_radius=8)
        self.scroll_frame.pack(fill="both", expand=True, padx=10, pady=(0, 10))

        self.empty_label = ctk.CTkLabel(self.scroll_frame, text="No credentials yet",
                                        text_color=("gray50", "gray55"))
        self.refresh()

    def refresh(self):
        """Rebuild the rows if the registry's membership or order changed."""
        records = self.registry.get_all()
        if records and [row.record for row in self._rows] == records:
            self.tick()
            return
        for row in self._rows:
            row.destroy()
        self._rows.clear()
        if not records:
            self.empty_label.pack(pady=20)
            return
        self.empty_label.pack_forget()
        for record in records:
            row = TokenRow(self.scroll_frame, record, self.on_edit_callback, self._confirm_delete)
            row.pack(fill="x", pady=3)
            self._rows.append(row)

    def tick(self):
        for row in self._rows:
            row.tick()

    def _confirm_delete(self, record: CredentialRecord):
        if messagebox.askyesno("Delete credential", f"Delete {record.label}?\nThis cannot be undone."):
            self.on_delete_callback(record)
