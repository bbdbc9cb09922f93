import customtkinter as ctk
from tkinter import messagebox

from credential import Algorithm, CredentialRecord
from otpauth_uri import ParseError, apply_uri, build_uri
from totp_engine import TOTPEngine


class TokenEditorPanel(ctk.CTkScrollableFrame):
    """Form for a working copy of one credential.

    The copy keeps the id of the credential being edited, so saving it
    updates that credential and importing a URI re-scans it in place.
    """

    def __init__(self, parent, on_save_callback, status_callback):
        super().__init__(parent, corner_radius=0, fg_color=("gray95", "gray15"))
        self.on_save_callback = on_save_callback
        self.status_callback = status_callback
        self.record = CredentialRecord()

        self._build_form()
        self.new_record()

    def _build_form(self):
        font = ctk.CTkFont(size=13)
        label_font = ctk.CTkFont(size=12, weight="bold")
        bg = ("gray95", "gray15")

        self.title_label = ctk.CTkLabel(self, text="New credential",
                                        font=ctk.CTkFont(size=18, weight="bold"), fg_color=bg)
        self.title_label.pack(anchor="w", padx=20, pady=(15, 10))

        # otpauth:// URI, as decoded from a QR code
        ctk.CTkLabel(self, text="Provisioning URI", font=label_font, fg_color=bg
                     ).pack(anchor="w", padx=20, pady=(0, 3))
        uri_frame = ctk.CTkFrame(self, fg_color=bg)
        uri_frame.pack(fill="x", padx=20, pady=(0, 12))
        self.uri_var = ctk.StringVar()
        ctk.CTkEntry(uri_frame, textvariable=self.uri_var, font=font, height=36,
                     placeholder_text="otpauth://totp/Issuer:account?secret=...").pack(
            side="left", fill="x", expand=True)
        ctk.CTkButton(uri_frame, text="Import", width=70, height=36,
                      fg_color="#e67e22", hover_color="#d35400",
                      command=self._on_import_uri).pack(side="left", padx=(6, 0))

        self.issuer_var = ctk.StringVar()
        self.account_var = ctk.StringVar()
        self.secret_var = ctk.StringVar()
        for text, var, placeholder in (
            ("Issuer", self.issuer_var, "Example Inc."),
            ("Account", self.account_var, "alice@example.com"),
            ("Secret", self.secret_var, "Base32 secret"),
        ):
            ctk.CTkLabel(self, text=text, font=label_font, fg_color=bg).pack(anchor="w", padx=20, pady=(0, 3))
            ctk.CTkEntry(self, textvariable=var, font=font, height=36,
                         placeholder_text=placeholder).pack(fill="x", padx=20, pady=(0, 12))

        options = ctk.CTkFrame(self, fg_color=bg)
        options.pack(fill="x", padx=20, pady=(0, 12))
        self.algorithm_var = ctk.StringVar()
        self.period_var = ctk.StringVar()
        self.digits_var = ctk.StringVar()
        for text, var, values in (
            ("Algorithm", self.algorithm_var, [a.value for a in Algorithm]),
            ("Period", self.period_var, ["30", "60"]),
            ("Digits", self.digits_var, ["6", "7", "8"]),
        ):
            column = ctk.CTkFrame(options, fg_color=bg)
            column.pack(side="left", padx=(0, 12))
            ctk.CTkLabel(column, text=text, font=label_font, fg_color=bg).pack(anchor="w")
            ctk.CTkOptionMenu(column, values=values, variable=var, width=100).pack(anchor="w")

        action_frame = ctk.CTkFrame(self, fg_color=bg)
        action_frame.pack(fill="x", padx=20, pady=(0, 20))
        ctk.CTkButton(action_frame, text="Save", width=120, height=38,
                      font=ctk.CTkFont(size=13, weight="bold"),
                      command=self._on_save).pack(side="left")
        ctk.CTkButton(action_frame, text="Generate secret", width=130, height=38,
                      fg_color=("gray70", "gray35"), hover_color=("gray60", "gray45"),
                      command=self._on_generate_secret).pack(side="left", padx=(10, 0))
        ctk.CTkButton(action_frame, text="Show URI", width=100, height=38,
                      fg_color=("gray70", "gray35"), hover_color=("gray60", "gray45"),
                      command=self._on_show_uri).pack(side="left", padx=(10, 0))

    # ── Public API ─────────────────────────────────────────────

    def new_record(self):
        self.record = CredentialRecord()
        self.title_label.configure(text="New credential")
        self._fill_form()

    def edit_record(self, record: CredentialRecord):
        self.record = CredentialRecord(record_id=record.id)
        self.record.replace_fields(record)
        self.title_label.configure(text="Edit credential")
        self._fill_form()

    # ── Internal ────────────────────────────────────────────────

    def _fill_form(self):
        self.uri_var.set("")
        self.issuer_var.set(self.record.issuer)
        self.account_var.set(self.record.account)
        self.secret_var.set(self.record.secret)
        self.algorithm_var.set(self.record.algorithm.value)
        self.period_var.set(str(self.record.period))
        self.digits_var.set(str(self.record.digits))

    def _read_form(self):
        self.record.issuer = self.issuer_var.get().strip()
        self.record.account = self.account_var.get().strip()
        self.record.secret = TOTPEngine.clean_secret(self.secret_var.get())
        self.record.algorithm = Algorithm.from_tag(self.algorithm_var.get())
        self.record.period = int(self.period_var.get())
        self.record.digits = int(self.digits_var.get())

    def _on_import_uri(self):
        text = self.uri_var.get().strip()
        if not text:
            messagebox.showwarning("Import", "Paste an otpauth:// URI first")
            return
        try:
            apply_uri(self.record, text)
        except ParseError as e:
            messagebox.showerror("Import failed", str(e))
            return
        self._fill_form()
        self.status_callback(f"Imported {self.record.label}")

    def _on_generate_secret(self):
        self.secret_var.set(TOTPEngine.generate_secret())

    def _on_show_uri(self):
        self._read_form()
        messagebox.showinfo("Provisioning URI", build_uri(self.record))

    def _on_save(self):
        self._read_form()
        if not self.record.account and not self.record.issuer:
            messagebox.showwarning("Save", "Issuer or account is required")
            return
        try:
            self.record.validate()
        except ValueError as e:
            messagebox.showwarning("Save", str(e))
            return
        self.on_save_callback(self.record)
