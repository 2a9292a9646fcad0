"""Reusable Tkinter view components."""
from __future__ import annotations

import tkinter as tk
from tkinter import ttk
from typing import Callable

NO_DEVICES_TEXT = "No available devices"
CONNECTING_TEXT = "Connecting... Please authorize the connection on your device"


class ConnectView:
    """Device picker, connect/disconnect controls and the session log."""

    def __init__(
        self,
        master: tk.Misc,
        *,
        selected_label: tk.StringVar,
        status_var: tk.StringVar,
        on_select: Callable[[int], None],
        on_connect: Callable[[], None],
        on_add_device: Callable[[], None],
        on_disconnect: Callable[[], None],
    ) -> None:
        from tkinter.scrolledtext import ScrolledText

        self.selected_label = selected_label
        self._on_select = on_select

        self.frame = tk.LabelFrame(master, text="Available devices", padx=10, pady=10)
        self.frame.pack(padx=10, pady=10, fill="both", expand=True)

        self.combobox = ttk.Combobox(
            self.frame, textvariable=selected_label, state="disabled"
        )
        self.combobox.grid(row=0, column=0, columnspan=2, sticky="ew")
        self.combobox.bind("<<ComboboxSelected>>", self._handle_selected)

        self.connect_button = tk.Button(
            self.frame,
            text="Connect",
            command=on_connect,
            bg="#1976D2",
            fg="white",
        )
        self.add_button = tk.Button(self.frame, text="Add device", command=on_add_device)
        self.disconnect_button = tk.Button(
            self.frame, text="Disconnect", command=on_disconnect
        )
        self._show_connect_controls(True)

        self.status_label = tk.Label(self.frame, textvariable=status_var, anchor="w")
        self.status_label.grid(row=2, column=0, columnspan=2, sticky="ew", pady=(8, 0))

        self.log = ScrolledText(self.frame, height=6, wrap="word", state=tk.DISABLED)
        self.log.grid(row=3, column=0, columnspan=2, sticky="nsew", pady=(8, 0))

        self.frame.grid_columnconfigure(0, weight=1)
        self.frame.grid_columnconfigure(1, weight=1)
        self.frame.grid_rowconfigure(3, weight=1)

    def _handle_selected(self, _event=None) -> None:
        index = self.combobox.current()
        if index >= 0:
            self._on_select(index)

    def _show_connect_controls(self, show: bool) -> None:
        if show:
            self.disconnect_button.grid_remove()
            self.connect_button.grid(row=1, column=0, sticky="ew", pady=(8, 0), padx=(0, 4))
            self.add_button.grid(row=1, column=1, sticky="ew", pady=(8, 0), padx=(4, 0))
        else:
            self.connect_button.grid_remove()
            self.add_button.grid_remove()
            self.disconnect_button.grid(
                row=1, column=0, columnspan=2, sticky="ew", pady=(8, 0)
            )

    def set_options(self, labels: list[str], selected_index: int) -> None:
        self.combobox["values"] = labels
        if 0 <= selected_index < len(labels):
            self.selected_label.set(labels[selected_index])
        else:
            self.selected_label.set("" if labels else NO_DEVICES_TEXT)

    def set_state(
        self,
        *,
        connected: bool,
        busy: bool,
        has_selection: bool,
        supported: bool,
    ) -> None:
        """Enable only the controls valid for the current state."""
        has_options = bool(self.combobox["values"])
        picker_enabled = not connected and not busy and has_options
        self.combobox.config(state="readonly" if picker_enabled else "disabled")
        self._show_connect_controls(not connected)
        self.connect_button.config(
            state=tk.NORMAL if has_selection and not busy else tk.DISABLED
        )
        self.add_button.config(state=tk.NORMAL if supported and not busy else tk.DISABLED)
        self.disconnect_button.config(state=tk.DISABLED if busy else tk.NORMAL)

    def append_log(self, message: str) -> None:
        self.log.configure(state=tk.NORMAL)
        self.log.insert(tk.END, f"{message}\n")
        self.log.see(tk.END)
        self.log.configure(state=tk.DISABLED)
