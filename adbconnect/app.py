import logging
import tkinter as tk
from dataclasses import dataclass
from functools import partial
from tkinter import messagebox, simpledialog
from typing import Callable, List, Optional

from .config import AppConfig
from .config import load_config as load_app_config
from .config import save_config as save_app_config
from .context import AppContext
from .credentials import MemoryCredentialStore
from .loop import AsyncLoopThread
from .manager import ConnectionManager
from .messaging import TelegramHandler, TelegramReporter
from .reporting import CompositeReporter
from .session import DeviceSession
from .settings import configure_logging
from .transport.usb import UsbDiscovery
from .transport.websocket import WebSocketBackend
from .ui import CONNECTING_TEXT, ConnectView


@dataclass(frozen=True)
class ManagerSnapshot:
    """Copy of the manager state taken on the loop thread for rendering."""

    serials: List[str]
    labels: List[str]
    selected_serial: Optional[str]
    connected: bool
    connecting: bool
    supported: bool

    @classmethod
    def capture(cls, manager: ConnectionManager) -> "ManagerSnapshot":
        candidates = manager.candidates
        selected = manager.selected
        return cls(
            serials=[backend.serial for backend in candidates],
            labels=[backend.label for backend in candidates],
            selected_serial=selected.serial if selected else None,
            connected=manager.session is not None,
            connecting=manager.connecting,
            supported=manager.supported,
        )


class DialogReporter:
    """Show error messages in a Tk dialog on the main thread."""

    def __init__(self, root) -> None:
        self.root = root

    def show(self, message: str) -> None:
        self.root.after(0, lambda m=message: messagebox.showerror("Error", m))


class ConnectApp:
    """Tk front end for the connection manager."""

    def __init__(
        self,
        root,
        *,
        context: AppContext | None = None,
        config: AppConfig | None = None,
    ):
        self.root = root
        self.root.title("adbconnect")
        self.root.geometry("420x360")

        self.config = config or load_app_config()
        cfg = self.config

        if context is None:
            context = AppContext(
                telegram=TelegramHandler(cfg.bot_token, cfg.chat_id),
                usb=UsbDiscovery(
                    vendor_ids=cfg.vendor_id_values(),
                    watch_interval=cfg.watch_interval,
                ),
                credentials=MemoryCredentialStore(),
                loop=AsyncLoopThread(),
            )
        self.context = context

        reporter = CompositeReporter(
            [DialogReporter(self.root), TelegramReporter(self.context.telegram)]
        )
        self.manager = ConnectionManager(
            self.context.usb,
            reporter,
            self.context.credentials,
            endpoint=cfg.ws_endpoint,
            poll_interval=cfg.poll_interval,
            probe_factory=partial(WebSocketBackend, open_timeout=cfg.probe_timeout),
            session_factory=partial(DeviceSession, auth_timeout=cfg.auth_timeout),
            log=self.log_session,
            preferred_serial=cfg.last_serial or None,
        )

        # --- State Variables ---
        self.busy = False
        self.snapshot: Optional[ManagerSnapshot] = None
        self.selected_label = tk.StringVar(root)
        self.status_var = tk.StringVar(root, value="Status: Idle")
        self.pin_var = tk.BooleanVar(root, value=cfg.always_on_top)

        # --- UI Construction ---
        self.view = ConnectView(
            self.root,
            selected_label=self.selected_label,
            status_var=self.status_var,
            on_select=self.on_select,
            on_connect=self.on_connect,
            on_add_device=self.on_add_device,
            on_disconnect=self.on_disconnect,
        )
        self.create_options_ui()

        self.manager.add_listener(self._on_manager_change)

    def create_options_ui(self):
        """Creates the UI elements for application options."""
        self.pin_check = tk.Checkbutton(
            self.root,
            text="Pin window (always on top)",
            variable=self.pin_var,
            command=self.toggle_always_on_top,
        )
        self.pin_check.pack(padx=10, anchor="w")
        try:
            self.root.attributes("-topmost", bool(self.config.always_on_top))
        except Exception:
            pass

    # -- Lifecycle ---------------------------------------------------------
    def start(self) -> None:
        self.context.loop.start()
        self._submit(self.manager.start())

    def shutdown(self) -> None:
        future = self._submit(self.manager.stop())
        if future is not None:
            try:
                future.result(timeout=2.0)
            except Exception as exc:
                logging.debug("Stopping the connection manager failed: %s", exc)
        self.context.loop.stop()
        self.root.destroy()

    # -- Loop bridging -----------------------------------------------------
    def _submit(self, coro, on_done: Callable | None = None):
        try:
            future = self.context.loop.submit(coro)
        except RuntimeError as exc:
            logging.error("Could not schedule operation: %s", exc)
            return None
        if on_done is not None:
            future.add_done_callback(
                lambda f: self.root.after(0, lambda: on_done(f))
            )
        return future

    def _on_manager_change(self, manager: ConnectionManager) -> None:
        snapshot = ManagerSnapshot.capture(manager)
        self.root.after(0, lambda: self._render(snapshot))

    def log_session(self, message: str) -> None:
        logging.debug("session: %s", message)
        self.root.after(0, lambda m=message: self.view.append_log(m))

    # -- Rendering ---------------------------------------------------------
    def _render(self, snapshot: Optional[ManagerSnapshot] = None) -> None:
        if snapshot is not None:
            self.snapshot = snapshot
        snapshot = self.snapshot
        if snapshot is None:
            return
        try:
            index = snapshot.serials.index(snapshot.selected_serial)
        except ValueError:
            index = -1
        self.view.set_options(list(snapshot.labels), index)
        self.view.set_state(
            connected=snapshot.connected,
            busy=self.busy or snapshot.connecting,
            has_selection=snapshot.selected_serial is not None,
            supported=snapshot.supported,
        )
        if snapshot.connecting:
            self.status_var.set(CONNECTING_TEXT)
        elif snapshot.connected:
            self.status_var.set(f"Status: Connected to {self.selected_label.get()}")
        else:
            self.status_var.set("Status: Idle")
        self._remember_selection(snapshot.selected_serial)

    def _remember_selection(self, serial: Optional[str]) -> None:
        if not serial or serial == self.config.last_serial:
            return
        self.config.last_serial = serial
        self.save_config()

    # -- Handlers ----------------------------------------------------------
    def on_select(self, index: int) -> None:
        snapshot = self.snapshot
        if snapshot is None or not 0 <= index < len(snapshot.serials):
            return
        self._submit(self._select(snapshot.serials[index]))

    async def _select(self, serial: str) -> None:
        self.manager.select(serial)

    def on_connect(self) -> None:
        self._run_operation(self.manager.connect())

    def on_disconnect(self) -> None:
        self._run_operation(self.manager.disconnect())

    def on_add_device(self) -> None:
        if self.busy:
            return
        port = simpledialog.askstring(
            "Add device",
            "Serial port of the device (for example COM5 or /dev/ttyACM0):",
            parent=self.root,
        )
        if port and port.strip():
            self._run_operation(self.manager.request_device(port.strip()))

    def _run_operation(self, coro) -> None:
        if self.busy:
            coro.close()
            return
        self.busy = True
        self._render()
        if self._submit(coro, on_done=self._operation_done) is None:
            self.busy = False
            self._render()

    def _operation_done(self, future) -> None:
        self.busy = False
        exc = None if future.cancelled() else future.exception()
        if exc is not None:
            logging.error("Operation failed: %s", exc)
        self._render()

    # -- Config ------------------------------------------------------------
    def save_config(self, event=None) -> None:
        """Persist the current UI state to the config file."""
        _ = event
        self.config.always_on_top = bool(self.pin_var.get())
        save_app_config(self.config)
        logging.info("Configuration saved.")

    def toggle_always_on_top(self):
        """Toggles the always-on-top window attribute and saves the preference."""
        try:
            self.root.attributes("-topmost", bool(self.pin_var.get()))
        except Exception as e:
            logging.error(f"Could not set always-on-top: {e}")
        self.save_config()


def create_application(
    *,
    root: tk.Tk | None = None,
    config: AppConfig | None = None,
    context: AppContext | None = None,
) -> ConnectApp:
    """Construct the adbconnect GUI without entering the Tk main loop."""

    root = root or tk.Tk()
    cfg = config or load_app_config()
    return ConnectApp(root, context=context, config=cfg)


def main() -> None:
    """Launch the adbconnect GUI application."""

    configure_logging()
    app = create_application()
    app.root.protocol("WM_DELETE_WINDOW", app.shutdown)
    app.start()
    app.root.mainloop()


if __name__ == "__main__":
    main()
