"""adbconnect: discover, select and connect to a device over USB or WebSocket."""

from __future__ import annotations

__all__ = ["main"]


def main() -> None:
    """Launch the adbconnect GUI application."""

    from .app import main as _app_main

    _app_main()
