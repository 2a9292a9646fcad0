"""Tkinter views for adbconnect."""

from .views import CONNECTING_TEXT, NO_DEVICES_TEXT, ConnectView

__all__ = ["CONNECTING_TEXT", "ConnectView", "NO_DEVICES_TEXT"]
