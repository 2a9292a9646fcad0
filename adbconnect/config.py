"""Configuration helpers for adbconnect."""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, asdict, field
from pathlib import Path
from typing import Any, List

from .settings import CONFIG_FILE
from .transport.websocket import DEFAULT_ENDPOINT

logger = logging.getLogger(__name__)


def _ensure_parent(path: Path) -> None:
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
    except OSError:
        # Directory creation failures will surface during write; keep silent here.
        pass


def _coerce_float(value: Any, default: float, minimum: float = 0.1) -> float:
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        return default
    return parsed if parsed >= minimum else default


def _coerce_vendor_ids(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    result = []
    for item in value:
        text = str(item).strip().lower()
        if text.startswith("0x"):
            text = text[2:]
        try:
            int(text, 16)
        except ValueError:
            logger.warning("Ignoring invalid USB vendor id %r", item)
            continue
        result.append(text)
    return result


@dataclass
class AppConfig:
    ws_endpoint: str = DEFAULT_ENDPOINT
    poll_interval: float = 5.0
    watch_interval: float = 1.0
    probe_timeout: float = 2.0
    auth_timeout: float = 30.0
    usb_vendor_ids: List[str] = field(default_factory=list)
    last_serial: str = ""
    always_on_top: bool = False
    bot_token: str = ""
    chat_id: str = ""

    def vendor_id_values(self) -> List[int]:
        return [int(vid, 16) for vid in self.usb_vendor_ids]


def load_config(path: str | Path = CONFIG_FILE) -> AppConfig:
    """Load configuration data from *path* or return defaults on failure."""

    defaults = AppConfig()
    cfg_path = Path(path)
    if not cfg_path.exists():
        return defaults

    try:
        raw = json.loads(cfg_path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        logger.error("Config file %s contains invalid JSON: %s", cfg_path, exc)
        return defaults
    except OSError as exc:
        logger.error("Could not read config file %s: %s", cfg_path, exc)
        return defaults

    if not isinstance(raw, dict):
        logger.error("Config file %s did not contain an object", cfg_path)
        return defaults

    data = asdict(defaults)
    data["ws_endpoint"] = str(raw.get("ws_endpoint") or data["ws_endpoint"])
    data["poll_interval"] = _coerce_float(raw.get("poll_interval"), defaults.poll_interval)
    data["watch_interval"] = _coerce_float(raw.get("watch_interval"), defaults.watch_interval)
    data["probe_timeout"] = _coerce_float(raw.get("probe_timeout"), defaults.probe_timeout)
    data["auth_timeout"] = _coerce_float(raw.get("auth_timeout"), defaults.auth_timeout, minimum=1.0)
    data["usb_vendor_ids"] = _coerce_vendor_ids(raw.get("usb_vendor_ids", []))
    data["last_serial"] = str(raw.get("last_serial", data["last_serial"]))
    data["always_on_top"] = bool(raw.get("always_on_top", data["always_on_top"]))
    data["bot_token"] = str(raw.get("bot_token", data["bot_token"]))
    data["chat_id"] = str(raw.get("chat_id", data["chat_id"]))

    return AppConfig(**data)


def save_config(config: AppConfig, path: str | Path = CONFIG_FILE) -> None:
    """Persist *config* to *path*, logging errors without raising."""

    cfg_path = Path(path)
    _ensure_parent(cfg_path)
    try:
        cfg_path.write_text(json.dumps(asdict(config), indent=4), encoding="utf-8")
    except OSError as exc:
        logger.error("Could not write config file %s: %s", cfg_path, exc)
