from __future__ import annotations

import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict


def _get_config_path() -> Path:
    # When packaged (PyInstaller), __file__ points into the temp extraction dir.
    # Use the executable directory so config persists across runs.
    if getattr(sys, 'frozen', False):
        return Path(sys.executable).parent / 'config.json'
    return Path(__file__).parent / 'config.json'


CONFIG_PATH = _get_config_path()

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


DEFAULT_CONFIG = {
    "grid": {
        "switch_suffix": "_SW",
    },
    "storage": {
        "saved_logs_path": "",
        "max_saved_logs": 20,
    },
    "debugging": {
        "enable_logging": False,
        "log_level": "INFO",
        "log_to_file": False,
        "log_file": "spanview.log",
    },
}


def _ensure_config_shape(cfg: Dict[str, Any]) -> Dict[str, Any]:
    cfg = cfg if isinstance(cfg, dict) else {}
    for section, defaults in DEFAULT_CONFIG.items():
        if section not in cfg or not isinstance(cfg[section], dict):
            cfg[section] = {}
        for key, default in defaults.items():
            if key not in cfg[section]:
                cfg[section][key] = default

    grid = cfg["grid"]
    if not isinstance(grid["switch_suffix"], str) or not grid["switch_suffix"].strip():
        grid["switch_suffix"] = DEFAULT_CONFIG["grid"]["switch_suffix"]

    storage = cfg["storage"]
    try:
        storage["max_saved_logs"] = max(1, int(storage["max_saved_logs"]))
    except (TypeError, ValueError):
        storage["max_saved_logs"] = DEFAULT_CONFIG["storage"]["max_saved_logs"]
    if not isinstance(storage["saved_logs_path"], str):
        storage["saved_logs_path"] = ""

    dbg = cfg["debugging"]
    level = str(dbg.get("log_level") or "").upper()
    dbg["log_level"] = level if level in LOG_LEVELS else "INFO"
    dbg["enable_logging"] = bool(dbg["enable_logging"])
    dbg["log_to_file"] = bool(dbg["log_to_file"])
    return cfg


def load_config() -> Dict[str, Any]:
    if CONFIG_PATH.exists():
        try:
            data = json.loads(CONFIG_PATH.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logging.getLogger(__name__).warning("Ignoring unreadable %s: %s", CONFIG_PATH, e)
            data = {}
    else:
        data = {}
    return _ensure_config_shape(data)


def save_config(cfg: Dict[str, Any]) -> None:
    cfg = _ensure_config_shape(cfg)
    CONFIG_PATH.write_text(json.dumps(cfg, indent=2), encoding="utf-8")


def reset_defaults() -> Dict[str, Any]:
    cfg = json.loads(json.dumps(DEFAULT_CONFIG))
    save_config(cfg)
    return cfg


def saved_logs_path(cfg: Dict[str, Any]) -> Path:
    """Resolve the saved-log store location; relative paths sit beside config.json."""
    raw = (cfg.get("storage") or {}).get("saved_logs_path") or "saved_logs.json"
    p = Path(raw)
    if not p.is_absolute():
        p = CONFIG_PATH.parent / p
    return p


def set_switch_suffix(suffix: str) -> Dict[str, Any]:
    cfg = load_config()
    cfg["grid"]["switch_suffix"] = suffix.strip()
    save_config(cfg)
    return cfg
