import os
import sys
import json
import logging

from rich.logging import RichHandler

# Ensure repo package import
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import app_config
from span_viewer.log_setup import LOGGER_NAME, configure_logging


def test_load_config_fills_defaults(monkeypatch, tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"grid": {"switch_suffix": "  "}, "storage": {"max_saved_logs": "x"}}), encoding="utf-8")
    monkeypatch.setattr(app_config, "CONFIG_PATH", path)

    cfg = app_config.load_config()
    assert cfg["grid"]["switch_suffix"] == "_SW"
    assert cfg["storage"]["max_saved_logs"] == 20
    assert cfg["debugging"]["log_level"] == "INFO"
    assert cfg["debugging"]["enable_logging"] is False


def test_unreadable_config_uses_defaults(monkeypatch, tmp_path):
    path = tmp_path / "config.json"
    path.write_text("{", encoding="utf-8")
    monkeypatch.setattr(app_config, "CONFIG_PATH", path)
    assert app_config.load_config()["grid"]["switch_suffix"] == "_SW"


def test_set_switch_suffix_persists(monkeypatch, tmp_path):
    path = tmp_path / "config.json"
    monkeypatch.setattr(app_config, "CONFIG_PATH", path)
    app_config.set_switch_suffix(" _RP ")
    assert app_config.load_config()["grid"]["switch_suffix"] == "_RP"

    cfg = app_config.reset_defaults()
    assert cfg["grid"]["switch_suffix"] == "_SW"


def test_saved_logs_path_relative_to_config(monkeypatch, tmp_path):
    monkeypatch.setattr(app_config, "CONFIG_PATH", tmp_path / "config.json")
    cfg = app_config.load_config()
    assert app_config.saved_logs_path(cfg) == tmp_path / "saved_logs.json"

    cfg["storage"]["saved_logs_path"] = str(tmp_path / "elsewhere" / "logs.json")
    assert app_config.saved_logs_path(cfg) == tmp_path / "elsewhere" / "logs.json"


def test_configure_logging_disabled_and_enabled(tmp_path):
    logger = configure_logging({"enable_logging": False})
    assert logger.name == LOGGER_NAME
    assert all(isinstance(h, logging.NullHandler) for h in logger.handlers)

    log_file = tmp_path / "spanview.log"
    logger = configure_logging({
        "enable_logging": True,
        "log_level": "WARNING",
        "log_to_file": True,
        "log_file": str(log_file),
    })
    assert logger.level == logging.WARNING
    assert any(isinstance(h, RichHandler) for h in logger.handlers)
    assert any(isinstance(h, logging.FileHandler) for h in logger.handlers)

    logger = configure_logging(verbose=True)
    assert logger.level == logging.DEBUG
    assert not any(isinstance(h, logging.FileHandler) for h in logger.handlers)
    configure_logging()
