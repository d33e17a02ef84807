from __future__ import annotations

import logging

import pytest

from timetracking.core.config import Settings
from timetracking.core.logging import configure_logging


def test_allowed_origins_accept_comma_separated_values(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ALLOWED_ORIGINS", "https://a.example, https://b.example,")

    assert Settings().allowed_origins == ["https://a.example", "https://b.example"]


def test_reset_settings_from_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DATA_RESET_ENABLED", "true")
    monkeypatch.setenv("DATA_RESET_SOURCE", "/srv/backup.json")

    settings = Settings()

    assert settings.data_reset_enabled is True
    assert settings.data_reset_source == "/srv/backup.json"
    assert settings.data_reset_adjust_timestamps is True


def test_log_level_is_normalized() -> None:
    assert Settings(log_level=" debug ").log_level == "DEBUG"


def test_configure_logging_installs_one_handler() -> None:
    root = logging.getLogger()
    before = len(root.handlers)

    configure_logging("warning")
    configure_logging("info")

    added = [handler for handler in root.handlers if getattr(handler, "_timetracking", False)]
    assert len(added) == 1
    assert len(root.handlers) <= before + 1
    assert root.level == logging.INFO
