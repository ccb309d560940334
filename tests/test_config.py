"""Tests for settings and logging configuration."""

import io
import logging

from tallyup.config import (
    DEFAULT_AMAZON_MATCH_WINDOW_DAYS,
    DEFAULT_AMAZON_MAX_GROUP_SIZE,
    load_settings,
)
from tallyup.logging_setup import configure_logging, get_logger, parse_level


def test_defaults(monkeypatch):
    for name in (
        "TALLYUP_DB_PATH",
        "TALLYUP_LOG_LEVEL",
        "TALLYUP_AMAZON_MATCH_WINDOW_DAYS",
        "TALLYUP_AMAZON_MAX_GROUP_SIZE",
        "TALLYUP_INCOME_MATCH_WINDOW_DAYS",
    ):
        monkeypatch.delenv(name, raising=False)
    settings = load_settings()
    assert settings.db_path is None
    assert settings.amazon_match_window_days == DEFAULT_AMAZON_MATCH_WINDOW_DAYS
    assert settings.amazon_max_group_size == DEFAULT_AMAZON_MAX_GROUP_SIZE
    assert settings.income_match_window_days == 30


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("TALLYUP_DB_PATH", "/tmp/ledger.db")
    monkeypatch.setenv("TALLYUP_AMAZON_MATCH_WINDOW_DAYS", "7")
    monkeypatch.setenv("TALLYUP_AMAZON_MAX_GROUP_SIZE", "9")
    monkeypatch.setenv("TALLYUP_INCOME_MATCH_WINDOW_DAYS", "soon")
    settings = load_settings()
    assert settings.db_path == "/tmp/ledger.db"
    assert settings.amazon_match_window_days == 7
    assert settings.amazon_max_group_size == 3
    assert settings.income_match_window_days == 30


def test_group_size_below_minimum_uses_default(monkeypatch):
    monkeypatch.setenv("TALLYUP_AMAZON_MAX_GROUP_SIZE", "0")
    assert load_settings().amazon_max_group_size == DEFAULT_AMAZON_MAX_GROUP_SIZE


def test_parse_level(monkeypatch):
    monkeypatch.delenv("TALLYUP_LOG_LEVEL", raising=False)
    assert parse_level("debug") == logging.DEBUG
    assert parse_level("15") == 15
    assert parse_level(logging.ERROR) == logging.ERROR
    assert parse_level("chatty") == logging.WARNING
    assert parse_level(None) == logging.WARNING
    monkeypatch.setenv("TALLYUP_LOG_LEVEL", "info")
    assert parse_level(None) == logging.INFO


def test_configure_logging_replaces_handler():
    stream = io.StringIO()
    configure_logging("info", stream=stream)
    configure_logging("info", stream=stream)
    package_logger = logging.getLogger("tallyup")
    assert len([h for h in package_logger.handlers if isinstance(h, logging.StreamHandler)]) == 1

    get_logger("tallyup.tests").info("hello")
    get_logger("tallyup.tests").debug("hidden")
    output = stream.getvalue()
    assert "hello" in output
    assert "hidden" not in output
    configure_logging("warning")
