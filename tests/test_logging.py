"""Tests for logger setup."""

import logging

from stat3_deg.core.logging import PlainFormatter, setup_logging


def test_file_log_has_no_markup(monkeypatch, tmp_path):
    monkeypatch.setenv("STAT3_DEG_LOGGING_FILE_LOGGING", "true")
    monkeypatch.setenv("STAT3_DEG_LOGGING_CONSOLE_LOGGING", "false")
    monkeypatch.setenv("STAT3_DEG_PATHS_LOGS_DIR", str(tmp_path / "logs"))

    logger = setup_logging("stat3_deg.test_file")
    logger.info(":floppy_disk: [green]Saved table:[/green] de_WT_vs_STAT3KO.tsv")
    for handler in logger.handlers:
        handler.close()

    (log_file,) = (tmp_path / "logs").glob("*_stat3_deg_test_file.log")
    text = log_file.read_text()
    assert "Saved table: de_WT_vs_STAT3KO.tsv" in text
    assert "[green]" not in text
    assert ":floppy_disk:" not in text


def test_repeated_setup_does_not_duplicate_handlers():
    first = setup_logging("stat3_deg.test_repeat")
    n_handlers = len(first.handlers)
    second = setup_logging("stat3_deg.test_repeat")
    assert second is first
    assert len(second.handlers) == n_handlers
    assert not second.propagate


def test_fallback_when_all_outputs_disabled(monkeypatch):
    monkeypatch.setenv("STAT3_DEG_LOGGING_FILE_LOGGING", "false")
    monkeypatch.setenv("STAT3_DEG_LOGGING_CONSOLE_LOGGING", "false")
    logger = setup_logging("stat3_deg.test_fallback")
    (handler,) = logger.handlers
    assert isinstance(handler, logging.StreamHandler)
    assert isinstance(handler.formatter, PlainFormatter)


def test_invalid_level_defaults_to_info(monkeypatch):
    monkeypatch.setenv("STAT3_DEG_LOGGING_LEVEL", "chatty")
    assert setup_logging("stat3_deg.test_level").level == logging.INFO
