"""Tests for user-facing progress logging."""

import logging

import pytest

from d8_mirror.utils.log import UserLogger


def test_process_frames_messages(caplog):
    """Test nested process blocks are framed and indented."""
    user_logger = UserLogger(logging.getLogger("tests.process"))

    with caplog.at_level(logging.DEBUG, logger="tests.process"):
        with user_logger.process("Pull installer"):
            user_logger.infof("Pulling %s", "installer:latest")
            with user_logger.process("Inner"):
                user_logger.debug("detail", 1)

    messages = [record.getMessage() for record in caplog.records]
    assert messages[0] == "╔ Pull installer"
    assert messages[1] == "║ Pulling installer:latest"
    assert messages[2] == "║╔ Inner"
    assert messages[3] == "║║ detail 1"
    assert messages[4].startswith("║╚ Inner succeeded in")
    assert messages[5].startswith("╚ Pull installer succeeded in")
    assert user_logger.process_depth == 0


def test_process_reports_failure(caplog):
    """Test a failing block is logged and the error re-raised."""
    user_logger = UserLogger(logging.getLogger("tests.process"))

    with caplog.at_level(logging.INFO, logger="tests.process"):
        with pytest.raises(RuntimeError):
            with user_logger.process("Pull security"):
                raise RuntimeError("boom")

    failure = caplog.records[-1]
    assert failure.levelno == logging.ERROR
    assert failure.getMessage() == "╚ Pull security failed: boom"
    assert user_logger.process_depth == 0


def test_warn_levels(caplog):
    """Test warnings are logged at warning level."""
    user_logger = UserLogger(logging.getLogger("tests.process"))

    with caplog.at_level(logging.INFO, logger="tests.process"):
        user_logger.warnf("Skipping %s", "trivy-db")
        user_logger.warn("plain")

    assert [r.levelno for r in caplog.records] == [logging.WARNING, logging.WARNING]
    assert caplog.records[0].getMessage() == "Skipping trivy-db"
    assert caplog.records[1].getMessage() == "plain"
