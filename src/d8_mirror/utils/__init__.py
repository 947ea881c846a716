"""Utility functions for the d8-mirror engine."""

from .digest import calculate_digest, parse_digest, validate_digest, verify_digest
from .log import UserLogger, setup_logging
from .retry import ConstantRetryTask, run_task

__all__ = [
    "calculate_digest",
    "parse_digest",
    "validate_digest",
    "verify_digest",
    "UserLogger",
    "setup_logging",
    "ConstantRetryTask",
    "run_task",
]
