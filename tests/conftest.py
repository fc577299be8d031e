"""Shared fixtures."""

import logging

import pytest
import structlog


@pytest.fixture
def restore_logging():
    """Put the root logger and structlog back the way the test found them."""
    root = logging.getLogger()
    saved_handlers = list(root.handlers)
    saved_level = root.level
    yield
    for handler in root.handlers:
        if handler not in saved_handlers:
            handler.close()
    root.handlers[:] = saved_handlers
    root.setLevel(saved_level)
    structlog.reset_defaults()
