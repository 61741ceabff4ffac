"""Shared fixtures for the hig-audit test suite."""

from __future__ import annotations

import logging
from collections.abc import Iterator

import pytest

from hig_audit.log import PACKAGE_LOGGER


@pytest.fixture(autouse=True)
def reset_package_logger() -> Iterator[None]:
    """Drop handlers the CLI attaches to captured streams between tests."""
    yield
    logger = logging.getLogger(PACKAGE_LOGGER)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    logger.setLevel(logging.NOTSET)
