from __future__ import annotations

import logging

import pytest

from tools.gitopsctl.logging_config import parse_level, setup_logging


@pytest.mark.parametrize(
    "value, level",
    [("debug", logging.DEBUG), ("INFO", logging.INFO), ("", logging.WARNING), ("chatty", logging.WARNING)],
)
def test_parse_level(value: str, level: int) -> None:
    assert parse_level(value) == level


def test_setup_logging_replaces_root_handlers() -> None:
    root = logging.getLogger()
    saved_handlers, saved_level = list(root.handlers), root.level
    try:
        setup_logging("DEBUG")
        setup_logging("DEBUG")
        assert root.level == logging.DEBUG
        assert len(root.handlers) == 1
    finally:
        root.handlers[:] = saved_handlers
        root.setLevel(saved_level)
