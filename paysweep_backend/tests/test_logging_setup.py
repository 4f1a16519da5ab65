from __future__ import annotations

import logging

import pytest

from paysweep_backend.utils.logging import setup_logging


@pytest.fixture(autouse=True)
def _restore_root_level():
    root = logging.getLogger()
    level = root.level
    yield
    root.setLevel(level)


def test_later_call_changes_root_level():
    setup_logging()
    setup_logging("WARNING")

    assert logging.getLogger().level == logging.WARNING


def test_unknown_level_name_falls_back_to_info():
    setup_logging("WARNING")
    setup_logging("LOUD")

    assert logging.getLogger().level == logging.INFO
