"""Tests for log level resolution."""
from __future__ import annotations

import logging

from sofar_bridge.logging_utils import TRACE_LEVEL, resolve_log_level


def test_verbosity_overrides_fallback():
    assert resolve_log_level(1, "ERROR") == logging.DEBUG
    assert resolve_log_level(2, "ERROR") == TRACE_LEVEL
    assert resolve_log_level(3, "ERROR") == TRACE_LEVEL


def test_named_levels():
    assert resolve_log_level(0, "warning") == logging.WARNING
    assert resolve_log_level(0, "DEBUG") == logging.DEBUG


def test_unknown_level_falls_back_to_info():
    assert resolve_log_level(0, "chatty") == logging.INFO
