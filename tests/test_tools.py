"""
Helper function tests.

Run with:
    pytest tests/test_tools.py -v
"""

import logging
from unittest.mock import Mock

import pytest

from spherolink.tools import clamp, hsv_transition, log_exceptions, notify_safely, unit_to_byte


class TestMathTools:

    def test_clamp(self):
        assert clamp(5, 0, 3) == 3
        assert clamp(-1, 0, 3) == 0
        assert clamp(2, 0, 3) == 2

    def test_unit_to_byte(self):
        assert unit_to_byte(0.0) == 0
        assert unit_to_byte(1.0) == 255
        assert unit_to_byte(0.5) == 128
        assert unit_to_byte(7.0) == 255

    def test_hsv_transition_starts_at_source(self):
        colors = list(hsv_transition((255, 0, 0), (0, 0, 255), 4))
        assert len(colors) == 4
        assert colors[0] == (255, 0, 0)
        assert (0, 0, 255) not in colors

    def test_hsv_transition_no_steps(self):
        assert list(hsv_transition((0, 0, 0), (255, 255, 255), 0)) == []


class TestUtilities:

    def test_log_exceptions_reraises(self, caplog):
        @log_exceptions
        def broken():
            raise RuntimeError("boom")

        with caplog.at_level(logging.ERROR):
            with pytest.raises(RuntimeError):
                broken()
        assert "boom" in caplog.text

    def test_log_exceptions_passes_result(self):
        assert log_exceptions(lambda x: x * 2)(21) == 42

    def test_notify_safely_swallows_listener_errors(self, caplog):
        logger = logging.getLogger("spherolink.test")
        callback = Mock(side_effect=ValueError("listener bug"))
        with caplog.at_level(logging.ERROR):
            notify_safely(logger, callback, 1, 2)
        callback.assert_called_once_with(1, 2)
        assert "raised" in caplog.text
