"""
===============================================================================
MASKED KALMAN - Observation Buffer Test Suite
===============================================================================
Tests for posting, replacement, ordering, bounds checking and queries of the
per-cycle observation buffer.
===============================================================================
"""

import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

import numpy as np
import pytest

from kalman_filter.core.exceptions import IndexOutOfRangeError
from kalman_filter.navigation.observation_buffer import ObservationBuffer


@pytest.fixture
def buffer():
    return ObservationBuffer(n_z=4)


class TestPost:
    """Insert, overwrite and bounds."""

    def test_starts_empty(self, buffer):
        assert not buffer.has_any()
        assert len(buffer) == 0
        assert all(not buffer.has(k) for k in range(4))

    def test_post_and_query(self, buffer):
        buffer.post(2, 1.5)
        assert buffer.has_any()
        assert buffer.has(2)
        assert not buffer.has(1)
        assert buffer.get(2) == 1.5
        assert buffer.get(1) is None

    def test_later_post_replaces(self, buffer):
        buffer.post(1, 1.0)
        buffer.post(1, 7.0)
        assert len(buffer) == 1
        assert buffer.get(1) == 7.0

    @pytest.mark.parametrize("channel", [4, 5, 1000, -1])
    def test_out_of_range(self, buffer, channel):
        with pytest.raises(IndexOutOfRangeError):
            buffer.post(channel, 1.0)
        assert not buffer.has_any()

    @pytest.mark.parametrize("channel", [1.5, 1.0, "1", None])
    def test_non_integer_channel_rejected(self, buffer, channel):
        """A fractional index must not be truncated onto a real channel."""
        with pytest.raises(TypeError):
            buffer.post(channel, 1.0)
        assert not buffer.has_any()

    def test_numpy_integer_channel(self, buffer):
        buffer.post(np.int64(3), 2.0)
        assert buffer.items() == [(3, 2.0)]
        assert type(buffer.channels()[0]) is int

    def test_out_of_range_leaves_existing_readings(self, buffer):
        buffer.post(0, 3.0)
        with pytest.raises(IndexError):
            buffer.post(4, 1.0)
        assert buffer.items() == [(0, 3.0)]


class TestOrdering:
    """Iteration is by ascending channel regardless of posting order."""

    def test_channels_sorted(self, buffer):
        for channel in (3, 0, 2):
            buffer.post(channel, float(channel))
        assert buffer.channels() == [0, 2, 3]
        assert buffer.items() == [(0, 0.0), (2, 2.0), (3, 3.0)]

    def test_queries_have_no_side_effects(self, buffer):
        buffer.post(1, 2.0)
        buffer.has_any()
        buffer.has(1)
        buffer.has(3)
        assert buffer.items() == [(1, 2.0)]

    def test_clear(self, buffer):
        buffer.post(0, 1.0)
        buffer.post(3, 2.0)
        buffer.clear()
        assert not buffer.has_any()
        assert not buffer.has(0)
        assert not buffer.has(3)
        assert 0 not in buffer
