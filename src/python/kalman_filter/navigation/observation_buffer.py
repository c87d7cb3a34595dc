"""
===============================================================================
MASKED KALMAN - Observation Buffer
===============================================================================
Sparse per-cycle collection of sensor readings, keyed by channel index.

Each estimation cycle the caller posts zero or more readings; posting to a
channel that already holds a reading replaces it. The masked update engine
iterates the readings in ascending channel order, so the masked matrices it
assembles are deterministic regardless of posting order, and clears the
buffer when it is done. LinearKalmanFilter.step also clears it when an
update fails, so a rejected reading never leaks into the next cycle.
===============================================================================
"""

import operator
from typing import Dict, List, Optional, Tuple

from kalman_filter.core.exceptions import IndexOutOfRangeError


class ObservationBuffer:
    """
    Channel index -> scalar reading map for one estimation cycle.

    Parameters
    ----------
    n_z : int
        Number of configured channels. Valid channel indices are 0..n_z-1.
    """

    def __init__(self, n_z: int) -> None:
        self._n_z = int(n_z)
        self._readings: Dict[int, float] = {}

    def post(self, channel_index: int, value: float) -> None:
        """
        Store a reading for *channel_index*, replacing any earlier one.

        Raises
        ------
        TypeError
            If channel_index is not an integer (1.5 and 1.0 are both
            rejected rather than truncated).
        IndexOutOfRangeError
            If channel_index is outside 0..n_z-1.

        The buffer is unchanged when either error is raised.
        """
        try:
            index = operator.index(channel_index)
        except TypeError:
            raise TypeError(
                f"observer index must be an integer, got {channel_index!r}"
            ) from None
        if not 0 <= index < self._n_z:
            raise IndexOutOfRangeError("observer", index, self._n_z)
        self._readings[index] = float(value)

    def has_any(self) -> bool:
        """True when at least one channel holds a reading."""
        return bool(self._readings)

    def has(self, channel_index: int) -> bool:
        """True when *channel_index* holds a reading."""
        return channel_index in self._readings

    def get(self, channel_index: int) -> Optional[float]:
        """Return the reading of *channel_index*, or None if it has none."""
        return self._readings.get(channel_index)

    def channels(self) -> List[int]:
        """Observed channel indices in ascending order."""
        return sorted(self._readings)

    def items(self) -> List[Tuple[int, float]]:
        """(channel, reading) pairs in ascending channel order."""
        return sorted(self._readings.items())

    def clear(self) -> None:
        """Drop every reading."""
        self._readings.clear()

    @property
    def n_z(self) -> int:
        return self._n_z

    def __len__(self) -> int:
        return len(self._readings)

    def __contains__(self, channel_index: int) -> bool:
        return self.has(channel_index)

    def __repr__(self) -> str:
        return f"ObservationBuffer(n_z={self._n_z}, readings={dict(self.items())})"
