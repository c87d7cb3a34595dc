"""
===============================================================================
MASKED KALMAN - Diagnostics Log
===============================================================================
Comma-separated text log of every estimation cycle, for offline analysis.

Layout
------
One header line, then one line per cycle with the columns

    xp_0 .. xp_{n_x-1}    state before the update (the predicted state)
    zp_0 .. zp_{n_z-1}    predicted observation vector
    za_0 .. za_{n_z-1}    actual reading per channel, blank if not observed
    xe_0 .. xe_{n_x-1}    state after the update

Numbers are written in fixed-point notation with a caller-chosen number of
decimals. A cycle without any reading leaves both observation blocks blank
but keeps the field count, so every line parses to the same columns.

A line is written in three parts that bracket the masked update:

    log.write_predicted_state(x)          # after prediction
    log.write_observations(z, buffer)     # after readings are posted
    log.write_estimated_state(x)          # after the update (ends the line)

The log is advisory: failing to open it is reported by ``start`` returning
False, and every write is a no-op while no stream is open.

Usage:
    from kalman_filter.database.diagnostics_log import DiagnosticsLog, load_log

    log = DiagnosticsLog(n_x=2, n_z=3)
    if log.start("output/filter_log.csv", precision=4):
        ...
    log.stop()
    df = load_log("output/filter_log.csv")
===============================================================================
"""

import logging
from pathlib import Path
from typing import IO, Iterable, Optional, Union

import numpy as np
import pandas as pd

from kalman_filter.core.constants import (
    DEFAULT_LOG_PRECISION, LOG_DELIMITER,
    PREDICTED_STATE_PREFIX, PREDICTED_OBSERVATION_PREFIX,
    ACTUAL_OBSERVATION_PREFIX, ESTIMATED_STATE_PREFIX,
)
from kalman_filter.navigation.observation_buffer import ObservationBuffer

logger = logging.getLogger(__name__)


def log_columns(n_x: int, n_z: int) -> list:
    """Return the ordered column names of a diagnostics log."""
    return (
        [f"{PREDICTED_STATE_PREFIX}{i}" for i in range(n_x)]
        + [f"{PREDICTED_OBSERVATION_PREFIX}{i}" for i in range(n_z)]
        + [f"{ACTUAL_OBSERVATION_PREFIX}{i}" for i in range(n_z)]
        + [f"{ESTIMATED_STATE_PREFIX}{i}" for i in range(n_x)]
    )


class DiagnosticsLog:
    """
    Streaming CSV writer for per-cycle filter diagnostics.

    Parameters
    ----------
    n_x : int
        State dimension.
    n_z : int
        Number of observation channels.
    """

    def __init__(self, n_x: int, n_z: int) -> None:
        self.n_x = int(n_x)
        self.n_z = int(n_z)
        self.path: Optional[Path] = None
        self.precision = DEFAULT_LOG_PRECISION
        self._stream: Optional[IO[str]] = None

    # =========================================================================
    # Stream management
    # =========================================================================

    @property
    def is_open(self) -> bool:
        return self._stream is not None

    def start(self, log_file: Union[str, Path],
              precision: int = DEFAULT_LOG_PRECISION) -> bool:
        """
        Open *log_file* for writing and emit the header line.

        Any log that is already running is stopped first.

        Returns
        -------
        bool
            True when the file was opened, False otherwise.

        Raises
        ------
        ValueError
            If precision is negative. A running log is left open.
        """
        precision = int(precision)
        if precision < 0:
            raise ValueError(f"precision must be non-negative, got {precision}")

        self.stop()

        path = Path(log_file)
        try:
            stream = open(path, "w", encoding="utf-8", newline="")
        except OSError as exc:
            logger.warning("Could not open diagnostics log %s: %s", path, exc)
            return False

        self._stream = stream
        self.path = path
        self.precision = precision
        self._stream.write(LOG_DELIMITER.join(log_columns(self.n_x, self.n_z)))
        self._stream.write("\n")
        self._stream.flush()
        logger.info("Diagnostics log started: %s", path)
        return True

    def stop(self) -> None:
        """Close the stream if one is open."""
        if self._stream is not None:
            self._stream.close()
            self._stream = None
            logger.info("Diagnostics log stopped: %s", self.path)

    # =========================================================================
    # Line writers
    # =========================================================================

    def _format(self, value: float) -> str:
        return f"{value:.{self.precision}f}"

    def _write_fields(self, values: Iterable[str], terminate: bool) -> None:
        text = LOG_DELIMITER.join(values)
        if terminate:
            self._stream.write(text + "\n")
            self._stream.flush()
        else:
            self._stream.write(text + LOG_DELIMITER)

    def write_predicted_state(self, x: np.ndarray) -> None:
        """Write the xp block (state before this cycle's update)."""
        if self._stream is None:
            return
        self._write_fields((self._format(v) for v in x), terminate=False)

    def write_observations(self, z: np.ndarray,
                           buffer: Optional[ObservationBuffer]) -> None:
        """
        Write the zp and za blocks.

        Parameters
        ----------
        z : np.ndarray
            Predicted observation vector.
        buffer : ObservationBuffer or None
            This cycle's readings. None or an empty buffer blanks both blocks.
        """
        if self._stream is None:
            return
        if buffer is None or not buffer.has_any():
            self._write_fields([""] * (2 * self.n_z), terminate=False)
            return

        predicted = [self._format(v) for v in z]
        actual = []
        for channel in range(self.n_z):
            reading = buffer.get(channel)
            actual.append("" if reading is None else self._format(reading))
        self._write_fields(predicted + actual, terminate=False)

    def write_estimated_state(self, x: np.ndarray) -> None:
        """Write the xe block (state after the update) and end the line."""
        if self._stream is None:
            return
        self._write_fields((self._format(v) for v in x), terminate=True)

    # =========================================================================
    # Context manager
    # =========================================================================

    def __enter__(self) -> "DiagnosticsLog":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.stop()

    def __repr__(self) -> str:
        state = f"open, path='{self.path}'" if self.is_open else "closed"
        return f"DiagnosticsLog(n_x={self.n_x}, n_z={self.n_z}, {state})"


def load_log(log_file: Union[str, Path]) -> pd.DataFrame:
    """
    Read a diagnostics log back into a DataFrame.

    Blank fields (unobserved channels, cycles without readings) become NaN.

    Parameters
    ----------
    log_file : str or Path

    Returns
    -------
    pd.DataFrame
        One row per cycle, one column per log field, all float64.
    """
    return pd.read_csv(log_file, dtype=np.float64)
