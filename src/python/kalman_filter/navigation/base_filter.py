"""
===============================================================================
MASKED KALMAN - Masked Kalman Filter
===============================================================================
Ties the three parts of the update core together behind one object:

    StateStore          x, P and the model matrices
    ObservationBuffer   this cycle's readings
    MaskedUpdateEngine  masked gain, state/covariance update, stabilization

plus an optional DiagnosticsLog.

Estimation cycle (driven by the caller or a subclass)
-----------------------------------------------------
    1. predict x and P with the process model and Q        (collaborator)
    2. fill C, z, S for the current prediction              (collaborator)
    3. post_observation(channel, value) for each reading
    4. if has_observations(): masked_update()

LinearKalmanFilter (navigation.linear_filter) provides steps 1 and 2 for a
linear time-invariant model. Other models subclass this class, or drive it
from outside through the ``store`` attribute.

One instance must not be mutated from several threads at once; there is no
internal locking.
===============================================================================
"""

import logging
from pathlib import Path
from typing import Optional, Union

import numpy as np

from kalman_filter.core.config import FilterConfig
from kalman_filter.database.diagnostics_log import DiagnosticsLog
from kalman_filter.navigation.masked_update import MaskedUpdateEngine, UpdateResult
from kalman_filter.navigation.observation_buffer import ObservationBuffer
from kalman_filter.navigation.state_store import StateStore

logger = logging.getLogger(__name__)


class MaskedKalmanFilter:
    """
    Discrete-time Kalman filter core with per-cycle partial observability.

    Parameters
    ----------
    n_variables : int
        State dimension n_x.
    n_observers : int
        Number of observation channels n_z.
    config : FilterConfig, optional
        Stabilization policy, conditioning limit and log precision.

    Attributes
    ----------
    store : StateStore
    observations : ObservationBuffer
    engine : MaskedUpdateEngine
    diagnostics : DiagnosticsLog
    last_update : UpdateResult or None
        Result of the most recent masked update.

    Examples
    --------
    >>> kf = MaskedKalmanFilter(n_variables=1, n_observers=1)
    >>> kf.store.set_observation_model(C=[[1.0]], z=[0.0], S=[[1.0]])
    >>> kf.post_observation(0, 2.0)
    >>> if kf.has_observations():
    ...     kf.masked_update()
    >>> kf.state(0)
    2.0
    """

    def __init__(self, n_variables: int, n_observers: int,
                 config: Optional[FilterConfig] = None) -> None:
        self.config = config if config is not None else FilterConfig()

        self.store = StateStore(n_variables, n_observers)
        self.observations = ObservationBuffer(self.store.n_z)
        self.engine = MaskedUpdateEngine(
            policy=self.config.stabilization,
            max_condition=self.config.max_condition,
        )
        self.diagnostics = DiagnosticsLog(self.store.n_x, self.store.n_z)
        self.last_update: Optional[UpdateResult] = None

    # =========================================================================
    # FILTER METHODS
    # =========================================================================

    def post_observation(self, observer_index: int, observation: float) -> None:
        """Add or replace the reading of channel *observer_index*."""
        self.observations.post(observer_index, observation)

    def has_observations(self) -> bool:
        return self.observations.has_any()

    def has_observation(self, observer_index: int) -> bool:
        return self.observations.has(observer_index)

    def masked_update(self) -> UpdateResult:
        """
        Incorporate the posted readings and drain the buffer.

        Call only when ``has_observations()`` is True; see
        navigation.masked_update for the empty-buffer behavior.

        Raises
        ------
        NumericalInstabilityError
            If the masked innovation covariance cannot be inverted.
        """
        self.last_update = self.engine.update(self.store, self.observations)
        return self.last_update

    # =========================================================================
    # ACCESS
    # =========================================================================

    @property
    def n_variables(self) -> int:
        return self.store.n_x

    @property
    def n_observers(self) -> int:
        return self.store.n_z

    def state(self, index: int) -> float:
        return self.store.state(index)

    def set_state(self, index: int, value: float) -> None:
        self.store.set_state(index, value)

    def get_state(self) -> np.ndarray:
        return self.store.get_state()

    def covariance(self, index_a: int, index_b: int) -> float:
        return self.store.covariance(index_a, index_b)

    def set_covariance(self, index_a: int, index_b: int, value: float) -> None:
        self.store.set_covariance(index_a, index_b, value)

    def get_covariance(self) -> np.ndarray:
        return self.store.get_covariance()

    def initialize_state(self, x0, P0) -> None:
        """Replace the state vector and covariance matrix."""
        self.store.initialize(x0, P0)

    # =========================================================================
    # LOGGING
    # =========================================================================

    def start_log(self, log_file: Union[str, Path],
                  precision: Optional[int] = None) -> bool:
        """Start the diagnostics log; returns False if it cannot be opened."""
        if precision is None:
            precision = self.config.log_precision
        return self.diagnostics.start(log_file, precision)

    def stop_log(self) -> None:
        self.diagnostics.stop()

    def log_predicted_state(self) -> None:
        self.diagnostics.write_predicted_state(self.store.x)

    def log_observations(self, empty: bool) -> None:
        """Log predicted and actual readings, or blanks when *empty*."""
        buffer = None if empty else self.observations
        self.diagnostics.write_observations(self.store.z, buffer)

    def log_estimated_state(self) -> None:
        self.diagnostics.write_estimated_state(self.store.x)

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def close(self) -> None:
        """Stop the diagnostics log if it is running."""
        self.stop_log()

    def __enter__(self) -> "MaskedKalmanFilter":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def __repr__(self) -> str:
        return (f"{type(self).__name__}(n_variables={self.n_variables}, "
                f"n_observers={self.n_observers})")
