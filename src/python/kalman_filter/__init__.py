"""
===============================================================================
MASKED KALMAN - Discrete-Time Kalman Filter with Partial Observability
===============================================================================
Update core of a linear Kalman state estimator in which any subset of the
configured sensor channels may report in a given cycle. Only the channels
that reported enter the gain computation, and the posterior covariance is
stabilized after every update so it stays symmetric and positive definite.

Subsystems:
    core           -- constants, exceptions, YAML configuration
    navigation     -- state store, observation buffer, masked update engine,
                      covariance stabilization, filter classes
    database       -- CSV diagnostics log writer and reader
    simulation     -- constant-velocity tracking demo
    visualization  -- diagnostics and estimation-error plots
===============================================================================
"""

from kalman_filter.core.config import FilterConfig, StabilizationPolicy, load_config
from kalman_filter.core.exceptions import (
    FilterError, IndexOutOfRangeError, DimensionMismatchError,
    NumericalInstabilityError,
)
from kalman_filter.navigation.base_filter import MaskedKalmanFilter
from kalman_filter.navigation.linear_filter import LinearKalmanFilter
from kalman_filter.navigation.masked_update import MaskedUpdateEngine, UpdateResult
from kalman_filter.navigation.observation_buffer import ObservationBuffer
from kalman_filter.navigation.stabilization import stabilize_covariance
from kalman_filter.navigation.state_store import StateStore

__version__ = "0.1.0"

__all__ = [
    "FilterConfig", "StabilizationPolicy", "load_config",
    "FilterError", "IndexOutOfRangeError", "DimensionMismatchError",
    "NumericalInstabilityError",
    "MaskedKalmanFilter", "LinearKalmanFilter",
    "MaskedUpdateEngine", "UpdateResult",
    "ObservationBuffer", "StateStore", "stabilize_covariance",
]
