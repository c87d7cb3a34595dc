"""
===============================================================================
MASKED KALMAN - Linear Kalman Filter
===============================================================================
MaskedKalmanFilter with the two collaborators of a linear time-invariant
model built in:

Prediction
    x <- F x + B u
    P <- F P F^T + Q,  then  P <- (P + P^T) / 2

Observation model (measurement matrix H, n_z x n_x)
    z = H x                 predicted reading of every channel
    C = P H^T               observation/gain matrix (n_x x n_z)
    S = H P H^T + R         innovation covariance

With these, the masked gain K_m = C_m S_m^{-1} is the textbook Kalman gain
restricted to the observed channels, and P - K_m S_m K_m^T is the textbook
posterior covariance.
===============================================================================
"""

import logging
from typing import Mapping, Optional

import numpy as np

from kalman_filter.core.config import FilterConfig
from kalman_filter.core.exceptions import (
    DimensionMismatchError, NumericalInstabilityError,
)
from kalman_filter.navigation.base_filter import MaskedKalmanFilter
from kalman_filter.navigation.masked_update import UpdateResult

logger = logging.getLogger(__name__)


class LinearKalmanFilter(MaskedKalmanFilter):
    """
    Masked Kalman filter for a linear model x_k = F x_{k-1} + B u + w,
    z_k = H x_k + v.

    Parameters
    ----------
    n_variables : int
        State dimension n_x.
    n_observers : int
        Number of scalar observation channels n_z.
    H : array-like, optional
        Measurement matrix (n_z x n_x). Zero until set.
    config : FilterConfig, optional

    Examples
    --------
    >>> kf = LinearKalmanFilter(2, 2, H=[[1.0, 0.0], [1.0, 0.0]])
    >>> F = np.array([[1.0, 1.0], [0.0, 1.0]])
    >>> kf.step(F, {0: 1.1})          # channel 1 dropped out this cycle
    """

    def __init__(self, n_variables: int, n_observers: int, H=None,
                 config: Optional[FilterConfig] = None) -> None:
        super().__init__(n_variables, n_observers, config=config)
        self.H = np.zeros((self.n_observers, self.n_variables), dtype=np.float64)
        if H is not None:
            self.set_measurement_matrix(H)

    # =========================================================================
    # PREDICT STEP
    # =========================================================================

    def predict(self, F, u=None, B=None) -> None:
        """
        Propagate the state and covariance one step forward.

        Parameters
        ----------
        F : array-like
            State transition matrix (n_x x n_x).
        u : array-like, optional
            Control input vector.
        B : array-like, optional
            Control input matrix (n_x x len(u)). Used only together with u.
        """
        n_x = self.n_variables
        F = np.asarray(F, dtype=np.float64)
        if F.shape != (n_x, n_x):
            raise DimensionMismatchError("state transition matrix", (n_x, n_x), F.shape)

        control = None
        if u is not None and B is not None:
            u = np.atleast_1d(np.asarray(u, dtype=np.float64))
            B = np.asarray(B, dtype=np.float64)
            if B.shape != (n_x, u.shape[0]):
                raise DimensionMismatchError("control input matrix",
                                             (n_x, u.shape[0]), B.shape)
            control = B @ u

        store = self.store
        x_pred = F @ store.x
        if control is not None:
            x_pred += control
        store.x[:] = x_pred

        store.P[:, :] = F @ store.P @ F.T + store.Q
        # Enforce symmetry (floating-point errors can break this over time)
        np.copyto(store.t_xx, store.P.T)
        store.P += store.t_xx
        store.P /= 2.0

    # =========================================================================
    # OBSERVATION MODEL
    # =========================================================================

    def set_measurement_matrix(self, H) -> None:
        """Replace the measurement matrix H (n_z x n_x)."""
        H = np.asarray(H, dtype=np.float64)
        expected = (self.n_observers, self.n_variables)
        if H.shape != expected:
            raise DimensionMismatchError("measurement matrix", expected, H.shape)
        self.H[:, :] = H

    def prepare_observation_model(self) -> None:
        """Compute z, C and S from the current prediction and write them to the store."""
        store = self.store
        PHt = store.P @ self.H.T
        store.set_observation_model(
            C=PHt,
            z=self.H @ store.x,
            S=self.H @ PHt + store.R,
        )

    # =========================================================================
    # FULL CYCLE
    # =========================================================================

    def step(self, F, readings: Mapping[int, float], u=None,
             B=None) -> Optional[UpdateResult]:
        """
        Run one complete estimation cycle.

        Predicts, builds the observation model, posts every reading in
        *readings* (channel -> value), performs the masked update when at
        least one reading was posted, and writes one diagnostics log line.

        Returns
        -------
        UpdateResult or None
            None when no channel reported this cycle.

        Raises
        ------
        IndexOutOfRangeError, TypeError, ValueError
            If a channel or reading in *readings* is invalid. Nothing of this cycle is
            logged or kept in the buffer; the prediction has been applied.
        NumericalInstabilityError
            If the masked update is rejected. The cycle is still closed:
            the log line ends with the predicted state as the estimate and
            the readings of this cycle are discarded.
        """
        self.predict(F, u=u, B=B)
        self.prepare_observation_model()

        try:
            for channel, value in readings.items():
                self.post_observation(channel, value)
        except (IndexError, TypeError, ValueError):
            # nothing logged yet this cycle
            self.observations.clear()
            raise

        self.log_predicted_state()

        empty = not self.has_observations()
        self.log_observations(empty)

        result = None
        if not empty:
            try:
                result = self.masked_update()
            except NumericalInstabilityError:
                logger.warning(
                    "Masked update rejected; discarding %d reading(s) %s",
                    len(self.observations), self.observations.channels(),
                )
                self.observations.clear()
                self.log_estimated_state()
                raise
        else:
            logger.debug("No readings this cycle; prediction kept as estimate")

        self.log_estimated_state()
        return result
