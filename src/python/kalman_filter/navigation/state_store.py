"""
===============================================================================
MASKED KALMAN - State / Covariance Store
===============================================================================
Owns every vector and matrix of one filter instance. Dimensions are fixed at
construction:

    n_x : number of state variables
    n_z : number of configured observation channels

Arrays and their initial values
-------------------------------
    x     (n_x,)       state vector                        zeros
    P     (n_x, n_x)   state error covariance              identity
    Q     (n_x, n_x)   process noise covariance            identity
    R     (n_z, n_z)   observation noise covariance        identity
    C     (n_x, n_z)   observation/gain matrix             zeros
    z     (n_z,)       predicted observation vector        zeros
    S     (n_z, n_z)   innovation covariance               zeros
    t_xx  (n_x, n_x)   scratch for the stabilization pass  zeros

Column j of C is the sensitivity of channel j's predicted reading to the
state; for a linear model with measurement matrix H it equals (P H^T)[:, j].

Q and R are consumed by the prediction and observation-model collaborators.
The masked update reads C, z and S, and writes x and P. All setters copy into
the existing storage, so arrays handed out as attributes stay valid for the
lifetime of the store.
===============================================================================
"""

import numpy as np

from kalman_filter.core.exceptions import DimensionMismatchError, IndexOutOfRangeError


def _as_array(value, name: str, shape: tuple) -> np.ndarray:
    """Convert *value* to a float64 array and verify its shape."""
    array = np.asarray(value, dtype=np.float64)
    if array.shape != shape:
        raise DimensionMismatchError(name, shape, array.shape)
    return array


class StateStore:
    """
    Dense storage for the state, covariance and model matrices.

    Parameters
    ----------
    n_x : int
        State dimension (>= 1).
    n_z : int
        Number of observation channels (>= 1).

    Attributes
    ----------
    x, P, Q, R, C, z, S, t_xx : np.ndarray
        See module docstring. Mutated in place by the update engine.

    Examples
    --------
    >>> store = StateStore(n_x=2, n_z=3)
    >>> store.set_state(0, 10.0)
    >>> store.state(0)
    10.0
    """

    def __init__(self, n_x: int, n_z: int) -> None:
        n_x = int(n_x)
        n_z = int(n_z)
        if n_x < 1:
            raise ValueError(f"n_x must be at least 1, got {n_x}")
        if n_z < 1:
            raise ValueError(f"n_z must be at least 1, got {n_z}")

        self._n_x = n_x
        self._n_z = n_z

        # --- Prediction components ---
        self.x = np.zeros(n_x, dtype=np.float64)
        self.P = np.eye(n_x, dtype=np.float64)
        self.Q = np.eye(n_x, dtype=np.float64)

        # --- Update components ---
        self.R = np.eye(n_z, dtype=np.float64)
        self.z = np.zeros(n_z, dtype=np.float64)
        self.S = np.zeros((n_z, n_z), dtype=np.float64)
        self.C = np.zeros((n_x, n_z), dtype=np.float64)

        # --- Temporaries ---
        self.t_xx = np.zeros((n_x, n_x), dtype=np.float64)

    # =========================================================================
    # DIMENSIONS
    # =========================================================================

    @property
    def n_x(self) -> int:
        """Number of state variables."""
        return self._n_x

    @property
    def n_z(self) -> int:
        """Number of observation channels."""
        return self._n_z

    # =========================================================================
    # ELEMENT ACCESS
    # =========================================================================

    def _check_state_index(self, index: int) -> None:
        if not 0 <= index < self._n_x:
            raise IndexOutOfRangeError("state variable", index, self._n_x)

    def state(self, index: int) -> float:
        """Return state variable *index*."""
        self._check_state_index(index)
        return float(self.x[index])

    def set_state(self, index: int, value: float) -> None:
        """Overwrite state variable *index*."""
        self._check_state_index(index)
        self.x[index] = value

    def covariance(self, index_a: int, index_b: int) -> float:
        """Return covariance element P[index_a, index_b]."""
        self._check_state_index(index_a)
        self._check_state_index(index_b)
        return float(self.P[index_a, index_b])

    def set_covariance(self, index_a: int, index_b: int, value: float) -> None:
        """
        Overwrite a single covariance element.

        Only P[index_a, index_b] is written; the mirrored element is left as
        is. Symmetry is restored by the next masked update.
        """
        self._check_state_index(index_a)
        self._check_state_index(index_b)
        self.P[index_a, index_b] = value

    # =========================================================================
    # BULK ACCESS
    # =========================================================================

    def initialize(self, x0, P0) -> None:
        """
        Replace the full state vector and covariance matrix.

        Both arguments are validated before either is written.

        Raises
        ------
        DimensionMismatchError
            If x0 is not (n_x,) or P0 is not (n_x, n_x).
        """
        x0 = _as_array(x0, "initial state vector", (self._n_x,))
        P0 = _as_array(P0, "initial covariance matrix", (self._n_x, self._n_x))
        self.x[:] = x0
        self.P[:, :] = P0

    def get_state(self) -> np.ndarray:
        """Return a copy of the state vector."""
        return self.x.copy()

    def get_covariance(self) -> np.ndarray:
        """Return a copy of the covariance matrix."""
        return self.P.copy()

    # =========================================================================
    # MODEL MATRICES (written by the external collaborators)
    # =========================================================================

    def set_process_noise(self, Q) -> None:
        """Replace the process noise covariance Q (n_x x n_x)."""
        self.Q[:, :] = _as_array(Q, "process noise matrix", (self._n_x, self._n_x))

    def get_process_noise(self) -> np.ndarray:
        return self.Q.copy()

    def set_observation_noise(self, R) -> None:
        """Replace the observation noise covariance R (n_z x n_z)."""
        self.R[:, :] = _as_array(R, "observation noise matrix", (self._n_z, self._n_z))

    def get_observation_noise(self) -> np.ndarray:
        return self.R.copy()

    def set_observation_model(self, C, z, S) -> None:
        """
        Install this cycle's observation model.

        Parameters
        ----------
        C : array-like, shape (n_x, n_z)
            Observation/gain matrix.
        z : array-like, shape (n_z,)
            Predicted reading of every channel.
        S : array-like, shape (n_z, n_z)
            Innovation covariance.

        Raises
        ------
        DimensionMismatchError
            If any argument has the wrong shape. Nothing is written then.
        """
        C = _as_array(C, "observation matrix", (self._n_x, self._n_z))
        z = _as_array(z, "predicted observation vector", (self._n_z,))
        S = _as_array(S, "innovation covariance", (self._n_z, self._n_z))
        self.C[:, :] = C
        self.z[:] = z
        self.S[:, :] = S

    def get_observation_matrix(self) -> np.ndarray:
        return self.C.copy()

    def get_predicted_observation(self) -> np.ndarray:
        return self.z.copy()

    def get_innovation_covariance(self) -> np.ndarray:
        return self.S.copy()

    def __repr__(self) -> str:
        return f"StateStore(n_x={self._n_x}, n_z={self._n_z})"
