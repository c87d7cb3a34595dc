"""
===============================================================================
MASKED KALMAN - Masked Measurement Update Engine
===============================================================================

Incorporates exactly the channels that reported a reading this cycle. With
buffer contents {(k_1, v_1), ..., (k_m, v_m)}, k_1 < ... < k_m, the update is

    S_m[p, q] = S[k_p, k_q]                (m x m)   masked innovation covariance
    C_m[:, q] = C[:, k_q]                  (n_x x m) masked observation matrix
    K_m       = C_m * S_m^{-1}             (n_x x m) gain
    d[q]      = v_q - z[k_q]               (m,)      innovation
    x        <- x + K_m * d
    P        <- P - K_m * S_m * K_m^T

followed by the covariance stabilization pass and a drain of the buffer.

Channels without a reading never enter S_m or C_m, so they contribute
nothing to the gain and their variance is not reduced: the result is
identical to running a filter configured with only the observed channels.

Conditioning
------------
S_m is checked before it is inverted. When it is singular or its condition
number exceeds ``max_condition``, NumericalInstabilityError is raised before
the store or the buffer is modified. A non-finite gain is rejected the same
way.

Empty buffer
------------
With m = 0 the masked matrices are zero-sized, x and P are unchanged by the
gain, but the stabilization pass still runs (and may alter P) and the buffer
is cleared. Callers are expected to check ``has_any()`` first; the engine
logs a warning when they did not.
===============================================================================
"""

import logging
from dataclasses import dataclass, field
from typing import Optional, Tuple

import numpy as np

from kalman_filter.core.config import StabilizationPolicy
from kalman_filter.core.constants import DEFAULT_MAX_CONDITION
from kalman_filter.core.exceptions import NumericalInstabilityError
from kalman_filter.navigation.observation_buffer import ObservationBuffer
from kalman_filter.navigation.stabilization import (
    StabilizationReport, stabilize_covariance,
)
from kalman_filter.navigation.state_store import StateStore

logger = logging.getLogger(__name__)


@dataclass
class UpdateResult:
    """
    Intermediate quantities of one masked update.

    Attributes
    ----------
    channels : tuple of int
        Observed channels, ascending. Row/column order of every masked array.
    innovation : np.ndarray
        Measured minus predicted reading per observed channel (m,).
    gain : np.ndarray
        Masked gain K_m (n_x x m).
    innovation_covariance : np.ndarray
        Masked innovation covariance S_m (m x m).
    nis : float
        Normalized innovation squared d^T S_m^{-1} d. For a consistent
        filter its mean over many cycles is close to m.
    stabilization : StabilizationReport
        What the stabilization pass changed.
    """
    channels: Tuple[int, ...]
    innovation: np.ndarray
    gain: np.ndarray
    innovation_covariance: np.ndarray
    nis: float = 0.0
    stabilization: StabilizationReport = field(default_factory=StabilizationReport)

    @property
    def n_observations(self) -> int:
        return len(self.channels)


class MaskedUpdateEngine:
    """
    Stateless masked measurement update.

    The engine holds only its tuning; the arrays it works on are borrowed
    from a StateStore for the duration of one ``update`` call.

    Parameters
    ----------
    policy : StabilizationPolicy, optional
        Tuning of the post-update stabilization pass.
    max_condition : float
        Largest accepted condition number of S_m.
    """

    def __init__(self, policy: Optional[StabilizationPolicy] = None,
                 max_condition: float = DEFAULT_MAX_CONDITION) -> None:
        self.policy = policy if policy is not None else StabilizationPolicy()
        self.max_condition = float(max_condition)

    # =========================================================================
    # MASK ASSEMBLY
    # =========================================================================

    @staticmethod
    def assemble_mask(store: StateStore, channels: np.ndarray
                      ) -> Tuple[np.ndarray, np.ndarray]:
        """
        Select the rows/columns of S and columns of C for *channels*.

        Returns
        -------
        S_m : np.ndarray
            (m x m) with S_m[p, q] = S[channels[p], channels[q]].
        C_m : np.ndarray
            (n_x x m) with C_m[:, q] = C[:, channels[q]].
        """
        S_m = store.S[np.ix_(channels, channels)]
        C_m = store.C[:, channels]
        return S_m, C_m

    def _invert(self, S_m: np.ndarray, channels: np.ndarray) -> np.ndarray:
        """Invert S_m, refusing singular or ill-conditioned matrices."""
        with np.errstate(divide='ignore', invalid='ignore'):
            condition = float(np.linalg.cond(S_m))

        if not np.isfinite(condition) or condition > self.max_condition:
            logger.error(
                "Masked innovation covariance for channels %s is singular or "
                "ill-conditioned (cond=%.3e, limit=%.3e)",
                channels.tolist(), condition, self.max_condition,
            )
            raise NumericalInstabilityError(
                f"masked innovation covariance is singular or ill-conditioned "
                f"(cond={condition:.3e}, limit={self.max_condition:.3e})",
                channels=tuple(channels.tolist()), condition=condition,
            )

        try:
            return np.linalg.inv(S_m)
        except np.linalg.LinAlgError as exc:
            raise NumericalInstabilityError(
                f"failed to invert masked innovation covariance: {exc}",
                channels=tuple(channels.tolist()), condition=condition,
            ) from exc

    # =========================================================================
    # UPDATE
    # =========================================================================

    def update(self, store: StateStore, buffer: ObservationBuffer) -> UpdateResult:
        """
        Run one masked measurement update.

        Parameters
        ----------
        store : StateStore
            Provides C, z, S; x and P are updated in place.
        buffer : ObservationBuffer
            This cycle's readings. Cleared on success.

        Returns
        -------
        UpdateResult

        Raises
        ------
        NumericalInstabilityError
            If S_m cannot be inverted reliably or the gain is not finite.
            The store and the buffer are left untouched.
        """
        readings = buffer.items()
        channels = np.array([k for k, _ in readings], dtype=np.intp)
        values = np.array([v for _, v in readings], dtype=np.float64)
        n_obs = channels.size

        # --- Masked S and C ---
        S_m, C_m = self.assemble_mask(store, channels)

        # --- Gain K_m = C_m * S_m^{-1} ---
        if n_obs == 0:
            logger.warning(
                "Masked update run with an empty observation buffer; only "
                "the stabilization pass will affect the covariance"
            )
            S_m_inv = np.zeros((0, 0), dtype=np.float64)
        else:
            S_m_inv = self._invert(S_m, channels)
        K_m = C_m @ S_m_inv

        if not np.all(np.isfinite(K_m)):
            logger.error("Non-finite gain for channels %s", channels.tolist())
            raise NumericalInstabilityError(
                "masked gain contains non-finite values",
                channels=tuple(channels.tolist()),
            )

        # --- Innovation: measured minus predicted, same channel order ---
        innovation = values - store.z[channels]
        nis = float(innovation @ S_m_inv @ innovation) if n_obs else 0.0

        # --- State update ---
        store.x += K_m @ innovation

        # --- Covariance update ---
        store.P -= K_m @ S_m @ K_m.T

        # --- Protect against non-positive-definite covariance ---
        report = stabilize_covariance(store.P, store.t_xx, self.policy)

        # --- Drain ---
        buffer.clear()

        logger.debug(
            "Masked update: %d channel(s) %s, |innovation|=%.6g, NIS=%.4g",
            n_obs, channels.tolist(), float(np.linalg.norm(innovation)), nis,
        )

        return UpdateResult(
            channels=tuple(channels.tolist()),
            innovation=innovation,
            gain=K_m,
            innovation_covariance=S_m,
            nis=nis,
            stabilization=report,
        )
