"""
===============================================================================
MASKED KALMAN - Linear Kalman Filter Test Suite
===============================================================================
Tests for the linear prediction and observation-model collaborators and for
complete estimation cycles with intermittent channels: prediction,
covariance reduction, position convergence under dropouts, innovation
consistency, and diagnostics logging from step().
===============================================================================
"""

import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

import numpy as np
import pytest
from numpy.testing import assert_allclose

from kalman_filter.core.exceptions import (
    DimensionMismatchError, IndexOutOfRangeError, NumericalInstabilityError,
)
from kalman_filter.database.diagnostics_log import load_log
from kalman_filter.navigation.linear_filter import LinearKalmanFilter


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def position_filter():
    """3 position states observed directly by 3 channels, R = 4 I."""
    kf = LinearKalmanFilter(3, 3, H=np.eye(3))
    kf.initialize_state(np.zeros(3), np.eye(3) * 1000.0)
    kf.store.set_process_noise(np.eye(3) * 0.001)
    kf.store.set_observation_noise(np.eye(3) * 4.0)
    return kf


@pytest.fixture
def constant_velocity_F():
    """State transition for [position, velocity] with dt = 1."""
    return np.array([[1.0, 1.0], [0.0, 1.0]])


# =============================================================================
# Test: Prediction
# =============================================================================

class TestPredict:

    def test_predict_stationary(self, position_filter):
        position_filter.predict(np.eye(3))
        assert_allclose(position_filter.get_state(), np.zeros(3), atol=1e-15)

    def test_predict_increases_uncertainty(self, position_filter):
        trace_before = np.trace(position_filter.get_covariance())
        position_filter.predict(np.eye(3))
        assert np.trace(position_filter.get_covariance()) > trace_before

    def test_predict_propagates_state(self, constant_velocity_F):
        kf = LinearKalmanFilter(2, 1)
        kf.initialize_state([1.0, 2.0], np.eye(2))
        kf.store.set_process_noise(np.zeros((2, 2)))
        kf.predict(constant_velocity_F)
        assert_allclose(kf.get_state(), [3.0, 2.0])
        assert_allclose(kf.get_covariance(), [[2.0, 1.0], [1.0, 1.0]])

    def test_predict_with_control(self, constant_velocity_F):
        kf = LinearKalmanFilter(2, 1)
        B = np.array([[0.5], [1.0]])
        kf.predict(constant_velocity_F, u=[2.0], B=B)
        assert_allclose(kf.get_state(), [1.0, 2.0])

    def test_predict_shape_mismatch(self, position_filter):
        with pytest.raises(DimensionMismatchError):
            position_filter.predict(np.eye(2))
        with pytest.raises(DimensionMismatchError):
            position_filter.predict(np.eye(3), u=[1.0], B=np.ones((2, 1)))


# =============================================================================
# Test: Observation model
# =============================================================================

class TestObservationModel:

    def test_prepare_observation_model(self):
        H = np.array([[1.0, 0.0], [1.0, 1.0]])
        P = np.array([[2.0, 0.5], [0.5, 1.0]])
        x = np.array([3.0, -1.0])
        R = np.diag([0.1, 0.2])

        kf = LinearKalmanFilter(2, 2, H=H)
        kf.initialize_state(x, P)
        kf.store.set_observation_noise(R)
        kf.prepare_observation_model()

        assert_allclose(kf.store.get_predicted_observation(), H @ x)
        assert_allclose(kf.store.get_observation_matrix(), P @ H.T)
        assert_allclose(kf.store.get_innovation_covariance(), H @ P @ H.T + R)

    def test_measurement_matrix_shape(self):
        kf = LinearKalmanFilter(2, 3)
        with pytest.raises(DimensionMismatchError):
            kf.set_measurement_matrix(np.ones((2, 3)))


# =============================================================================
# Test: Full cycles
# =============================================================================

class TestStep:

    def test_update_reduces_covariance(self, position_filter):
        position_filter.predict(np.eye(3))
        trace_before = np.trace(position_filter.get_covariance())
        position_filter.prepare_observation_model()
        position_filter.post_observation(0, 0.0)
        position_filter.masked_update()
        assert np.trace(position_filter.get_covariance()) < trace_before

    def test_unobserved_channel_variance_not_reduced(self, position_filter):
        """Only the observed position's variance shrinks."""
        position_filter.step(np.eye(3), {1: 5.0})
        P = position_filter.get_covariance()
        assert P[1, 1] < 10.0
        assert_allclose([P[0, 0], P[2, 2]], [1000.001, 1000.001])

    def test_step_without_readings(self, position_filter):
        result = position_filter.step(np.eye(3), {})
        assert result is None
        assert_allclose(np.diag(position_filter.get_covariance()), [1000.001] * 3)

    def test_step_returns_update_result(self, position_filter):
        result = position_filter.step(np.eye(3), {2: 1.0, 0: -1.0})
        assert result.channels == (0, 2)
        assert result.gain.shape == (3, 2)
        assert not position_filter.has_observations()

    def test_position_convergence_with_dropouts(self, position_filter):
        """Noisy readings with 30% dropout still converge to the truth."""
        rng = np.random.default_rng(123)
        true_pos = np.array([100.0, -50.0, 200.0])

        for _ in range(50):
            readings = {
                k: float(true_pos[k] + rng.normal(0.0, 2.0))
                for k in range(3) if rng.random() >= 0.3
            }
            position_filter.step(np.eye(3), readings)

        pos_error = np.linalg.norm(position_filter.get_state() - true_pos)
        assert pos_error < 5.0, (
            f"Position error {pos_error:.2f} m exceeds 5.0 m after 50 cycles"
        )

    def test_velocity_observed_through_position(self, constant_velocity_F):
        """Two redundant position channels recover a constant velocity."""
        rng = np.random.default_rng(5)
        kf = LinearKalmanFilter(2, 2, H=[[1.0, 0.0], [1.0, 0.0]])
        kf.initialize_state([0.0, 0.0], np.eye(2) * 10.0)
        kf.store.set_process_noise(np.eye(2) * 1e-4)
        kf.store.set_observation_noise(np.eye(2) * 0.25)

        position = 0.0
        for _ in range(150):
            position += 2.0
            readings = {
                k: position + rng.normal(0.0, 0.5)
                for k in range(2) if rng.random() >= 0.4
            }
            kf.step(constant_velocity_F, readings)

        assert abs(kf.state(1) - 2.0) < 0.2
        assert abs(kf.state(0) - position) < 2.0

    def test_innovation_consistency(self):
        """Mean NIS is close to the mean number of observed channels."""
        rng = np.random.default_rng(202)
        kf = LinearKalmanFilter(3, 3, H=np.eye(3))
        kf.initialize_state(np.zeros(3), np.eye(3) * 100.0)
        kf.store.set_process_noise(np.eye(3) * 1e-4)

        nis_values = []
        n_observed = []
        for _ in range(500):
            readings = {
                k: float(rng.normal(0.0, 1.0)) for k in range(3) if rng.random() < 0.7
            }
            result = kf.step(np.eye(3), readings)
            if result is not None:
                nis_values.append(result.nis)
                n_observed.append(result.n_observations)

        ratio = np.mean(nis_values) / np.mean(n_observed)
        assert 0.5 < ratio < 2.0, f"Mean NIS / mean channels = {ratio:.2f}"

    def test_step_writes_log(self, tmp_path, position_filter):
        path = tmp_path / "cycles.csv"
        assert position_filter.start_log(path, precision=4)
        position_filter.step(np.eye(3), {0: 1.0})
        position_filter.step(np.eye(3), {})
        position_filter.stop_log()

        df = load_log(path)
        assert len(df) == 2
        assert df.loc[0, "za_0"] == 1.0
        assert np.isnan(df.loc[0, "za_1"])
        assert df.loc[1, ["zp_0", "za_0"]].isna().all()
        assert df.loc[1, "xp_0"] == df.loc[1, "xe_0"]


# =============================================================================
# Test: Rejected cycles
# =============================================================================

@pytest.fixture
def degenerate_filter():
    """Two channels observing one state with P = Q = R = 0, so S = 0."""
    kf = LinearKalmanFilter(1, 2, H=[[1.0], [1.0]])
    kf.initialize_state([0.0], [[0.0]])
    kf.store.set_process_noise([[0.0]])
    kf.store.set_observation_noise(np.zeros((2, 2)))
    return kf


class TestRejectedCycle:

    def test_failed_update_discards_readings(self, degenerate_filter):
        kf = degenerate_filter
        with pytest.raises(NumericalInstabilityError):
            kf.step(np.eye(1), {0: 5.0})
        assert not kf.has_observations()

        # Well-conditioned next cycle: only its own channel is used
        kf.store.set_observation_noise(np.eye(2))
        result = kf.step(np.eye(1), {1: 1.0})
        assert result.channels == (1,)

    def test_failed_update_closes_log_line(self, tmp_path, degenerate_filter):
        kf = degenerate_filter
        path = tmp_path / "rejected.csv"
        assert kf.start_log(path, precision=3)
        with pytest.raises(NumericalInstabilityError):
            kf.step(np.eye(1), {0: 5.0})
        kf.store.set_observation_noise(np.eye(2))
        kf.step(np.eye(1), {1: 1.0})
        kf.stop_log()

        lines = path.read_text().splitlines()
        assert lines[1:] == [
            "0.000,0.000,0.000,5.000,,0.000",
            "0.000,0.000,0.000,,1.000,0.000",
        ]
        assert all(len(line.split(",")) == 6 for line in lines)
        assert len(load_log(path)) == 2

    def test_invalid_channel_leaves_no_partial_cycle(self, tmp_path, position_filter):
        path = tmp_path / "bad_channel.csv"
        assert position_filter.start_log(path, precision=2)
        with pytest.raises(IndexOutOfRangeError):
            position_filter.step(np.eye(3), {0: 1.0, 7: 2.0})
        assert not position_filter.has_observations()
        position_filter.step(np.eye(3), {})
        position_filter.stop_log()

        df = load_log(path)
        assert len(df) == 1
        assert df.loc[0, ["za_0", "za_1", "za_2"]].isna().all()
