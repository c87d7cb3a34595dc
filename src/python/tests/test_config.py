"""
===============================================================================
MASKED KALMAN - Configuration Test Suite
===============================================================================
Tests for loading filter_config.yaml: defaults, partial files, unknown keys,
validation, and that the loaded policy reaches the update engine.
===============================================================================
"""

import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

import textwrap

import pytest

from kalman_filter.core.config import (
    DEFAULT_CONFIG_PATH, FilterConfig, config_from_dict, load_config,
)
from kalman_filter.core.constants import (
    DEFAULT_DIAGONAL_MARGIN, DEFAULT_MAX_CONDITION, DEFAULT_SNAP_THRESHOLD,
)
from kalman_filter.navigation.base_filter import MaskedKalmanFilter


def _write(tmp_path, text):
    path = tmp_path / "filter_config.yaml"
    path.write_text(textwrap.dedent(text))
    return path


class TestDefaults:

    def test_builtin_defaults(self):
        config = FilterConfig()
        assert config.stabilization.snap_threshold == DEFAULT_SNAP_THRESHOLD
        assert config.stabilization.diagonal_margin == DEFAULT_DIAGONAL_MARGIN
        assert config.max_condition == DEFAULT_MAX_CONDITION
        assert config.scenario.n_sensors == 3

    def test_empty_mapping(self):
        assert config_from_dict(None) == FilterConfig()
        assert config_from_dict({}) == FilterConfig()

    @pytest.mark.skipif(not DEFAULT_CONFIG_PATH.exists(),
                        reason="repository config file not available")
    def test_repository_file_matches_defaults(self):
        config = load_config()
        assert config.stabilization == FilterConfig().stabilization
        assert config.max_condition == DEFAULT_MAX_CONDITION


class TestLoadFile:

    def test_full_file(self, tmp_path):
        path = _write(tmp_path, """
            filter:
              stabilization:
                snap_threshold: 1.0e-6
                diagonal_margin: 1.0e-4
              max_condition: 1.0e8
              log_precision: 3
            scenario:
              n_sensors: 5
              steps: 50
              dropout_probability: 0.5
        """)
        config = load_config(path)
        assert config.stabilization.snap_threshold == 1.0e-6
        assert config.stabilization.diagonal_margin == 1.0e-4
        assert config.max_condition == 1.0e8
        assert config.log_precision == 3
        assert config.scenario.n_sensors == 5
        assert config.scenario.steps == 50
        assert config.scenario.dropout_probability == 0.5

    def test_partial_file_keeps_defaults(self, tmp_path):
        path = _write(tmp_path, """
            filter:
              stabilization:
                diagonal_margin: 0.01
        """)
        config = load_config(path)
        assert config.stabilization.diagonal_margin == 0.01
        assert config.stabilization.snap_threshold == DEFAULT_SNAP_THRESHOLD
        assert config.scenario == FilterConfig().scenario

    def test_unknown_keys_ignored(self, tmp_path):
        path = _write(tmp_path, """
            filter:
              stabilization:
                snap_threshold: 0.002
                colour: blue
            scenario:
              wind: 3.0
            plotting:
              dpi: 300
        """)
        config = load_config(path)
        assert config.stabilization.snap_threshold == 0.002

    @pytest.mark.parametrize("text", [
        "filter:\n  stabilization:\n    diagonal_margin: 0.0\n",
        "filter:\n  max_condition: 0.5\n",
        "filter:\n  log_precision: -1\n",
        "scenario:\n  dropout_probability: 1.5\n",
        "scenario:\n  n_sensors: 0\n",
    ])
    def test_invalid_values(self, tmp_path, text):
        path = _write(tmp_path, text)
        with pytest.raises(ValueError):
            load_config(path)

    def test_missing_explicit_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "nope.yaml")


class TestConfigReachesEngine:

    def test_policy_used_by_filter(self, tmp_path):
        path = _write(tmp_path, """
            filter:
              stabilization:
                diagonal_margin: 0.5
        """)
        kf = MaskedKalmanFilter(1, 1, config=load_config(path))
        kf.store.set_observation_model(C=[[1.0]], z=[0.0], S=[[1.0]])
        kf.post_observation(0, 2.0)
        kf.masked_update()
        assert kf.covariance(0, 0) == 0.5
