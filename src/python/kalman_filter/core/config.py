"""
===============================================================================
MASKED KALMAN - Configuration
===============================================================================
Loads filter and scenario settings from config/filter_config.yaml into typed
dataclasses. Any section or key missing from the file falls back to the
defaults in core.constants; unknown keys are ignored so one YAML file can be
shared with other tools.

Usage:
    from kalman_filter.core.config import load_config

    config = load_config()                       # repository default file
    config = load_config("my_filter.yaml")       # explicit path
    policy = config.stabilization
===============================================================================
"""

import logging
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

from kalman_filter.core.constants import (
    DEFAULT_SNAP_THRESHOLD, DEFAULT_DIAGONAL_MARGIN, DEFAULT_MAX_CONDITION,
    DEFAULT_LOG_PRECISION,
)

logger = logging.getLogger(__name__)

# Repository root: src/python/kalman_filter/core/config.py -> four levels up
PROJECT_ROOT = Path(__file__).resolve().parents[4]
DEFAULT_CONFIG_PATH = PROJECT_ROOT / "config" / "filter_config.yaml"


@dataclass
class StabilizationPolicy:
    """
    Tuning of the covariance stabilization pass.

    Attributes
    ----------
    snap_threshold : float
        Off-diagonal entries with magnitude below this are set to zero.
    diagonal_margin : float
        Amount added to the off-diagonal row sum when a diagonal entry is
        raised to restore diagonal dominance. Must be positive.
    """
    snap_threshold: float = DEFAULT_SNAP_THRESHOLD
    diagonal_margin: float = DEFAULT_DIAGONAL_MARGIN

    def __post_init__(self) -> None:
        self.snap_threshold = float(self.snap_threshold)
        self.diagonal_margin = float(self.diagonal_margin)
        if self.snap_threshold < 0.0:
            raise ValueError(
                f"snap_threshold must be non-negative, got {self.snap_threshold}"
            )
        if self.diagonal_margin <= 0.0:
            raise ValueError(
                f"diagonal_margin must be positive, got {self.diagonal_margin}"
            )


@dataclass
class ScenarioConfig:
    """Parameters of the constant-velocity tracking demo."""
    n_sensors: int = 3
    steps: int = 200
    dt: float = 1.0
    dropout_probability: float = 0.3
    sensor_noise_std: float = 0.5
    process_noise: float = 1.0e-3
    initial_position: float = 0.0
    initial_velocity: float = 1.0
    seed: Optional[int] = 42

    def __post_init__(self) -> None:
        if self.n_sensors < 1:
            raise ValueError(f"n_sensors must be at least 1, got {self.n_sensors}")
        if self.steps < 1:
            raise ValueError(f"steps must be at least 1, got {self.steps}")
        if not 0.0 <= self.dropout_probability <= 1.0:
            raise ValueError(
                "dropout_probability must lie in [0, 1], "
                f"got {self.dropout_probability}"
            )
        if self.sensor_noise_std <= 0.0:
            raise ValueError(
                f"sensor_noise_std must be positive, got {self.sensor_noise_std}"
            )


@dataclass
class FilterConfig:
    """Top-level configuration: stabilization, conditioning, logging, demo."""
    stabilization: StabilizationPolicy = field(default_factory=StabilizationPolicy)
    max_condition: float = DEFAULT_MAX_CONDITION
    log_precision: int = DEFAULT_LOG_PRECISION
    scenario: ScenarioConfig = field(default_factory=ScenarioConfig)

    def __post_init__(self) -> None:
        self.max_condition = float(self.max_condition)
        self.log_precision = int(self.log_precision)
        if self.max_condition <= 1.0:
            raise ValueError(
                f"max_condition must be greater than 1, got {self.max_condition}"
            )
        if self.log_precision < 0:
            raise ValueError(
                f"log_precision must be non-negative, got {self.log_precision}"
            )


def _known_keys(cls, section: Dict[str, Any]) -> Dict[str, Any]:
    """Keep only the keys of *section* that are fields of dataclass *cls*."""
    names = {f.name for f in fields(cls)}
    unknown = set(section) - names
    if unknown:
        logger.debug("Ignoring unknown %s keys: %s", cls.__name__, sorted(unknown))
    return {k: v for k, v in section.items() if k in names}


def config_from_dict(data: Optional[Dict[str, Any]]) -> FilterConfig:
    """
    Build a FilterConfig from a parsed YAML mapping.

    Args:
        data: Mapping with optional 'filter' and 'scenario' sections.

    Returns:
        FilterConfig with defaults for anything not specified.
    """
    data = data or {}
    filter_section = data.get("filter") or {}
    scenario_section = data.get("scenario") or {}

    stabilization = StabilizationPolicy(
        **_known_keys(StabilizationPolicy, filter_section.get("stabilization") or {})
    )
    top_level = {
        k: filter_section[k]
        for k in ("max_condition", "log_precision")
        if k in filter_section
    }
    scenario = ScenarioConfig(**_known_keys(ScenarioConfig, scenario_section))
    return FilterConfig(stabilization=stabilization, scenario=scenario, **top_level)


def load_config(config_path: Optional[Union[str, Path]] = None) -> FilterConfig:
    """
    Load filter configuration from a YAML file.

    Args:
        config_path: Path to YAML config. Defaults to config/filter_config.yaml
            at the repository root; when that default file is absent (e.g.
            an installed wheel) the built-in defaults are returned.

    Returns:
        FilterConfig instance
    """
    if config_path is None:
        if not DEFAULT_CONFIG_PATH.exists():
            logger.info("No configuration file found, using built-in defaults")
            return FilterConfig()
        config_path = DEFAULT_CONFIG_PATH

    logger.info(f"Loading configuration from: {config_path}")
    with open(config_path, 'r') as f:
        data = yaml.safe_load(f)
    return config_from_dict(data)
