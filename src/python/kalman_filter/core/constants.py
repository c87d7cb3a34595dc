"""
===============================================================================
MASKED KALMAN - Filter Constants
===============================================================================
Central repository for the default tuning values used by the masked update
engine and its covariance stabilization pass. All of them can be overridden
through config/filter_config.yaml.
===============================================================================
"""

# =============================================================================
# COVARIANCE STABILIZATION
# =============================================================================
# Off-diagonal covariance entries smaller than this (in magnitude) are
# snapped to exactly zero after every update.
DEFAULT_SNAP_THRESHOLD = 1.0e-3

# Margin added on top of the off-diagonal row sum when a diagonal entry has
# to be raised to restore strict row-wise diagonal dominance.
DEFAULT_DIAGONAL_MARGIN = 1.0e-3

# =============================================================================
# NUMERICAL CONDITIONING
# =============================================================================
# Largest acceptable 2-norm condition number of the masked innovation
# covariance before the update is refused.
DEFAULT_MAX_CONDITION = 1.0e12

# =============================================================================
# DIAGNOSTICS LOG
# =============================================================================
DEFAULT_LOG_PRECISION = 6          # Digits after the decimal point
LOG_DELIMITER = ","

# Column prefixes, in the order they appear on every log line
PREDICTED_STATE_PREFIX = "xp_"
PREDICTED_OBSERVATION_PREFIX = "zp_"
ACTUAL_OBSERVATION_PREFIX = "za_"
ESTIMATED_STATE_PREFIX = "xe_"
