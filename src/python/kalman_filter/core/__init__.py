"""
===============================================================================
MASKED KALMAN - Core Utilities
===============================================================================
Shared constants, the exception hierarchy, and YAML configuration loading
used by every other subsystem.

Modules:
    constants   -- Default tuning values for stabilization and conditioning
    exceptions  -- FilterError and its index/dimension/numerical subclasses
    config      -- Dataclass configuration loaded from filter_config.yaml
===============================================================================
"""
