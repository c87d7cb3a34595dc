"""
===============================================================================
MASKED KALMAN - Diagnostics Storage
===============================================================================
Modules:
    diagnostics_log -- per-cycle CSV log writer and pandas reader
===============================================================================
"""
