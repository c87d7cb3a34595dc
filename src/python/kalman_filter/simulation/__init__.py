"""
===============================================================================
MASKED KALMAN - Simulation
===============================================================================
Modules:
    tracking_scenario -- constant-velocity target with dropping-out sensors
===============================================================================
"""
