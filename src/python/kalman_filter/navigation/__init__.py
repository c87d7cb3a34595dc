"""
===============================================================================
MASKED KALMAN - Navigation Subsystem
===============================================================================
State estimation with per-cycle partial observability.

Modules:
    state_store         -- x, P and model matrices with bounds-checked access
    observation_buffer  -- sparse channel -> reading map for one cycle
    masked_update       -- masked gain, state and covariance update
    stabilization       -- symmetrization and diagonal-dominance repair of P
    base_filter         -- MaskedKalmanFilter tying the pieces together
    linear_filter       -- LinearKalmanFilter with built-in predict/observe
===============================================================================
"""
