"""Plotting helpers for filter diagnostics."""
