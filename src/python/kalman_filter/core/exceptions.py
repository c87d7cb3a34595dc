"""
===============================================================================
MASKED KALMAN - Exception Hierarchy
===============================================================================
All errors raised by the filter derive from FilterError, and each concrete
error also derives from the matching builtin so callers can catch either:

    FilterError
    |-- IndexOutOfRangeError      (IndexError)
    |-- DimensionMismatchError    (ValueError)
    +-- NumericalInstabilityError (ArithmeticError)

Index and dimension errors are raised at the call site that received the bad
argument, before any internal array is modified.
===============================================================================
"""


class FilterError(Exception):
    """Base class for every error raised by the masked Kalman filter."""


class IndexOutOfRangeError(FilterError, IndexError):
    """A state, covariance or channel index lies outside its valid range."""

    def __init__(self, kind: str, index: int, limit: int) -> None:
        self.kind = kind
        self.index = index
        self.limit = limit
        super().__init__(
            f"invalid {kind} index {index} (valid range is 0..{limit - 1})"
        )


class DimensionMismatchError(FilterError, ValueError):
    """An array argument does not have the shape the filter was built with."""

    def __init__(self, name: str, expected: tuple, actual: tuple) -> None:
        self.name = name
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"{name} must have shape {expected}, got {actual}"
        )


class NumericalInstabilityError(FilterError, ArithmeticError):
    """The masked innovation covariance cannot be inverted reliably.

    Attributes
    ----------
    channels : tuple of int
        Channels that were observed when the failure was detected.
    condition : float
        2-norm condition number of the masked innovation covariance
        (``inf`` or ``nan`` when it is singular).
    """

    def __init__(self, message: str, channels: tuple = (),
                 condition: float = float("nan")) -> None:
        self.channels = tuple(channels)
        self.condition = condition
        super().__init__(message)
