"""Exceptions raised by torch-ekf estimators and decomposers.

All errors are synchronous: they surface at the filtering step that triggers them
and terminate the estimate sequence. Estimates emitted before stay valid.
"""


class FilteringError(Exception):
    """Base class of every torch-ekf error."""


class ConfigurationError(FilteringError, ValueError):
    """Malformed constructor arguments (e.g. state and covariance orders differ)."""


class DimensionMismatchError(FilteringError, ValueError):
    """A measurement or an evolution is inconsistent with the state dimension."""


class MeasurementOrderError(FilteringError, ValueError):
    """A measurement is older than the current estimate."""


class MatrixDecompositionError(FilteringError, ArithmeticError):
    """A matrix does not satisfy the precondition of its decomposition."""


class NonPositiveDefiniteError(MatrixDecompositionError):
    """The matrix is not (numerically) positive definite."""


class SingularMatrixError(MatrixDecompositionError):
    """The matrix is (numerically) singular."""


class NonSymmetricMatrixError(MatrixDecompositionError):
    """The matrix is not symmetric within the requested tolerance."""
