"""Torch-EKF: Sequential Extended Kalman filtering in PyTorch.

torch-ekf implements the forward recursion of the Extended Kalman filter (EKF): given a
user-supplied nonlinear process model and a stream of noisy measurements, it produces,
one measurement at a time, the estimated state and its error covariance.

Key features
------------
- **Lazy filtering**: estimates are produced by a generator, one per measurement, so that
  unbounded measurement streams can be processed without buffering.
- **Pluggable process model**: any object with a ``get_evolution`` method (or a plain function)
  linearizes the process at each step.
- **Stable update**: the Kalman gain is solved from a matrix decomposition (Cholesky or LU),
  never from an explicit inverse, and corrected covariances are kept symmetric.
- **Runs on CPU or GPU**: tensors stay on the device of the initial estimate.

Numerical notes
---------------
Filtering is sensitive to rounding errors. Non-tensor inputs are converted to ``float64``
and the estimator keeps the dtype of the initial estimate. Consider enabling
``joseph_update=True`` for badly conditioned problems.

Getting started
---------------
The core API consists of:
- :class:`~torch_ekf.ProcessEstimate` and :class:`~torch_ekf.Measurement`.
- :class:`~torch_ekf.NonLinearEvolution`, returned by process models at each step.
- :class:`~torch_ekf.ExtendedKalmanEstimator` with :meth:`~torch_ekf.KalmanEstimator.estimate`.
- :class:`~torch_ekf.CholeskyDecomposer` / :class:`~torch_ekf.LUDecomposer`.

The :mod:`torch_ekf.ckf` module provides ready-to-use constant velocity/acceleration models.

Notes on shapes
---------------
States and measured values are vectors of shape ``(dim,)``; matrices are ``(rows, cols)``.
No batch dimension is supported: one estimator runs one filter.
"""

import logging

from .decomposition import CholeskyDecomposer, Decomposition, LUDecomposer, MatrixDecomposer
from .errors import (
    ConfigurationError,
    DimensionMismatchError,
    FilteringError,
    MatrixDecompositionError,
    MeasurementOrderError,
    NonPositiveDefiniteError,
    NonSymmetricMatrixError,
    SingularMatrixError,
)
from .estimate import Measurement, ProcessEstimate
from .extended import ExtendedKalmanEstimator
from .kalman_estimator import KalmanEstimator
from .linear import LinearEvolution, LinearKalmanEstimator, LinearProcess
from .process import NonLinearEvolution, NonLinearProcess

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    "CholeskyDecomposer",
    "ConfigurationError",
    "Decomposition",
    "DimensionMismatchError",
    "ExtendedKalmanEstimator",
    "FilteringError",
    "KalmanEstimator",
    "LUDecomposer",
    "LinearEvolution",
    "LinearKalmanEstimator",
    "LinearProcess",
    "MatrixDecomposer",
    "MatrixDecompositionError",
    "Measurement",
    "MeasurementOrderError",
    "NonLinearEvolution",
    "NonLinearProcess",
    "NonPositiveDefiniteError",
    "NonSymmetricMatrixError",
    "ProcessEstimate",
    "SingularMatrixError",
]
__version__ = "0.1.0"
