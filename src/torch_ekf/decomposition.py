"""Decomposition-based linear solvers.

Estimators never invert the innovation covariance. They ask a :class:`MatrixDecomposer` to
factorize it and solve the gain equation from the factorization, which bounds the error
amplification when the matrix is ill-conditioned.

Two decomposers are provided, thin adapters over ``torch.linalg``:
- :class:`CholeskyDecomposer` for symmetric positive definite matrices (the usual choice
  for covariances).
- :class:`LUDecomposer` for any non-singular square matrix.

Any object with a compatible ``decompose`` method can be used instead.
"""

from __future__ import annotations

import logging
from typing import Protocol

import torch
import torch.linalg

from .errors import DimensionMismatchError, NonPositiveDefiniteError, NonSymmetricMatrixError, SingularMatrixError

logger = logging.getLogger(__name__)


class Decomposition(Protocol):
    """Factorization of a square matrix ``A``."""

    def solve(self, b: torch.Tensor) -> torch.Tensor:
        """Solve ``A x = b`` for ``x``. ``b`` may be a vector ``(k,)`` or a matrix ``(k, p)``."""
        ...


class MatrixDecomposer(Protocol):
    """Factory of decompositions. Raises a MatrixDecompositionError if the precondition is not met."""

    def decompose(self, matrix: torch.Tensor) -> Decomposition: ...


def _check_square(matrix: torch.Tensor) -> None:
    if matrix.ndim != 2 or matrix.shape[0] != matrix.shape[1]:
        raise DimensionMismatchError(f"Expected a square matrix, got shape {tuple(matrix.shape)}")


def _solve_columns(solver, b: torch.Tensor) -> torch.Tensor:
    # torch solvers only handle matrices on the right-hand side
    if b.ndim == 1:
        return solver(b[:, None])[:, 0]
    return solver(b)


class CholeskyDecomposition:
    """Cholesky factorization A = L Lᵀ.

    Attributes:
        lower (torch.Tensor): Lower triangular factor ``L``.
            Shape: ``(k, k)``
    """

    def __init__(self, lower: torch.Tensor) -> None:
        self.lower = lower

    def solve(self, b: torch.Tensor) -> torch.Tensor:
        return _solve_columns(lambda rhs: torch.cholesky_solve(rhs, self.lower), b)


class CholeskyDecomposer:
    """Build Cholesky decompositions of symmetric positive definite matrices.

    Attributes:
        relative_symmetry_threshold (float): The matrix is rejected if
            ``|a_ij - a_ji| > relative_symmetry_threshold * max(|a_ij|, |a_ji|)`` for some i, j.
            Default: 1e-15
        absolute_positivity_threshold (float): The matrix is rejected as non positive definite
            if a pivot of the factorization is lower or equal to this threshold.
            Default: 1e-10
    """

    def __init__(self, relative_symmetry_threshold=1e-15, absolute_positivity_threshold=1e-10) -> None:
        self.relative_symmetry_threshold = relative_symmetry_threshold
        self.absolute_positivity_threshold = absolute_positivity_threshold

    def decompose(self, matrix: torch.Tensor) -> CholeskyDecomposition:
        _check_square(matrix)

        scale = torch.maximum(matrix.abs(), matrix.mT.abs())
        if ((matrix - matrix.mT).abs() > self.relative_symmetry_threshold * scale).any():
            logger.warning("Cholesky decomposition rejected a non-symmetric matrix")
            raise NonSymmetricMatrixError("Matrix is not symmetric")

        lower, info = torch.linalg.cholesky_ex(matrix)

        # Pivots are the squared diagonal of L
        if info.item() or (lower.diagonal() ** 2 <= self.absolute_positivity_threshold).any():
            logger.warning("Cholesky decomposition rejected a non positive definite matrix")
            raise NonPositiveDefiniteError("Matrix is not positive definite")

        return CholeskyDecomposition(lower)

    def __repr__(self) -> str:
        return (
            f"CholeskyDecomposer(relative_symmetry_threshold={self.relative_symmetry_threshold}, "
            f"absolute_positivity_threshold={self.absolute_positivity_threshold})"
        )


class LUDecomposition:
    """LU factorization with partial pivoting P A = L U."""

    def __init__(self, lu: torch.Tensor, pivots: torch.Tensor) -> None:
        self.lu = lu
        self.pivots = pivots

    def solve(self, b: torch.Tensor) -> torch.Tensor:
        return _solve_columns(lambda rhs: torch.linalg.lu_solve(self.lu, self.pivots, rhs), b)


class LUDecomposer:
    """Build LU decompositions of non-singular square matrices.

    Attributes:
        singularity_threshold (float): The matrix is considered singular if the magnitude
            of a pivot is lower than this threshold.
            Default: 1e-11
    """

    def __init__(self, singularity_threshold=1e-11) -> None:
        self.singularity_threshold = singularity_threshold

    def decompose(self, matrix: torch.Tensor) -> LUDecomposition:
        _check_square(matrix)

        lu, pivots, info = torch.linalg.lu_factor_ex(matrix)
        if info.item() or (lu.diagonal().abs() < self.singularity_threshold).any():
            logger.warning("LU decomposition rejected a singular matrix")
            raise SingularMatrixError("Matrix is singular")

        return LUDecomposition(lu, pivots)

    def __repr__(self) -> str:
        return f"LUDecomposer(singularity_threshold={self.singularity_threshold})"
