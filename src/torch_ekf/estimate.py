from __future__ import annotations

import dataclasses
import math
from typing import overload

import torch
import torch.linalg

from .errors import ConfigurationError, DimensionMismatchError, NonPositiveDefiniteError


def as_float_tensor(value) -> torch.Tensor:
    """Convert array-like inputs to tensors.

    Tensors are returned untouched (keeping their dtype and device). Anything else
    (floats, nested lists, numpy arrays) becomes a ``float64`` tensor, as filtering
    is usually too sensitive to rounding errors for ``float32``.
    """
    if isinstance(value, torch.Tensor):
        return value
    return torch.as_tensor(value, dtype=torch.float64)


@dataclasses.dataclass(frozen=True)
class ProcessEstimate:
    """Snapshot of the process estimate at a given time.

    The estimate is the Gaussian distribution x ~ N(state, covariance).

    Conventions:
    - ``state`` is a vector of shape ``(n,)`` (no trailing column dimension).
    - ``covariance`` is symmetric positive semi-definite with shape ``(n, n)``.

    Instances are immutable: estimators build a new one at each predict and update step,
    so that every emitted estimate can be kept by the caller without copying.

    Attributes:
        time: Time of the estimate.
        state: Estimated state.
            Shape: ``(n,)``
        covariance: Covariance of the state error.
            Shape: ``(n, n)``
    """

    time: float
    state: torch.Tensor
    covariance: torch.Tensor

    def __post_init__(self) -> None:
        object.__setattr__(self, "time", float(self.time))
        object.__setattr__(self, "state", as_float_tensor(self.state))
        object.__setattr__(self, "covariance", as_float_tensor(self.covariance))

        if self.state.ndim != 1:
            raise ConfigurationError(f"State should be a vector, got shape {tuple(self.state.shape)}")
        if self.covariance.ndim != 2 or self.covariance.shape[0] != self.covariance.shape[1]:
            raise ConfigurationError(f"Covariance should be a square matrix, got shape {tuple(self.covariance.shape)}")
        if self.covariance.shape[0] != self.state.shape[0]:
            raise ConfigurationError(
                f"State dimension ({self.state.shape[0]}) does not match covariance order ({self.covariance.shape[0]})"
            )

    @property
    def dimension(self) -> int:
        """Dimension of the state."""
        return self.state.shape[0]

    @property
    def dtype(self) -> torch.dtype:
        return self.state.dtype

    @property
    def device(self) -> torch.device:
        return self.state.device

    @overload
    def to(self, dtype: torch.dtype) -> ProcessEstimate: ...

    @overload
    def to(self, device: torch.device) -> ProcessEstimate: ...

    def to(self, fmt):
        """Convert the estimate to a specific device or dtype.

        Args:
            fmt (torch.dtype | torch.device): Memory format to send the estimate to.

        Returns:
            ProcessEstimate: The estimate with the right format
        """
        return ProcessEstimate(self.time, self.state.to(fmt), self.covariance.to(fmt))

    def _whiten(self, point: torch.Tensor) -> tuple[torch.Tensor, torch.Tensor, torch.Tensor]:
        # Returns the deviation, the solution of P x = deviation and the cholesky factor of P
        point = as_float_tensor(point).to(self.dtype).to(self.device)
        if point.shape != self.state.shape:
            raise DimensionMismatchError(
                f"Point shape {tuple(point.shape)} does not match state shape {tuple(self.state.shape)}"
            )

        chol, info = torch.linalg.cholesky_ex(self.covariance)
        if info.item():
            raise NonPositiveDefiniteError("Covariance is not positive definite")

        diff = point - self.state
        return diff, torch.cholesky_solve(diff[:, None], chol)[:, 0], chol

    def mahalanobis_squared(self, point: torch.Tensor) -> torch.Tensor:
        """Compute squared Mahalanobis distance of a point to the estimate.

        Computes:

            MAHA^2 = (x - μ)^T P^{-1} (x - μ)

        P^{-1} is never formed: a Cholesky solve is used instead.

        Args:
            point (torch.Tensor): Point in the state space.
                Shape: ``(n,)``

        Returns:
            torch.Tensor: Squared Mahalanobis distance (0-d tensor)
        """
        diff, solved, _ = self._whiten(point)
        return diff @ solved

    def mahalanobis(self, point: torch.Tensor) -> torch.Tensor:
        """Compute Mahalanobis distance of a point to the estimate.

        Notes:
            If you only need to compare to a threshold, consider comparing squared distances instead.
        """
        return self.mahalanobis_squared(point).sqrt()

    def log_likelihood(self, point: torch.Tensor) -> torch.Tensor:
        """Compute the log-likelihood of a point under the estimated Gaussian distribution.

        For dimension ``n``:

            log p(x) = -1/2 * ( n*log(2π) + log|P| + MAHA^2 )

        Args:
            point (torch.Tensor): Point in the state space.
                Shape: ``(n,)``

        Returns:
            torch.Tensor: Log-likelihood (0-d tensor)
        """
        diff, solved, chol = self._whiten(point)
        log_det = 2 * chol.diagonal().log().sum()
        return -0.5 * (self.dimension * math.log(2 * math.pi) + log_det + diff @ solved)

    def likelihood(self, point: torch.Tensor) -> torch.Tensor:
        """Compute the likelihood of a point. It takes the exponential of the log-likelihood."""
        return self.log_likelihood(point).exp()


@dataclasses.dataclass(frozen=True)
class Measurement:
    """Observation of the process at a given time.

    The measurement model is linear (or linearized) around the predicted state:

        z = H x + v,   v ~ N(0, R)

    Attributes:
        time: Time of the observation.
        value: Observed value ``z``.
            Shape: ``(m,)``
        measurement_matrix: Matrix ``H`` mapping the state space to the observation space.
            Shape: ``(m, n)``
        covariance: Measurement noise covariance ``R`` (symmetric positive definite).
            Shape: ``(m, m)``
    """

    time: float
    value: torch.Tensor
    measurement_matrix: torch.Tensor
    covariance: torch.Tensor

    def __post_init__(self) -> None:
        object.__setattr__(self, "time", float(self.time))
        object.__setattr__(self, "value", as_float_tensor(self.value))
        object.__setattr__(self, "measurement_matrix", as_float_tensor(self.measurement_matrix))
        object.__setattr__(self, "covariance", as_float_tensor(self.covariance))

        if self.value.ndim != 1:
            raise DimensionMismatchError(f"Measured value should be a vector, got shape {tuple(self.value.shape)}")

        dim = self.value.shape[0]
        if self.measurement_matrix.ndim != 2 or self.measurement_matrix.shape[0] != dim:
            raise DimensionMismatchError(
                f"Measurement matrix shape {tuple(self.measurement_matrix.shape)} "
                f"is invalid for a measure of size {dim}"
            )
        if self.covariance.shape != (dim, dim):
            raise DimensionMismatchError(
                f"Measurement covariance shape {tuple(self.covariance.shape)} is invalid for a measure of size {dim}"
            )

    @property
    def dimension(self) -> int:
        """Dimension of the measured variable."""
        return self.value.shape[0]

    @property
    def state_dimension(self) -> int:
        """Dimension of the state this measurement observes."""
        return self.measurement_matrix.shape[1]

    @overload
    def to(self, dtype: torch.dtype) -> Measurement: ...

    @overload
    def to(self, device: torch.device) -> Measurement: ...

    def to(self, fmt):
        """Convert the measurement to a specific device or dtype."""
        return Measurement(
            self.time, self.value.to(fmt), self.measurement_matrix.to(fmt), self.covariance.to(fmt)
        )
