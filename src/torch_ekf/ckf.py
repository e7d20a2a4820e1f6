"""Constant-derivative process models.

This module provides a ready-to-use :class:`~torch_ekf.process.NonLinearProcess` for
*constant-derivative motion models* such as:

- constant position (order = 0),
- constant velocity (order = 1),
- constant acceleration (order = 2),
- constant jerk, etc.

The state is composed of a value and its derivatives up to a given order, for ``dim``
independent dimensions. The highest-order derivative is assumed either:
- constant with additive noise, or
- driven by a zero-mean Gaussian noise on the next derivative.

In contrast with fixed-rate filters, the transition is rebuilt at each step from the
elapsed time ``dt = current_time - previous_time``, so measurements may be irregularly spaced.
"""

from __future__ import annotations

import math

import torch

from .estimate import Measurement
from .process import NonLinearEvolution


def interleave(x: torch.Tensor, size: int) -> torch.Tensor:
    """Interleave tensor along the first dimension.

    Indices ``0, 1, ..., k*size-1`` are remapped as:
    ``0, size, 2*size, ..., (k-1)*size, 1, 1+size, ..., size-1, 2*size-1, ..., k*size-1``

    Example:
        >>> interleave(torch.arange(6), 3)
        tensor([0, 3, 1, 4, 2, 5])

    Args:
        x (torch.Tensor): Tensor to interleave.
            Shape: ``(B, ...)``
        size (int): Block size used for interleaving. Must divide ``B``.

    Returns:
        torch.Tensor: Interleaved tensor with the same shape as ``x``.
    """
    shape = list(x.shape)
    return x.reshape([-1, size, *shape[1:]]).transpose(0, 1).reshape([-1, *shape[1:]])


def _taylor_coefficients(dt: float, size: int, dtype: torch.dtype) -> torch.Tensor:
    # (1, dt, dt^2 / 2, ... dt^k / k!)
    return torch.tensor([dt**k / math.factorial(k) for k in range(size)], dtype=dtype)


def create_ckf_process_matrix(order: int, dt=1.0, approximate=False, dtype=torch.float64) -> torch.Tensor:
    r"""Create the state transition matrix ``A`` of a single dimension.

    Assuming the (order+1)-th derivative and above are zero, the Taylor expansion yields:

    x^{(i)}(t + dt) = \sum_{k=0}^{order - i} \frac{dt^k}{k!} x^{(i+k)}(t)

    For instance, the constant acceleration model with ``dt = 0.5``::

        [
            [1, 0.5, 0.125],
            [0, 1.0, 0.5],
            [0, 0.0, 1.0],
        ]

    Args:
        order (int): Highest derivative order included in the state.
        dt (float): Elapsed time.
            Default: 1.0
        approximate (bool): If True, keep only first-order terms:
            ``x^{(i)}(t+dt) = x^{(i)}(t) + dt * x^{(i+1)}(t)``.
            Default: False
        dtype (torch.dtype): Dtype of the matrix.
            Default: float64

    Returns:
        torch.Tensor: Transition matrix
            Shape: ``(order + 1, order + 1)``
    """
    coefficients = _taylor_coefficients(dt, order + 1, dtype)
    if approximate:
        coefficients[2:] = 0  # Keep only 1 and dt

    # Sum of diagonal matrices
    process_matrix = torch.zeros(order + 1, order + 1, dtype=dtype)
    for k, coef in enumerate(coefficients):
        process_matrix += torch.diag(coef.expand(order + 1 - k), k)
    return process_matrix


def create_ckf_process_noise(
    process_std: float, order: int, dt=1.0, expected_model=False, approximate=False, dtype=torch.float64
) -> torch.Tensor:
    r"""Create the process noise covariance ``Q`` of a single dimension.

    **1. Constant order-th derivative (default)**
    \forall 0 < h \le dt, x^{(order)}(t_k+h) = x^{(order)}(t_k) + w_k, where w_k \sim N(0, process_std**2).

    **2. Zero-mean (order+1)-th derivative (expected model)**
    \forall 0 < h \le dt, x^{(order + 1)}(t_k+h) = w_k, where w_k \sim N(0, process_std**2)

    The noise is propagated to every derivative through the Taylor-expanded dynamics.

    Args:
        process_std (float): Process noise standard deviation.
        order (int): Highest derivative order included in the state.
        dt (float): Elapsed time.
            Default: 1.0
        expected_model (bool): Use the zero-mean (order+1)-th derivative model.
            Default: False
        approximate (bool): If True, only the highest derivative receives noise.
            Default: False
        dtype (torch.dtype): Dtype of the matrix.
            Default: float64

    Returns:
        torch.Tensor: Process noise covariance
            Shape: ``(order + 1, order + 1)``
    """
    coefficients = _taylor_coefficients(dt, order + 1 + expected_model, dtype)
    if approximate:
        coefficients[1 + expected_model :] = 0

    # For the expected model, the noise enters one derivative above the state
    coefficients = coefficients[int(expected_model) :].flip(0)
    return process_std**2 * coefficients[:, None] @ coefficients[None]


class ConstantDerivativeProcess:
    """Constant-derivative process in ``dim`` independent dimensions.

    The full state dimension is ``(order + 1) * dim``. It is linear, thus the returned
    evolutions hold the exact transition matrix.

    Attributes:
        process_std (torch.Tensor): Process noise standard deviation for each dimension.
            Shape: ``(dim,)``
        dim (int): Number of independent dimensions.
        order (int): Highest derivative order included in the state.
        expected_model (bool): Use the zero-mean (order+1)-th derivative model.
        order_by_dim (bool): State ordering convention.
            - True: group by dimension (e.g. ``x, x', y, y'``),
            - False: group by derivative order (e.g. ``x, y, x', y'``).
        approximate (bool): Use a first-order approximation of the model.
        dtype (torch.dtype): Dtype of the built matrices.
    """

    def __init__(
        self,
        process_std: float | torch.Tensor,
        *,
        dim=1,
        order=1,
        expected_model=False,
        order_by_dim=False,
        approximate=False,
        dtype=torch.float64,
    ) -> None:
        self.process_std = torch.broadcast_to(torch.as_tensor(process_std, dtype=dtype), (dim,))
        self.dim = dim
        self.order = order
        self.expected_model = expected_model
        self.order_by_dim = order_by_dim
        self.approximate = approximate
        self.dtype = dtype

    @property
    def state_dim(self) -> int:
        return (self.order + 1) * self.dim

    def _reorder(self, matrix: torch.Tensor) -> torch.Tensor:
        # Block diagonal matrices are grouped by dimension
        if self.order_by_dim:
            return matrix
        return interleave(interleave(matrix, self.order + 1).T, self.order + 1).T.contiguous()

    def process_matrix(self, dt: float) -> torch.Tensor:
        """Transition matrix over ``dt``. Shape: ``(state_dim, state_dim)``."""
        return self._reorder(
            torch.block_diag(
                *(create_ckf_process_matrix(self.order, dt, self.approximate, self.dtype) for _ in range(self.dim))
            )
        )

    def process_noise(self, dt: float) -> torch.Tensor:
        """Process noise covariance over ``dt``. Shape: ``(state_dim, state_dim)``."""
        return self._reorder(
            torch.block_diag(
                *(
                    create_ckf_process_noise(
                        self.process_std[k].item(), self.order, dt, self.expected_model, self.approximate, self.dtype
                    )
                    for k in range(self.dim)
                )
            )
        )

    @property
    def measurement_matrix(self) -> torch.Tensor:
        """Projection on the values (not the derivatives). Shape: ``(dim, state_dim)``."""
        measurement_matrix = torch.eye(self.dim, self.state_dim, dtype=self.dtype)
        if self.order_by_dim:
            measurement_matrix = interleave(measurement_matrix.T, self.dim).T
        return measurement_matrix.contiguous()

    def measure(self, time: float, value, measurement_std: float | torch.Tensor) -> Measurement:
        """Build the measurement of the values at a given time.

        Args:
            time (float): Time of the measurement.
            value (torch.Tensor): Measured values.
                Shape: ``(dim,)``
            measurement_std (float | torch.Tensor): Measurement noise standard deviation,
                independent between dimensions.
                Shape: broadcastable to ``(dim,)``

        Returns:
            Measurement: Measurement of the values.
        """
        measurement_std = torch.broadcast_to(torch.as_tensor(measurement_std, dtype=self.dtype), (self.dim,))
        return Measurement(
            time,
            torch.as_tensor(value, dtype=self.dtype),
            self.measurement_matrix,
            torch.diag(measurement_std**2),
        )

    def get_evolution(
        self, previous_time: float, previous_state: torch.Tensor, current_time: float
    ) -> NonLinearEvolution:
        dt = current_time - previous_time
        stm = self.process_matrix(dt).to(previous_state.dtype).to(previous_state.device)
        process_noise = self.process_noise(dt).to(previous_state.dtype).to(previous_state.device)
        return NonLinearEvolution(current_time, stm @ previous_state, stm, process_noise)
