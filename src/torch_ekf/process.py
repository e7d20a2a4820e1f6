from __future__ import annotations

import dataclasses
from typing import Protocol

import torch

from .errors import DimensionMismatchError
from .estimate import as_float_tensor


@dataclasses.dataclass(frozen=True)
class NonLinearEvolution:
    """Linearization of a nonlinear process over a single transition.

    The process x_k = f(x_{k-1}) + w_k, w_k ~ N(0, Q), is linearized around the previous state:

        x_k ≈ f(x_{k-1}) + A (x - x_{k-1}),   with A = ∂f/∂x (x_{k-1})

    Attributes:
        time: Time at the end of the transition.
        predicted_state: Predicted state ``f(x_{k-1})``.
            Shape: ``(n,)``
        state_transition_matrix: Jacobian ``A`` of the process model.
            Shape: ``(n, n)``
        process_noise: Process noise covariance ``Q``.
            Shape: ``(n, n)``
    """

    time: float
    predicted_state: torch.Tensor
    state_transition_matrix: torch.Tensor
    process_noise: torch.Tensor

    def __post_init__(self) -> None:
        object.__setattr__(self, "time", float(self.time))
        object.__setattr__(self, "predicted_state", as_float_tensor(self.predicted_state))
        object.__setattr__(self, "state_transition_matrix", as_float_tensor(self.state_transition_matrix))
        object.__setattr__(self, "process_noise", as_float_tensor(self.process_noise))

        if self.predicted_state.ndim != 1:
            raise DimensionMismatchError(
                f"Predicted state should be a vector, got shape {tuple(self.predicted_state.shape)}"
            )

        dim = self.predicted_state.shape[0]
        if self.state_transition_matrix.shape != (dim, dim):
            raise DimensionMismatchError(
                f"State transition matrix shape {tuple(self.state_transition_matrix.shape)} "
                f"is invalid for a state of size {dim}"
            )
        if self.process_noise.shape != (dim, dim):
            raise DimensionMismatchError(
                f"Process noise shape {tuple(self.process_noise.shape)} is invalid for a state of size {dim}"
            )

    @property
    def dimension(self) -> int:
        return self.predicted_state.shape[0]


class NonLinearProcess(Protocol):
    """Nonlinear process model, linearized on demand.

    Implementations should behave as a pure function of their inputs. Estimators call
    ``get_evolution`` strictly in measurement order, once per measurement.
    A plain function with the same signature is accepted as well.
    """

    def get_evolution(
        self, previous_time: float, previous_state: torch.Tensor, current_time: float
    ) -> NonLinearEvolution:
        """Linearize the transition from ``previous_time`` to ``current_time``.

        Args:
            previous_time (float): Time of the previous estimate.
            previous_state (torch.Tensor): Previous estimated state.
                Shape: ``(n,)``
            current_time (float): Time of the next measurement.

        Returns:
            NonLinearEvolution: Linearized transition, valid for this single step.
        """
        ...
