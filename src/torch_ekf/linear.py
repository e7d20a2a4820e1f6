"""Kalman filtering of linear processes.

A linear process x_k = A x_{k-1} + B u_k + w_k is a special case of the nonlinear one where the
linearization is exact. :class:`LinearKalmanEstimator` thus reuses the extended update, it only
builds the evolution from the matrices provided by a :class:`LinearProcess`.
"""

from __future__ import annotations

import dataclasses
from typing import Optional, Protocol

import torch

from .decomposition import MatrixDecomposer
from .errors import ConfigurationError, DimensionMismatchError
from .estimate import ProcessEstimate, as_float_tensor
from .extended import ExtendedKalmanEstimator
from .process import NonLinearEvolution


@dataclasses.dataclass(frozen=True)
class LinearEvolution:
    """Single step of a linear process model.

        x_k = A x_{k-1} + B u_k + w_k,   w_k ~ N(0, Q)

    Attributes:
        state_transition_matrix: Transition matrix ``A``.
            Shape: ``(n, n)``
        process_noise: Process noise covariance ``Q``.
            Shape: ``(n, n)``
        control_matrix: Optional control matrix ``B``. Required when ``command`` is given.
            Shape: ``(n, c)``
        command: Optional command ``u``.
            Shape: ``(c,)``
    """

    state_transition_matrix: torch.Tensor
    process_noise: torch.Tensor
    control_matrix: Optional[torch.Tensor] = None
    command: Optional[torch.Tensor] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "state_transition_matrix", as_float_tensor(self.state_transition_matrix))
        object.__setattr__(self, "process_noise", as_float_tensor(self.process_noise))
        if self.control_matrix is not None:
            object.__setattr__(self, "control_matrix", as_float_tensor(self.control_matrix))
        if self.command is not None:
            object.__setattr__(self, "command", as_float_tensor(self.command))

        if (self.control_matrix is None) != (self.command is None):
            raise ConfigurationError("Control matrix and command should be given together")
        if self.control_matrix is not None and self.command is not None:
            if self.control_matrix.shape != (self.state_transition_matrix.shape[0], self.command.shape[0]):
                raise DimensionMismatchError(
                    f"Control matrix shape {tuple(self.control_matrix.shape)} is inconsistent with transition "
                    f"matrix {tuple(self.state_transition_matrix.shape)} and command {tuple(self.command.shape)}"
                )

    def predict(self, time: float, state: torch.Tensor) -> NonLinearEvolution:
        """Apply the linear model to a state, leading to the equivalent (exact) linearization."""
        stm = self.state_transition_matrix.to(state.dtype).to(state.device)
        predicted = stm @ state
        if self.control_matrix is not None and self.command is not None:
            control_matrix = self.control_matrix.to(state.dtype).to(state.device)
            predicted = predicted + control_matrix @ self.command.to(state.dtype).to(state.device)

        return NonLinearEvolution(time, predicted, stm, self.process_noise)


class LinearProcess(Protocol):
    """Linear process model."""

    def get_evolution(self, previous_time: float, current_time: float) -> LinearEvolution:
        """Get the linear model of the transition from ``previous_time`` to ``current_time``."""
        ...


class LinearKalmanEstimator(ExtendedKalmanEstimator):
    """Kalman filter of linear processes.

    Attributes:
        decomposer (MatrixDecomposer): Decomposer used to solve for the Kalman gain.
        linear_process (LinearProcess): Linear process model.
        joseph_update (bool): If True, use the Joseph form covariance update.
            Default: False
    """

    def __init__(
        self,
        decomposer: MatrixDecomposer,
        process: LinearProcess,
        initial_estimate: ProcessEstimate,
        *,
        joseph_update=False,
    ) -> None:
        if not callable(getattr(process, "get_evolution", None)):
            raise ConfigurationError(f"Invalid linear process: {process!r}")

        self.linear_process = process
        super().__init__(decomposer, self._linearize, initial_estimate, joseph_update=joseph_update)

    def _linearize(
        self, previous_time: float, previous_state: torch.Tensor, current_time: float
    ) -> NonLinearEvolution:
        return self.linear_process.get_evolution(previous_time, current_time).predict(current_time, previous_state)
