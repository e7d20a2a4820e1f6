from __future__ import annotations

import logging
from typing import Callable, Union

import torch

from .decomposition import MatrixDecomposer
from .errors import ConfigurationError
from .estimate import Measurement, ProcessEstimate
from .kalman_estimator import KalmanEstimator
from .process import NonLinearEvolution, NonLinearProcess

logger = logging.getLogger(__name__)

EvolutionFunction = Callable[[float, torch.Tensor, float], NonLinearEvolution]


class ExtendedKalmanEstimator(KalmanEstimator):
    """Extended Kalman filter.

    This class estimates the latent state of a nonlinear dynamical system under Gaussian noise:

        x_k = f(x_{k-1}) + w_k,   w_k ~ N(0, Q)
        z_k = H x_k      + v_k,   v_k ~ N(0, R)

    where ``f`` is provided by a :class:`NonLinearProcess` that also linearizes it at each step
    (Jacobian ``A``), and ``H, R`` are carried by each :class:`Measurement`.

    The update step follows:
    1. Innovation y_k = z_k - H x⁻_k and its covariance S_k = H P⁻_k Hᵀ + R
    2. Kalman gain K, found without inverting S_k by solving S_k Kᵀ = H P⁻_k with the decomposer
    3. Correction:
        x_k = x⁻_k + K y_k
        P_k = (I - K H) P⁻_k   OR [JOSEPH_UPDATE] P_k = (I - K H) P⁻_k (I - K H)ᵀ + K R Kᵀ

    The innovation covariance and the corrected covariance are always symmetrized ((P + Pᵀ) / 2):
    floating point errors in the update would otherwise break their symmetry.

    Example:
    ```python
        # Constant value with a small process noise
        q = torch.tensor([[1e-5]], dtype=torch.float64)
        estimator = ExtendedKalmanEstimator(
            CholeskyDecomposer(1e-15, 1e-15),
            lambda t0, x0, t1: NonLinearEvolution(t1, x0, torch.eye(1, dtype=torch.float64), q),
            ProcessEstimate(0.0, [10.0], q),
        )
        last = None
        for last in estimator.estimate(measurements):
            pass
    ```

    Attributes:
        decomposer (MatrixDecomposer): Decomposer used to solve for the Kalman gain.
            If it rejects the innovation covariance, the step fails with its error
            (e.g. ``NonPositiveDefiniteError`` or ``SingularMatrixError``).
        process (NonLinearProcess | Callable): Process model.
        joseph_update (bool): If True, use the Joseph form covariance update for improved numerical stability.
            Default: False
    """

    def __init__(
        self,
        decomposer: MatrixDecomposer,
        process: Union[NonLinearProcess, EvolutionFunction],
        initial_estimate: ProcessEstimate,
        *,
        joseph_update=False,
    ) -> None:
        super().__init__(decomposer, initial_estimate)

        if hasattr(process, "get_evolution"):
            self._get_evolution = process.get_evolution
        elif callable(process):
            self._get_evolution = process
        else:
            raise ConfigurationError(f"Invalid process model: {process!r}")

        self.process = process
        self.joseph_update = joseph_update

    def _evolve(self, previous: ProcessEstimate, current_time: float) -> NonLinearEvolution:
        return self._get_evolution(previous.time, previous.state, current_time)

    def _correct(self, measurement: Measurement, predicted: ProcessEstimate) -> ProcessEstimate:
        # The estimator already checked that H matches the state dimension
        measurement_matrix = measurement.measurement_matrix

        innovation = measurement.value - measurement_matrix @ predicted.state
        cov_at_measurement = measurement_matrix @ predicted.covariance
        innovation_covariance = cov_at_measurement @ measurement_matrix.mT + measurement.covariance
        # Rounding errors break the symmetry of S, which a Cholesky decomposer would reject
        innovation_covariance = 0.5 * (innovation_covariance + innovation_covariance.mT)

        # Find K without inversing S but by solving the linear system SKᵀ = HP
        kalman_gain = self.decomposer.decompose(innovation_covariance).solve(cov_at_measurement).mT

        state = predicted.state + kalman_gain @ innovation

        factor = torch.eye(predicted.dimension, dtype=predicted.dtype, device=predicted.device)
        factor = factor - kalman_gain @ measurement_matrix
        if self.joseph_update:
            covariance = (
                factor @ predicted.covariance @ factor.mT + kalman_gain @ measurement.covariance @ kalman_gain.mT
            )
        else:
            covariance = factor @ predicted.covariance

        covariance = 0.5 * (covariance + covariance.mT)

        if logger.isEnabledFor(logging.DEBUG):
            logger.debug("Update at t=%s: |innovation|=%.6e", measurement.time, innovation.norm().item())

        return ProcessEstimate(measurement.time, state, covariance)
