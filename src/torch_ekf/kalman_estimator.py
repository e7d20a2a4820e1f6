from __future__ import annotations

import abc
import logging
from typing import Iterable, Iterator

import torch

from .decomposition import MatrixDecomposer
from .errors import ConfigurationError, DimensionMismatchError, MeasurementOrderError
from .estimate import Measurement, ProcessEstimate
from .process import NonLinearEvolution

logger = logging.getLogger(__name__)


class KalmanEstimator(abc.ABC):
    """Sequential predict/update driver of Kalman filters.

    The estimator holds a single cursor: the last corrected estimate. For each measurement z_k at time t_k:

    1. Predict: the process is evolved from the cursor up to t_k (see `_evolve`), leading to the prior
        x_k | z_{1:k-1} ~ N(x⁻_k, P⁻_k) with:

            x⁻_k = f(x_{k-1})
            P⁻_k = A P_{k-1} Aᵀ + Q   (symmetrized)

    2. Update: the prior is corrected with z_k (see `_correct`), leading to the posterior
        x_k | z_{1:k} ~ N(x_k, P_k), which becomes the new cursor.

    Steps are strictly sequential: step k+1 needs the posterior of step k. Measurement times must be
    non-decreasing (equal times are allowed and lead to a zero-length transition).

    An estimator represents a single filtering run and must not be shared between consumers.

    Attributes:
        decomposer (MatrixDecomposer): Decomposer used to solve for the Kalman gain.
    """

    def __init__(self, decomposer: MatrixDecomposer, initial_estimate: ProcessEstimate) -> None:
        if not isinstance(initial_estimate, ProcessEstimate):
            raise ConfigurationError(f"Initial estimate should be a ProcessEstimate, got {type(initial_estimate)}")
        if not initial_estimate.dtype.is_floating_point:
            raise ConfigurationError(f"Initial estimate should be floating point, got {initial_estimate.dtype}")
        if not callable(getattr(decomposer, "decompose", None)):
            raise ConfigurationError(f"Invalid decomposer: {decomposer!r}")

        self.decomposer = decomposer
        self._predicted: ProcessEstimate | None = None
        self._corrected = initial_estimate

    @property
    def predicted(self) -> ProcessEstimate | None:
        """Last a-priori estimate (None until the first step)."""
        return self._predicted

    @property
    def corrected(self) -> ProcessEstimate:
        """Last a-posteriori estimate (the initial estimate until the first step)."""
        return self._corrected

    @property
    def time(self) -> float:
        return self._corrected.time

    @property
    def dimension(self) -> int:
        """Dimension of the state variable."""
        return self._corrected.dimension

    @property
    def dtype(self) -> torch.dtype:
        return self._corrected.dtype

    @property
    def device(self) -> torch.device:
        return self._corrected.device

    def estimate(self, measurements: Iterable[Measurement]) -> Iterator[ProcessEstimate]:
        """Lazily filter a sequence of measurements.

        Each estimate is computed only when requested, so that unbounded streams can be processed.
        Stopping the iteration leaves the estimator on the last computed estimate. An error
        terminates the iteration, estimates emitted before remain valid.

        Example:
        ```python
            estimator = ExtendedKalmanEstimator(CholeskyDecomposer(), process, initial)
            for estimate in estimator.estimate(measurements):
                print(estimate.time, estimate.state)
        ```

        Args:
            measurements (Iterable[Measurement]): Measurements ordered by time.

        Yields:
            ProcessEstimate: Corrected estimate at the time of each measurement.
        """
        for measurement in measurements:
            yield self.estimation_step(measurement)

    def estimation_step(self, measurement: Measurement) -> ProcessEstimate:
        """Run a single predict/update step.

        Args:
            measurement (Measurement): Next measurement.

        Returns:
            ProcessEstimate: Corrected estimate at ``measurement.time``.
        """
        if measurement.time < self._corrected.time:
            raise MeasurementOrderError(
                f"Measurement at t={measurement.time} is older than the current estimate (t={self._corrected.time})"
            )
        if measurement.state_dimension != self.dimension:
            raise DimensionMismatchError(
                f"Measurement observes a state of size {measurement.state_dimension}, expected {self.dimension}"
            )

        # Conversion on the fly, measures may come from any source
        measurement = measurement.to(self.dtype).to(self.device)

        evolution = self._evolve(self._corrected, measurement.time)
        if not isinstance(evolution, NonLinearEvolution):
            raise ConfigurationError(f"Process model should return a NonLinearEvolution, got {type(evolution)}")
        if evolution.dimension != self.dimension:
            raise DimensionMismatchError(
                f"Process evolution has a state of size {evolution.dimension}, expected {self.dimension}"
            )

        predicted = self._predict(evolution)
        corrected = self._correct(measurement, predicted)

        self._predicted = predicted
        self._corrected = corrected

        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(
                "Estimation step at t=%s: trace(P⁻)=%.6e, trace(P)=%.6e",
                corrected.time,
                predicted.covariance.trace().item(),
                corrected.covariance.trace().item(),
            )

        return corrected

    def _predict(self, evolution: NonLinearEvolution) -> ProcessEstimate:
        # Covariance is recomputed from scratch at each step (no incremental update)
        stm = evolution.state_transition_matrix.to(self.dtype).to(self.device)
        process_noise = evolution.process_noise.to(self.dtype).to(self.device)

        covariance = stm @ self._corrected.covariance @ stm.mT + process_noise
        covariance = 0.5 * (covariance + covariance.mT)

        return ProcessEstimate(evolution.time, evolution.predicted_state.to(self.dtype).to(self.device), covariance)

    @abc.abstractmethod
    def _evolve(self, previous: ProcessEstimate, current_time: float) -> NonLinearEvolution:
        """Evolve the process from the previous estimate up to ``current_time``."""

    @abc.abstractmethod
    def _correct(self, measurement: Measurement, predicted: ProcessEstimate) -> ProcessEstimate:
        """Correct the predicted estimate with a measurement."""

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}(dimension={self.dimension}, time={self.time}, "
            f"decomposer={self.decomposer!r})"
        )
