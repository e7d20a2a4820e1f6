import dataclasses
import math

import pytest
import torch

from torch_ekf import ConfigurationError, DimensionMismatchError, Measurement, NonPositiveDefiniteError, ProcessEstimate


def test_non_tensor_inputs_are_float64():
    estimate = ProcessEstimate(0, [10.0, 2.0], [[1.0, 0.0], [0.0, 1.0]])

    assert isinstance(estimate.time, float)
    assert estimate.dtype == torch.float64
    assert estimate.covariance.dtype == torch.float64
    assert estimate.dimension == 2


def test_tensor_inputs_keep_their_dtype():
    estimate = ProcessEstimate(0.0, torch.zeros(3), torch.eye(3))

    assert estimate.dtype == torch.float32


@pytest.mark.parametrize(
    ("state", "covariance"),
    [
        (torch.zeros(3, 1), torch.eye(3)),  # Column vectors are not supported
        (torch.zeros(3), torch.eye(2)),
        (torch.zeros(3), torch.zeros(3, 2)),
        (torch.zeros(3), torch.zeros(3)),
    ],
)
def test_inconsistent_shapes_are_rejected(state: torch.Tensor, covariance: torch.Tensor):
    with pytest.raises(ConfigurationError):
        ProcessEstimate(0.0, state, covariance)


def test_estimate_is_immutable():
    estimate = ProcessEstimate(0.0, [1.0], [[1.0]])

    with pytest.raises(dataclasses.FrozenInstanceError):
        estimate.time = 1.0  # type: ignore[misc]


def test_to_convert_dtype(spd_matrix):
    estimate = ProcessEstimate(1.0, [1.0, 2.0], spd_matrix(2))

    estimate32 = estimate.to(torch.float32)

    assert estimate32.dtype == torch.float32
    assert estimate32.covariance.dtype == torch.float32
    assert estimate32.time == 1.0
    assert estimate.dtype == torch.float64  # Original is not affected


def test_mahalanobis_matches_manual(spd_matrix):
    dim = 4
    cov = spd_matrix(dim)
    mean = torch.randn(dim, dtype=torch.float64)
    estimate = ProcessEstimate(0.0, mean, cov)

    x = torch.randn(dim, dtype=torch.float64)
    maha = estimate.mahalanobis(x)

    diff = x - mean
    manual = (diff @ cov.inverse() @ diff).sqrt()
    assert torch.allclose(maha, manual)


def test_mahalanobis_specific():
    estimate = ProcessEstimate(0.0, [0.0, 0.0], [[4.0, 0.0], [0.0, 25.0]])

    assert torch.isclose(estimate.mahalanobis([2.0, 0.0]), torch.tensor(1.0, dtype=torch.float64))
    assert torch.isclose(estimate.mahalanobis([2.0, 10.0]), torch.tensor(math.sqrt(5.0), dtype=torch.float64))


def test_log_likelihood_consistency(spd_matrix):
    estimate = ProcessEstimate(0.0, torch.zeros(3, dtype=torch.float64), spd_matrix(3))
    x = torch.randn(3, dtype=torch.float64)

    ll = estimate.log_likelihood(x)
    p = estimate.likelihood(x)

    expected = torch.distributions.MultivariateNormal(estimate.state, estimate.covariance).log_prob(x)

    assert torch.allclose(ll, expected)
    assert torch.allclose(p.log(), ll)
    assert p > 0


def test_statistics_require_positive_definite_covariance():
    estimate = ProcessEstimate(0.0, [0.0, 0.0], [[1.0, 1.0], [1.0, 1.0]])

    with pytest.raises(NonPositiveDefiniteError):
        estimate.mahalanobis([1.0, 0.0])

    with pytest.raises(DimensionMismatchError):
        ProcessEstimate(0.0, [0.0], [[1.0]]).mahalanobis([1.0, 0.0])


def test_measurement_dimensions():
    measurement = Measurement(2.0, [1.0], [[1.0, 0.0, 0.0]], [[0.1]])

    assert measurement.dimension == 1
    assert measurement.state_dimension == 3
    assert measurement.value.dtype == torch.float64


@pytest.mark.parametrize(
    ("value", "measurement_matrix", "covariance"),
    [
        ([[1.0]], [[1.0]], [[1.0]]),
        ([1.0, 2.0], [[1.0, 0.0]], [[1.0, 0.0], [0.0, 1.0]]),
        ([1.0], [1.0, 0.0], [[1.0]]),
        ([1.0], [[1.0, 0.0]], [[1.0, 0.0], [0.0, 1.0]]),
    ],
)
def test_inconsistent_measurements_are_rejected(value, measurement_matrix, covariance):
    with pytest.raises(DimensionMismatchError):
        Measurement(0.0, value, measurement_matrix, covariance)


def test_measurement_to_convert_dtype():
    measurement = Measurement(0.0, [1.0], [[1.0, 0.0]], [[0.1]]).to(torch.float32)

    assert measurement.value.dtype == torch.float32
    assert measurement.measurement_matrix.dtype == torch.float32
    assert measurement.covariance.dtype == torch.float32
