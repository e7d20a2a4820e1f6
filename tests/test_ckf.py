import pytest
import torch

from torch_ekf import CholeskyDecomposer, ExtendedKalmanEstimator, ProcessEstimate
from torch_ekf.ckf import (
    ConstantDerivativeProcess,
    create_ckf_process_matrix,
    create_ckf_process_noise,
    interleave,
)


def test_interleave_matches_expected():
    x = torch.tensor([[1, 1], [2, 2], [3, 3], [4, 4], [5, 5], [6, 6], [7, 7], [8, 8], [9, 9]])
    y = interleave(x, 3)
    expected = torch.tensor([[1, 1], [4, 4], [7, 7], [2, 2], [5, 5], [8, 8], [3, 3], [6, 6], [9, 9]])
    assert torch.equal(y, expected)


def test_create_ckf_process_matrix_order2_dt05():
    process_matrix = create_ckf_process_matrix(order=2, dt=0.5)
    expected = torch.tensor(
        [
            [1.0, 0.5, 0.125],
            [0.0, 1.0, 0.5],
            [0.0, 0.0, 1.0],
        ],
        dtype=torch.float64,
    )
    assert process_matrix.dtype == torch.float64
    assert torch.equal(process_matrix, expected)


def test_create_ckf_process_matrix_approximate_drops_higher_terms():
    process_matrix = create_ckf_process_matrix(order=2, dt=0.5, approximate=True)
    expected = torch.tensor(
        [
            [1.0, 0.5, 0.0],
            [0.0, 1.0, 0.5],
            [0.0, 0.0, 1.0],
        ],
        dtype=torch.float64,
    )
    assert torch.equal(process_matrix, expected)


def test_create_ckf_process_matrix_zero_dt_is_identity():
    assert torch.equal(create_ckf_process_matrix(order=3, dt=0.0), torch.eye(4, dtype=torch.float64))


def test_create_ckf_process_noise_order_3():
    process_noise = create_ckf_process_noise(process_std=1.5, order=3, dt=1.0)

    expected = torch.tensor(
        [
            [0.0625, 0.1875, 0.3750, 0.3750],
            [0.1875, 0.5625, 1.1250, 1.1250],
            [0.3750, 1.1250, 2.2500, 2.2500],
            [0.3750, 1.1250, 2.2500, 2.2500],
        ],
        dtype=torch.float64,
    )

    assert torch.allclose(process_noise, expected)
    assert torch.equal(process_noise, process_noise.mT)


def test_create_ckf_process_noise_expected_model():
    process_noise = create_ckf_process_noise(process_std=1.0, order=5, dt=0.5, expected_model=False)
    process_noise_expected = create_ckf_process_noise(process_std=1.0, order=5, dt=0.5, expected_model=True)

    # The expected model has an offset of 1 in the resulting noises
    assert torch.allclose(process_noise[:-1, :-1], process_noise_expected[1:, 1:])


@pytest.mark.parametrize(
    ("process_std", "order", "dt", "expected"),
    [
        (1.0, 3, 1.0, False),
        (1.0, 3, 0.5, True),
        (5.0, 2, 0.5, True),
        (0.2, 0, 2.0, False),
    ],
)
def test_create_ckf_process_noise_approximate(process_std: float, order: int, dt: float, expected: bool):
    process_noise = create_ckf_process_noise(
        process_std=process_std, order=order, dt=dt, expected_model=expected, approximate=True
    )
    assert process_noise[-1, -1] == process_std**2 * (dt**2 if expected else 1)
    process_noise[-1, -1] = 0

    assert (process_noise == 0).all()


def test_process_default_ordering():
    process = ConstantDerivativeProcess(1.5, dim=2, order=1)

    assert process.state_dim == 4
    assert process.process_matrix(1.0).shape == (4, 4)
    assert process.process_noise(1.0).shape == (4, 4)
    assert (
        process.measurement_matrix
        == torch.tensor(
            [
                # x, y, dx, dy
                [1, 0, 0, 0],
                [0, 1, 0, 0],
            ]
        )
    ).all()
    assert (
        process.process_matrix(2.0)
        == torch.tensor(
            [
                [1, 0, 2, 0],
                [0, 1, 0, 2],
                [0, 0, 1, 0],
                [0, 0, 0, 1],
            ]
        )
    ).all()


def test_process_order_by_dim_changes_layout_but_not_shapes():
    process_1 = ConstantDerivativeProcess(1.5, dim=3, order=2, order_by_dim=False)
    process_2 = ConstantDerivativeProcess(1.5, dim=3, order=2, order_by_dim=True)

    assert process_1.process_matrix(1.0).shape == process_2.process_matrix(1.0).shape
    assert process_1.process_noise(1.0).shape == process_2.process_noise(1.0).shape
    assert not torch.allclose(process_1.process_matrix(1.0), process_2.process_matrix(1.0))

    assert (
        process_2.measurement_matrix
        == torch.tensor(
            [
                # x,dx,ddx,y,dy,ddy,z,dz,ddz
                [1, 0, 0, 0, 0, 0, 0, 0, 0],
                [0, 0, 0, 1, 0, 0, 0, 0, 0],
                [0, 0, 0, 0, 0, 0, 1, 0, 0],
            ]
        )
    ).all()


def test_evolution_depends_on_elapsed_time():
    process = ConstantDerivativeProcess(0.1, dim=1, order=1)
    state = torch.tensor([1.0, 2.0], dtype=torch.float64)

    evolution = process.get_evolution(3.0, state, 3.5)

    assert evolution.time == 3.5
    assert torch.allclose(evolution.predicted_state, torch.tensor([2.0, 2.0], dtype=torch.float64))
    assert torch.equal(evolution.state_transition_matrix, process.process_matrix(0.5))
    assert torch.equal(evolution.process_noise, process.process_noise(0.5))


def test_measure_builds_position_measurement():
    process = ConstantDerivativeProcess(0.1, dim=2, order=2)

    measurement = process.measure(1.0, [3.0, 4.0], torch.tensor([0.5, 2.0]))

    assert measurement.dimension == 2
    assert measurement.state_dimension == 6
    assert torch.allclose(measurement.covariance, torch.diag(torch.tensor([0.25, 4.0], dtype=torch.float64)))


def test_filtering_a_constant_velocity_track():
    process = ConstantDerivativeProcess(1e-3, dim=2, order=1)
    origin = torch.tensor([2.0, 1.0], dtype=torch.float64)
    velocity = torch.tensor([1.0, -0.5], dtype=torch.float64)
    times = [0.5 * k + 0.1 * (k % 3) for k in range(1, 60)]  # Irregular sampling
    measurements = [process.measure(t, origin + t * velocity, 0.1) for t in times]

    initial = ProcessEstimate(0.0, torch.zeros(4, dtype=torch.float64), torch.eye(4, dtype=torch.float64) * 100)
    estimator = ExtendedKalmanEstimator(CholeskyDecomposer(), process, initial)

    *_, last = estimator.estimate(measurements)

    assert last.time == times[-1]
    assert torch.allclose(last.state[2:], velocity, atol=1e-2)
    assert torch.allclose(last.state[:2], origin + times[-1] * velocity, atol=1e-2)
