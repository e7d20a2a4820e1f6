"""Example tracking a nonlinear pendulum from irregularly sampled, noisy angle measurements"""

import argparse
import logging
from typing import List, Tuple

import matplotlib.pyplot as plt
import torch

import torch_ekf


class Pendulum:
    """Frictionless pendulum with state (theta, omega).

    d theta / dt = omega
    d omega / dt = - g / l sin(theta)

    Integration uses a symplectic Euler scheme with a fixed step, the state transition matrix
    is the product of the jacobians of each integration step.
    """

    def __init__(self, length: float, process_std: float, step=1e-3) -> None:
        self.ratio = 9.81 / length
        self.process_std = process_std
        self.step = step

    def propagate(self, state: torch.Tensor, dt: float) -> Tuple[torch.Tensor, torch.Tensor]:
        """Integrate the state over dt, along with the jacobian of the integration."""
        theta, omega = state[0].item(), state[1].item()
        jacobian = torch.eye(2, dtype=state.dtype)

        n_steps = max(1, round(dt / self.step))
        h = dt / n_steps
        for _ in range(n_steps):
            cos = torch.cos(torch.tensor(theta)).item()
            omega = omega - h * self.ratio * torch.sin(torch.tensor(theta)).item()
            theta = theta + h * omega
            step_jacobian = torch.tensor(
                [
                    [1 - h**2 * self.ratio * cos, h],
                    [-h * self.ratio * cos, 1.0],
                ],
                dtype=state.dtype,
            )
            jacobian = step_jacobian @ jacobian

        return torch.tensor([theta, omega], dtype=state.dtype), jacobian

    def get_evolution(
        self, previous_time: float, previous_state: torch.Tensor, current_time: float
    ) -> torch_ekf.NonLinearEvolution:
        dt = current_time - previous_time
        predicted, jacobian = self.propagate(previous_state, dt)

        # Random angular acceleration (white noise)
        variance = self.process_std**2
        noise = torch.tensor(
            [[dt**3 / 3 * variance, dt**2 / 2 * variance], [dt**2 / 2 * variance, dt * variance]],
            dtype=previous_state.dtype,
        )
        return torch_ekf.NonLinearEvolution(current_time, predicted, jacobian, noise)


def generate_data(
    pendulum: Pendulum, n: int, duration: float, noise: float, theta0: float
) -> Tuple[List[float], torch.Tensor, List[torch_ekf.Measurement]]:
    """Generate noisy angle measurements of a pendulum at random times

    Returns:
        List[float]: Sorted measurement times
        torch.Tensor: True states at these times
            Shape: (n, 2)
        List[Measurement]: Angle measurements
    """
    times = torch.sort(torch.rand(n, dtype=torch.float64) * duration).values.tolist()

    states = []
    state = torch.tensor([theta0, 0.0], dtype=torch.float64)
    previous_time = 0.0
    for time in times:
        state, _ = pendulum.propagate(state, time - previous_time)
        states.append(state)
        previous_time = time

    measurements = [
        torch_ekf.Measurement(time, state[:1] + noise * torch.randn(1, dtype=torch.float64), [[1.0, 0.0]], [[noise**2]])
        for time, state in zip(times, states)
    ]
    return times, torch.stack(states), measurements


def main(n: int, duration: float, measurement_std: float, theta0: float, joseph: bool):
    pendulum = Pendulum(1.0, 0.05)

    print("Parameters")
    print(f"Measurement noise: {measurement_std}")
    print(f"Initial angle: {theta0}")
    print(f"Using {n} points over {duration}s")

    times, x, measurements = generate_data(pendulum, n, duration, measurement_std, theta0)

    # Unknown initial state: at rest at the vertical, with a large uncertainty on the angle
    initial = torch_ekf.ProcessEstimate(0.0, [0.0, 0.0], [[1.0, 0.0], [0.0, 1.0]])
    estimator = torch_ekf.ExtendedKalmanEstimator(
        torch_ekf.CholeskyDecomposer(), pendulum, initial, joseph_update=joseph
    )

    estimates = list(estimator.estimate(measurements))
    mean = torch.stack([estimate.state for estimate in estimates])
    std = torch.stack([estimate.covariance.diagonal().sqrt() for estimate in estimates])

    print(f"Filtering MSE (angle): {(mean[:, 0] - x[:, 0]).pow(2).mean()}")
    print(f"Filtering MSE (angular velocity): {(mean[:, 1] - x[:, 1]).pow(2).mean()}")

    plt.rcParams["font.size"] = 20

    for i, name in enumerate(["theta", "omega"]):
        plt.figure(figsize=(24, 16))
        plt.plot(times, x[:, i], color="k", label=f"True {name}")
        plt.plot(times, mean[:, i], color="y", label=f"Filtered {name}")
        plt.fill_between(times, mean[:, i] - 3 * std[:, i], mean[:, i] + 3 * std[:, i], color="y", alpha=0.5)
        if i == 0:
            z = torch.stack([measurement.value[0] for measurement in measurements])
            plt.plot(times, z, "o", color="r", markersize=2.0, label="Observed theta")

        plt.xlabel("t")
        plt.ylabel(name)
        plt.legend(loc="upper right")

    plt.show()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Extended Kalman filter example, tracking a pendulum")
    parser.add_argument("--n", default=500, type=int, help="Number of points")
    parser.add_argument("--duration", default=20.0, type=float, help="Duration of the simulation (s)")
    parser.add_argument("--noise", default=0.1, type=float, help="Observation noise (rad)")
    parser.add_argument("--theta0", default=1.0, type=float, help="Initial angle (rad)")
    parser.add_argument("--joseph", action="store_true", help="Use the Joseph form covariance update")
    parser.add_argument("--verbose", action="store_true", help="Log each estimation step")

    args = parser.parse_args()

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING)

    main(args.n, args.duration, args.noise, args.theta0, args.joseph)
