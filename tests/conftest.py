from typing import Callable

import pytest
import torch


@pytest.fixture(autouse=True)
def deterministic():
    torch.manual_seed(0)
    torch.cuda.manual_seed_all(0)
    torch.use_deterministic_algorithms(True)


@pytest.fixture
def spd_matrix() -> Callable[[int], torch.Tensor]:
    """Factory of random symmetric positive definite float64 matrices."""

    def _spd_matrix(dim: int) -> torch.Tensor:
        matrix = torch.randn(dim, dim, dtype=torch.float64)
        matrix = matrix @ matrix.mT + 1e-2 * torch.eye(dim, dtype=torch.float64)
        return 0.5 * (matrix + matrix.mT)

    return _spd_matrix


def pytest_runtest_setup(item):
    if "cuda" in item.keywords and not torch.cuda.is_available():
        pytest.skip("CUDA is not available for this test")
