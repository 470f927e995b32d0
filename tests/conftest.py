from pathlib import Path

import pytest
import torch
from ase import Atoms
from ase.build import bulk, molecule

import torch_mod as tm


class SumProduct(torch.nn.Module):
    """f(x0, x1) = [x0 + x1, x0 * x1]."""

    def forward(self, x: torch.Tensor) -> torch.Tensor:
        return torch.stack([x[0] + x[1], x[0] * x[1]])


class Selector(torch.nn.Module):
    """f(x) = [x0, x1], independent outputs."""

    def forward(self, x: torch.Tensor) -> torch.Tensor:
        return torch.stack([x[0], x[1]])


class ParameterOnly(torch.nn.Module):
    """Outputs depend on a trained parameter but not on the input."""

    def __init__(self) -> None:
        super().__init__()
        self.offset = torch.nn.Parameter(torch.tensor([1.5], dtype=torch.float64))

    def forward(self, x: torch.Tensor) -> torch.Tensor:
        return self.offset * torch.ones(2, dtype=x.dtype)


class Constant(torch.nn.Module):
    """Outputs that do not require gradients at all."""

    def forward(self, x: torch.Tensor) -> torch.Tensor:
        return torch.full((2,), 4.0, dtype=x.dtype)


class PartlyConnected(torch.nn.Module):
    """[x0 * x1, 0, x1 ** 2], the middle output does not depend on the input."""

    def forward(self, x: torch.Tensor) -> torch.Tensor:
        return torch.cat(
            [
                (x[0] * x[1]).unsqueeze(0),
                torch.zeros(1, dtype=x.dtype),
                (x[1] ** 2).unsqueeze(0),
            ]
        )


class PairDistance(torch.nn.Module):
    """Distance between particle 0 and particle 1, shape (1, 1)."""

    def forward(self, positions: torch.Tensor) -> torch.Tensor:
        dr = positions[:, 1] - positions[:, 0]
        return torch.sqrt((dr * dr).sum(dim=-1, keepdim=True))


class HalfSquaredNorm(torch.nn.Module):
    """0.5 * |r|^2 summed over all particles, gradient equals the positions."""

    def forward(self, positions: torch.Tensor) -> torch.Tensor:
        return 0.5 * (positions * positions).flatten(1).sum(dim=1, keepdim=True)


class TwoCoordinates(torch.nn.Module):
    """[x of particle 0, y of particle 1], shape (1, 2)."""

    def forward(self, positions: torch.Tensor) -> torch.Tensor:
        return torch.stack([positions[:, 0, 0], positions[:, 1, 1]], dim=1)


class ConstantCoordinates(torch.nn.Module):
    """Two constant outputs that ignore the positions, shape (1, 2)."""

    def forward(self, positions: torch.Tensor) -> torch.Tensor:
        return torch.full((1, 2), 2.0, dtype=positions.dtype)


class ReportDtype(torch.nn.Module):
    """Returns 1 when evaluated in float32 and 0 otherwise."""

    def forward(self, positions: torch.Tensor) -> torch.Tensor:
        flag = 1.0 if positions.dtype == torch.float32 else 0.0
        return positions.sum(dim=[1, 2]).unsqueeze(-1) * 0.0 + flag


def _save(module: torch.nn.Module, path: Path) -> Path:
    torch.jit.save(torch.jit.script(module), str(path))
    return path


@pytest.fixture
def device() -> torch.device:
    return torch.device("cpu")


@pytest.fixture
def dtype() -> torch.dtype:
    return torch.float64


@pytest.fixture
def sum_product_file(tmp_path: Path) -> Path:
    return _save(SumProduct(), tmp_path / "sum_product.pt")


@pytest.fixture
def selector_file(tmp_path: Path) -> Path:
    return _save(Selector(), tmp_path / "selector.pt")


@pytest.fixture
def parameter_only_file(tmp_path: Path) -> Path:
    return _save(ParameterOnly(), tmp_path / "parameter_only.pt")


@pytest.fixture
def constant_file(tmp_path: Path) -> Path:
    return _save(Constant(), tmp_path / "constant.pt")


@pytest.fixture
def partly_connected_file(tmp_path: Path) -> Path:
    return _save(PartlyConnected(), tmp_path / "partly_connected.pt")


@pytest.fixture
def distance_file(tmp_path: Path) -> Path:
    return _save(PairDistance(), tmp_path / "distance.pt")


@pytest.fixture
def half_squared_norm_file(tmp_path: Path) -> Path:
    return _save(HalfSquaredNorm(), tmp_path / "half_squared_norm.pt")


@pytest.fixture
def two_coordinates_file(tmp_path: Path) -> Path:
    return _save(TwoCoordinates(), tmp_path / "two_coordinates.pt")


@pytest.fixture
def constant_coordinates_file(tmp_path: Path) -> Path:
    return _save(ConstantCoordinates(), tmp_path / "constant_coordinates.pt")


@pytest.fixture
def report_dtype_module() -> torch.nn.Module:
    return ReportDtype()


@pytest.fixture
def garbage_file(tmp_path: Path) -> Path:
    path = tmp_path / "garbage.pt"
    path.write_bytes(b"this is not a torchscript archive")
    return path


@pytest.fixture
def sum_product_bridge(sum_product_file: Path) -> tm.ScalarBridge:
    return tm.ScalarBridge(sum_product_file, n_outputs=2, n_args=2)


@pytest.fixture
def distance_bridge(distance_file: Path) -> tm.CartesianBridge:
    return tm.CartesianBridge(distance_file, n_outputs=1, n_atoms=2)


@pytest.fixture
def dimer_state(dtype: torch.dtype) -> tm.ParticleState:
    """Two particles one unit apart along x."""
    return tm.ParticleState(
        positions=torch.tensor([[0.0, 0.0, 0.0], [1.0, 0.0, 0.0]], dtype=dtype)
    )


@pytest.fixture
def scattered_positions(dtype: torch.dtype) -> torch.Tensor:
    """Three particles at positions exactly representable in float32."""
    return torch.tensor(
        [[0.5, -1.0, 2.0], [1.25, 0.0, -0.75], [3.0, 0.25, 1.5]], dtype=dtype
    )


@pytest.fixture
def water_atoms() -> Atoms:
    """Create a water molecule using ASE."""
    return molecule("H2O")


@pytest.fixture
def si_atoms() -> Atoms:
    """Create crystalline silicon using ASE."""
    return bulk("Si", "diamond", a=5.43, cubic=True)
