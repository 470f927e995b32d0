import pytest
import torch

import torch_mod as tm
from torch_mod.quantities import derivatives_to_forces, harmonic_restraint


def test_derivatives_to_forces(
    distance_bridge: tm.CartesianBridge, dimer_state: tm.ParticleState
) -> None:
    store = distance_bridge.calculate(dimer_state)
    forces = derivatives_to_forces(store)

    torch.testing.assert_close(
        forces, torch.tensor([[1.0, 0.0, 0.0], [-1.0, 0.0, 0.0]], dtype=torch.float64)
    )


def test_derivatives_to_forces_weights(
    two_coordinates_file, scattered_positions: torch.Tensor
) -> None:
    bridge = tm.CartesianBridge(two_coordinates_file, n_outputs=2, n_atoms=3)
    store = bridge.calculate(scattered_positions)

    forces = derivatives_to_forces(store, torch.tensor([2.0, -3.0]))

    expected = torch.zeros(3, 3, dtype=torch.float64)
    expected[0, 0] = -2.0
    expected[1, 1] = 3.0
    torch.testing.assert_close(forces, expected)


def test_derivatives_to_forces_errors(
    sum_product_bridge: tm.ScalarBridge, distance_bridge: tm.CartesianBridge
) -> None:
    with pytest.raises(ValueError, match="not Cartesian"):
        derivatives_to_forces(sum_product_bridge.calculate([1.0, 2.0]))

    with pytest.raises(ValueError, match="Expected 1 weights"):
        derivatives_to_forces(distance_bridge.components, torch.ones(2))


def test_harmonic_restraint(sum_product_bridge: tm.ScalarBridge) -> None:
    store = sum_product_bridge.calculate([2.0, 3.0])

    energy, bias_derivatives = harmonic_restraint(
        store["output-1"], center=4.0, kappa=0.5
    )

    # s = 6, ds/dx = [3, 2]
    torch.testing.assert_close(energy, torch.tensor(1.0, dtype=torch.float64))
    torch.testing.assert_close(
        bias_derivatives, torch.tensor([3.0, 2.0], dtype=torch.float64)
    )
