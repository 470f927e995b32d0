"""Restrain the O-H distance of a water molecule with a TorchScript collective variable.

The collective variable is evaluated in float32 while positions stay in float64.
A harmonic restraint on the published value is turned into forces and used for a
few steepest descent steps.
"""

import torch
from ase.build import molecule

import torch_mod as tm


class OHDistance(torch.nn.Module):
    def forward(self, positions: torch.Tensor) -> torch.Tensor:
        dr = positions[:, 1] - positions[:, 0]
        return torch.sqrt((dr * dr).sum(dim=-1, keepdim=True))


torch.jit.save(torch.jit.script(OHDistance()), "oh_distance.pt")

water = molecule("H2O")
state = tm.io.atoms_to_state(water)

bridge = tm.CartesianBridge("oh_distance.pt", n_outputs=1, n_atoms=state.n_atoms)

center, kappa, step_size = 1.2, 10.0, 0.01
for step in range(20):
    store = bridge.calculate(state)
    energy, bias_derivatives = tm.harmonic_restraint(store[0], center, kappa)
    forces = -bias_derivatives.reshape(-1, 3)
    state.positions = state.positions + step_size * forces
    if step % 5 == 0:
        print(f"{step=}: d(O-H)={store[0].value:.4f}, bias={energy.item():.5f}")
