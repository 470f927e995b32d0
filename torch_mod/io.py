"""Conversion between ASE Atoms and ParticleState.

The module handles:

* Converting an ASE Atoms object to a ParticleState, keeping ASE's atom order
* Converting a ParticleState back to an ASE Atoms object
"""

from typing import TYPE_CHECKING

import numpy as np
import torch

import torch_mod as tm


if TYPE_CHECKING:
    from ase import Atoms


def state_to_atoms(state: "tm.ParticleState") -> "Atoms":
    """Convert a ParticleState to an ASE Atoms object.

    Args:
        state (ParticleState): State containing positions, cell and atomic numbers

    Returns:
        Atoms: ASE Atoms object with the same particle order

    Raises:
        ImportError: If ASE is not installed

    Notes:
        Particles without atomic numbers are written as dummy atoms ("X").
    """
    try:
        from ase import Atoms
        from ase.data import chemical_symbols
    except ImportError:
        raise ImportError("ASE is required for state_to_atoms conversion") from None

    positions = state.positions.detach().cpu().numpy()
    cell = state.cell.detach().cpu().numpy().T  # Transpose for ASE convention

    if state.atomic_numbers is None:
        symbols = ["X"] * state.n_atoms
    else:
        symbols = [
            chemical_symbols[z] for z in state.atomic_numbers.detach().cpu().numpy()
        ]

    return Atoms(symbols=symbols, positions=positions, cell=cell, pbc=state.pbc)


def atoms_to_state(
    atoms: "Atoms",
    device: torch.device | None = None,
    dtype: torch.dtype = torch.float64,
) -> "tm.ParticleState":
    """Convert an ASE Atoms object to a ParticleState.

    Args:
        atoms (Atoms): ASE Atoms object. Every atom becomes one particle, in
            the order ASE stores them.
        device (torch.device | None): Device to create tensors on
        dtype (torch.dtype): Data type for positions and cell. Defaults to
            torch.float64, the precision of the bridges' differentiation root.

    Returns:
        ParticleState: torch-mod ParticleState object

    Raises:
        ImportError: If ASE is not installed
        ValueError: If the Atoms object mixes periodic and non-periodic directions
    """
    try:
        from ase import Atoms  # noqa: F401
    except ImportError:
        raise ImportError("ASE is required for atoms_to_state conversion") from None

    if any(atoms.pbc) and not all(atoms.pbc):
        raise ValueError("Mixed periodic boundary conditions are not supported")

    positions = torch.tensor(np.asarray(atoms.positions), dtype=dtype, device=device)
    # Transpose cell from ASE convention to column vector convention
    cell = torch.tensor(atoms.cell.array.T, dtype=dtype, device=device)
    atomic_numbers = torch.tensor(
        atoms.get_atomic_numbers(), dtype=torch.int, device=device
    )

    return tm.ParticleState(
        positions=positions,
        cell=cell,
        pbc=bool(all(atoms.pbc)),
        atomic_numbers=atomic_numbers,
    )
