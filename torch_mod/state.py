"""Host-side state containers read by the evaluation bridges.

Two kinds of state feed a bridge: an ArgumentState holding the ordered scalar
arguments of a function, and a ParticleState holding the Cartesian positions of
a fixed set of particles. Both only describe the host's values for one step;
the bridges copy them into fresh tensors before differentiating.
"""

import copy
import importlib
import warnings
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Self

import torch

import torch_mod as tm
from torch_mod.typing import ArgumentLike, ParticleLike


if TYPE_CHECKING:
    from ase import Atoms


@dataclass
class ArgumentState:
    """Ordered scalar arguments of a function for one evaluation step.

    Attributes:
        values (torch.Tensor): Argument values with shape (n_args,)
        names (list[str] | None): Optional argument labels, one per value. The
            order of ``names`` is the order in which derivatives are published.

    Examples:
        >>> state = ArgumentState(torch.tensor([2.0, 3.0]), names=["d1", "d2"])
        >>> state.n_dof
        2
    """

    values: torch.Tensor
    names: list[str] | None = field(default=None, kw_only=True)

    def __post_init__(self) -> None:
        """Validate the argument vector."""
        if not isinstance(self.values, torch.Tensor):
            self.values = torch.as_tensor(self.values, dtype=torch.float64)

        if self.values.ndim == 0:
            self.values = self.values.unsqueeze(0)

        if self.values.ndim != 1:
            raise ValueError(
                f"Argument values must be one dimensional, got shape "
                f"{tuple(self.values.shape)}"
            )

        if self.names is not None and len(self.names) != self.n_dof:
            raise ValueError(
                f"Got {len(self.names)} argument names for {self.n_dof} values"
            )

    @property
    def device(self) -> torch.device:
        """The device where the argument values are located."""
        return self.values.device

    @property
    def dtype(self) -> torch.dtype:
        """The data type of the argument values."""
        return self.values.dtype

    @property
    def n_dof(self) -> int:
        """Number of degrees of freedom, one per argument."""
        return self.values.shape[0]

    def clone(self) -> Self:
        """Create a deep copy of the ArgumentState."""
        return self.__class__(
            self.values.clone(), names=copy.deepcopy(self.names)
        )

    def to(
        self, device: torch.device | None = None, dtype: torch.dtype | None = None
    ) -> Self:
        """Move the argument values to a new device and/or data type."""
        return self.__class__(
            self.values.to(device=device or self.device, dtype=dtype or self.dtype),
            names=copy.deepcopy(self.names),
        )


@dataclass
class ParticleState:
    """Cartesian positions of a fixed, ordered set of particles.

    Particle ``j`` of the state occupies derivative slots ``3j, 3j+1, 3j+2`` of
    every component published by a CartesianBridge.

    Attributes:
        positions (torch.Tensor): Particle positions with shape (n_atoms, 3)
        cell (torch.Tensor): Unit cell vectors with shape (3, 3), column vector
            convention as in ``ase.Atoms.cell.T``. Defaults to zeros.
        pbc (bool): Whether periodic boundary conditions apply. Defaults to False.
        atomic_numbers (torch.Tensor | None): Atomic numbers with shape (n_atoms,)

    Notes:
        The cell and pbc flag are carried for the host. The bridges never
        differentiate with respect to the cell and publish zero box derivatives.
    """

    positions: torch.Tensor
    cell: torch.Tensor | None = None
    pbc: bool = False
    atomic_numbers: torch.Tensor | None = field(default=None, kw_only=True)

    def __post_init__(self) -> None:
        """Validate shapes and fill in the default cell."""
        if self.positions.ndim != 2 or self.positions.shape[-1] != 3:
            raise ValueError(
                f"Positions must have shape (n_atoms, 3), got "
                f"{tuple(self.positions.shape)}"
            )

        if self.cell is None:
            self.cell = torch.zeros(3, 3, device=self.device, dtype=self.dtype)
        elif self.cell.shape != (3, 3):
            raise ValueError(f"Cell must have shape (3, 3), got {tuple(self.cell.shape)}")

        if self.cell.device != self.device:
            raise ValueError("All tensors must be on the same device")

        if (
            self.atomic_numbers is not None
            and self.atomic_numbers.shape[0] != self.n_atoms
        ):
            raise ValueError(
                f"Incompatible shapes: positions {self.n_atoms}, "
                f"atomic_numbers {self.atomic_numbers.shape[0]}"
            )

    @property
    def device(self) -> torch.device:
        """The device where the tensor data is located."""
        return self.positions.device

    @property
    def dtype(self) -> torch.dtype:
        """The data type of the positions tensor."""
        return self.positions.dtype

    @property
    def n_atoms(self) -> int:
        """Number of particles in the state."""
        return self.positions.shape[0]

    @property
    def n_dof(self) -> int:
        """Number of Cartesian degrees of freedom."""
        return 3 * self.n_atoms

    @property
    def volume(self) -> torch.Tensor | None:
        """Volume of the cell, None without periodic boundary conditions."""
        return torch.det(self.cell) if self.pbc else None

    def clone(self) -> Self:
        """Create a deep copy of the ParticleState.

        Returns:
            ParticleState: A new state with identical but independent tensors
        """
        attrs = {}
        for attr_name, attr_value in vars(self).items():
            if isinstance(attr_value, torch.Tensor):
                attrs[attr_name] = attr_value.clone()
            else:
                attrs[attr_name] = copy.deepcopy(attr_value)

        return self.__class__(**attrs)

    def to(
        self, device: torch.device | None = None, dtype: torch.dtype | None = None
    ) -> Self:
        """Convert the ParticleState to a new device and/or data type.

        Atomic numbers keep their integer dtype.

        Args:
            device (torch.device, optional): The target device.
                Defaults to current device.
            dtype (torch.dtype, optional): The target data type.
                Defaults to current dtype.

        Returns:
            ParticleState: A new state with tensors on the specified device and dtype
        """
        device = device or self.device
        dtype = dtype or self.dtype
        atomic_numbers = (
            self.atomic_numbers.to(device=device)
            if self.atomic_numbers is not None
            else None
        )
        return self.__class__(
            positions=self.positions.to(device=device, dtype=dtype),
            cell=self.cell.to(device=device, dtype=dtype),
            pbc=self.pbc,
            atomic_numbers=atomic_numbers,
        )

    def to_atoms(self) -> "Atoms":
        """Convert the ParticleState to an ASE Atoms object."""
        return tm.io.state_to_atoms(self)


def initialize_argument_state(
    arguments: ArgumentLike,
    device: torch.device | None = None,
) -> ArgumentState:
    """Build an ArgumentState from a tensor, a sequence of floats or a state.

    Args:
        arguments (ArgumentLike): Argument values in host order
        device (torch.device | None): Device to place the values on

    Returns:
        ArgumentState: float64 argument state
    """
    if isinstance(arguments, ArgumentState):
        if arguments.dtype != torch.float64:
            warnings.warn(
                f"Argument values of dtype {arguments.dtype} are upcast to float64",
                stacklevel=2,
            )
        return arguments.to(device, torch.float64)

    values = torch.as_tensor(arguments, dtype=torch.float64, device=device)
    return ArgumentState(values)


def initialize_particle_state(
    system: ParticleLike,
    device: torch.device | None = None,
) -> ParticleState:
    """Build a float64 ParticleState from an atomistic system representation.

    Accepts an existing ParticleState, an ``(n_atoms, 3)`` position tensor, or
    an ASE Atoms object.

    Args:
        system (ParticleLike): Input system to convert
        device (torch.device | None): Device to create tensors on

    Returns:
        ParticleState: State representation initialized from input system

    Raises:
        ValueError: If the system type is not supported
    """
    if isinstance(system, ParticleState):
        if system.dtype != torch.float64:
            warnings.warn(
                f"Positions of dtype {system.dtype} are upcast to float64",
                stacklevel=2,
            )
        return system.to(device, torch.float64)

    if isinstance(system, torch.Tensor):
        return ParticleState(positions=system.to(device=device, dtype=torch.float64))

    try:
        atoms_cls = importlib.import_module("ase").Atoms
    except ImportError:
        atoms_cls = None

    if atoms_cls is not None and isinstance(system, atoms_cls):
        return tm.io.atoms_to_state(system, device, torch.float64)

    raise ValueError(f"Unsupported system type, {type(system)}")
