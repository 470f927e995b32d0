"""Host-visible output components with derivatives.

A ComponentStore plays the role of the host's per-action value storage: the
bridges create one Component per model output at setup and overwrite its value
and derivative vector on every step.

Example::

    store = ComponentStore(n_dof=6)
    store.add_component_with_derivatives("output-0")
    store.component_is_not_periodic("output-0")
    store["output-0"].set(1.0)
    store["output-0"].set_derivatives(torch.zeros(6, dtype=torch.float64))
"""

from dataclasses import dataclass, field

import torch


@dataclass
class Component:
    """One named scalar output and its derivative vector.

    Attributes:
        name (str): Host-visible component name, e.g. "output-0"
        derivatives (torch.Tensor): Derivatives of the value with respect to
            every host degree of freedom, shape (n_dof,), float64
        value (float): Value published by the last step
        periodic (bool): Whether the value lives on a periodic domain
    """

    name: str
    derivatives: torch.Tensor
    value: float = 0.0
    periodic: bool = field(default=False, kw_only=True)

    @property
    def n_dof(self) -> int:
        """Length of the derivative vector."""
        return self.derivatives.shape[0]

    def set(self, value: float) -> None:
        """Set the value of the component."""
        self.value = float(value)

    def set_derivative(self, index: int, value: float) -> None:
        """Set the derivative with respect to degree of freedom ``index``."""
        self.derivatives[index] = value

    def set_derivatives(self, derivatives: torch.Tensor) -> None:
        """Overwrite the full derivative vector in place.

        Args:
            derivatives (torch.Tensor): New derivatives, any shape with n_dof
                elements. Values are copied, never aliased.

        Raises:
            ValueError: If the number of elements does not match n_dof
        """
        if derivatives.numel() != self.n_dof:
            raise ValueError(
                f"Component {self.name} expects {self.n_dof} derivatives, "
                f"got {derivatives.numel()}"
            )
        with torch.no_grad():
            self.derivatives.copy_(derivatives.reshape(-1))

    def clear_derivatives(self) -> None:
        """Reset all derivatives to zero."""
        self.derivatives.zero_()


class ComponentStore:
    """Ordered collection of components sharing one set of degrees of freedom.

    Components keep the order in which they were added; ``store[i]`` and
    ``store["output-i"]`` return the same component for bridge-created stores.

    Args:
        n_dof (int): Number of host degrees of freedom each derivative vector covers
        device (torch.device | None): Device of the derivative tensors
    """

    def __init__(self, n_dof: int, device: torch.device | None = None) -> None:
        if n_dof < 0:
            raise ValueError(f"n_dof must be non-negative, got {n_dof}")
        self.n_dof = n_dof
        self.device = device or torch.device("cpu")
        self._components: dict[str, Component] = {}
        self._box_derivatives: torch.Tensor | None = None

    def __len__(self) -> int:
        return len(self._components)

    def __iter__(self):
        return iter(self._components.values())

    def __contains__(self, name: str) -> bool:
        return name in self._components

    def __getitem__(self, key: str | int) -> Component:
        if isinstance(key, int):
            return list(self._components.values())[key]
        return self._components[key]

    @property
    def names(self) -> list[str]:
        """Names of all components in creation order."""
        return list(self._components)

    def add_component_with_derivatives(self, name: str) -> Component:
        """Create a component with a zeroed derivative vector.

        Raises:
            ValueError: If a component with the same name already exists
        """
        if name in self._components:
            raise ValueError(f"Component {name} already exists")
        component = Component(
            name=name,
            derivatives=torch.zeros(self.n_dof, dtype=torch.float64, device=self.device),
        )
        self._components[name] = component
        return component

    def component_is_not_periodic(self, name: str) -> None:
        """Flag a component as living on a non-periodic domain."""
        self._components[name].periodic = False

    def set_box_derivatives_no_pbc(self) -> None:
        """Declare that no component depends on the simulation cell."""
        self._box_derivatives = torch.zeros(
            3, 3, dtype=torch.float64, device=self.device
        )

    @property
    def box_derivatives(self) -> torch.Tensor | None:
        """Cell derivatives published by the last step, None if never set."""
        return self._box_derivatives

    @property
    def values(self) -> torch.Tensor:
        """Values of all components, shape (n_components,)."""
        return torch.tensor(
            [component.value for component in self], dtype=torch.float64
        )

    @property
    def derivatives(self) -> torch.Tensor:
        """Derivatives of all components, shape (n_components, n_dof)."""
        if len(self) == 0:
            return torch.empty(0, self.n_dof, dtype=torch.float64, device=self.device)
        return torch.stack([component.derivatives for component in self])
