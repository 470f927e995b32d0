"""Functions turning published components into forces and bias potentials."""

import torch

from torch_mod.components import Component, ComponentStore


def derivatives_to_forces(
    components: ComponentStore,
    weights: torch.Tensor | None = None,
) -> torch.Tensor:
    """Convert Cartesian derivatives into per-particle forces.

    The forces are ``-sum_i w_i d output_i / d x``, i.e. the forces of the
    potential ``sum_i w_i output_i``.

    Args:
        components (ComponentStore): Components published by a CartesianBridge
        weights (torch.Tensor | None): Weight of each output, shape (n_outputs,).
            Defaults to one for every output.

    Returns:
        torch.Tensor: Forces with shape (n_atoms, 3)

    Raises:
        ValueError: If the derivatives are not Cartesian or the weights do not
            match the number of components
    """
    if components.n_dof % 3 != 0:
        raise ValueError(
            f"Derivatives of length {components.n_dof} are not Cartesian"
        )

    derivatives = components.derivatives
    if weights is None:
        weights = torch.ones(len(components), dtype=derivatives.dtype)
    if weights.shape != (len(components),):
        raise ValueError(
            f"Expected {len(components)} weights, got shape {tuple(weights.shape)}"
        )

    weights = weights.to(device=derivatives.device, dtype=derivatives.dtype)
    return -(weights @ derivatives).reshape(-1, 3)


def harmonic_restraint(
    component: Component,
    center: float,
    kappa: float,
) -> tuple[torch.Tensor, torch.Tensor]:
    """Harmonic bias on one output, ``0.5 * kappa * (s - center) ** 2``.

    Args:
        component (Component): Published output ``s`` with its derivatives
        center (float): Restraint center
        kappa (float): Force constant

    Returns:
        tuple[torch.Tensor, torch.Tensor]: Bias energy (0-d) and the derivative of
            the bias with respect to every host degree of freedom, shape (n_dof,)
    """
    displacement = component.value - center
    energy = torch.tensor(0.5 * kappa * displacement**2, dtype=torch.float64)
    return energy, kappa * displacement * component.derivatives
