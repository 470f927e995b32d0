"""Evaluation bridges between a host simulation and a differentiable graph.

A bridge owns one loaded model and one ComponentStore. On every step it copies the
host's current state into a float64 differentiation root, runs a single forward
pass, then runs one backward pass per output component and publishes the value and
the gradient of each output into the component named ``output-i``.

Two input shapes are supported:

* ScalarBridge: a flat vector of N scalar arguments. Output i publishes a
  derivative vector of length N.
* CartesianBridge: the (1, M, 3) positions of a fixed set of M particles. Output i
  publishes a derivative vector of length 3M laid out as x0, y0, z0, x1, ...

Example::

    bridge = ScalarBridge("model.pt", n_outputs=2, n_args=2)
    store = bridge.calculate([2.0, 3.0])
    store["output-1"].value  # 6.0 for f(x) = [x0 + x1, x0 * x1]
    store["output-1"].derivatives  # tensor([3., 2.])

Notes:
    torch accumulates gradients into ``root.grad`` instead of overwriting them.
    The bridges therefore zero an existing gradient before every backward pass
    after the first one, and only the final output releases the graph.
"""

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from pathlib import Path

import torch

from torch_mod.components import ComponentStore
from torch_mod.errors import ReentrantBackwardError, ShapeMismatchError
from torch_mod.models.interface import ModelInterface
from torch_mod.models.torchscript import TorchScriptModel
from torch_mod.state import initialize_argument_state, initialize_particle_state
from torch_mod.typing import ArgumentLike, OutputStatus, ParticleLike


def component_names(n_outputs: int) -> list[str]:
    """Names under which the outputs of a bridge are published."""
    return [f"output-{idx}" for idx in range(n_outputs)]


class OutputTracker:
    """Per-step state machine over the outputs of one forward pass.

    Every output moves PENDING -> EVALUATED -> PUBLISHED. Outputs are evaluated in
    strictly ascending order and only the last one may release the autograd graph,
    so a backward pass never runs on a freed graph.

    Args:
        n_outputs (int): Number of outputs produced by the forward pass
    """

    def __init__(self, n_outputs: int) -> None:
        self.n_outputs = n_outputs
        self.status = [OutputStatus.PENDING] * n_outputs
        self.graph_released = False

    def begin_backward(self, index: int) -> bool:
        """Mark output ``index`` as evaluated.

        Returns:
            bool: Whether the backward pass must retain the graph

        Raises:
            ReentrantBackwardError: If the graph is already released, the output was
                already evaluated or an earlier output is not yet published
        """
        if self.graph_released:
            raise ReentrantBackwardError(
                f"Cannot evaluate output {index}: the computation graph was released"
            )
        if self.status[index] is not OutputStatus.PENDING:
            raise ReentrantBackwardError(
                f"Output {index} is already {self.status[index].value}"
            )
        if any(status is not OutputStatus.PUBLISHED for status in self.status[:index]):
            raise ReentrantBackwardError(
                f"Output {index} evaluated before all preceding outputs were published"
            )

        self.status[index] = OutputStatus.EVALUATED
        retain_graph = index < self.n_outputs - 1
        if not retain_graph:
            self.graph_released = True
        return retain_graph

    def publish(self, index: int) -> None:
        """Mark output ``index`` as published."""
        if self.status[index] is not OutputStatus.EVALUATED:
            raise ReentrantBackwardError(
                f"Output {index} cannot be published while {self.status[index].value}"
            )
        self.status[index] = OutputStatus.PUBLISHED

    @property
    def is_complete(self) -> bool:
        """Whether every output has been published."""
        return all(status is OutputStatus.PUBLISHED for status in self.status)


def check_output_shape(outputs: torch.Tensor, n_outputs: int) -> torch.Tensor:
    """Check that a forward pass produced exactly ``n_outputs`` components.

    A 0-d output is accepted for single-output models and viewed as shape (1,).

    Raises:
        ShapeMismatchError: If the output is not a vector of length ``n_outputs``
    """
    if outputs.ndim == 0 and n_outputs == 1:
        return outputs.reshape(1)
    if outputs.shape != (n_outputs,):
        raise ShapeMismatchError(
            f"Model returned outputs of shape {tuple(outputs.shape)}, expected "
            f"({n_outputs},)"
        )
    return outputs


def zero_grad_if_defined(root: torch.Tensor) -> None:
    """Reset an accumulated gradient on ``root`` in place, if one exists."""
    if root.grad is not None:
        root.grad.zero_()


def backward_output(
    output: torch.Tensor, root: torch.Tensor, *, retain_graph: bool
) -> torch.Tensor | None:
    """Differentiate one scalar output with respect to ``root``.

    The gradient accumulates into ``root.grad``; callers reset it between
    independent outputs.

    Args:
        output (torch.Tensor): 0-d output tensor
        root (torch.Tensor): Differentiation root of the forward pass
        retain_graph (bool): Whether to keep the graph for later backward passes

    Returns:
        torch.Tensor | None: Copy of the gradient, None if ``output`` has no
            differentiable path to ``root``
    """
    if output.requires_grad:
        output.backward(retain_graph=retain_graph)
    if root.grad is None:
        return None
    return root.grad.detach().clone()


def backward_outputs(
    outputs: torch.Tensor,
    root: torch.Tensor,
    components: ComponentStore,
    unpack: Callable[[torch.Tensor], torch.Tensor],
) -> OutputTracker:
    """Publish the value and gradient of every output into ``components``.

    Args:
        outputs (torch.Tensor): Output vector of one forward pass, shape (n_outputs,)
        root (torch.Tensor): Differentiation root the outputs were computed from
        components (ComponentStore): Store holding one component per output,
            in output order
        unpack (Callable): Maps a gradient shaped like ``root`` to a flat
            derivative vector of length ``components.n_dof``

    Returns:
        OutputTracker: The completed state machine of this step
    """
    tracker = OutputTracker(outputs.shape[0])
    for idx in range(tracker.n_outputs):
        component = components[idx]
        if idx > 0:
            zero_grad_if_defined(root)

        retain_graph = tracker.begin_backward(idx)
        match backward_output(outputs[idx], root, retain_graph=retain_graph):
            case None:
                logging.debug(  # noqa: LOG015
                    f"{component.name} does not depend on the inputs, "
                    "publishing zero derivatives"
                )
                component.clear_derivatives()
            case grad:
                component.set_derivatives(unpack(grad))

        component.set(outputs[idx].item())
        tracker.publish(idx)

    return tracker


class EvaluationBridge(ABC):
    """Shared per-step protocol of the scalar and Cartesian bridges.

    Subclasses decide how host state becomes a differentiation root, how the raw
    model output becomes an output vector and how a gradient becomes a flat
    derivative vector. Everything else, including gradient isolation between
    outputs and graph release, is common.

    Attributes:
        model (ModelInterface): Loaded graph, owned by the bridge
        components (ComponentStore): One component per output, named "output-i"
        n_outputs (int): Declared number of outputs
    """

    def __init__(
        self,
        model: str | Path | torch.nn.Module | ModelInterface,
        n_outputs: int,
        n_dof: int,
        *,
        n_inputs: int,
        model_dtype: torch.dtype,
        device: torch.device | None = None,
    ) -> None:
        if n_outputs <= 0:
            raise ValueError(f"n_outputs must be a positive integer, got {n_outputs}")

        self.device = torch.device(device) if device is not None else torch.device("cpu")
        if isinstance(model, ModelInterface):
            if model.n_outputs != n_outputs:
                raise ValueError(
                    f"Model declares {model.n_outputs} outputs, bridge expects "
                    f"{n_outputs}"
                )
            self.model = model
        else:
            self.model = TorchScriptModel(
                model,
                n_outputs=n_outputs,
                device=self.device,
                dtype=model_dtype,
                n_inputs=n_inputs,
            )
        self.n_outputs = n_outputs

        self.components = ComponentStore(n_dof, device=self.device)
        for name in component_names(n_outputs):
            self.components.add_component_with_derivatives(name)
            self.components.component_is_not_periodic(name)

    def _log_setup(self, inputs_msg: str) -> None:
        logging.info(f"MODULE_FILE = {self.model.path}")  # noqa: LOG015
        logging.info(inputs_msg)  # noqa: LOG015
        logging.info(f"NUM_OUTPUT = {self.n_outputs}")  # noqa: LOG015
        logging.info("Initialization ended")  # noqa: LOG015

    @abstractmethod
    def assemble_inputs(self, state) -> torch.Tensor:
        """Copy host state into a fresh float64 differentiation root."""

    @abstractmethod
    def evaluate(self, root: torch.Tensor) -> torch.Tensor:
        """Run the forward pass and return the output vector."""

    @abstractmethod
    def unpack_gradient(self, grad: torch.Tensor) -> torch.Tensor:
        """Flatten a gradient shaped like the root into host derivative order."""

    def finish_step(self) -> None:  # noqa: B027
        """Publish anything the host expects after the per-output loop."""

    def calculate(self, state) -> ComponentStore:
        """Run one evaluation step.

        Args:
            state: Host state for the current step

        Returns:
            ComponentStore: The bridge's components holding this step's values and
                derivatives

        Raises:
            ShapeMismatchError: If the model output does not have n_outputs
                components
        """
        with torch.enable_grad():
            root = self.assemble_inputs(state)
            outputs = check_output_shape(self.evaluate(root), self.n_outputs)
            backward_outputs(outputs, root, self.components, self.unpack_gradient)
        self.finish_step()
        return self.components

    __call__ = calculate


class ScalarBridge(EvaluationBridge):
    """Bridge for functions of N independent scalar arguments.

    Example::

        bridge = ScalarBridge("model.pt", n_outputs=2, n_args=2)
        store = bridge.calculate(torch.tensor([2.0, 3.0], dtype=torch.float64))
    """

    def __init__(
        self,
        model: str | Path | torch.nn.Module | ModelInterface,
        n_outputs: int,
        *,
        n_args: int,
        arg_names: list[str] | None = None,
        model_dtype: torch.dtype = torch.float64,
        device: torch.device | None = None,
    ) -> None:
        """Load the model and create the output components.

        Args:
            model (str | Path | torch.nn.Module | ModelInterface): Serialized graph,
                module or model handle
            n_outputs (int): Declared number of outputs
            n_args (int): Number of scalar arguments read every step
            arg_names (list[str] | None): Optional argument labels. When given, every
                ArgumentState passed to ``calculate`` must carry the same names in
                the same order.
            model_dtype (torch.dtype): Precision the arguments are cast to at the
                model boundary. Defaults to torch.float64.
            device (torch.device | None): Device to evaluate on. Defaults to CPU.
        """
        if arg_names is not None and len(arg_names) != n_args:
            raise ValueError(f"Got {len(arg_names)} argument names for {n_args} args")
        super().__init__(
            model,
            n_outputs,
            n_dof=n_args,
            n_inputs=n_args,
            model_dtype=model_dtype,
            device=device,
        )
        self.n_args = n_args
        self.arg_names = arg_names
        self._log_setup(f"Number of args: {n_args}")

    def assemble_inputs(self, state: ArgumentLike) -> torch.Tensor:
        """Copy the host arguments into a (n_args,) float64 root.

        Raises:
            ValueError: If the number or the names of the arguments do not match the
                ones declared at setup
        """
        arguments = initialize_argument_state(state, self.device)
        if arguments.n_dof != self.n_args:
            raise ValueError(
                f"Expected {self.n_args} arguments, got {arguments.n_dof}"
            )
        if (
            self.arg_names is not None
            and arguments.names is not None
            and arguments.names != self.arg_names
        ):
            raise ValueError(
                f"Argument names {arguments.names} do not match {self.arg_names}"
            )
        return arguments.values.detach().clone().requires_grad_(True)

    def evaluate(self, root: torch.Tensor) -> torch.Tensor:
        """Run the model on the argument vector."""
        return self.model(root)

    def unpack_gradient(self, grad: torch.Tensor) -> torch.Tensor:
        """Argument j maps to derivative slot j."""
        return grad


class CartesianBridge(EvaluationBridge):
    """Bridge for collective variables of the positions of M particles.

    The particle set is every particle of the system, indices 0..M-1, fixed at
    setup. Positions enter the model as a (1, M, 3) tensor cast to the model's
    working precision; the differentiation root stays float64.

    Example::

        bridge = CartesianBridge("cv.pt", n_outputs=1, n_atoms=22)
        store = bridge.calculate(atoms)  # ase.Atoms, ParticleState or (M, 3) tensor
        forces = -store["output-0"].derivatives.reshape(-1, 3)
    """

    def __init__(
        self,
        model: str | Path | torch.nn.Module | ModelInterface,
        n_outputs: int,
        *,
        n_atoms: int,
        model_dtype: torch.dtype = torch.float32,
        device: torch.device | None = None,
    ) -> None:
        """Load the model and create the output components.

        Args:
            model (str | Path | torch.nn.Module | ModelInterface): Serialized graph,
                module or model handle
            n_outputs (int): Declared number of outputs
            n_atoms (int): Number of particles read every step
            model_dtype (torch.dtype): Precision the positions are cast to at the
                model boundary. Defaults to torch.float32.
            device (torch.device | None): Device to evaluate on. Defaults to CPU.
        """
        super().__init__(
            model,
            n_outputs,
            n_dof=3 * n_atoms,
            n_inputs=n_atoms,
            model_dtype=model_dtype,
            device=device,
        )
        self.n_atoms = n_atoms
        self._log_setup(f"Number of atoms: {n_atoms}")

    def assemble_inputs(self, state: ParticleLike) -> torch.Tensor:
        """Copy the particle positions into a (1, n_atoms, 3) float64 root.

        Raises:
            ValueError: If the state does not hold exactly n_atoms particles
        """
        particles = initialize_particle_state(state, self.device)
        if particles.n_atoms != self.n_atoms:
            raise ValueError(
                f"Expected {self.n_atoms} particles, got {particles.n_atoms}"
            )
        root = particles.positions.detach().reshape(1, self.n_atoms, 3).clone()
        return root.requires_grad_(True)

    def evaluate(self, root: torch.Tensor) -> torch.Tensor:
        """Run the model and drop the batch dimension.

        Raises:
            ShapeMismatchError: If the model output has no batch dimension of size 1
        """
        raw = self.model(root)
        if raw.ndim == 0 or raw.shape[0] != 1:
            raise ShapeMismatchError(
                f"Model returned outputs of shape {tuple(raw.shape)}, expected a "
                f"leading batch dimension of size 1"
            )
        return raw[0]

    def unpack_gradient(self, grad: torch.Tensor) -> torch.Tensor:
        """Coordinate k of particle j maps to derivative slot 3j + k."""
        return grad[0].reshape(-1)

    def finish_step(self) -> None:
        """The model does not depend on the cell."""
        self.components.set_box_derivatives_no_pbc()
