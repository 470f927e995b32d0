"""Model Interface: Core interface for differentiable graphs evaluated by torch-mod.

This module defines the abstract base class that every model evaluated by a bridge
must implement. A model takes one input tensor, returns one output tensor and must
be differentiable with respect to its input through torch autograd. The module also
provides a validation utility to verify model conformance to the interface.

Example::

    # Creating a custom model that implements the interface
    class MyModel(torch.nn.Module, ModelInterface):
        def __init__(self, device=None, dtype=torch.float64):
            super().__init__()
            self._device = device or torch.device("cpu")
            self._dtype = dtype
            self._n_outputs = 2

        def forward(self, inputs):
            return torch.stack([inputs.sum(), inputs.prod()])

Notes:
    Models declare their output arity up front. The bridges check it after every
    forward pass rather than trusting it.
"""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Self

import torch


class ModelInterface(ABC):
    """Abstract base class for all graphs evaluated by torch-mod.

    Attributes:
        device (torch.device): Device where the model runs computations.
        dtype (torch.dtype): Working precision the model expects its inputs in.
        n_outputs (int): Declared number of output components.
        path (Path | None): File the model was loaded from, None for in-memory models.

    Examples:
        ```python
        model = TorchScriptModel("cv.pt", n_outputs=2)
        x = torch.tensor([2.0, 3.0], dtype=torch.float64, requires_grad=True)
        outputs = model(x)  # Shape: [2]
        ```
    """

    @abstractmethod
    def __init__(
        self,
        model: str | Path | torch.nn.Module,
        n_outputs: int,
        device: torch.device | None = None,
        dtype: torch.dtype = torch.float64,
        **kwargs,
    ) -> Self:
        """Initialize a model implementation.

        Implementations must set self._device, self._dtype, self._n_outputs and
        self._path in their __init__ method.

        Args:
            model (str | Path | torch.nn.Module): Path to a serialized graph or an
                already constructed module.
            n_outputs (int): Declared number of output components.
            device (torch.device | None): Device where the model will run. If None,
                the CPU is used. Defaults to None.
            dtype (torch.dtype): Working precision of the model. Defaults to
                torch.float64.
            **kwargs: Additional model-specific parameters.
        """

    @property
    def device(self) -> torch.device:
        """The device of the model."""
        return self._device

    @device.setter
    def device(self, device: torch.device) -> None:
        raise NotImplementedError(
            "No device setter has been defined for this model"
            " so the device cannot be changed after initialization."
        )

    @property
    def dtype(self) -> torch.dtype:
        """The working precision of the model."""
        return self._dtype

    @dtype.setter
    def dtype(self, dtype: torch.dtype) -> None:
        raise NotImplementedError(
            "No dtype setter has been defined for this model"
            " so the dtype cannot be changed after initialization."
        )

    @property
    def n_outputs(self) -> int:
        """Declared number of output components."""
        return self._n_outputs

    @n_outputs.setter
    def n_outputs(self, n_outputs: int) -> None:
        raise NotImplementedError(
            "The number of outputs is fixed when the model is loaded."
        )

    @property
    def path(self) -> Path | None:
        """File the model was loaded from."""
        return getattr(self, "_path", None)

    @abstractmethod
    def forward(self, inputs: torch.Tensor) -> torch.Tensor:
        """Evaluate the graph once.

        Running the forward pass extends the autograd tape rooted at ``inputs``;
        the model itself is not modified.

        Args:
            inputs (torch.Tensor): Differentiation root, ``requires_grad`` must be
                set. Shape (n_args,) for scalar functions or (1, n_atoms, 3) for
                Cartesian collective variables.

        Returns:
            torch.Tensor: Output tensor. Shape (n_outputs,) for scalar functions,
                (1, n_outputs) for Cartesian collective variables.
        """


def validate_model_outputs(
    model: ModelInterface,
    input_shape: tuple[int, ...],
    device: torch.device,
) -> None:
    """Validate the outputs of a model implementation against the interface.

    Runs a forward pass on a random float64 input of the given shape and checks
    the declared output arity, the output dtype and that the model did not mutate
    its input. A backward pass through the summed outputs must then define a
    gradient of the input shape.

    Args:
        model (ModelInterface): Model implementation to validate.
        input_shape (tuple[int, ...]): Shape of the input tensor, (n_args,) or
            (1, n_atoms, 3).
        device (torch.device): Device to run the validation on.

    Raises:
        AssertionError: If the model does not conform to the interface.

    Example::

        model = TorchScriptModel("cv.pt", n_outputs=2)
        validate_model_outputs(model, (1, 22, 3), device=torch.device("cpu"))
    """
    assert model.dtype is not None
    assert model.device is not None
    assert model.n_outputs > 0

    inputs = torch.rand(input_shape, dtype=torch.float64, device=device)
    inputs.requires_grad_(True)
    og_inputs = inputs.detach().clone()

    outputs = model.forward(inputs)

    # assert model did not mutate the input
    assert torch.equal(og_inputs, inputs.detach())

    # batched Cartesian models carry a leading batch dimension
    if len(input_shape) == 3:
        assert outputs.shape[0] == 1
        outputs = outputs[0]

    assert outputs.shape == (model.n_outputs,)
    assert outputs.dtype.is_floating_point

    # a second pass on the same input must reproduce the first one
    torch.testing.assert_close(model.forward(inputs), model.forward(inputs))

    # outputs must be differentiable with respect to the input
    assert outputs.requires_grad
    outputs.sum().backward()
    assert inputs.grad is not None
    assert inputs.grad.shape == inputs.shape
    assert inputs.grad.dtype == torch.float64
