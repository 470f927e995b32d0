"""Wrapper for TorchScript graphs in torch-mod.

This module provides the model handle used by both evaluation bridges. It loads a
serialized TorchScript archive exactly once, records its static shape metadata and
evaluates it on differentiation roots built by the bridges.

Example::

    model = TorchScriptModel("model.pt", n_outputs=2)
    x = torch.tensor([2.0, 3.0], dtype=torch.float64, requires_grad=True)
    outputs = model(x)

Notes:
    The graph is trained and compiled elsewhere, e.g. with
    ``torch.jit.save(torch.jit.script(module), "model.pt")``.
"""

import copy
import logging
from pathlib import Path

import torch

from torch_mod.errors import LoadError
from torch_mod.models.interface import ModelInterface


def load_model(
    path: str | Path, device: torch.device | None = None
) -> torch.jit.ScriptModule:
    """Deserialize a TorchScript graph from a file.

    Args:
        path (str | Path): Path to the serialized graph
        device (torch.device | None): Device to map the graph's tensors to

    Returns:
        torch.jit.ScriptModule: Loaded graph in evaluation mode

    Raises:
        LoadError: If the file does not exist, cannot be read or is not a
            TorchScript archive
    """
    path = Path(path)
    if not path.is_file():
        raise LoadError(f"Model file {path} does not exist")

    try:
        module = torch.jit.load(str(path), map_location=device)
    except (RuntimeError, ValueError, OSError) as exc:
        raise LoadError(f"Could not load TorchScript model from {path}: {exc}") from exc

    logging.info(f"Loaded TorchScript model from {path}")  # noqa: LOG015
    return module.eval()


class TorchScriptModel(torch.nn.Module, ModelInterface):
    """Immutable handle on a loaded computational graph.

    The handle owns the graph and its static metadata. It is created once per
    bridge and never reloaded; every step only calls ``forward``.

    Attributes:
        path (Path | None): File the graph was loaded from
        n_outputs (int): Declared number of output components
        n_inputs (int | None): Declared input arity, the number of scalar arguments
            or the number of particles, None when not declared
        device (torch.device): Device the graph runs on
        dtype (torch.dtype): Working precision the inputs are cast to

    Example::

        # float32 graph evaluated on float64 host positions
        model = TorchScriptModel("cv.pt", n_outputs=1, dtype=torch.float32)
    """

    def __init__(
        self,
        model: str | Path | torch.nn.Module,
        n_outputs: int,
        device: torch.device | None = None,
        dtype: torch.dtype = torch.float64,
        *,
        n_inputs: int | None = None,
    ) -> None:
        """Load a graph and record its shape metadata.

        Args:
            model (str | Path | torch.nn.Module): Path to a TorchScript archive or
                an already constructed module (scripted or eager). Modules are
                copied, the copy's parameters are frozen and the caller's module
                is left untouched.
            n_outputs (int): Declared number of output components, positive.
            device (torch.device | None): Device to run the graph on. If None, uses
                CPU. Defaults to None.
            dtype (torch.dtype): Precision the graph was trained in. Inputs are cast
                to it at the model boundary. Defaults to torch.float64.
            n_inputs (int | None): Declared input arity. Defaults to None.

        Raises:
            LoadError: If ``model`` is a path that cannot be loaded
            ValueError: If ``n_outputs`` is not positive
            TypeError: If ``model`` is neither a path nor a module
        """
        super().__init__()
        if n_outputs <= 0:
            raise ValueError(f"n_outputs must be a positive integer, got {n_outputs}")

        self._device = device or torch.device("cpu")
        if isinstance(self._device, str):
            self._device = torch.device(self._device)
        self._dtype = dtype
        self._n_outputs = n_outputs
        self._n_inputs = n_inputs

        if isinstance(model, str | Path):
            self._path = Path(model)
            self._model = load_model(self._path, self._device)
        elif isinstance(model, torch.nn.Module):
            self._path = None
            self._model = copy.deepcopy(model).to(self._device).eval()
        else:
            raise TypeError(
                f"model must be a path or a torch.nn.Module, got {type(model).__name__}"
            )

        # weights are fixed at inference, backward passes only reach the inputs
        self._model.requires_grad_(False)

    @property
    def n_inputs(self) -> int | None:
        """Declared input arity."""
        return self._n_inputs

    def forward(self, inputs: torch.Tensor) -> torch.Tensor:
        """Evaluate the graph on a differentiation root.

        The input is cast to the model's device and working precision before the
        call. The cast is recorded by autograd, so gradients flow back to the
        root in the root's own precision.

        Args:
            inputs (torch.Tensor): Differentiation root with requires_grad set

        Returns:
            torch.Tensor: Raw graph output

        Raises:
            ValueError: If ``inputs`` does not require gradients
        """
        if not inputs.requires_grad:
            raise ValueError("Model inputs must be a differentiation root")

        return self._model(inputs.to(device=self._device, dtype=self._dtype))
