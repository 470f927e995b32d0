"""Models for torch-mod."""

# ruff: noqa: F401

from torch_mod.models.interface import ModelInterface, validate_model_outputs
from torch_mod.models.torchscript import TorchScriptModel, load_model
