"""torch-mod package base module."""

# ruff: noqa: F401

from torch_mod import (
    actions,
    bridge,
    components,
    config,
    errors,
    io,
    models,
    quantities,
    runners,
    state,
)
from torch_mod.actions import ACTION_REGISTRY, create_action

# evaluation bridges
from torch_mod.bridge import (
    CartesianBridge,
    EvaluationBridge,
    ScalarBridge,
    backward_outputs,
    component_names,
)
from torch_mod.components import Component, ComponentStore
from torch_mod.config import BridgeConfig
from torch_mod.errors import LoadError, ReentrantBackwardError, ShapeMismatchError
from torch_mod.models.torchscript import TorchScriptModel

# quantities
from torch_mod.quantities import derivatives_to_forces, harmonic_restraint
from torch_mod.runners import evaluate

# host state
from torch_mod.state import (
    ArgumentState,
    ParticleState,
    initialize_argument_state,
    initialize_particle_state,
)
