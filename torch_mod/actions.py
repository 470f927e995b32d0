"""Registry of host actions backed by evaluation bridges.

Four action names are registered. TORCHFUNC, TORCHANN and TORCHANNFUNC evaluate a
function of scalar arguments; TORCHCOLVAR evaluates a collective variable of all
particle positions. All of them publish real gradients.

Example::

    config = BridgeConfig.from_dict(
        {"MODULE_FILE": "model.pt", "NUM_OUTPUT": 2, "ARG": "d1,d2"}
    )
    bridge = create_action("TORCHFUNC", config)
"""

import logging

from torch_mod.bridge import CartesianBridge, EvaluationBridge, ScalarBridge
from torch_mod.config import BridgeConfig


ACTION_REGISTRY: dict[str, type[EvaluationBridge]] = {
    "TORCHFUNC": ScalarBridge,
    "TORCHANN": ScalarBridge,
    "TORCHANNFUNC": ScalarBridge,
    "TORCHCOLVAR": CartesianBridge,
}


def create_action(
    name: str, config: BridgeConfig, *, n_atoms: int | None = None
) -> EvaluationBridge:
    """Build the bridge registered under ``name``.

    Args:
        name (str): Action name, case-insensitive
        config (BridgeConfig): Setup keywords
        n_atoms (int | None): Total number of particles of the system, required
            for TORCHCOLVAR

    Returns:
        EvaluationBridge: Bridge with its model loaded and components created

    Raises:
        ValueError: If the action is unknown or its inputs are not configured
    """
    try:
        bridge_cls = ACTION_REGISTRY[name.upper()]
    except KeyError:
        raise ValueError(
            f"Unknown action {name}, expected one of {sorted(ACTION_REGISTRY)}"
        ) from None

    logging.info(f"Creating {name.upper()} action")  # noqa: LOG015
    dtype_kwargs = (
        {"model_dtype": config.model_dtype} if config.model_dtype is not None else {}
    )

    if bridge_cls is CartesianBridge:
        if n_atoms is None:
            raise ValueError(f"{name.upper()} needs the total number of atoms")
        if config.args:
            raise ValueError(f"{name.upper()} reads positions and takes no ARG")
        return CartesianBridge(
            config.module_file,
            config.num_output,
            n_atoms=n_atoms,
            device=config.device,
            **dtype_kwargs,
        )

    if not config.args:
        raise ValueError(f"{name.upper()} needs at least one ARG")
    return ScalarBridge(
        config.module_file,
        config.num_output,
        n_args=config.n_args,
        arg_names=config.args,
        device=config.device,
        **dtype_kwargs,
    )
