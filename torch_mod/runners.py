"""High level runner driving a bridge over a sequence of host states.

Each state is one simulation step: the bridge is evaluated once per state and a
snapshot of the published components is recorded.
"""

from collections.abc import Iterable, Sized
from typing import Any

import torch
from tqdm import tqdm

from torch_mod.bridge import EvaluationBridge


def evaluate(
    bridge: EvaluationBridge,
    states: Iterable[Any],
    *,
    pbar: bool | dict[str, Any] = False,
) -> list[dict[str, torch.Tensor]]:
    """Evaluate a bridge once per state.

    Args:
        bridge (EvaluationBridge): Bridge to evaluate
        states (Iterable): Host states, one per step, in the form accepted by
            ``bridge.calculate``
        pbar (bool | dict[str, Any], optional): Show a progress bar. If a dict is
            given, it's passed to `tqdm` as kwargs.

    Returns:
        list[dict[str, torch.Tensor]]: One snapshot per step with keys
            "values" (n_outputs,), "derivatives" (n_outputs, n_dof) and, for
            Cartesian bridges, "box_derivatives" (3, 3)
    """
    tqdm_pbar = None
    if pbar:
        pbar_kwargs = pbar if isinstance(pbar, dict) else {}
        pbar_kwargs.setdefault("desc", "Evaluate")
        pbar_kwargs.setdefault("disable", None)
        if isinstance(states, Sized):
            pbar_kwargs.setdefault("total", len(states))
        tqdm_pbar = tqdm(**pbar_kwargs)

    all_props: list[dict[str, torch.Tensor]] = []
    for state in states:
        components = bridge.calculate(state)
        props = {
            "values": components.values,
            "derivatives": components.derivatives.clone(),
        }
        if components.box_derivatives is not None:
            props["box_derivatives"] = components.box_derivatives.clone()
        all_props.append(props)

        if tqdm_pbar is not None:
            tqdm_pbar.update(1)

    if tqdm_pbar is not None:
        tqdm_pbar.close()

    return all_props
