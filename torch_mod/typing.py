"""Types used across torch-mod."""

from enum import Enum
from typing import TYPE_CHECKING, Union

import torch


if TYPE_CHECKING:
    from ase import Atoms

    from torch_mod.state import ArgumentState, ParticleState


ArgumentLike = Union["ArgumentState", torch.Tensor, list[float], tuple[float, ...]]
ParticleLike = Union["Atoms", "ParticleState", torch.Tensor]


class OutputStatus(Enum):
    """Lifecycle of one output component within a single evaluation step.

    An output starts PENDING, becomes EVALUATED once its backward pass has run
    and PUBLISHED once its value and derivatives are written to the host.
    """

    PENDING = "pending"
    EVALUATED = "evaluated"
    PUBLISHED = "published"
