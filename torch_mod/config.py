"""Setup-time configuration of an evaluation bridge.

A BridgeConfig collects the keywords a host passes when it creates a bridge. The
original keyword spelling is accepted by ``BridgeConfig.from_dict``:

* ``MODULE_FILE``: path to the TorchScript graph, required
* ``NUM_OUTPUT``: number of output components, required
* ``ARG``: argument labels, comma separated or a list, scalar functions only
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Self

import torch


_KEY_ALIASES = {
    "module_file": "module_file",
    "num_output": "num_output",
    "arg": "args",
    "args": "args",
    "model_dtype": "model_dtype",
    "device": "device",
}


@dataclass
class BridgeConfig:
    """Keywords needed to build a bridge.

    Attributes:
        module_file (Path): Serialized graph to load once at setup
        num_output (int): Declared number of output components, positive
        args (list[str]): Labels of the scalar arguments, in host order. Empty
            for Cartesian collective variables.
        model_dtype (torch.dtype | None): Working precision of the model. None
            selects the bridge's default.
        device (torch.device | None): Device to evaluate on
    """

    module_file: Path
    num_output: int
    args: list[str] = field(default_factory=list)
    model_dtype: torch.dtype | None = field(default=None, kw_only=True)
    device: torch.device | None = field(default=None, kw_only=True)

    def __post_init__(self) -> None:
        """Normalize types and validate values."""
        if self.module_file is None or str(self.module_file) == "":
            raise ValueError("MODULE_FILE is required")
        self.module_file = Path(self.module_file)

        if isinstance(self.num_output, str):
            try:
                self.num_output = int(self.num_output)
            except ValueError:
                raise ValueError(
                    f"NUM_OUTPUT must be an integer, got {self.num_output!r}"
                ) from None
        if self.num_output <= 0:
            raise ValueError(
                f"NUM_OUTPUT must be a positive integer, got {self.num_output}"
            )

        if isinstance(self.args, str):
            self.args = [arg.strip() for arg in self.args.split(",") if arg.strip()]
        else:
            self.args = list(self.args)

        if isinstance(self.model_dtype, str):
            dtype = getattr(torch, self.model_dtype, None)
            if not isinstance(dtype, torch.dtype):
                raise ValueError(f"Unknown model dtype {self.model_dtype!r}")
            self.model_dtype = dtype
        if isinstance(self.device, str):
            self.device = torch.device(self.device)

    @classmethod
    def from_dict(cls, keywords: dict[str, Any]) -> Self:
        """Build a config from host keywords, matching keys case-insensitively.

        Raises:
            ValueError: If a keyword is unknown or a required one is missing
        """
        kwargs = {}
        for key, value in keywords.items():
            name = _KEY_ALIASES.get(key.lower())
            if name is None:
                raise ValueError(f"Unknown keyword {key}")
            kwargs[name] = value

        missing = sorted(
            key.upper() for key in {"module_file", "num_output"} - set(kwargs)
        )
        if missing:
            raise ValueError(f"Missing required keywords: {', '.join(missing)}")
        return cls(**kwargs)

    @property
    def n_args(self) -> int:
        """Number of scalar arguments."""
        return len(self.args)
