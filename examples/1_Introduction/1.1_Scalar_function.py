"""Evaluate a TorchScript function of two scalar arguments and its gradients."""

import torch

import torch_mod as tm


class SumProduct(torch.nn.Module):
    def forward(self, x: torch.Tensor) -> torch.Tensor:
        return torch.stack([x[0] + x[1], x[0] * x[1]])


# Compile and save the graph, as a training script would
torch.jit.save(torch.jit.script(SumProduct()), "sum_product.pt")

config = tm.BridgeConfig.from_dict(
    {"MODULE_FILE": "sum_product.pt", "NUM_OUTPUT": 2, "ARG": "d1,d2"}
)
bridge = tm.create_action("TORCHFUNC", config)

arguments = tm.ArgumentState(
    torch.tensor([2.0, 3.0], dtype=torch.float64), names=["d1", "d2"]
)
store = bridge.calculate(arguments)

for component in store:
    print(
        f"{component.name}: value={component.value}, "
        f"derivatives={component.derivatives}"
    )
