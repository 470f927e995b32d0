from pathlib import Path

import pytest
import torch

from torch_mod.config import BridgeConfig


def test_from_dict_original_keywords() -> None:
    config = BridgeConfig.from_dict(
        {"MODULE_FILE": "model.pt", "NUM_OUTPUT": "2", "ARG": "d1, d2"}
    )
    assert config.module_file == Path("model.pt")
    assert config.num_output == 2
    assert config.args == ["d1", "d2"]
    assert config.n_args == 2
    assert config.model_dtype is None
    assert config.device is None


def test_from_dict_lowercase_and_options() -> None:
    config = BridgeConfig.from_dict(
        {
            "module_file": Path("cv.pt"),
            "num_output": 1,
            "model_dtype": "float64",
            "device": "cpu",
        }
    )
    assert config.args == []
    assert config.model_dtype == torch.float64
    assert config.device == torch.device("cpu")


def test_args_list_is_copied() -> None:
    args = ["a", "b"]
    config = BridgeConfig("model.pt", 1, args)
    args.append("c")
    assert config.args == ["a", "b"]


def test_from_dict_missing_keywords() -> None:
    with pytest.raises(ValueError, match="Missing required keywords: MODULE_FILE"):
        BridgeConfig.from_dict({"NUM_OUTPUT": 1})


def test_from_dict_unknown_keyword() -> None:
    with pytest.raises(ValueError, match="Unknown keyword PERIODIC"):
        BridgeConfig.from_dict({"MODULE_FILE": "m.pt", "NUM_OUTPUT": 1, "PERIODIC": "NO"})


@pytest.mark.parametrize("num_output", [0, -3, "0"])
def test_non_positive_num_output(num_output) -> None:
    with pytest.raises(ValueError, match="positive integer"):
        BridgeConfig("model.pt", num_output)


def test_non_integer_num_output() -> None:
    with pytest.raises(ValueError, match="must be an integer"):
        BridgeConfig("model.pt", "two")


def test_empty_module_file() -> None:
    with pytest.raises(ValueError, match="MODULE_FILE is required"):
        BridgeConfig("", 1)


@pytest.mark.parametrize("name", ["Tensor", "float128x"])
def test_rejects_unknown_model_dtype(name: str) -> None:
    with pytest.raises(ValueError, match="Unknown model dtype"):
        BridgeConfig("model.pt", 1, model_dtype=name)
