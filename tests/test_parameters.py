from pathlib import Path

import pytest

from flowsim.errors import ArgumentError
from flowsim.parameters import (
    ParameterGroup,
    parse_parameter_value,
    read_parameter_file,
    split_assignment,
)


@pytest.mark.parametrize(
    "raw, expected",
    [("true", True), ("False", False), ("3", 3), ("2.5", 2.5), ("out/dir", "out/dir")],
)
def test_parse_parameter_value(raw, expected):
    assert parse_parameter_value(raw) == expected


def test_split_assignment_strips_dashes():
    assert split_assignment("--output_dir=out") == ("output_dir", "out")
    with pytest.raises(ArgumentError):
        split_assignment("=3")


def test_lookups_mark_parameters_used():
    params = ParameterGroup({"a": 1, "b": 2, "c": 3})
    assert params["a"] == 1
    assert params.get("b") == 2
    assert "c" in params
    assert params.unused() == ["c"]
    assert params.any_unused()


def test_get_without_default_raises():
    with pytest.raises(ArgumentError):
        ParameterGroup().get("missing")


def test_get_default_coerces_to_default_type():
    params = ParameterGroup({"output": "false", "gravity": "9.0", "n": "4"})
    assert params.get_default("output", True) is False
    assert params.get_default("gravity", 1.0) == pytest.approx(9.0)
    assert params.get_default("n", 1) == 4
    assert params.get_default("absent", 5) == 5
    with pytest.raises(ArgumentError):
        ParameterGroup({"n": "many"}).get_default("n", 1)


def test_get_default_boolean_words():
    params = ParameterGroup({"a": "Yes", "b": "off", "c": 1, "d": 0, "e": 2, "f": "maybe"})
    assert params.get_default("a", False) is True
    assert params.get_default("b", True) is False
    assert params.get_default("c", False) is True
    assert params.get_default("d", True) is False
    for name in ("e", "f"):
        with pytest.raises(ArgumentError):
            params.get_default(name, False)


def test_frozen_group_rejects_inserts():
    params = ParameterGroup({"a": 1}).freeze()
    with pytest.raises(ArgumentError):
        params.insert("b", 2)


def test_peek_does_not_mark_used():
    params = ParameterGroup({"a": 1})
    assert params.peek(["a", "b"]) == {"a": 1}
    assert params.unused() == ["a"]


def test_param_file_round_trip(tmp_path: Path):
    params = ParameterGroup({"output": True, "output_dir": "out", "gravity": 9.5, "steps": 3})
    path = params.write_param(tmp_path / "simulation.param")
    assert read_parameter_file(path) == {"output": True, "output_dir": "out", "gravity": 9.5, "steps": 3}


def test_yaml_parameter_file_is_flattened(tmp_path: Path):
    path = tmp_path / "run.yaml"
    path.write_text("output_dir: results\nlinear_solver:\n  reduction: 0.01\n", encoding="utf-8")
    assert read_parameter_file(path) == {"output_dir": "results", "linear_solver/reduction": 0.01}


def test_display_usage_lists_unused(tmp_path: Path):
    import io

    params = ParameterGroup({"used": 1, "typo_param": 2})
    params.get("used")
    buf = io.StringIO()
    params.display_usage(buf)
    assert "typo_param" in buf.getvalue()
    assert "used =" not in buf.getvalue()
