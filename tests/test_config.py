import os
from pathlib import Path

import pytest

from flowsim.config import NO_DECK_MESSAGE, setup_parameters, simulation_case_name, split_arguments
from flowsim.errors import ArgumentError, DeckResolutionError


def test_case_name_as_given(deck_file: Path):
    assert simulation_case_name(str(deck_file)) == deck_file


def test_case_name_adds_data_extension(tmp_path: Path):
    (tmp_path / "CASE1.DATA").write_text("OIL: true\n", encoding="utf-8")
    resolved = simulation_case_name(str(tmp_path / "CASE1"))
    assert resolved == tmp_path / "CASE1.DATA"


def test_case_name_lowercase_extension_first(tmp_path: Path):
    (tmp_path / "CASE2.data").write_text("OIL: true\n", encoding="utf-8")
    assert simulation_case_name(str(tmp_path / "CASE2")) == tmp_path / "CASE2.data"


def test_case_name_replaces_existing_extension(tmp_path: Path):
    (tmp_path / "CASE3.DATA").write_text("OIL: true\n", encoding="utf-8")
    assert simulation_case_name(str(tmp_path / "CASE3.txt")) == tmp_path / "CASE3.DATA"


@pytest.mark.skipif(not hasattr(os, "symlink"), reason="symlinks unavailable")
def test_case_name_accepts_symlink_to_file(tmp_path: Path, deck_file: Path):
    link = tmp_path / "LINKED.DATA"
    link.symlink_to(deck_file)
    assert simulation_case_name(str(link)) == link


def test_case_name_rejects_directory(tmp_path: Path):
    (tmp_path / "DIRCASE").mkdir()
    with pytest.raises(DeckResolutionError, match="Cannot find input case"):
        simulation_case_name(str(tmp_path / "DIRCASE"))


def test_missing_case_raises(tmp_path: Path):
    with pytest.raises(DeckResolutionError):
        simulation_case_name(str(tmp_path / "NOPE"))


def test_single_positional_becomes_deck_filename(deck_file: Path):
    params = setup_parameters([str(deck_file), "output=false"])
    assert params.frozen
    assert params.get("deck_filename") == str(deck_file)
    assert params.get("output") is False


def test_more_than_one_positional_is_rejected(deck_file: Path):
    with pytest.raises(ArgumentError, match="single input deck"):
        setup_parameters([str(deck_file), str(deck_file)])


def test_no_deck_at_all():
    with pytest.raises(ArgumentError) as excinfo:
        setup_parameters(["output=false"])
    assert str(excinfo.value) == NO_DECK_MESSAGE


def test_deck_filename_parameter_is_accepted(deck_file: Path):
    params = setup_parameters([f"deck_filename={deck_file}"])
    assert params.get("deck_filename") == str(deck_file)


def test_param_file_merges_with_cli_pairs(tmp_path: Path, deck_file: Path):
    param_file = tmp_path / "run.param"
    param_file.write_text(
        f"# run settings\ndeck_filename={deck_file}\noutput_dir=from_file\ngravity=5.0\n",
        encoding="utf-8",
    )
    params = setup_parameters([str(param_file), "gravity=7.5"])
    assert params.get("output_dir") == "from_file"
    assert params.get("gravity") == pytest.approx(7.5)


def test_param_file_option(tmp_path: Path, deck_file: Path):
    param_file = tmp_path / "opts.yaml"
    param_file.write_text("output: false\n", encoding="utf-8")
    params = setup_parameters(["--param-file", str(param_file), str(deck_file)])
    assert params.get("output") is False


def test_double_dash_pairs(deck_file: Path):
    params, positional = split_arguments([str(deck_file), "--output_dir=out"])
    assert positional == [str(deck_file)]
    assert params.get("output_dir") == "out"


def test_invalid_option_value_is_argument_error(deck_file: Path):
    with pytest.raises(ArgumentError, match="Invalid run parameters"):
        setup_parameters([str(deck_file), "init_saturation=1.5"])


def test_unknown_flag_is_argument_error(deck_file: Path):
    with pytest.raises(ArgumentError):
        setup_parameters([str(deck_file), "--bogus"])


def test_tokens_after_param_file_option(tmp_path: Path, deck_file: Path):
    param_file = tmp_path / "run.param"
    param_file.write_text("output_interval=2\n", encoding="utf-8")
    out = tmp_path / "out"
    params = setup_parameters([str(deck_file), "--param-file", str(param_file), f"output_dir={out}"])
    assert params.get("output_dir") == str(out)
    assert params.get("output_interval") == 2
    assert params.get("deck_filename") == str(deck_file)


def test_case_after_pairs_and_param_file(tmp_path: Path, deck_file: Path):
    param_file = tmp_path / "run.param"
    param_file.write_text("nosim=true\n", encoding="utf-8")
    params = setup_parameters(["output=false", "--param-file", str(param_file), str(deck_file), "gravity=1.5"])
    assert params.get("deck_filename") == str(deck_file)
    assert params.get("nosim") is True
    assert params.get("gravity") == 1.5


def test_boolean_words_agree_with_validation(deck_file: Path):
    params = setup_parameters([str(deck_file), "nosim=yes", "output=off"])
    assert params.get_default("nosim", False) is True
    assert params.get_default("output", True) is False
