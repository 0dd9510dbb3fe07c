"""End-to-end runs of the driver with the reference collaborators."""

import io
import textwrap

import numpy as np
import pandas as pd
import pytest

from flowsim.driver import FlowMain
from flowsim.errors import InvalidDeckStateError
from flowsim.io.writer import read_metadata
from flowsim.reference.deck import load_deck

RESTART_DECK = """\
TITLE: Three layer water flood
OIL: true
WATER: true
DIMENS: [1, 1, 3]
DZ: 5.0
TOPS: 1000.0
PORO: 0.25
SWOF:
  - [0.2, 0.0, 1.0, 2.0]
  - [0.5, 0.3, 0.4, 0.5]
  - [1.0, 1.0, 0.0, 0.0]
PRESSURE: 200.0
SWAT: 0.3
TSTEP: [1.0, 2.0]
WELSPECS: [PROD]
"""

EQUIL_DECK = """\
OIL: true
WATER: true
DIMENS: [1, 1, 3]
DZ: 5.0
TOPS: 1000.0
SWOF:
  - [0.2, 0.0, 1.0, 2.0]
  - [0.5, 0.3, 0.4, 0.5]
  - [1.0, 1.0, 0.0, 0.0]
EQUIL:
  - [1005.0, 200.0, 1010.0]
TSTEP: [1.0]
"""


def _write(tmp_path, text, name="CASE.DATA"):
    path = tmp_path / name
    path.write_text(textwrap.dedent(text), encoding="utf-8")
    return path


def _run(*args):
    buf = io.StringIO()
    main = FlowMain(env={"OMP_NUM_THREADS": "1"}, stream=buf)
    return main, main.execute([str(a) for a in args]), buf.getvalue()


def test_full_run_writes_every_artifact(tmp_path):
    deck = _write(tmp_path, RESTART_DECK)
    out = tmp_path / "out"
    main, status, text = _run(deck, f"output_dir={out}")
    assert status == 0, text

    for name in ("CASE.PRT", ".CASE.DEBUG", "CASE.INIT.parquet", "CASE.X0001.parquet",
                 "CASE.X0002.parquet", "simulation.param", "walltime.txt"):
        assert (out / name).is_file(), name

    assert "In file" in text
    assert "Unsupported keyword WELSPECS" in text
    prt = (out / "CASE.PRT").read_text()
    assert "Case title: Three layer water flood" in prt
    assert "Saturation Functions Diagnostics" in prt
    assert "Error summary:" in prt

    restart = pd.read_parquet(out / "CASE.X0002.parquet")
    assert list(restart["cell"]) == [0, 1, 2]
    np.testing.assert_allclose(restart["swater"], 0.3)
    np.testing.assert_allclose(restart["soil"], 0.7)
    np.testing.assert_allclose(restart["pressure"], 200.0e5)
    assert read_metadata(out / "CASE.X0002.parquet")["report_step"] == 2

    init = pd.read_parquet(out / "CASE.INIT.parquet")
    np.testing.assert_allclose(init["depth"], [1002.5, 1007.5, 1012.5])
    np.testing.assert_allclose(init["pore_volume"], 0.25 * 5.0)
    meta = read_metadata(out / "CASE.INIT.parquet")
    assert meta["gravity"] == pytest.approx(9.80665)
    assert meta["units"]["depth"] == "m"


def test_equilibrated_run(tmp_path):
    deck = _write(tmp_path, EQUIL_DECK)
    out = tmp_path / "out"
    main, status, text = _run(deck, f"output_dir={out}", "output_interval=1")
    assert status == 0, text
    sw = main.state.saturation[:, main.grid_props.phase_usage.pos("water")]
    assert sw[2] == pytest.approx(1.0)
    assert 0.2 <= sw[0] < 1.0
    assert main.state.pressure[0] < main.state.pressure[2]


def test_init_only_deck(tmp_path):
    deck = _write(tmp_path, RESTART_DECK + "NOSIM: true\n")
    out = tmp_path / "out"
    _, status, text = _run(deck, f"output_dir={out}")
    assert status == 0
    assert "Simulation turned off" in text
    assert (out / "CASE.INIT.parquet").is_file()
    assert not (out / "CASE.X0001.parquet").exists()
    assert not (out / "walltime.txt").exists()


def test_missing_pressure_is_fatal(tmp_path):
    deck = _write(tmp_path, "OIL: true\nWATER: true\nSWAT: 0.3\n")
    out = tmp_path / "out"
    _, status, text = _run(deck, f"output_dir={out}")
    assert status == 1
    assert "Program threw an exception" in text
    assert "PRESSURE" in text


def test_case_resolved_without_extension(tmp_path):
    _write(tmp_path, RESTART_DECK)
    out = tmp_path / "out"
    _, status, _ = _run(tmp_path / "CASE", f"output_dir={out}", "nosim=true")
    assert status == 0
    assert (out / "CASE.PRT").is_file()


def test_load_deck_rejects_bad_yaml(tmp_path):
    path = _write(tmp_path, "OIL: [unclosed\n")
    with pytest.raises(InvalidDeckStateError):
        load_deck(path)


def test_load_deck_reports_locations(tmp_path):
    path = _write(tmp_path, "OIL: true\nFOO: 1\n")
    deck, messages = load_deck(path)
    assert deck.has_keyword("OIL")
    assert not deck.has_keyword("GAS")
    warning = [m for m in messages if m.location is not None][0]
    assert warning.location.lineno == 2
    assert "FOO" in warning.text
