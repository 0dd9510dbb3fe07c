import io

import pytest

from flowsim.driver import FlowMain, load_framework, startup_banner
from flowsim.errors import ArgumentError


def _run(framework, *args):
    buf = io.StringIO()
    main = FlowMain(env={"OMP_NUM_THREADS": "1"}, stream=buf, framework=framework)
    status = main.execute(list(args))
    return main, status, buf.getvalue()


@pytest.fixture
def out_dir(tmp_path):
    return tmp_path / "out"


def test_stages_run_in_order(fakes, deck_file, out_dir):
    framework = fakes.Framework()
    main, status, text = _run(framework, str(deck_file), f"output_dir={out_dir}")
    assert status == 0
    assert framework.calls == [
        "load_case",
        "build_grid_and_props",
        "write_initial",
        "create_output_writer",
        "create_linear_solver",
        "create_simulator",
    ]
    assert framework.simulator.calls == 1
    assert "Using 1 threads." in text
    assert "This is flowsim" in text
    assert (out_dir / "simulation.param").is_file()
    assert (out_dir / "walltime.txt").is_file()
    assert "total_time=1.5" in (out_dir / "walltime.txt").read_text()
    assert (out_dir / "CASE1.PRT").is_file()
    assert framework.case.output_dir == out_dir


def test_init_only_from_deck_skips_run(fakes, deck_file, out_dir):
    framework = fakes.Framework(fakes.Deck(PRESSURE=200.0, SWAT=0.3, NOSIM=True))
    main, status, text = _run(framework, str(deck_file), f"output_dir={out_dir}")
    assert status == 0
    assert framework.simulator.calls == 0
    assert "Simulation turned off" in text
    assert not (out_dir / "walltime.txt").exists()
    assert main.state is not None


def test_nosim_parameter_overrides_deck(fakes, deck_file, out_dir):
    framework = fakes.Framework()
    _, status, _ = _run(framework, str(deck_file), f"output_dir={out_dir}", "nosim=true")
    assert status == 0
    assert framework.simulator.calls == 0


def test_output_interval_override(fakes, deck_file, out_dir):
    framework = fakes.Framework()
    _run(framework, str(deck_file), f"output_dir={out_dir}", "output_interval=3")
    assert framework.case.restart_write_interval == 3


def test_unused_parameters_are_reported(fakes, deck_file, out_dir):
    framework = fakes.Framework()
    _, status, text = _run(framework, str(deck_file), f"output_dir={out_dir}", "linear_solver_reducton=0.1")
    assert status == 0
    assert "Unused parameters" in text
    assert "linear_solver_reducton" in text


def test_two_positional_cases_fail(fakes, deck_file, tmp_path):
    other = tmp_path / "OTHER.DATA"
    other.write_text("OIL: true\n", encoding="utf-8")
    framework = fakes.Framework()
    _, status, text = _run(framework, str(deck_file), str(other))
    assert status == 1
    assert "Program threw an exception" in text
    assert "single input deck" in text
    assert framework.calls == []


def test_missing_case_fails(fakes, tmp_path):
    _, status, text = _run(fakes.Framework(), str(tmp_path / "NOPE"))
    assert status == 1
    assert "Cannot find input case" in text


def test_engine_failure_is_reported(fakes, deck_file, out_dir):
    framework = fakes.Framework(simulator=fakes.Simulator(error=RuntimeError("diverged")))
    main, status, text = _run(framework, str(deck_file), f"output_dir={out_dir}")
    assert status == 1
    assert "Simulation failed: diverged" in text
    assert not (out_dir / "walltime.txt").exists()
    assert main.logging.backend_names == ()
    assert "Simulation failed: diverged" in (out_dir / "CASE1.PRT").read_text()


def test_gravity_selection(fakes, deck_file, out_dir):
    framework = fakes.Framework()
    _run(framework, str(deck_file), f"output_dir={out_dir}")
    assert framework.gravity == pytest.approx(9.80665)
    assert framework.use_local_perm is True

    nograv = fakes.Framework(fakes.Deck(PRESSURE=200.0, SWAT=0.3, NOGRAV=True))
    _run(nograv, str(deck_file), f"output_dir={out_dir}", "gravity=3.0", "use_local_perm=false")
    assert nograv.gravity == 0.0
    assert nograv.use_local_perm is False

    custom = fakes.Framework()
    _run(custom, str(deck_file), f"output_dir={out_dir}", "gravity=3.5")
    assert custom.gravity == pytest.approx(3.5)


def test_output_disabled_skips_files(fakes, deck_file, out_dir):
    framework = fakes.Framework()
    main, status, _ = _run(framework, str(deck_file), f"output_dir={out_dir}", "output=false")
    assert status == 0
    assert "write_initial" not in framework.calls
    assert main.output_writer.enabled is False
    assert not (out_dir / "simulation.param").exists()
    assert not (out_dir / "walltime.txt").exists()


def test_output_ecl_false_keeps_param_file(fakes, deck_file, out_dir):
    framework = fakes.Framework()
    _run(framework, str(deck_file), f"output_dir={out_dir}", "output_ecl=false")
    assert "write_initial" not in framework.calls
    assert (out_dir / "simulation.param").is_file()


def test_deck_messages_reach_prt(fakes, deck_file, out_dir):
    from flowsim.interfaces import ParseMessage, SourceLocation
    from flowsim.logsetup import MessageType

    messages = [ParseMessage(MessageType.WARNING, "Odd keyword", SourceLocation("CASE1.DATA", 7))]
    framework = fakes.Framework(messages=messages)
    _run(framework, str(deck_file), f"output_dir={out_dir}")
    prt = (out_dir / "CASE1.PRT").read_text()
    assert "Odd keyword" in prt
    assert "CASE1.DATA" in prt


def test_non_output_rank_is_quiet(fakes, deck_file, out_dir):
    class Comm:
        def Get_rank(self):
            return 1

        def Get_size(self):
            return 2

        def Barrier(self):
            pass

    buf = io.StringIO()
    framework = fakes.Framework()
    status = FlowMain(comm=Comm(), env={"OMP_NUM_THREADS": "1"}, stream=buf, framework=framework).execute(
        [str(deck_file), f"output_dir={out_dir}"]
    )
    assert status == 0
    assert "This is flowsim" not in buf.getvalue()
    assert "Using 1 threads on rank 1." in buf.getvalue()
    assert "write_initial" not in framework.calls
    assert not (out_dir / "simulation.param").exists()


def test_load_framework():
    from flowsim.reference import ReferenceFramework

    assert isinstance(load_framework("flowsim.reference:ReferenceFramework"), ReferenceFramework)
    with pytest.raises(ArgumentError):
        load_framework("flowsim.nowhere:Thing")
    with pytest.raises(ArgumentError):
        load_framework("flowsim.reference:Missing")


def test_banner_is_boxed():
    lines = startup_banner("1.2.3").splitlines()
    assert lines[0] == "*" * 70
    assert all(len(line) == 70 for line in lines if line)
    assert any("version 1.2.3" in line for line in lines)


class _RecordingComm:
    """Rank 0 of a two-process job; notes whether the fragment still exists at the barrier."""

    def __init__(self, fragment):
        self.fragment = fragment
        self.barriers = []

    def Get_rank(self):
        return 0

    def Get_size(self):
        return 2

    def Barrier(self):
        self.barriers.append(self.fragment.exists())


@pytest.mark.parametrize("extra", [[], ["nosim=true"]])
def test_output_rank_merges_fragments_after_barrier(fakes, deck_file, out_dir, extra):
    out_dir.mkdir(parents=True)
    fragment = out_dir / "CASE1.1.PRT"
    fragment.write_text("rank one says hello\n", encoding="utf-8")
    comm = _RecordingComm(fragment)
    framework = fakes.Framework()
    main = FlowMain(comm=comm, env={"OMP_NUM_THREADS": "1"}, stream=io.StringIO(), framework=framework)

    status = main.execute([str(deck_file), f"output_dir={out_dir}", *extra])

    assert status == 0
    assert comm.barriers == [True]
    assert main.merged_fragments == 1
    assert not fragment.exists()
    prt = (out_dir / "CASE1.PRT").read_text(encoding="utf-8")
    assert "Output written by rank 1" in prt
    assert "rank one says hello" in prt
    assert (out_dir / "walltime.txt").exists() == (not extra)
    assert framework.simulator.calls == (0 if extra else 1)


def test_non_output_rank_waits_but_does_not_merge(fakes, deck_file, out_dir):
    class Comm(_RecordingComm):
        def Get_rank(self):
            return 1

    out_dir.mkdir(parents=True)
    fragment = out_dir / "CASE1.2.PRT"
    comm = Comm(fragment)
    main = FlowMain(comm=comm, env={"OMP_NUM_THREADS": "1"}, stream=io.StringIO(), framework=fakes.Framework())
    assert main.execute([str(deck_file), f"output_dir={out_dir}"]) == 0
    assert comm.barriers == [False]
    assert main.merged_fragments == 0


def test_driver_annotations_use_collaborator_protocols():
    import typing

    from flowsim import interfaces

    hints = typing.get_type_hints(load_framework)
    assert hints["return"] is interfaces.SimulationFramework
