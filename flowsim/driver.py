"""Pipeline driver sequencing every setup stage of a simulation run.

The stages run strictly in order and each one depends on all of its
predecessors:

#. process topology and thread hint
#. configuration (parameters plus exactly one input case)
#. output layout and ``simulation.param``
#. framework and case construction (``nosim`` / ``output_interval``)
#. logging backends
#. deck message extraction
#. grid and property models (gravity, ``use_local_perm``)
#. saturation-function diagnostics
#. reservoir state initialisation
#. initial output, output writer, linear solver, engine
#. run (skipped in init-only mode) and ``walltime.txt``
#. backend teardown and merge of per-rank log fragments

Any exception aborts the remaining stages.  :meth:`FlowMain.execute` is the
single place where failures are caught and turned into an exit status.
"""
from __future__ import annotations

import importlib
import logging
import sys
from pathlib import Path
from typing import Any, Mapping, Optional, Sequence, TextIO

from . import __version__, constants
from .config import setup_parameters
from .diagnostics import run_diagnostics
from .errors import ArgumentError, RuntimeSimulationError
from .initialization import InitStrategy, setup_state
from .interfaces import GridAndProps, OutputWriter, SimulationCase, SimulationFramework, Simulator
from .logsetup import (
    STREAM_BACKEND,
    LoggingContext,
    MessageType,
    forward_messages,
    log_base_name,
    setup_logging,
)
from .merge import merge_parallel_log_files
from .output import OutputLayout, setup_output
from .parameters import ParameterGroup
from .report import SimulatorReport, SimulatorTimer
from .state import ReservoirState
from .topology import ProcessTopology, apply_thread_hint, discover_topology, world_comm

logger = logging.getLogger(__name__)

_LINE = "*" * 70


def startup_banner(version: str = __version__) -> str:
    """Return the boxed banner printed by the output rank."""

    def centred(text: str) -> str:
        return "*" + text.center(68) + "*\n"

    return (
        f"{_LINE}\n"
        + centred("")
        + centred(f"This is flowsim (version {version})")
        + centred("")
        + centred("flowsim drives reservoir simulation cases through")
        + centred("a fixed sequence of setup stages.")
        + centred("")
        + f"{_LINE}\n\n"
    )


def load_framework(spec: str) -> SimulationFramework:
    """Import ``module:attribute`` and instantiate it when it is a class."""

    module_name, _, attr = spec.partition(":")
    try:
        module = importlib.import_module(module_name)
        target = getattr(module, attr)
    except (ImportError, AttributeError) as exc:
        raise ArgumentError(f"Cannot load simulation framework '{spec}': {exc}") from exc
    return target() if isinstance(target, type) else target


class FlowMain:
    """Run one simulation case in this process.

    Parameters
    ----------
    comm:
        Communicator exposing ``Get_rank``/``Get_size``; defaults to
        ``MPI.COMM_WORLD`` when mpi4py is installed.
    env:
        Environment mapping used for the thread hint; defaults to
        ``os.environ``.
    stream:
        Console stream; defaults to ``sys.stdout`` at call time.
    framework:
        Collaborator factory overriding the ``framework`` option.
    """

    def __init__(
        self,
        *,
        comm: Any = None,
        env: Optional[Mapping[str, str]] = None,
        stream: Optional[TextIO] = None,
        framework: Optional[SimulationFramework] = None,
    ) -> None:
        self.comm = comm
        self.env = env
        self._stream = stream
        self._framework_override = framework

        self.topology: Optional[ProcessTopology] = None
        self.params: Optional[ParameterGroup] = None
        self.layout: Optional[OutputLayout] = None
        self.framework: Optional[SimulationFramework] = None
        self.case: Optional[SimulationCase] = None
        self.logging: Optional[LoggingContext] = None
        self.log_base: Optional[str] = None
        self.grid_props: Optional[GridAndProps] = None
        self.diagnostics: Any = None
        self.state: Optional[ReservoirState] = None
        self.strategy: Optional[InitStrategy] = None
        self.output_writer: Optional[OutputWriter] = None
        self.linear_solver: Any = None
        self.simulator: Optional[Simulator] = None
        self.report: Optional[SimulatorReport] = None
        self.merged_fragments = 0

    @property
    def out(self) -> TextIO:
        return self._stream if self._stream is not None else sys.stdout

    @property
    def output_cout(self) -> bool:
        return self.topology is not None and self.topology.is_output_rank

    # ===========================================================================
    # Entry point
    # ===========================================================================

    def execute(self, argv: Sequence[str]) -> int:
        """Run every stage and return the process exit status."""

        try:
            self.setup_parallelism()
            self.print_startup_message()
            self.setup_parameters(argv)
            self.setup_output()
            self.setup_case()
            self.setup_logging()
            self.extract_messages()
            self.setup_grid_and_props()
            self.run_diagnostics()
            self.setup_state()
            self.write_init()
            self.setup_output_writer()
            self.setup_linear_solver()
            self.create_simulator()
            status = self.run_simulator()
            self.merge_parallel_log_files()
            return status
        except Exception as exc:
            message = f"Program threw an exception: {exc}"
            if self.topology is None or self.topology.is_output_rank:
                # Failures before logging is live still reach the console.
                if self.logging is not None and self.logging.has_backend(STREAM_BACKEND):
                    self.logging.add_message(MessageType.ERROR, message)
                else:
                    self.out.write(message + "\n")
                    self.out.flush()
            logger.debug("Pipeline aborted", exc_info=True)
            return constants.EXIT_FAILURE
        finally:
            if self.logging is not None:
                self.logging.remove_all_backends()

    # ===========================================================================
    # Stages
    # ===========================================================================

    def setup_parallelism(self) -> None:
        self.comm = world_comm(self.comm)
        self.topology = discover_topology(self.comm, env=self.env)
        threads = apply_thread_hint(self.topology, self.env)
        if not self.topology.must_distribute:
            self.out.write(f"Using {threads} threads.\n")
        else:
            self.out.write(f"Using {threads} threads on rank {self.topology.rank}.\n")

    def print_startup_message(self) -> None:
        if self.output_cout:
            self.out.write(startup_banner())

    def setup_parameters(self, argv: Sequence[str]) -> None:
        self.params = setup_parameters(argv)

    def setup_output(self) -> None:
        self.layout = setup_output(self.topology, self.params)

    def setup_case(self) -> None:
        params = self.params
        spec = str(params.get_default("framework", constants.DEFAULT_FRAMEWORK))
        self.framework = self._framework_override or load_framework(spec)
        deck_filename = Path(str(params.get("deck_filename")))
        self.case = self.framework.load_case(deck_filename, params)
        self.case.set_output_dir(self.layout.output_dir)
        if params.has("nosim"):
            self.case.override_nosim(params.get_default("nosim", False))
        if params.has("output_interval"):
            self.case.override_restart_write_interval(params.get_default("output_interval", 1))

    def setup_logging(self) -> None:
        deck_filename = self.params.get("deck_filename")
        self.log_base = log_base_name(deck_filename)
        self.logging = setup_logging(
            deck_filename,
            self.layout.output_dir,
            self.topology,
            self.case.message_limits,
            stream=self._stream,
        )

    def extract_messages(self) -> int:
        if not self.output_cout:
            return 0
        return forward_messages(self.logging, self.case.messages())

    def setup_grid_and_props(self) -> None:
        params = self.params
        if self.case.deck.has_keyword("NOGRAV"):
            gravity = 0.0
        else:
            gravity = float(params.get_default("gravity", constants.GRAVITY))
        use_local_perm = bool(params.get_default("use_local_perm", True))
        self.grid_props = self.framework.build_grid_and_props(
            self.case, params, gravity=gravity, use_local_perm=use_local_perm
        )

    def run_diagnostics(self) -> None:
        self.diagnostics = run_diagnostics(self.topology, self.grid_props)

    def setup_state(self) -> None:
        self.state, self.strategy = setup_state(self.params, self.case.deck, self.grid_props)
        logger.debug("Initial state built with strategy %s", self.strategy.value)

    def write_init(self) -> bool:
        output = bool(self.params.get_default("output", True))
        output_ecl = bool(self.params.get_default("output_ecl", True))
        if output and output_ecl and self.output_cout:
            self.framework.write_initial(self.case, self.grid_props, self.layout.output_dir)
            return True
        return False

    def setup_output_writer(self) -> None:
        self.output_writer = self.framework.create_output_writer(
            self.case,
            self.grid_props,
            self.params,
            self.layout.output_dir,
            self.layout.output_to_files,
        )

    def setup_linear_solver(self) -> None:
        self.linear_solver = self.framework.create_linear_solver(self.grid_props, self.params)

    def create_simulator(self) -> None:
        self.simulator = self.framework.create_simulator(
            self.case,
            self.grid_props,
            self.linear_solver,
            self.output_writer,
            self.params,
            self.topology,
        )

    def run_simulator(self) -> int:
        timer = SimulatorTimer.from_time_map(self.case.time_map, self.case.restart_step)
        if self.case.init_only:
            if self.output_cout:
                self.out.write("\n\n================ Simulation turned off ===============\n")
                self.out.flush()
            return constants.EXIT_SUCCESS

        if self.output_cout:
            logger.info("\n\n================ Starting main simulation loop ===============\n")
        try:
            self.report = self.simulator.run(timer, self.state)
        except Exception as exc:
            raise RuntimeSimulationError(f"Simulation failed: {exc}") from exc

        if self.output_cout:
            logger.info(
                "\n\n================    End of simulation     ===============\n\n%s",
                self.report.report_fully_implicit(),
            )
            if self.params.any_unused():
                self.out.write("--------------------   Unused parameters:   --------------------\n")
                self.params.display_usage(self.out)
                self.out.write("----------------------------------------------------------------\n")
                self.out.flush()

        if self.layout.output_to_files:
            with self.layout.walltime_file.open("w", encoding="utf-8") as fh:
                self.report.report_param(fh)
        return constants.EXIT_SUCCESS

    def merge_parallel_log_files(self) -> None:
        if self.logging is not None:
            self.logging.remove_all_backends()
        if self.topology.must_distribute and self.comm is not None:
            # Every rank closes its fragments before the output rank reads them.
            self.comm.Barrier()
        self.merged_fragments, _ = merge_parallel_log_files(
            self.layout.output_dir, self.log_base, self.topology
        )


__all__ = ["FlowMain", "load_framework", "startup_banner"]
