"""Process topology discovery (rank, size, default thread count)."""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from . import constants


def _import_mpi() -> Any:
    """Return the mpi4py ``MPI`` module, or ``None`` when mpi4py is not installed.

    Only a missing package is tolerated; initialisation errors propagate.
    """

    try:
        from mpi4py import MPI as mpi  # type: ignore
    except ImportError:
        return None
    return mpi


MPI = _import_mpi()

logger = logging.getLogger(__name__)


def _safe_int(value: Any, fallback: int) -> int:
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        return fallback
    return parsed if parsed > 0 else fallback


def thread_override_env(env: Optional[Mapping[str, str]] = None) -> Optional[int]:
    """Return the positive thread count requested via ``OMP_NUM_THREADS``, if any."""

    env_map = os.environ if env is None else env
    raw = env_map.get(constants.THREAD_ENV_VAR)
    if raw is None:
        return None
    try:
        value = int(str(raw).strip())
    except ValueError:
        logger.warning("Ignoring non-integer %s=%r", constants.THREAD_ENV_VAR, raw)
        return None
    return value if value > 0 else None


def default_thread_count(
    env: Optional[Mapping[str, str]] = None,
    cpu_count: Optional[int] = None,
) -> int:
    """Return the thread hint for numeric kernels.

    An explicit environment override wins; otherwise the count is the number
    of available cores capped at :data:`~flowsim.constants.MAX_DEFAULT_THREADS`.
    """

    override = thread_override_env(env)
    if override is not None:
        return override
    cores = _safe_int(os.cpu_count() if cpu_count is None else cpu_count, 1)
    return min(constants.MAX_DEFAULT_THREADS, cores)


@dataclass(frozen=True)
class ProcessTopology:
    """Rank layout of the current process."""

    rank: int = 0
    size: int = 1
    thread_count: int = 1

    def __post_init__(self) -> None:
        if self.size < 1:
            raise ValueError(f"size must be positive, got {self.size}")
        if not 0 <= self.rank < self.size:
            raise ValueError(f"rank {self.rank} outside [0, {self.size})")
        if self.thread_count < 1:
            raise ValueError(f"thread_count must be positive, got {self.thread_count}")

    @property
    def is_output_rank(self) -> bool:
        return self.rank == 0

    @property
    def must_distribute(self) -> bool:
        return self.size > 1


def world_comm(comm: Any = None) -> Any:
    """Return ``comm``, falling back to ``MPI.COMM_WORLD`` when mpi4py is available."""

    if comm is None and MPI is not None:
        return MPI.COMM_WORLD
    return comm


def discover_topology(
    comm: Any = None,
    *,
    env: Optional[Mapping[str, str]] = None,
    cpu_count: Optional[int] = None,
) -> ProcessTopology:
    """Build the topology from ``comm`` or ``MPI.COMM_WORLD``.

    Without a communicator and without mpi4py the process runs as rank 0 of
    a single-process job.
    """

    comm = world_comm(comm)
    if comm is None:
        rank, size = 0, 1
    else:
        rank, size = int(comm.Get_rank()), int(comm.Get_size())
    return ProcessTopology(
        rank=rank,
        size=size,
        thread_count=default_thread_count(env, cpu_count),
    )


def apply_thread_hint(topology: ProcessTopology, env: Optional[dict] = None) -> int:
    """Export the thread hint unless the environment already sets one."""

    env_map = os.environ if env is None else env
    env_map.setdefault(constants.THREAD_ENV_VAR, str(topology.thread_count))
    return _safe_int(env_map.get(constants.THREAD_ENV_VAR), topology.thread_count)


__all__ = [
    "ProcessTopology",
    "apply_thread_hint",
    "default_thread_count",
    "discover_topology",
    "thread_override_env",
    "world_comm",
]
