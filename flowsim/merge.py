"""Merge per-rank log fragments into the canonical log files.

Non-zero ranks of a distributed run write ``<base>.<rank>.PRT`` and
``.<base>.<rank>.DEBUG``.  After every backend is closed, the output rank
appends each non-empty fragment to ``<base>.PRT`` / ``.<base>.DEBUG`` in
ascending rank order and removes it.  Because fragments are removed once
handled, running the merge again finds nothing to do.
"""
from __future__ import annotations

import logging
import re
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Tuple

from . import constants
from .topology import ProcessTopology

logger = logging.getLogger(__name__)

BANNER = "======================================================="
END_BANNER = "======================== end output ====================="


@dataclass(frozen=True)
class LogFragment:
    kind: str
    rank: int
    path: Path


class ParallelFileMerger:
    """Fold rank-suffixed log fragments of ``base_name`` found in ``output_dir``.

    Fragment names carry no case marker, so ``CASE1.2.PRT`` written by a
    sibling case ``CASE1.2.DATA`` looks like rank 2 of ``CASE1``.  Passing
    ``num_ranks`` restricts the pass to ranks ``1 .. num_ranks - 1``; cases
    whose stems end in ``.<digits>`` should still not share an output
    directory with a distributed run of the shorter stem.
    """

    def __init__(self, output_dir: Path, base_name: str, num_ranks: Optional[int] = None) -> None:
        self.output_dir = Path(output_dir)
        self.base_name = base_name
        self.num_ranks = num_ranks
        stem = re.escape(base_name)
        self._patterns = {
            "debug": re.compile(rf"^\.{stem}\.(\d+){re.escape(constants.DEBUG_SUFFIX)}$"),
            "prt": re.compile(rf"^{stem}\.(\d+){re.escape(constants.PRT_SUFFIX)}$"),
        }
        self.targets = {
            "debug": self.output_dir / f".{base_name}{constants.DEBUG_SUFFIX}",
            "prt": self.output_dir / f"{base_name}{constants.PRT_SUFFIX}",
        }

    def fragments(self) -> List[LogFragment]:
        """Return the fragments present on disk, sorted by kind then rank."""

        found: List[LogFragment] = []
        if not self.output_dir.is_dir():
            return found
        for path in self.output_dir.iterdir():
            if not path.is_file():
                continue
            for kind, pattern in self._patterns.items():
                match = pattern.match(path.name)
                if match is not None:
                    rank = int(match.group(1))
                    if rank == 0 or (self.num_ranks is not None and rank >= self.num_ranks):
                        break
                    found.append(LogFragment(kind, rank, path))
                    break
        found.sort(key=lambda frag: (frag.kind, frag.rank))
        return found

    def merge(self) -> int:
        """Append and remove every fragment; return the number appended."""

        appended = 0
        for fragment in self.fragments():
            if self._append(fragment):
                appended += 1
            fragment.path.unlink()
        return appended

    def _append(self, fragment: LogFragment) -> bool:
        if fragment.path.stat().st_size == 0:
            return False
        logger.warning(
            "There has been logging to file %s by process %d", fragment.path, fragment.rank
        )
        target = self.targets[fragment.kind]
        with target.open("a", encoding="utf-8") as out, fragment.path.open("r", encoding="utf-8") as src:
            out.write(f"\n\n{BANNER}\n")
            out.write(f"Output written by rank {fragment.rank} to file {fragment.path}:\n\n")
            shutil.copyfileobj(src, out)
            out.write(f"\n\n{END_BANNER}\n")
        return True


def merge_parallel_log_files(
    output_dir: Path,
    base_name: str,
    topology: ProcessTopology,
) -> Tuple[int, bool]:
    """Run the merge pass on the output rank of a distributed run.

    Returns ``(fragments_appended, ran)``; ``ran`` is false on every other
    rank and for single-process runs.
    """

    if not topology.is_output_rank or not topology.must_distribute:
        return 0, False
    return ParallelFileMerger(output_dir, base_name, topology.size).merge(), True


__all__ = [
    "BANNER",
    "END_BANNER",
    "LogFragment",
    "ParallelFileMerger",
    "merge_parallel_log_files",
]
