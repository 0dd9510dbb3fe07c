"""Output layout: where files go and whether this process writes them."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from . import constants
from .errors import OutputDirectoryError
from .parameters import ParameterGroup
from .topology import ProcessTopology

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OutputLayout:
    """Resolved output directory and file-output enablement."""

    output_dir: Path
    output_to_files: bool

    @property
    def param_file(self) -> Path:
        return self.output_dir / constants.PARAM_SNAPSHOT_NAME

    @property
    def walltime_file(self) -> Path:
        return self.output_dir / constants.WALLTIME_NAME


def ensure_directory(path: Path) -> Path:
    """Create ``path`` recursively, raising :class:`OutputDirectoryError` on failure."""

    target = Path(path)
    if target.is_dir():
        return target
    try:
        target.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise OutputDirectoryError(f"Creating directories failed: {target}") from exc
    return target


def setup_output(topology: ProcessTopology, params: ParameterGroup) -> OutputLayout:
    """Resolve the output layout and persist the parameter snapshot.

    ``output_dir`` is always read so that later stages never fall back to an
    implicit directory.  Only the output rank with ``output=true`` creates the
    directory and writes ``simulation.param``.
    """

    output_to_files = topology.is_output_rank and bool(params.get_default("output", True))
    output_dir = Path(str(params.get_default("output_dir", ".")))
    layout = OutputLayout(output_dir=output_dir, output_to_files=output_to_files)
    if output_to_files:
        ensure_directory(output_dir)
        params.write_param(layout.param_file)
        logger.debug("Output enabled in %s", output_dir)
    return layout


__all__ = ["OutputLayout", "ensure_directory", "setup_output"]
