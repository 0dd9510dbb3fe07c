"""Command line entry point for a simulation run."""
from __future__ import annotations

import sys
from typing import List, Optional

from .driver import FlowMain


def main(argv: Optional[List[str]] = None) -> None:
    """Run the driver pipeline and exit with its status."""

    args = sys.argv[1:] if argv is None else list(argv)
    sys.exit(FlowMain().execute(args))


if __name__ == "__main__":  # pragma: no cover - standard CLI entrypoint
    main()
