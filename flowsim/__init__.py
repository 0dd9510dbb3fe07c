"""Driver pipeline for distributed reservoir simulation runs."""
__version__ = "0.3.0"

from . import constants
from .errors import FlowSimError

__all__ = ["constants", "FlowSimError", "__version__"]
