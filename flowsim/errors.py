"""Custom exceptions for the :mod:`flowsim` package."""
from __future__ import annotations


class FlowSimError(Exception):
    """Base exception for simulation driver errors."""


class ArgumentError(FlowSimError, ValueError):
    """Malformed or ambiguous command-line input."""


class DeckResolutionError(FlowSimError, FileNotFoundError):
    """No input case file matches the requested path."""


class OutputDirectoryError(FlowSimError, OSError):
    """The output directory could not be created."""


class InvalidDeckStateError(FlowSimError, ValueError):
    """The selected initialization strategy found missing or inconsistent deck data."""


class RuntimeSimulationError(FlowSimError, RuntimeError):
    """Failure surfaced from the time-stepping engine."""


__all__ = [
    "FlowSimError",
    "ArgumentError",
    "DeckResolutionError",
    "OutputDirectoryError",
    "InvalidDeckStateError",
    "RuntimeSimulationError",
]
