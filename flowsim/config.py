"""Command-line resolution: parameters plus exactly one input case."""
from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import List, Sequence, Tuple

from pydantic import ValidationError

from . import __version__, constants
from .errors import ArgumentError, DeckResolutionError
from .parameters import ParameterGroup, read_parameter_file, split_assignment
from .schema import RunParameters

logger = logging.getLogger(__name__)

NO_DECK_MESSAGE = (
    "This program must be run with an input deck.\n"
    "Specify the deck filename either\n"
    "    a) as a command line argument by itself\n"
    "    b) as a command line parameter with the syntax deck_filename=<path to your deck>, or\n"
    "    c) as a parameter in a parameter file (.param or .yaml) passed to the program."
)


class _RaisingParser(argparse.ArgumentParser):
    """Argument parser reporting usage errors as :class:`ArgumentError`."""

    def error(self, message: str) -> None:  # type: ignore[override]
        raise ArgumentError(message)


def build_parser() -> argparse.ArgumentParser:
    parser = _RaisingParser(
        prog="flowsim",
        description="Run a reservoir simulation case through the driver pipeline.",
    )
    parser.add_argument(
        "tokens",
        nargs="*",
        metavar="CASE|KEY=VALUE|FILE.param",
        help="Input case path, key=value parameters, or parameter files (.param/.yaml).",
    )
    parser.add_argument(
        "--param-file",
        action="append",
        type=Path,
        default=[],
        help="Load parameters from a file (repeatable); command-line pairs take precedence.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def _is_param_file(token: str) -> bool:
    path = Path(token)
    return path.suffix.lower() in constants.PARAM_FILE_SUFFIXES and path.is_file()


def split_arguments(argv: Sequence[str]) -> Tuple[ParameterGroup, List[str]]:
    """Return the parameter group and the positional tokens of ``argv``."""

    parser = build_parser()
    # Route ``--key=value`` pairs to the parameter list instead of argparse.
    raw = list(argv)
    known = [tok for tok in raw if not (tok.startswith("--") and "=" in tok and not tok.startswith("--param-file"))]
    pairs = [tok for tok in raw if tok not in known]
    # Options may sit between positional tokens.
    args = parser.parse_intermixed_args(known)

    file_params = {}
    positional: List[str] = []
    for path in args.param_file:
        if not Path(path).is_file():
            raise ArgumentError(f"Parameter file not found: {path}")
        file_params.update(read_parameter_file(path))
    cli_params = {}
    for token in list(args.tokens) + pairs:
        if "=" in token:
            key, value = split_assignment(token)
            cli_params[key] = value
        elif _is_param_file(token):
            file_params.update(read_parameter_file(Path(token)))
        else:
            positional.append(token)

    params = ParameterGroup(file_params)
    params.update_from(cli_params)
    return params, positional


def _exists(path: Path) -> bool:
    # is_file follows symlinks, so a link to a regular file qualifies
    return path.is_file()


def simulation_case_name(casename: str) -> Path:
    """Resolve ``casename`` to an existing input case.

    Tries the path as given, then with the extension replaced by ``.data``
    and ``.DATA``.
    """

    simcase = Path(casename)
    if _exists(simcase):
        return simcase
    for ext in constants.DECK_EXTENSIONS:
        try:
            candidate = simcase.with_suffix(f".{ext}")
        except ValueError:
            break
        if _exists(candidate):
            return candidate
    raise DeckResolutionError(f"Cannot find input case {casename}")


def validate_run_parameters(params: ParameterGroup) -> RunParameters:
    """Validate the recognised options without marking them as used."""

    try:
        return RunParameters.model_validate(params.peek(RunParameters.model_fields))
    except ValidationError as exc:
        raise ArgumentError(f"Invalid run parameters: {exc}") from exc


def setup_parameters(argv: Sequence[str]) -> ParameterGroup:
    """Build the resolved configuration from ``argv``.

    Raises
    ------
    ArgumentError
        More than one positional case, malformed tokens, or no deck at all.
    DeckResolutionError
        The positional case does not name an existing file.
    """

    params, positional = split_arguments(argv)
    if positional:
        if len(positional) != 1:
            raise ArgumentError("You can only specify a single input deck on the command line.")
        casename = simulation_case_name(positional[0])
        params.insert("deck_filename", str(casename))
    if not params.has("deck_filename"):
        raise ArgumentError(NO_DECK_MESSAGE)
    validate_run_parameters(params)
    logger.debug("Resolved deck_filename=%s", params.peek(["deck_filename"])["deck_filename"])
    return params.freeze()


__all__ = [
    "NO_DECK_MESSAGE",
    "build_parser",
    "setup_parameters",
    "simulation_case_name",
    "split_arguments",
    "validate_run_parameters",
]
