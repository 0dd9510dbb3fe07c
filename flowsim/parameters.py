"""Parameter group: the resolved run configuration.

Parameters come from ``key=value`` command-line tokens and from parameter
files (``.param`` text files or YAML mappings).  The group behaves as a
read-only mapping once frozen and records every key that was looked up, so
that typos in option names can be reported as unused parameters at the end
of a run.
"""
from __future__ import annotations

import logging
import math
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Optional, Set, TextIO

from .errors import ArgumentError

logger = logging.getLogger(__name__)

_MISSING = object()

#: String forms accepted for boolean options, matching pydantic's lax bool parsing
_BOOL_WORDS = {
    "true": True, "t": True, "yes": True, "y": True, "on": True, "1": True,
    "false": False, "f": False, "no": False, "n": False, "off": False, "0": False,
}


def parse_parameter_value(raw: str) -> Any:
    """Parse a command-line parameter value into a Python object."""

    text = raw.strip()
    lower = text.lower()
    if lower in {"true", "false"}:
        return lower == "true"
    if lower in {"none", "null"}:
        return None
    if lower in {"nan"}:
        return float("nan")
    if lower in {"inf", "+inf", "+infinity", "infinity"}:
        return float("inf")
    if lower in {"-inf", "-infinity"}:
        return float("-inf")
    try:
        return int(text)
    except ValueError:
        try:
            return float(text)
        except ValueError:
            pass
    if (text.startswith('"') and text.endswith('"')) or (text.startswith("'") and text.endswith("'")):
        return text[1:-1]
    return text


def format_parameter_value(value: Any) -> str:
    """Inverse of :func:`parse_parameter_value` for the snapshot file."""

    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return "none"
    if isinstance(value, float) and math.isinf(value):
        return "inf" if value > 0 else "-inf"
    return str(value)


def split_assignment(token: str) -> tuple[str, Any]:
    """Split ``key=value`` (optionally ``--key=value``) into its parts."""

    key, sep, value = token.partition("=")
    if not sep:
        raise ArgumentError(f"Invalid parameter '{token}'; expected key=value")
    key = key.strip().lstrip("-").strip()
    if not key:
        raise ArgumentError(f"Invalid parameter '{token}'; empty key")
    return key, parse_parameter_value(value)


def _flatten(mapping: Mapping[str, Any], prefix: str = "") -> Dict[str, Any]:
    flat: Dict[str, Any] = {}
    for key, value in mapping.items():
        name = f"{prefix}{key}"
        if isinstance(value, Mapping):
            flat.update(_flatten(value, prefix=f"{name}/"))
        else:
            flat[name] = value
    return flat


def read_parameter_file(path: Path) -> Dict[str, Any]:
    """Load a ``.param`` or YAML parameter file into a flat dictionary."""

    source = Path(path)
    if source.suffix.lower() in {".yaml", ".yml"}:
        from ruamel.yaml import YAML

        yaml = YAML(typ="safe")
        with source.open("r", encoding="utf-8") as fh:
            data = yaml.load(fh)
        if data is None:
            return {}
        if not isinstance(data, Mapping):
            raise ArgumentError(f"Parameter file {source} must hold a mapping at the top level")
        return _flatten(data)

    params: Dict[str, Any] = {}
    with source.open("r", encoding="utf-8") as fh:
        for lineno, line in enumerate(fh, start=1):
            text = line.split("#", 1)[0].strip()
            if not text:
                continue
            try:
                key, value = split_assignment(text)
            except ArgumentError as exc:
                raise ArgumentError(f"{source}:{lineno}: {exc}") from exc
            params[key] = value
    return params


class ParameterGroup(Mapping):
    """Read-only mapping of option name to value with usage tracking."""

    def __init__(self, values: Optional[Mapping[str, Any]] = None) -> None:
        self._values: Dict[str, Any] = dict(values or {})
        self._used: Set[str] = set()
        self._frozen = False

    # -- construction -----------------------------------------------------
    def insert(self, name: str, value: Any) -> None:
        if self._frozen:
            raise ArgumentError(f"Cannot insert '{name}' into a resolved configuration")
        self._values[name] = value

    def update_from(self, values: Mapping[str, Any]) -> None:
        for name, value in values.items():
            self.insert(name, value)

    def freeze(self) -> "ParameterGroup":
        self._frozen = True
        return self

    @property
    def frozen(self) -> bool:
        return self._frozen

    # -- Mapping protocol -------------------------------------------------
    def __getitem__(self, name: str) -> Any:
        value = self._values[name]
        self._used.add(name)
        return value

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __contains__(self, name: object) -> bool:
        return name in self._values

    # -- lookups ----------------------------------------------------------
    def has(self, name: str) -> bool:
        return name in self._values

    def get(self, name: str, default: Any = _MISSING) -> Any:  # type: ignore[override]
        """Return ``name``; raise :class:`ArgumentError` when absent and no default."""

        if name in self._values:
            return self[name]
        if default is _MISSING:
            raise ArgumentError(f"Missing required parameter '{name}'")
        self._used.add(name)
        return default

    def get_default(self, name: str, default: Any) -> Any:
        """Return ``name`` coerced to the type of ``default`` when it is a scalar."""

        value = self.get(name, default)
        if value is None or default is None or isinstance(value, type(default)):
            return value
        try:
            if isinstance(default, bool):
                if isinstance(value, str):
                    word = value.strip().lower()
                    if word in _BOOL_WORDS:
                        return _BOOL_WORDS[word]
                    raise ValueError(value)
                if isinstance(value, (int, float)) and value in (0, 1):
                    return bool(value)
                raise ValueError(value)
            if isinstance(default, int):
                return int(value)
            if isinstance(default, float):
                return float(value)
            if isinstance(default, str):
                return str(value)
        except (TypeError, ValueError) as exc:
            raise ArgumentError(
                f"Parameter '{name}'={value!r} cannot be read as {type(default).__name__}"
            ) from exc
        return value

    def peek(self, names: Iterable[str]) -> Dict[str, Any]:
        """Return the subset of ``names`` that is present without marking them used."""

        return {name: self._values[name] for name in names if name in self._values}

    # -- reporting --------------------------------------------------------
    def unused(self) -> List[str]:
        return sorted(name for name in self._values if name not in self._used)

    def any_unused(self) -> bool:
        return bool(self.unused())

    def display_usage(self, stream: TextIO) -> None:
        for name in self.unused():
            stream.write(f"    {name} = {format_parameter_value(self._values[name])}\n")

    def write_param(self, path: Path) -> Path:
        """Write every parameter as sorted ``key=value`` lines."""

        target = Path(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        lines = [f"{name}={format_parameter_value(self._values[name])}" for name in sorted(self._values)]
        target.write_text("\n".join(lines) + "\n", encoding="utf-8")
        logger.debug("Wrote %d parameters to %s", len(lines), target)
        return target

    def __repr__(self) -> str:
        return f"ParameterGroup({self._values!r}, frozen={self._frozen})"


__all__ = [
    "ParameterGroup",
    "format_parameter_value",
    "parse_parameter_value",
    "read_parameter_file",
    "split_assignment",
]
