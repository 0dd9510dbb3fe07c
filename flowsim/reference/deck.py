"""Keyword deck stored as a YAML mapping.

The reference collaborators read a ``.DATA`` file holding one YAML mapping
of keyword to value.  The round-trip loader is used so that diagnostics can
point at the line of an offending keyword.
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, List, Mapping, Tuple

import numpy as np
from pydantic import ValidationError
from ruamel.yaml import YAML
from ruamel.yaml.error import YAMLError

from ..errors import InvalidDeckStateError
from ..interfaces import ParseMessage, SourceLocation
from ..logsetup import MessageType
from ..schema import DeckKeywords
from ..state import PhaseUsage

logger = logging.getLogger(__name__)


class KeywordDeck:
    """Validated keyword mapping with presence queries."""

    def __init__(self, raw: Mapping[str, Any], keywords: DeckKeywords, path: Path) -> None:
        self._raw = dict(raw)
        self.keywords = keywords
        self.path = Path(path)

    def has_keyword(self, name: str) -> bool:
        if name not in self._raw:
            return False
        if name in DeckKeywords.model_fields:
            value = getattr(self.keywords, name)
        else:
            value = self._raw[name]
        if isinstance(value, bool):
            return value
        return value is not None

    def get(self, name: str, default: Any = None) -> Any:
        if not self.has_keyword(name):
            return default
        if name in DeckKeywords.model_fields:
            return getattr(self.keywords, name)
        return self._raw[name]

    @property
    def num_cells(self) -> int:
        return int(np.prod(self.keywords.DIMENS))

    @property
    def phase_usage(self) -> PhaseUsage:
        kw = self.keywords
        if not (kw.WATER or kw.OIL or kw.GAS):
            raise InvalidDeckStateError(f"Deck {self.path} does not declare any active phase")
        return PhaseUsage(water=kw.WATER, oil=kw.OIL, gas=kw.GAS)

    def __repr__(self) -> str:
        return f"KeywordDeck({self.path}, keywords={sorted(self._raw)})"


def _line_of(data: Any, key: str) -> int:
    try:
        return int(data.lc.key(key)[0]) + 1
    except (AttributeError, KeyError, TypeError):
        return 0


def load_deck(path: Path) -> Tuple[KeywordDeck, List[ParseMessage]]:
    """Read ``path`` and return the deck plus the messages raised while reading it."""

    path = Path(path)
    yaml = YAML()
    try:
        with path.open("r", encoding="utf-8") as fh:
            data = yaml.load(fh)
    except YAMLError as exc:
        raise InvalidDeckStateError(f"Cannot parse deck {path}: {exc}") from exc
    if data is None:
        data = {}
    if not isinstance(data, Mapping):
        raise InvalidDeckStateError(f"Deck {path} must hold a mapping of keywords")

    messages: List[ParseMessage] = []
    for key in data:
        if key not in DeckKeywords.model_fields:
            messages.append(
                ParseMessage(
                    MessageType.WARNING,
                    f"Unsupported keyword {key} is ignored",
                    SourceLocation(str(path), _line_of(data, key)),
                )
            )
    try:
        keywords = DeckKeywords.model_validate(dict(data))
    except ValidationError as exc:
        raise InvalidDeckStateError(f"Invalid deck {path}: {exc}") from exc

    if keywords.TITLE:
        messages.append(ParseMessage(MessageType.INFO, f"Case title: {keywords.TITLE}"))
    messages.append(ParseMessage(MessageType.NOTE, f"Read {len(data)} keywords from {path}"))
    logger.debug("Loaded deck %s", path)
    return KeywordDeck(data, keywords, path), messages


__all__ = ["KeywordDeck", "load_deck"]
