"""
Replacement Registry

Loads macro definitions from an INI-style definitions file.  Each section
describes one macro; the section name itself is cosmetic:

  [square]
  macro  = SQUARE
  params = (x)
  value  = ((x) * (x))

Because ``#`` starts a comment in this format, a literal ``$`` in ``value``
stands for ``#`` (so ``$x`` stringifies and ``a$$b`` pastes tokens).

Each section is validated into a frozen ``Replacement`` model and collected
into an immutable ``ReplacementRegistry`` that preserves definition order.
"""

import configparser
import logging
import re
from types import MappingProxyType
from collections.abc import Mapping
from typing import Dict, Iterator

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .errors import ConfigError, DuplicateMacroError, EmptyRegistryError

logger = logging.getLogger(__name__)

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class Replacement(BaseModel):
    """One macro definition: ``#define <name><params> <value>``."""

    model_config = ConfigDict(frozen=True, extra="forbid", populate_by_name=True)

    name: str = Field(alias="macro")
    params: str = ""
    value: str

    @field_validator("name")
    @classmethod
    def _check_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("macro name must not be empty")
        if not _IDENTIFIER_RE.match(v):
            raise ValueError(f"'{v}' is not a valid macro identifier")
        return v

    @field_validator("params")
    @classmethod
    def _check_params(cls, v: str) -> str:
        v = v.strip()
        if v and not (v.startswith("(") and v.endswith(")")):
            raise ValueError(f"params must be empty or a parenthesized list, got '{v}'")
        return v

    @field_validator("value")
    @classmethod
    def _translate_value(cls, v: str) -> str:
        # Continuation lines in the INI file collapse onto the #define line
        v = " ".join(part.strip() for part in v.splitlines() if part.strip())
        return v.replace("$", "#")

    @property
    def define_line(self) -> str:
        return f"#define {self.name}{self.params} {self.value}"


class ReplacementRegistry(Mapping):
    """Read-only ``name -> Replacement`` mapping in definition order."""

    def __init__(self, replacements: Dict[str, Replacement]):
        self._entries = MappingProxyType(dict(replacements))

    def __getitem__(self, name: str) -> Replacement:
        return self._entries[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        return f"ReplacementRegistry({list(self._entries)})"


# ────────────────────────────────────────────────────────────────
#  Loading
# ────────────────────────────────────────────────────────────────

def parse_replacements(text: str, source: str = "<string>") -> ReplacementRegistry:
    """Parse definitions text into a registry.

    Raises:
        ConfigError:         the text is not valid INI or a section is malformed.
        DuplicateMacroError: two sections define the same macro name.
        EmptyRegistryError:  no sections were found.
    """
    cp = configparser.ConfigParser(interpolation=None)
    try:
        cp.read_string(text, source=source)
    except configparser.Error as e:
        raise ConfigError(f"Cannot parse definitions in {source}: {e}") from e

    entries: Dict[str, Replacement] = {}
    for section in cp.sections():
        fields = dict(cp.items(section))
        try:
            replacement = Replacement.model_validate(fields)
        except ValidationError as e:
            raise ConfigError(f"Invalid definition [{section}] in {source}: {e}") from e

        if replacement.name in entries:
            raise DuplicateMacroError(replacement.name, section)
        entries[replacement.name] = replacement
        logger.debug("Registered macro %s%s from [%s]", replacement.name, replacement.params, section)

    if not entries:
        raise EmptyRegistryError(source)

    return ReplacementRegistry(entries)


def load_replacements(path: str) -> ReplacementRegistry:
    """Read a definitions file from disk and build the registry."""
    try:
        with open(path, "r", encoding="utf-8") as f:
            text = f.read()
    except (OSError, UnicodeDecodeError) as e:
        raise ConfigError(f"Cannot read definitions file {path}: {e}") from e

    registry = parse_replacements(text, source=path)
    logger.info("Loaded %d macro definitions from %s", len(registry), path)
    return registry
