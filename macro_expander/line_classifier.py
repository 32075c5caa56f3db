"""
Line Classifier

Decides whether a source line is a preprocessor directive and, if not,
which registered macro name occurs in it as a whole identifier.
"""

import re
from functools import lru_cache
from typing import Collection, Iterable, Optional, Pattern

_IDENT_CHARS = "A-Za-z0-9_"


def is_directive(line: str) -> bool:
    """True for '#include ...', '  #  define ...', '#' and similar."""
    return line.strip().startswith("#")


@lru_cache(maxsize=None)
def _identifier_pattern(name: str) -> Pattern:
    # Bounded by non-identifier characters or the line edges, so FOO does
    # not fire inside FOOBAR or MY_FOO.
    return re.compile(rf"(?<![{_IDENT_CHARS}]){re.escape(name)}(?![{_IDENT_CHARS}])")


def contains_identifier(line: str, name: str) -> bool:
    return _identifier_pattern(name).search(line) is not None


def find_match(line: str, names: Iterable[str], exclude: Collection[str] = ()) -> Optional[str]:
    """Return the first name (in iteration order) used as an identifier in ``line``.

    ``names`` is normally a ``ReplacementRegistry``; its iteration order is
    definition order.  Directive lines never match.
    """
    if is_directive(line):
        return None
    for name in names:
        if name in exclude:
            continue
        if contains_identifier(line, name):
            return name
    return None
