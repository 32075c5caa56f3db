"""
File Processor

Rewrites one whitelisted source file line by line.  Directive lines, and
the backslash continuations of a multi-line directive, are copied verbatim;
every other line is expanded until no registered macro is left in it.

Output always goes through a temp file in the same directory, which is
moved into place only after the whole file has been rewritten:

  • overwrite=False → ``<path><output_suffix>`` next to the original
  • overwrite=True  → the original itself (atomic ``os.replace``)

so a failing expansion never leaves a half-written file behind.
"""

import io
import logging
import os
import shutil
import tempfile
from typing import Set, TextIO, Tuple

from .errors import ExpansionLimitError
from .expansion_engine import ExpansionEngine
from .line_classifier import find_match, is_directive
from .replacements import ReplacementRegistry
from .settings import ExpanderSettings

logger = logging.getLogger(__name__)

# Undecodable bytes survive a read/write round trip unchanged
SOURCE_ENCODING = "utf-8"
SOURCE_ERRORS = "surrogateescape"


def _split_terminator(line: str) -> Tuple[str, str]:
    if line.endswith("\r\n"):
        return line[:-2], "\r\n"
    if line.endswith(("\n", "\r")):
        return line[:-1], line[-1]
    return line, ""


class FileProcessor:
    def __init__(
        self,
        registry: ReplacementRegistry,
        engine: ExpansionEngine,
        settings: ExpanderSettings,
        overwrite: bool = False,
    ):
        self.registry = registry
        self.engine = engine
        self.settings = settings
        self.overwrite = overwrite

    # ────────────────────────────────────────────────────────────────
    #  Lines
    # ────────────────────────────────────────────────────────────────

    def expand_line(self, line: str, suffix: str = ".c") -> str:
        """Expand registered macros in ``line`` (no terminator) until stable.

        A macro whose expansion leaves the line unchanged is set aside so
        later macros still get a turn; any change puts every macro back in
        play, since the new text may contain fresh uses.
        """
        if is_directive(line):
            return line

        current = line
        settled: Set[str] = set()
        changes = 0
        while True:
            name = find_match(current, self.registry, exclude=settled)
            if name is None:
                return current

            expanded = self.engine.expand(current, self.registry[name], suffix=suffix)
            if expanded == current:
                settled.add(name)
                continue

            changes += 1
            if changes > self.settings.max_passes:
                raise ExpansionLimitError(line, self.settings.max_passes)
            settled.clear()
            current = expanded

    def _rewrite_stream(self, src: TextIO, dst: TextIO, suffix: str) -> int:
        rewritten = 0
        # Inside a directive continued with a trailing backslash
        continued = False
        for raw in src:
            body, terminator = _split_terminator(raw)
            if continued or is_directive(body):
                continued = body.rstrip().endswith("\\")
                dst.write(raw)
                continue

            new_body = self.expand_line(body, suffix=suffix)
            if new_body != body:
                rewritten += 1
                logger.debug("Rewrote line %r -> %r", body, new_body)
            dst.write(new_body + terminator)
        return rewritten

    def process_text(self, text: str, suffix: str = ".c") -> Tuple[str, int]:
        """Rewrite in-memory source text; returns (new_text, rewritten_lines)."""
        out = io.StringIO(newline="")
        rewritten = self._rewrite_stream(io.StringIO(text, newline=""), out, suffix)
        return out.getvalue(), rewritten

    # ────────────────────────────────────────────────────────────────
    #  Files
    # ────────────────────────────────────────────────────────────────

    def output_path(self, path: str) -> str:
        return path if self.overwrite else path + self.settings.output_suffix

    def process_file(self, path: str) -> int:
        """Expand macros in ``path``; returns the number of rewritten lines.

        Files whose extension is not whitelisted are skipped (logged, 0).
        """
        if not self.settings.is_whitelisted(path):
            logger.info("Skipping %s: extension not whitelisted", path)
            return 0

        target = self.output_path(path)
        suffix = os.path.splitext(path)[1]
        directory = os.path.dirname(os.path.abspath(path))
        fd, tmp_path = tempfile.mkstemp(prefix=".macro-", suffix=".tmp", dir=directory)
        try:
            with os.fdopen(fd, "w", encoding=SOURCE_ENCODING, errors=SOURCE_ERRORS, newline="") as dst:
                with open(path, "r", encoding=SOURCE_ENCODING, errors=SOURCE_ERRORS, newline="") as src:
                    rewritten = self._rewrite_stream(src, dst, suffix)
            shutil.copymode(path, tmp_path)
            os.replace(tmp_path, target)
        finally:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)

        logger.info("Expanded %d line(s) in %s -> %s", rewritten, path, target)
        return rewritten
