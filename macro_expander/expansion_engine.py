"""
External Expansion Engine

Expands one macro inside one source line by asking a real preprocessor.
For every call it writes a two-line expansion unit

  #define <name><params> <value>
  <the source line>

to a private temp file, runs the configured preprocessor over it and keeps
everything after the first output line, minus line markers.  The first line
belongs to the ``#define`` and is dropped without looking at it.

The preprocessor is reached through a ``CommandRunner`` so tests can swap in
a fake that never spawns a process.
"""

import logging
import os
import re
import shlex
import subprocess
import tempfile
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator, List, Optional, Protocol, Sequence

from .errors import CompilerFailureError
from .replacements import Replacement
from .settings import ExpanderSettings

logger = logging.getLogger(__name__)

# '#line 12 "file.c"' (MSVC, pcpp) and '# 12 "file.c" 1 3' (GCC, Clang).
# Directive lines are never expanded, so expanded text cannot start with '#'.
_LINE_MARKER_RE = re.compile(r"^\s*#\s*(?:line\b|\d)")

# Suffixes the usual drivers recognise as C/C++ sources or headers
_UNIT_SUFFIXES = {".c", ".h", ".cc", ".cpp", ".cxx", ".hh", ".hpp", ".hxx"}


@dataclass(frozen=True)
class RunResult:
    returncode: int
    stdout: str


class CommandRunner(Protocol):
    def run(self, argv: Sequence[str], timeout: Optional[float] = None) -> RunResult:
        ...


class SubprocessRunner:
    """Runs the preprocessor as a child process; stderr is discarded."""

    def run(self, argv: Sequence[str], timeout: Optional[float] = None) -> RunResult:
        try:
            completed = subprocess.run(
                list(argv),
                stdout=subprocess.PIPE,
                stderr=subprocess.DEVNULL,
                timeout=timeout,
                check=False,
            )
        except subprocess.TimeoutExpired as e:
            raise CompilerFailureError(argv, None, f"timed out after {timeout}s") from e
        except OSError as e:
            raise CompilerFailureError(argv, None, f"cannot execute: {e}") from e
        return RunResult(
            completed.returncode,
            completed.stdout.decode("utf-8", errors="surrogateescape"),
        )


def extract_expansion(output: str) -> str:
    """Drop the first output line and all line markers, join the rest."""
    lines = output.splitlines()[1:]
    return "".join(line for line in lines if not _LINE_MARKER_RE.match(line))


def unit_suffix(source_ext: str) -> str:
    ext = source_ext.lower()
    return ext if ext in _UNIT_SUFFIXES else ".c"


@contextmanager
def _expansion_unit(text: str, suffix: str, directory: Optional[str]) -> Iterator[str]:
    """Write ``text`` to a uniquely named temp file and remove it afterwards."""
    prefix = f"macro-{os.getpid()}-{threading.get_ident()}-"
    fd, path = tempfile.mkstemp(prefix=prefix, suffix=suffix, dir=directory)
    try:
        with os.fdopen(fd, "w", encoding="utf-8", errors="surrogateescape", newline="\n") as f:
            f.write(text)
        yield path
    finally:
        try:
            os.unlink(path)
        except FileNotFoundError:
            pass


class ExpansionEngine:
    """
    Expands a single ``Replacement`` inside a single line.

    Args:
        invocation_template: preprocessor command line, e.g. ``"cpp -E"``.
                             The unit path is appended as the last argument.
        runner:              executes the command (default: SubprocessRunner).
        temp_dir:            directory for expansion units (default: system temp).
        timeout:             seconds to wait for the preprocessor; None blocks.
    """

    def __init__(
        self,
        invocation_template: str,
        runner: Optional[CommandRunner] = None,
        temp_dir: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        self.invocation_template = invocation_template
        self._command: List[str] = shlex.split(invocation_template)
        self.runner = runner or SubprocessRunner()
        self.temp_dir = temp_dir
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings: ExpanderSettings, runner: Optional[CommandRunner] = None) -> "ExpansionEngine":
        return cls(
            settings.invocation_template,
            runner=runner,
            temp_dir=settings.temp_dir,
            timeout=settings.timeout,
        )

    def expand(self, line: str, replacement: Replacement, suffix: str = ".c") -> str:
        """Return ``line`` with every use of ``replacement`` expanded.

        ``line`` carries no line terminator.  ``suffix`` is the extension of
        the file the line came from; it picks the language the preprocessor
        assumes for the unit.

        Raises:
            CompilerFailureError: the preprocessor failed, could not be
                                  started or exceeded the timeout.
        """
        unit = f"{replacement.define_line}\n{line}\n"
        with _expansion_unit(unit, unit_suffix(suffix), self.temp_dir) as unit_path:
            argv = [*self._command, unit_path]
            result = self.runner.run(argv, timeout=self.timeout)
            if result.returncode != 0:
                logger.error(
                    "Preprocessor exited with %d while expanding %s in: %s",
                    result.returncode, replacement.name, line.strip(),
                )
                raise CompilerFailureError(argv, result.returncode)

        expanded = extract_expansion(result.stdout)
        logger.debug("Expanded %s: %r -> %r", replacement.name, line, expanded)
        return expanded
