"""
Error types raised by the expansion pipeline.

Every failure is fatal to the run: library code raises, the CLI turns the
exception into a non-zero exit status and the MCP server into an error
string.
"""

from typing import Optional, Sequence


class ExpanderError(Exception):
    """Base class for all pipeline errors."""


class ConfigError(ExpanderError):
    """Definitions or settings source is unreadable or malformed."""


class DuplicateMacroError(ConfigError):
    def __init__(self, name: str, section: str):
        super().__init__(f"Macro '{name}' is defined twice (second definition in [{section}])")
        self.name = name
        self.section = section


class EmptyRegistryError(ConfigError):
    def __init__(self, source: str):
        super().__init__(f"No macro definitions found in {source}")
        self.source = source


class CompilerFailureError(ExpanderError):
    """The external preprocessor could not expand an expansion unit."""

    def __init__(self, command: Sequence[str], returncode: Optional[int], reason: str = ""):
        cmd = " ".join(command)
        if reason:
            msg = f"Preprocessor failed ({reason}): {cmd}"
        else:
            msg = f"Preprocessor exited with status {returncode}: {cmd}"
        super().__init__(msg)
        self.command = list(command)
        self.returncode = returncode


class InvalidPathError(ExpanderError):
    def __init__(self, path: str):
        super().__init__(f"Not a file, directory or archive: {path}")
        self.path = path


class ExpansionLimitError(ExpanderError):
    """A line kept changing after the configured number of expansion passes."""

    def __init__(self, line: str, passes: int):
        super().__init__(f"Line still changing after {passes} expansion passes: {line.strip()}")
        self.line = line
        self.passes = passes
