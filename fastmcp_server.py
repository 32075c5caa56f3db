"""
Macro Expander: MCP Server

Exposes the expansion pipeline to editor agents via the Model Context Protocol:

  1. load_definitions - load a macro definitions file (+ optional settings)
  2. list_macros      - show the loaded macros as a table
  3. expand_line      - expand registered macros in a single line
  4. expand_paths     - expand files, directories or zip archives on disk
"""

from mcp.server.fastmcp import FastMCP
import os
import sys

# Ensure the package is importable when launched as a script
sys.path.append(os.path.dirname(os.path.abspath(__file__)))

from macro_expander.errors import ExpanderError
from macro_expander.expansion_engine import ExpansionEngine
from macro_expander.file_processor import FileProcessor
from macro_expander.path_walker import PathWalker
from macro_expander.replacements import load_replacements
from macro_expander.settings import load_settings

# ═══════════════════════════════════════════════════════════════════════
#  Server Setup
# ═══════════════════════════════════════════════════════════════════════

mcp = FastMCP("Macro Expander")

registry = None
settings = None
engine = None
# Definitions file the current session was loaded from
_definitions_path = None


def _processor(overwrite: bool = False) -> FileProcessor:
    return FileProcessor(registry, engine, settings, overwrite=overwrite)


# ═══════════════════════════════════════════════════════════════════════
#  Tool 1: Load Definitions
# ═══════════════════════════════════════════════════════════════════════

@mcp.tool()
def load_definitions(definitions_path: str, settings_path: str = "") -> str:
    """
    Loads macro definitions and (optionally) runtime settings.

    Must be called before any of the expansion tools.  Replaces whatever
    was loaded before.

    Args:
        definitions_path: Path to the INI definitions file
                          (sections with macro / params / value).
        settings_path:    Optional JSON settings file (compiler, compiler_args,
                          extensions, output_suffix, timeout, ...).
    """
    global registry, settings, engine, _definitions_path

    if not os.path.exists(definitions_path):
        return f"Error: Definitions file not found at {definitions_path}"

    try:
        new_settings = load_settings(settings_path or None)
        new_registry = load_replacements(definitions_path)
    except ExpanderError as e:
        return f"Error loading definitions: {e}"

    registry = new_registry
    settings = new_settings
    engine = ExpansionEngine.from_settings(settings)
    _definitions_path = definitions_path

    return (
        f"Loaded {len(registry)} macro(s) from {definitions_path}.\n"
        f"Preprocessor: `{settings.invocation_template}`\n"
        f"Extensions: {', '.join(sorted(settings.extensions))}"
    )


# ═══════════════════════════════════════════════════════════════════════
#  Tool 2: List Macros
# ═══════════════════════════════════════════════════════════════════════

@mcp.tool()
def list_macros() -> str:
    """Lists the loaded macros in definition order."""
    if registry is None:
        return "Error: No definitions loaded. Call load_definitions first."

    result = f"**{len(registry)} macro(s) from {_definitions_path}**\n\n"
    result += "| Macro | Params | Value |\n|-------|--------|-------|\n"
    for name, r in registry.items():
        value = r.value.replace("|", "\\|")
        result += f"| `{name}` | `{r.params or '-'}` | `{value}` |\n"
    return result


# ═══════════════════════════════════════════════════════════════════════
#  Tool 3: Expand Line
# ═══════════════════════════════════════════════════════════════════════

@mcp.tool()
def expand_line(line: str, extension: str = ".c") -> str:
    """
    Expands every registered macro in a single source line.

    Directive lines (#include, #define, ...) come back unchanged.

    Args:
        line:      The source line, without its line terminator.
        extension: Extension of the file the line belongs to (picks C or C++).
    """
    if registry is None:
        return "Error: No definitions loaded. Call load_definitions first."

    try:
        return _processor().expand_line(line, suffix=extension)
    except ExpanderError as e:
        return f"Error expanding line: {e}"


# ═══════════════════════════════════════════════════════════════════════
#  Tool 4: Expand Paths
# ═══════════════════════════════════════════════════════════════════════

@mcp.tool()
def expand_paths(paths: str, overwrite: bool = False) -> str:
    """
    Expands macros in files, directories (recursively) and zip archives.

    Without overwrite each file gets an expanded copy next to it
    (<file><output_suffix>); with overwrite the files are rewritten in place.
    The run stops at the first failure.

    Args:
        paths:     Comma-separated list of paths.
        overwrite: Rewrite files in place instead of writing sibling copies.
    """
    if registry is None:
        return "Error: No definitions loaded. Call load_definitions first."

    roots = [p.strip() for p in paths.split(",") if p.strip()]
    if not roots:
        return "Error: No paths given."

    try:
        summary = PathWalker(_processor(overwrite)).visit_all(roots)
    except (ExpanderError, OSError) as e:
        return f"Error expanding paths: {e}"

    mode = "in place" if overwrite else f"to *{settings.output_suffix} copies"
    return f"Expanded {mode}: {summary.describe()}."


if __name__ == "__main__":
    mcp.run()
