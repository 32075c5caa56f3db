import argparse
import logging
import sys
from typing import Optional, Sequence

from .errors import ExpanderError
from .expansion_engine import CommandRunner, ExpansionEngine
from .file_processor import FileProcessor
from .path_walker import PathWalker
from .replacements import load_replacements
from .settings import load_settings

logger = logging.getLogger("macro_expander")


def _build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="macro-expander",
        description="Expand user-defined macros in C/C++ sources through an external preprocessor.",
    )
    parser.add_argument("definitions", help="INI file with the macro definitions")
    parser.add_argument("paths", nargs="+", help="files, directories or zip archives to process")
    parser.add_argument("-c", "--config", dest="settings", help="JSON settings file")
    parser.add_argument(
        "-w",
        "--overwrite",
        action="store_true",
        help="rewrite files in place instead of writing <file><suffix> next to them",
    )
    parser.add_argument("--compiler", help="preprocessor executable (default: cpp)")
    parser.add_argument(
        "--compiler-arg",
        dest="compiler_args",
        action="append",
        help="extra preprocessor argument, may be repeated",
    )
    parser.add_argument(
        "--extension",
        dest="extensions",
        action="append",
        help="whitelisted extension, may be repeated (replaces the default set)",
    )
    parser.add_argument("--suffix", dest="output_suffix", help="suffix for sibling output files")
    parser.add_argument("--timeout", type=float, help="seconds to wait for each preprocessor call")
    verbosity = parser.add_mutually_exclusive_group()
    verbosity.add_argument("-v", "--verbose", action="store_true", help="log every rewritten line")
    verbosity.add_argument("-q", "--quiet", action="store_true", help="log warnings and errors only")
    return parser


def _configure_logging(verbose: bool, quiet: bool):
    level = logging.DEBUG if verbose else logging.WARNING if quiet else logging.INFO
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")


def main(argv: Optional[Sequence[str]] = None, *, runner: Optional[CommandRunner] = None) -> int:
    parser = _build_arg_parser()
    try:
        args = parser.parse_args(argv)
    except SystemExit as error:
        return error.code if isinstance(error.code, int) else 2
    _configure_logging(args.verbose, args.quiet)

    try:
        settings = load_settings(args.settings).with_overrides(
            compiler=args.compiler,
            compiler_args=args.compiler_args,
            extensions=args.extensions,
            output_suffix=args.output_suffix,
            timeout=args.timeout,
        )
        registry = load_replacements(args.definitions)
        engine = ExpansionEngine.from_settings(settings, runner=runner)
        processor = FileProcessor(registry, engine, settings, overwrite=args.overwrite)
        summary = PathWalker(processor).visit_all(args.paths)
    except ExpanderError as error:
        logger.error("%s", error)
        return 1
    except OSError as error:
        logger.error("I/O error: %s", error)
        return 1

    logger.info("Done: %s", summary.describe())
    return 0


if __name__ == "__main__":
    sys.exit(main())
