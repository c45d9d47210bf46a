#!/usr/bin/env python3
"""unionlint/main.py — CLI entry-point for unionlint.

Usage examples
--------------
    # Check Python sources for incomplete match statements
    unionlint check src/

    # Check pre-resolved dumps written by a host-language exporter
    unionlint dump program.sexp

    # Print the sealed contracts found and their variants
    unionlint facts src/
    unionlint facts --dump program.sexp

    # JSON output, four worker threads
    unionlint check -j 4 --format json src/

Exit codes
----------
    0   No incomplete dispatch sites.
    1   One or more diagnostics were emitted.
    2   Infrastructure failure (unreadable input, malformed dump, engine bug).

The module doubles as ``python -m unionlint`` via the companion
``unionlint/__main__.py`` which simply calls :func:`main`.
"""

from __future__ import annotations

import argparse
import logging
import sys
import textwrap
from pathlib import Path
from typing import Optional, Sequence, TextIO

from unionlint import __version__
from unionlint.analyzer import Analyzer
from unionlint.config import DEFAULT_ABORT_FUNCTIONS, AnalyzerConfig
from unionlint.diagnostics import render
from unionlint.errors import FrontendError, InternalError
from unionlint.frontend.pysource import load_paths
from unionlint.frontend.sexpdump import load_dumps
from unionlint.model import Program

_log = logging.getLogger("unionlint")

# Exit codes ----------------------------------------------------------------

EXIT_OK: int = 0
EXIT_DIAGNOSTICS: int = 1
EXIT_INFRA: int = 2


# ===========================================================================
# Utility helpers
# ===========================================================================

def _configure_logging(verbosity: int) -> None:
    """Set up the ``unionlint`` logger.

    0 → WARNING, 1 → INFO, 2+ → DEBUG.
    """
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity >= 2:
        level = logging.DEBUG

    root = logging.getLogger("unionlint")
    root.setLevel(level)
    ours = [h for h in root.handlers if getattr(h, "_unionlint", False)]
    for h in ours:
        h.setStream(sys.stderr)
    if not ours:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(
            logging.Formatter(
                fmt="%(asctime)s [%(levelname)-5.5s] %(name)s: %(message)s",
                datefmt="%H:%M:%S",
            )
        )
        handler._unionlint = True  # type: ignore[attr-defined]
        root.addHandler(handler)


def _open_output(dest: Optional[str]) -> TextIO:
    """``None`` or ``"-"`` → stdout; otherwise open *dest* for writing."""
    if dest is None or dest == "-":
        return sys.stdout
    p = Path(dest).expanduser()
    p.parent.mkdir(parents=True, exist_ok=True)
    return open(p, "w", encoding="utf-8")


def _config_from_args(args: argparse.Namespace) -> AnalyzerConfig:
    return AnalyzerConfig(
        jobs=args.jobs,
        abort_functions=DEFAULT_ABORT_FUNCTIONS + tuple(args.abort_function),
        suppress=tuple(args.suppress),
        suppress_files=tuple(args.suppress_file),
        exclude=tuple(args.exclude),
    )


def _load(args: argparse.Namespace, config: AnalyzerConfig, dumps: bool) -> Program:
    if dumps:
        return load_dumps(args.paths)
    return load_paths(args.paths, config)


def _write(args: argparse.Namespace, text: str) -> None:
    stream = _open_output(args.output)
    try:
        if text:
            stream.write(text + "\n")
    finally:
        if stream is not sys.stdout:
            stream.close()


# ===========================================================================
# Subcommands
# ===========================================================================

def _run_check(args: argparse.Namespace, dumps: bool) -> int:
    config = _config_from_args(args)
    program = _load(args, config, dumps)
    result = Analyzer(config).run(program)
    _write(args, render(result.diagnostics, args.format))
    _log.info("%s", result.summary())
    return EXIT_DIAGNOSTICS if result.diagnostics else EXIT_OK


def cmd_check(args: argparse.Namespace) -> int:
    """Check Python sources."""
    return _run_check(args, dumps=False)


def cmd_dump(args: argparse.Namespace) -> int:
    """Check pre-resolved S-expression dumps."""
    return _run_check(args, dumps=True)


def cmd_facts(args: argparse.Namespace) -> int:
    """Print every sealed contract with its discriminator and variants."""
    config = _config_from_args(args)
    program = _load(args, config, args.dump)
    store = Analyzer(config).facts(program)
    lines = [
        f"{program.short_name(contract.module)}.{contract.name}: {fact}"
        for contract, fact in store.items()
    ]
    _write(args, "\n".join(lines))
    return EXIT_OK


# ===========================================================================
# Argument parser
# ===========================================================================

def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="unionlint",
        description=(
            "unionlint — exhaustiveness checking for sealed contracts.\n\n"
            "Finds type dispatches over a sealed contract that miss one of\n"
            "its variants."
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=textwrap.dedent("""\
            examples:
              unionlint check src/
              unionlint dump program.sexp --format json
              unionlint facts --dump program.sexp
        """),
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="count",
        default=0,
        help="Increase verbosity (-v info, -vv debug).",
    )

    subparsers = parser.add_subparsers(
        dest="command",
        title="commands",
        metavar="<command>",
    )

    # Shared argument groups -------------------------------------------------

    def _add_common_args(p: argparse.ArgumentParser) -> None:
        p.add_argument(
            "-o", "--output",
            default=None,
            metavar="FILE",
            help='Output file ("-" or omit for stdout).',
        )
        p.add_argument(
            "-j", "--jobs",
            type=int,
            default=1,
            metavar="N",
            help="Worker threads per dependency level (default: 1).",
        )
        p.add_argument(
            "--exclude",
            action="append",
            default=[],
            metavar="GLOB",
            help="Skip source files matching GLOB (repeatable).",
        )
        p.add_argument(
            "--abort-function",
            action="append",
            default=[],
            metavar="NAME",
            help="Extra dotted callable that ends a catch-all arm like raise.",
        )
        p.add_argument(
            "--suppress",
            action="append",
            default=[],
            metavar="ID",
            help="Suppress diagnostics with this error id (repeatable).",
        )
        p.add_argument(
            "--suppress-file",
            action="append",
            default=[],
            metavar="GLOB",
            help="Suppress all diagnostics in files matching GLOB.",
        )

    def _add_format_arg(p: argparse.ArgumentParser) -> None:
        p.add_argument(
            "-f", "--format",
            choices=["gcc", "json", "summary"],
            default="gcc",
            help="Output format (default: gcc).",
        )

    # --- check ---------------------------------------------------------------
    p_check = subparsers.add_parser(
        "check",
        help="Check Python sources.",
        description="Check every match statement over a sealed contract.",
    )
    p_check.add_argument("paths", nargs="+", metavar="PATH", help="Files or directories.")
    _add_common_args(p_check)
    _add_format_arg(p_check)
    p_check.set_defaults(func=cmd_check)

    # --- dump ----------------------------------------------------------------
    p_dump = subparsers.add_parser(
        "dump",
        help="Check pre-resolved S-expression dumps.",
        description="Check every type switch recorded in one or more dumps.",
    )
    p_dump.add_argument("paths", nargs="+", metavar="FILE", help="Dump files.")
    _add_common_args(p_dump)
    _add_format_arg(p_dump)
    p_dump.set_defaults(func=cmd_dump)

    # --- facts ---------------------------------------------------------------
    p_facts = subparsers.add_parser(
        "facts",
        help="List sealed contracts and their variants.",
        description="Print one line per sealed contract: module.Name: {marker [variants]}.",
    )
    p_facts.add_argument("paths", nargs="+", metavar="PATH", help="Inputs.")
    p_facts.add_argument(
        "--dump",
        action="store_true",
        help="Inputs are S-expression dumps rather than Python sources.",
    )
    _add_common_args(p_facts)
    p_facts.set_defaults(func=cmd_facts)

    return parser


# ===========================================================================
# Main entry point
# ===========================================================================

def main(argv: Optional[Sequence[str]] = None) -> int:
    """Run the unionlint CLI and return its exit code."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    _configure_logging(args.verbose)

    if not hasattr(args, "func"):
        parser.print_help(sys.stderr)
        return EXIT_INFRA

    try:
        return args.func(args)
    except KeyboardInterrupt:
        _log.info("Interrupted by user.")
        return 130
    except FrontendError as exc:
        _log.error("%s", exc)
        return EXIT_INFRA
    except InternalError as exc:
        _log.error("internal error: %s", exc, exc_info=True)
        return EXIT_INFRA
    except OSError as exc:
        _log.error("%s", exc)
        return EXIT_INFRA


if __name__ == "__main__":
    raise SystemExit(main())
