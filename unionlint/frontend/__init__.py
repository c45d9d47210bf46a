"""
unionlint.frontend
==================

Frontends lower host-language inputs into :class:`unionlint.model.Program`:

  pysource  – Python sources, parsed and resolved with :mod:`ast`
  sexpdump  – pre-resolved S-expression dumps (Go-style method sets)
"""

from unionlint.frontend.pysource import (
    PythonOracle,
    SourceFile,
    build_program,
    discover_sources,
    load_paths,
    program_from_sources,
)
from unionlint.frontend.sexpdump import DumpLoader, DumpOracle, load_dumps, parse_dump

__all__ = [
    "PythonOracle",
    "SourceFile",
    "build_program",
    "discover_sources",
    "load_paths",
    "program_from_sources",
    "DumpLoader",
    "DumpOracle",
    "load_dumps",
    "parse_dump",
]
