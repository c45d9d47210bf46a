"""
unionlint — Exhaustiveness Checking for Sealed Contracts
========================================================

A *sealed contract* is an abstract type carrying an unexported marker
method (the discriminator).  Because the marker cannot be implemented
outside the declaring module, the concrete types of that module that do
implement it form a closed set of *variants*.  unionlint finds every
type dispatch over a sealed contract that forgets one of them.

Core modules
------------
model
    Host model: declarations, dispatch constructs, the host oracle.
scanner
    Finds sealed contracts and their discriminators.
variants
    Variant identifiers and the variant-set builder.
facts
    Immutable variant-set facts and the run-wide fact store.
dispatch
    Pairs dispatch constructs with the fact of their scrutinee.
classify
    Intentional versus safety-guard catch-all arms.
exhaustive
    Computes missing variants and reports them.
modgraph
    Module-dependency graph, Tarjan SCCs, processing levels.
analyzer
    Two-phase, level-by-level driver.
frontend
    Python source and S-expression dump frontends.

Quick start
-----------
>>> from unionlint import Analyzer, program_from_sources
>>> program = program_from_sources({"shapes": SOURCE})
>>> for diag in Analyzer().run(program).diagnostics:
...     print(diag)

Package layout
--------------
::

    unionlint/
    ├── __init__.py            ← this file
    ├── model.py
    ├── scanner.py
    ├── variants.py
    ├── facts.py
    ├── dispatch.py
    ├── classify.py
    ├── exhaustive.py
    ├── diagnostics.py
    ├── modgraph.py
    ├── analyzer.py
    ├── config.py
    ├── errors.py
    ├── main.py
    └── frontend/
        ├── pysource.py
        └── sexpdump.py
"""

from __future__ import annotations

__version__ = "0.1.0"

from unionlint.analyzer import AnalysisResult, Analyzer, analyze
from unionlint.config import AnalyzerConfig
from unionlint.diagnostics import Diagnostic, Reporter, SuppressionManager
from unionlint.errors import (
    DumpParseError,
    DuplicateFactError,
    FrontendError,
    InternalError,
    UnionLintError,
)
from unionlint.facts import FactStore, VariantSetFact
from unionlint.frontend import load_dumps, load_paths, parse_dump, program_from_sources
from unionlint.model import Program
from unionlint.variants import VariantName

__all__ = [
    "__version__",
    "AnalysisResult",
    "Analyzer",
    "analyze",
    "AnalyzerConfig",
    "Diagnostic",
    "Reporter",
    "SuppressionManager",
    "UnionLintError",
    "FrontendError",
    "DumpParseError",
    "InternalError",
    "DuplicateFactError",
    "FactStore",
    "VariantSetFact",
    "VariantName",
    "Program",
    "load_dumps",
    "load_paths",
    "parse_dump",
    "program_from_sources",
]
