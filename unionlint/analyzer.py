"""
unionlint/analyzer.py
═════════════════════

Drives one analysis run over a lowered :class:`~unionlint.model.Program`.

Each module goes through two phases:

  1. **export**  — scan declarations for sealed contracts, build each
                   contract's variant set, export it to the fact store;
  2. **check**   — match dispatch constructs against imported facts,
                   classify catch-all arms, report missing variants.

Modules are processed level by level over the module-dependency graph
(see :mod:`unionlint.modgraph`), so by the time a module is checked every
module it imports has exported its facts:

    for level in graph.levels():
        phase 1 for every module in level     (concurrent if jobs > 1)
        phase 2 for every module in level     (concurrent if jobs > 1)

The run is single-pass and deterministic.  The only way it fails is an
engine invariant violation (:class:`~unionlint.errors.InternalError`),
which propagates to the caller.

Usage
-----
>>> program = load_paths(["src/"])
>>> result = Analyzer(AnalyzerConfig(jobs=4)).run(program)
>>> print(result.summary())
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence, Tuple, TypeVar

from unionlint.config import AnalyzerConfig
from unionlint.diagnostics import Diagnostic, Reporter, SuppressionManager
from unionlint.dispatch import match_dispatch_sites
from unionlint.exhaustive import check_site
from unionlint.facts import FactStore, VariantSetFact
from unionlint.model import ModuleUnit, Program, SymbolRef
from unionlint.modgraph import ModuleGraph
from unionlint.scanner import scan_declarations
from unionlint.variants import build_variant_set

_log = logging.getLogger(__name__)

T = TypeVar("T")


# ═════════════════════════════════════════════════════════════════════════
#  PART 1 — RESULTS
# ═════════════════════════════════════════════════════════════════════════

@dataclass
class ModuleStats:
    contracts: int = 0
    dispatches: int = 0
    matched: int = 0
    reported: int = 0


@dataclass
class AnalysisResult:
    """
    Aggregate results of one run.

    Attributes
    ----------
    diagnostics : kept diagnostics, ordered by position
    facts       : every exported fact, ordered by contract identity
    stats       : per-module counters
    suppressed  : number of diagnostics dropped by suppressions
    elapsed_ms  : wall-clock time of the run
    """
    diagnostics: List[Diagnostic] = field(default_factory=list)
    facts: List[Tuple[SymbolRef, VariantSetFact]] = field(default_factory=list)
    stats: Dict[str, ModuleStats] = field(default_factory=dict)
    suppressed: int = 0
    elapsed_ms: float = 0.0

    @property
    def total_count(self) -> int:
        return len(self.diagnostics)

    @property
    def ok(self) -> bool:
        return not self.diagnostics

    def by_file(self, file: str) -> List[Diagnostic]:
        return [d for d in self.diagnostics if d.location.file == file]

    def summary(self) -> str:
        contracts = sum(s.contracts for s in self.stats.values())
        matched = sum(s.matched for s in self.stats.values())
        lines = [
            f"unionlint: {len(self.stats)} module(s), {contracts} sealed contract(s), "
            f"{matched} dispatch site(s) checked, {self.total_count} incomplete "
            f"({self.suppressed} suppressed) in {self.elapsed_ms:.1f}ms",
        ]
        for name in sorted(self.stats):
            s = self.stats[name]
            if s.contracts or s.matched:
                lines.append(
                    f"  {name}: {s.contracts} contract(s), "
                    f"{s.matched}/{s.dispatches} site(s), {s.reported} reported"
                )
        return "\n".join(lines)


# ═════════════════════════════════════════════════════════════════════════
#  PART 2 — ANALYZER
# ═════════════════════════════════════════════════════════════════════════

class Analyzer:
    """Runs both phases over every module of a program."""

    def __init__(
        self,
        config: Optional[AnalyzerConfig] = None,
        suppressions: Optional[SuppressionManager] = None,
    ) -> None:
        self.config = config or AnalyzerConfig()
        for w in self.config.validate():
            _log.warning("AnalyzerConfig: %s", w)
        self.suppressions = suppressions or SuppressionManager()
        for eid in self.config.suppress:
            self.suppressions.add_global_suppression(eid)
        for pattern in self.config.suppress_files:
            self.suppressions.add_file_suppression(pattern)

    # ── phase 1 ──────────────────────────────────────────────────────

    def export_facts(self, unit: ModuleUnit, program: Program, store: FactStore) -> int:
        """Scan *unit* and export one fact per sealed contract it declares."""
        contracts = scan_declarations(unit, program.oracle)
        for contract, marker in contracts.items():
            variants = build_variant_set(unit, marker, program.oracle)
            store.export(contract, VariantSetFact.create(marker, variants))
        return len(contracts)

    # ── phase 2 ──────────────────────────────────────────────────────

    def check_module(
        self,
        unit: ModuleUnit,
        program: Program,
        store: FactStore,
        reporter: Reporter,
    ) -> Tuple[int, int]:
        """Check every dispatch site of *unit*; return (matched, reported)."""
        sites = match_dispatch_sites(unit, store, program.oracle)
        reported = 0
        for site in sites:
            declaring = program.short_name(site.contract.module)
            if check_site(site, declaring, program.oracle, reporter):
                reported += 1
        return len(sites), reported

    # ── driver ───────────────────────────────────────────────────────

    def facts(self, program: Program) -> FactStore:
        """Run phase 1 only and return the populated store."""
        store = FactStore()
        with self._executor() as pool:
            for level in ModuleGraph.from_program(program).levels():
                units = [program.modules[name] for name in level]
                self._map(pool, lambda u: self.export_facts(u, program, store), units)
        return store

    def run(self, program: Program) -> AnalysisResult:
        t0 = time.monotonic()
        graph = ModuleGraph.from_program(program)
        _log.info("analyzing %d module(s): %r", len(program), graph)

        # Inline markers belong to this program only.
        suppressions = self.suppressions.copy()
        for unit in program:
            if not unit.suppressed_lines:
                continue
            files = {node.pos.file for node in unit.dispatches}
            if unit.file:
                files.add(unit.file)
            for file in files:
                suppressions.add_inline(file, unit.suppressed_lines)

        store = FactStore()
        reporter = Reporter(suppressions)
        stats: Dict[str, ModuleStats] = {
            unit.name: ModuleStats(dispatches=len(unit.dispatches)) for unit in program
        }

        with self._executor() as pool:
            for depth, level in enumerate(graph.levels()):
                units = [program.modules[name] for name in level]
                _log.debug("level %d: %s", depth, ", ".join(level))

                exported = self._map(
                    pool, lambda u: self.export_facts(u, program, store), units
                )
                checked = self._map(
                    pool, lambda u: self.check_module(u, program, store, reporter), units
                )
                for unit, n_contracts, (matched, reported) in zip(units, exported, checked):
                    s = stats[unit.name]
                    s.contracts = n_contracts
                    s.matched = matched
                    s.reported = reported

        result = AnalysisResult(
            diagnostics=reporter.diagnostics(),
            facts=store.items(),
            stats=stats,
            suppressed=reporter.suppressed_count,
            elapsed_ms=(time.monotonic() - t0) * 1000.0,
        )
        _log.info(
            "%d fact(s) exported, %d incomplete site(s)",
            len(result.facts), result.total_count,
        )
        return result

    # ── helpers ──────────────────────────────────────────────────────

    def _executor(self) -> ThreadPoolExecutor:
        return ThreadPoolExecutor(
            max_workers=self.config.workers, thread_name_prefix="unionlint"
        )

    def _map(
        self,
        pool: ThreadPoolExecutor,
        fn: Callable[[ModuleUnit], T],
        units: Sequence[ModuleUnit],
    ) -> List[T]:
        if self.config.workers == 1 or len(units) < 2:
            return [fn(u) for u in units]
        return list(pool.map(fn, units))


def analyze(program: Program, config: Optional[AnalyzerConfig] = None) -> AnalysisResult:
    """Convenience wrapper: ``Analyzer(config).run(program)``."""
    return Analyzer(config).run(program)


__all__ = ["ModuleStats", "AnalysisResult", "Analyzer", "analyze"]
