"""
unionlint/diagnostics.py
════════════════════════

Diagnostic model, suppressions and the reporting sink.

  ┌───────────────────────────────────────────────┐
  │  exhaustive.check_site                        │
  │        │ report(position, message)            │
  │  ┌─────▼──────────────┐                       │
  │  │      Reporter      │  thread-safe sink     │
  │  └─────┬──────────────┘                       │
  │  ┌─────▼──────────────┐                       │
  │  │ SuppressionManager │  inline │ file │ global│
  │  └─────┬──────────────┘                       │
  │        ▼                                      │
  │  Diagnostic → gcc / json / summary            │
  └───────────────────────────────────────────────┘

License: MIT — same as unionlint.
"""

from __future__ import annotations

import json
import threading
from collections import defaultdict
from dataclasses import dataclass, field
from enum import Enum
from fnmatch import fnmatch
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

from unionlint.model import SourcePos, SymbolRef

ERROR_ID = "missingCases"


# ═════════════════════════════════════════════════════════════════════════
#  PART 1 — DIAGNOSTIC MODEL
# ═════════════════════════════════════════════════════════════════════════

class DiagnosticSeverity(Enum):
    ERROR = "error"
    WARNING = "warning"
    INFORMATION = "information"


@dataclass(frozen=True)
class Diagnostic:
    """
    A single finding: one incomplete dispatch site.

    Attributes
    ----------
    message  : Human-readable description
    location : Position of the dispatch construct
    severity : DiagnosticSeverity
    error_id : Stable identifier used for suppression
    contract : Identity of the contract being dispatched on
    missing  : Module-qualified missing variants, canonical order
    """
    message: str
    location: SourcePos
    severity: DiagnosticSeverity = DiagnosticSeverity.WARNING
    error_id: str = ERROR_ID
    contract: Optional[SymbolRef] = None
    missing: Tuple[str, ...] = ()

    @property
    def sort_key(self) -> Tuple[str, int, int, str]:
        loc = self.location
        return (loc.file, loc.line, loc.column, self.message)

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "file": self.location.file,
            "linenr": self.location.line,
            "column": self.location.column,
            "severity": self.severity.value,
            "message": self.message,
            "errorId": self.error_id,
        }
        if self.contract is not None:
            result["contract"] = self.contract.qualified
            result["missing"] = list(self.missing)
        return result

    def to_json_str(self) -> str:
        return json.dumps(self.to_dict())

    def to_gcc_format(self) -> str:
        """file:line:col: severity: message [errorId]"""
        sev = self.severity.value
        return f"{self.location}: {sev}: {self.message} [{self.error_id}]"

    def __str__(self) -> str:
        return self.to_gcc_format()


# ═════════════════════════════════════════════════════════════════════════
#  PART 2 — SUPPRESSION MANAGER
# ═════════════════════════════════════════════════════════════════════════

class SuppressionManager:
    """
    Decides which diagnostics are dropped.

    Sources:
      1. Inline markers collected by the frontend (``# unionlint: ignore``)
      2. File-level suppressions (glob patterns)
      3. Global suppressions (error ids)
    """

    def __init__(self) -> None:
        self._inline: Dict[str, Set[int]] = defaultdict(set)
        self._file_level: Dict[str, Set[str]] = defaultdict(set)
        self._global: Set[str] = set()

    def copy(self) -> SuppressionManager:
        clone = SuppressionManager()
        for file, lines in self._inline.items():
            clone._inline[file].update(lines)
        for pattern, ids in self._file_level.items():
            clone._file_level[pattern].update(ids)
        clone._global.update(self._global)
        return clone

    def add_inline(self, file: str, lines: Iterable[int]) -> None:
        self._inline[file].update(lines)

    def add_file_suppression(self, file_pattern: str, error_id: str = "*") -> None:
        self._file_level[file_pattern].add(error_id)

    def add_global_suppression(self, error_id: str) -> None:
        self._global.add(error_id)

    def is_suppressed(self, diag: Diagnostic) -> bool:
        eid = diag.error_id
        if eid in self._global or "*" in self._global:
            return True

        loc = diag.location
        if loc.line in self._inline.get(loc.file, ()):
            return True

        for pattern, ids in self._file_level.items():
            if eid in ids or "*" in ids:
                if pattern == loc.file or fnmatch(loc.file, pattern):
                    return True
        return False

    def filter_diagnostics(self, diagnostics: Iterable[Diagnostic]) -> List[Diagnostic]:
        return [d for d in diagnostics if not self.is_suppressed(d)]


# ═════════════════════════════════════════════════════════════════════════
#  PART 3 — REPORTER
# ═════════════════════════════════════════════════════════════════════════

class Reporter:
    """Collects diagnostics from concurrently checked modules."""

    def __init__(self, suppressions: Optional[SuppressionManager] = None) -> None:
        self.suppressions = suppressions or SuppressionManager()
        self._diagnostics: List[Diagnostic] = []
        self._suppressed = 0
        self._lock = threading.Lock()

    def report(
        self,
        position: SourcePos,
        message: str,
        *,
        contract: Optional[SymbolRef] = None,
        missing: Tuple[str, ...] = (),
    ) -> None:
        diag = Diagnostic(
            message=message,
            location=position,
            contract=contract,
            missing=missing,
        )
        suppressed = self.suppressions.is_suppressed(diag)
        with self._lock:
            if suppressed:
                self._suppressed += 1
            else:
                self._diagnostics.append(diag)

    @property
    def suppressed_count(self) -> int:
        return self._suppressed

    def diagnostics(self) -> List[Diagnostic]:
        """All kept diagnostics in deterministic order."""
        with self._lock:
            return sorted(self._diagnostics, key=lambda d: d.sort_key)


# ═════════════════════════════════════════════════════════════════════════
#  PART 4 — RENDERING
# ═════════════════════════════════════════════════════════════════════════

def render(diagnostics: Iterable[Diagnostic], fmt: str = "gcc") -> str:
    """Render *diagnostics* as ``gcc`` lines, ``json`` lines or a ``summary``."""
    diags = list(diagnostics)
    if fmt == "json":
        return "\n".join(d.to_json_str() for d in diags)
    lines = [d.to_gcc_format() for d in diags]
    if fmt == "summary":
        files = {d.location.file for d in diags}
        lines.append("")
        lines.append(
            f"--- {len(diags)} incomplete dispatch site(s) in {len(files)} file(s) ---"
        )
    return "\n".join(lines)


__all__ = [
    "ERROR_ID",
    "DiagnosticSeverity",
    "Diagnostic",
    "SuppressionManager",
    "Reporter",
    "render",
]
