"""
unionlint/facts.py
══════════════════

Variant-set facts and the run-wide fact store.

A fact is created once per contract per run, when the declaring
module's scan completes, and is never mutated afterwards.  Modules that
depend on the declaring module read it back while checking their own
dispatch sites.

The store is the only shared mutable structure of a run.  Phase-1 scans
of independent modules may export concurrently and phase-2 checks may
import concurrently, so every access goes through one lock.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional, Tuple

from unionlint.errors import DuplicateFactError
from unionlint.model import SymbolRef
from unionlint.variants import VariantName, sorted_variants

_log = logging.getLogger(__name__)


@dataclass(frozen=True)
class VariantSetFact:
    """Discriminator name plus the sorted, deduplicated variant list."""
    discriminator: str
    variants: Tuple[VariantName, ...]

    @classmethod
    def create(cls, discriminator: str, variants) -> VariantSetFact:
        return cls(discriminator, sorted_variants(variants))

    @property
    def members(self) -> List[str]:
        return [v.canonical for v in self.variants]

    def __str__(self) -> str:
        return "{%s [%s]}" % (self.discriminator, " ".join(self.members))


class FactStore:
    """Insert-once map from contract identity to :class:`VariantSetFact`."""

    def __init__(self) -> None:
        self._facts: Dict[SymbolRef, VariantSetFact] = {}
        self._lock = threading.Lock()

    def export(self, contract: SymbolRef, fact: VariantSetFact) -> None:
        """Publish *fact* for *contract*.

        Raises
        ------
        DuplicateFactError
            If a fact for *contract* was already exported in this run.
        """
        with self._lock:
            if contract in self._facts:
                raise DuplicateFactError(contract)
            self._facts[contract] = fact
        _log.debug("exported %s: %s", contract, fact)

    def import_fact(self, contract: SymbolRef) -> Optional[VariantSetFact]:
        with self._lock:
            return self._facts.get(contract)

    def __contains__(self, contract: object) -> bool:
        with self._lock:
            return contract in self._facts

    def __len__(self) -> int:
        with self._lock:
            return len(self._facts)

    def items(self) -> List[Tuple[SymbolRef, VariantSetFact]]:
        """Snapshot of all facts, ordered by contract identity."""
        with self._lock:
            return sorted(self._facts.items())

    def __iter__(self) -> Iterator[SymbolRef]:
        return iter([contract for contract, _ in self.items()])


__all__ = ["VariantSetFact", "FactStore"]
