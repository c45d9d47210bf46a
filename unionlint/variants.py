"""
unionlint/variants.py
═════════════════════

Variant identifiers and the variant-set builder.

A variant is a concrete type declared in the same module as its
contract that structurally implements the contract's discriminator.
The bare form is tried first; a type that only implements the
discriminator through its pointer-qualified form is recorded as such
(``*Circle``).

Identifiers are a small value type with one canonical string form, so
sorting, set membership and reporting all agree:

    VariantName("Circle", pointer=True)         → "*Circle"
    VariantName("Circle", True).qualified("union") → "union.*Circle"

Ordering is lexicographic on the canonical string, pointer marker
included.
"""

from __future__ import annotations

import functools
import logging
from dataclasses import dataclass
from typing import Iterable, List, Tuple

from unionlint.model import HostOracle, ModuleUnit, TypeRef

_log = logging.getLogger(__name__)

POINTER_MARKER = "*"


@functools.total_ordering
@dataclass(frozen=True)
class VariantName:
    """Canonical identifier of a variant or of a handled case type."""
    name: str
    pointer: bool = False

    @classmethod
    def of(cls, ref: TypeRef) -> VariantName:
        return cls(ref.symbol.name, ref.pointer)

    @classmethod
    def parse(cls, text: str) -> VariantName:
        if text.startswith(POINTER_MARKER):
            return cls(text[len(POINTER_MARKER):], True)
        return cls(text, False)

    @property
    def canonical(self) -> str:
        return (POINTER_MARKER if self.pointer else "") + self.name

    def qualified(self, module_short: str) -> str:
        """``<module>.<canonical>``, the form used in diagnostics."""
        if not module_short:
            return self.canonical
        return f"{module_short}.{self.canonical}"

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, VariantName):
            return NotImplemented
        return self.canonical < other.canonical

    def __str__(self) -> str:
        return self.canonical


def sorted_variants(names: Iterable[VariantName]) -> Tuple[VariantName, ...]:
    """Deduplicate and sort into the canonical order."""
    return tuple(sorted(set(names)))


def build_variant_set(
    unit: ModuleUnit,
    discriminator: str,
    oracle: HostOracle,
) -> Tuple[VariantName, ...]:
    """Enumerate the variants of a contract declared in *unit*.

    Only concrete types of the declaring module are candidates; a
    discriminator with an unexported name cannot be implemented from
    anywhere else.
    """
    members: List[VariantName] = []
    for decl in unit.declarations:
        if decl.is_abstract:
            continue
        bare = TypeRef(unit.symbol(decl.name))
        if oracle.implements(bare, discriminator):
            members.append(VariantName(decl.name))
        elif oracle.implements(bare.as_pointer(), discriminator):
            members.append(VariantName(decl.name, pointer=True))
    variants = sorted_variants(members)
    _log.debug(
        "%s: %d variant(s) implement %s(): %s",
        unit.name, len(variants), discriminator,
        " ".join(v.canonical for v in variants),
    )
    return variants


__all__ = ["POINTER_MARKER", "VariantName", "sorted_variants", "build_variant_set"]
