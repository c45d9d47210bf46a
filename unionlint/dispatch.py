"""
unionlint/dispatch.py
═════════════════════

Dispatch-site matcher.

Pairs every type-dispatch construct of a module with the variant-set
fact of its scrutinee's type.  Constructs that do not dispatch over a
sealed contract are skipped, never reported:

  * the scrutinee's static type is unknown;
  * it is not a named abstract type (pointer-qualified, concrete, or
    undeclared);
  * no fact was exported for it.

Case-arm types that cannot be resolved are dropped from the handled
set; the rest of the site is still checked.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import FrozenSet, List, Optional, Tuple

from unionlint.facts import FactStore, VariantSetFact
from unionlint.model import DispatchNode, HostOracle, ModuleUnit, Stmt, SymbolRef
from unionlint.variants import VariantName

_log = logging.getLogger(__name__)


@dataclass(frozen=True)
class DispatchSite:
    """A dispatch construct matched against exactly one fact."""
    node: DispatchNode
    contract: SymbolRef
    fact: VariantSetFact
    handled: FrozenSet[VariantName]

    @property
    def default(self) -> Optional[Tuple[Stmt, ...]]:
        return self.node.default

    @property
    def has_default(self) -> bool:
        return self.node.has_default


def handled_variants(node: DispatchNode) -> FrozenSet[VariantName]:
    """Union of the identifiers named by all resolved case-arm types."""
    handled = set()
    for arm in node.arms:
        for ref in arm.types:
            if ref is None:
                _log.debug("%s: unresolved case type dropped", node.pos)
                continue
            handled.add(VariantName.of(ref))
    return frozenset(handled)


def match_site(
    node: DispatchNode,
    store: FactStore,
    oracle: HostOracle,
) -> Optional[DispatchSite]:
    """Return the matched site for *node*, or ``None`` when not applicable."""
    ref = node.scrutinee
    if ref is None:
        _log.debug("%s: scrutinee type unresolved", node.pos)
        return None
    if ref.pointer:
        return None
    decl = oracle.lookup(ref)
    if decl is None or not decl.is_abstract:
        return None
    fact = store.import_fact(ref.symbol)
    if fact is None:
        _log.debug("%s: %s is not a sealed contract", node.pos, ref)
        return None
    return DispatchSite(
        node=node,
        contract=ref.symbol,
        fact=fact,
        handled=handled_variants(node),
    )


def match_dispatch_sites(
    unit: ModuleUnit,
    store: FactStore,
    oracle: HostOracle,
) -> List[DispatchSite]:
    sites = []
    for node in unit.dispatches:
        site = match_site(node, store, oracle)
        if site is not None:
            sites.append(site)
    return sites


__all__ = ["DispatchSite", "handled_variants", "match_site", "match_dispatch_sites"]
