"""
unionlint/exhaustive.py
═══════════════════════

Exhaustiveness checker.

    required = fact.variants
    handled  = identifiers named by the site's case arms
    missing  = required − handled            (canonical order)

A site with an intentional catch-all arm is not checked at all.  A site
with nothing missing never emits, whatever its catch-all arm looks like.
Otherwise one diagnostic is emitted per site, every missing variant
qualified with the short name of the contract's declaring module:

    missing cases in type switch on Shape: union.*Rectangle, union.*Triangle
"""

from __future__ import annotations

import logging
from typing import Sequence, Tuple

from unionlint.classify import enforces_exhaustiveness
from unionlint.diagnostics import Reporter
from unionlint.dispatch import DispatchSite
from unionlint.model import HostOracle
from unionlint.variants import VariantName

_log = logging.getLogger(__name__)

MESSAGE_PREFIX = "missing cases in type switch on"


def missing_variants(site: DispatchSite) -> Tuple[VariantName, ...]:
    return tuple(v for v in site.fact.variants if v not in site.handled)


def format_message(
    contract_name: str,
    module_short: str,
    missing: Sequence[VariantName],
) -> str:
    listed = ", ".join(v.qualified(module_short) for v in missing)
    return f"{MESSAGE_PREFIX} {contract_name}: {listed}"


def check_site(
    site: DispatchSite,
    module_short: str,
    oracle: HostOracle,
    reporter: Reporter,
) -> bool:
    """Check one site; report and return ``True`` if variants are missing.

    *module_short* is the short name of the module declaring the
    contract, not of the module containing the site.
    """
    if not enforces_exhaustiveness(site.default, oracle):
        _log.debug("%s: intentional default arm, not checked", site.node.pos)
        return False
    missing = missing_variants(site)
    if not missing:
        return False
    reporter.report(
        site.node.pos,
        format_message(site.contract.name, module_short, missing),
        contract=site.contract,
        missing=tuple(v.qualified(module_short) for v in missing),
    )
    return True


__all__ = ["MESSAGE_PREFIX", "missing_variants", "format_message", "check_site"]
