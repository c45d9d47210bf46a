"""
unionlint/scanner.py
════════════════════

Declaration scanner: finds sealed contracts in one module.

A contract is an abstract type declaration carrying a *discriminator*:
a method that is unexported under the host's naming convention and has
no parameters and no results.  The first such method in declaration
order is the discriminator; a contract records exactly one.
"""

from __future__ import annotations

import logging
from typing import Dict, Optional

from unionlint.model import HostOracle, MethodSig, ModuleUnit, SymbolRef, TypeDecl

_log = logging.getLogger(__name__)


def is_discriminator(method: MethodSig, oracle: HostOracle) -> bool:
    """Unexported, zero parameters, zero results."""
    return (
        not oracle.is_exported(method.name)
        and method.params == 0
        and method.results == 0
    )


def find_discriminator(decl: TypeDecl, oracle: HostOracle) -> Optional[str]:
    """Return the discriminator method name of *decl*, or ``None``."""
    if not decl.is_abstract:
        return None
    for method in decl.methods:
        if is_discriminator(method, oracle):
            return method.name
    return None


def scan_declarations(unit: ModuleUnit, oracle: HostOracle) -> Dict[SymbolRef, str]:
    """Map every sealed contract declared in *unit* to its discriminator.

    The returned dict preserves declaration order.  Abstract types without
    a qualifying method are simply not contracts.
    """
    candidates: Dict[SymbolRef, str] = {}
    for decl in unit.declarations:
        marker = find_discriminator(decl, oracle)
        if marker is None:
            continue
        ref = unit.symbol(decl.name)
        _log.debug("%s: contract %s sealed by %s()", unit.name, ref, marker)
        candidates[ref] = marker
    return candidates


__all__ = ["is_discriminator", "find_discriminator", "scan_declarations"]
