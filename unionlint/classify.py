"""
unionlint/classify.py
═════════════════════

Default-arm classifier.

Only the *last* statement of a catch-all arm decides its class; the
statements before it are ignored.

  SAFETY_GUARD  (exhaustiveness still enforced)
      - a call to the host's panic / abort primitive, any arguments;
      - a return where at least one result that is not a literal nil
        has an error-capable type, directly or through its
        pointer-qualified form.

  INTENTIONAL   (site is not checked)
      - any other last statement, including a return of nothing but
        literal nils or of plain non-error values;
      - an empty arm.

A site without any catch-all arm is always checked; see
:func:`enforces_exhaustiveness`.
"""

from __future__ import annotations

import enum
from typing import Optional, Sequence

from unionlint.model import AbortCall, HostOracle, ResultExpr, ReturnStmt, Stmt


class DefaultArmKind(enum.Enum):
    INTENTIONAL = "intentional"
    SAFETY_GUARD = "safety-guard"


def is_error_result(result: ResultExpr, oracle: HostOracle) -> bool:
    if result.nil or result.type is None:
        return False
    ref = result.type
    return oracle.is_error(ref) or oracle.is_error(ref.as_pointer())


def classify_default_arm(
    body: Sequence[Stmt],
    oracle: HostOracle,
) -> DefaultArmKind:
    if not body:
        return DefaultArmKind.INTENTIONAL
    last = body[-1]
    if isinstance(last, AbortCall):
        return DefaultArmKind.SAFETY_GUARD
    if isinstance(last, ReturnStmt):
        if any(is_error_result(r, oracle) for r in last.results):
            return DefaultArmKind.SAFETY_GUARD
    return DefaultArmKind.INTENTIONAL


def enforces_exhaustiveness(
    default: Optional[Sequence[Stmt]],
    oracle: HostOracle,
) -> bool:
    """Should a site with this catch-all arm (or none) be checked?"""
    if default is None:
        return True
    return classify_default_arm(default, oracle) is DefaultArmKind.SAFETY_GUARD


__all__ = [
    "DefaultArmKind",
    "is_error_result",
    "classify_default_arm",
    "enforces_exhaustiveness",
]
