"""
unionlint/model.py
══════════════════

Host model consumed by the analysis engine.

The engine never walks a concrete syntax tree.  A frontend (see
:mod:`unionlint.frontend`) parses and type-resolves the sources of one
host language and lowers every compilation module into the immutable
records defined here:

  ┌──────────────────────────────────────────────────────────────────┐
  │  Program                                                         │
  │    modules : name → ModuleUnit                                   │
  │    oracle  : HostOracle   (type relations of the host language)  │
  │                                                                  │
  │  ModuleUnit                                                      │
  │    declarations : TypeDecl …      (module-level type decls)      │
  │    dispatches   : DispatchNode …  (type-dispatch constructs)     │
  │    imports      : names of modules this module depends on        │
  └──────────────────────────────────────────────────────────────────┘

Everything the engine needs to know about the host's type system goes
through :class:`HostOracle`: naming convention (exported or not),
structural implementation of a method, and the error capability.

License: MIT — same as unionlint.
"""

from __future__ import annotations

import enum
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Iterator, Optional, Tuple, Union


# ═════════════════════════════════════════════════════════════════════════
#  PART 1 — SYMBOLS AND TYPES
# ═════════════════════════════════════════════════════════════════════════

#: Module name used for the host's universe (builtin) scope.
UNIVERSE = ""


@dataclass(frozen=True, order=True)
class SymbolRef:
    """A qualified, module-level symbol: the identity of a declared type."""
    module: str
    name: str

    @property
    def qualified(self) -> str:
        if not self.module:
            return self.name
        return f"{self.module}.{self.name}"

    def __str__(self) -> str:
        return self.qualified


@dataclass(frozen=True, order=True)
class TypeRef:
    """A resolved static type: a named type, optionally pointer-qualified."""
    symbol: SymbolRef
    pointer: bool = False

    @classmethod
    def named(cls, module: str, name: str, pointer: bool = False) -> TypeRef:
        return cls(SymbolRef(module, name), pointer)

    def as_pointer(self) -> TypeRef:
        return TypeRef(self.symbol, True)

    def as_value(self) -> TypeRef:
        return TypeRef(self.symbol, False)

    def __str__(self) -> str:
        return ("*" if self.pointer else "") + self.symbol.qualified


@dataclass(frozen=True)
class SourcePos:
    """A point in a source file (1-based line and column)."""
    file: str = ""
    line: int = 0
    column: int = 0

    def __str__(self) -> str:
        if self.column:
            return f"{self.file}:{self.line}:{self.column}"
        return f"{self.file}:{self.line}"


# ═════════════════════════════════════════════════════════════════════════
#  PART 2 — DECLARATIONS
# ═════════════════════════════════════════════════════════════════════════

class TypeKind(enum.Enum):
    ABSTRACT = "abstract"
    CONCRETE = "concrete"


@dataclass(frozen=True)
class MethodSig:
    """A declared method: name plus parameter / result arity."""
    name: str
    params: int = 0
    results: int = 0


@dataclass(frozen=True)
class TypeDecl:
    """A module-level type declaration.

    For ABSTRACT declarations ``methods`` lists the declared contract
    methods in source order; the scanner relies on that order.
    """
    name: str
    kind: TypeKind
    methods: Tuple[MethodSig, ...] = ()
    pos: SourcePos = field(default_factory=SourcePos)

    @property
    def is_abstract(self) -> bool:
        return self.kind is TypeKind.ABSTRACT


# ═════════════════════════════════════════════════════════════════════════
#  PART 3 — DISPATCH CONSTRUCTS
# ═════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class ResultExpr:
    """One result expression of a return statement.

    ``type`` is ``None`` when the host could not resolve it.
    """
    type: Optional[TypeRef] = None
    nil: bool = False


@dataclass(frozen=True)
class AbortCall:
    """A call to the host's panic / abort primitive."""
    callee: str


@dataclass(frozen=True)
class ReturnStmt:
    results: Tuple[ResultExpr, ...] = ()


@dataclass(frozen=True)
class OtherStmt:
    """Any statement that is neither an abort call nor a return."""
    kind: str = "stmt"


Stmt = Union[AbortCall, ReturnStmt, OtherStmt]


@dataclass(frozen=True)
class CaseArm:
    """One case arm; ``types`` holds ``None`` for unresolved entries."""
    types: Tuple[Optional[TypeRef], ...]
    pos: SourcePos = field(default_factory=SourcePos)


@dataclass(frozen=True)
class DispatchNode:
    """A type-dispatch construct as lowered by a frontend.

    ``default`` is ``None`` when there is no catch-all arm, and a
    (possibly empty) tuple of statements when there is one.
    """
    pos: SourcePos
    scrutinee: Optional[TypeRef]
    arms: Tuple[CaseArm, ...] = ()
    default: Optional[Tuple[Stmt, ...]] = None

    @property
    def has_default(self) -> bool:
        return self.default is not None


# ═════════════════════════════════════════════════════════════════════════
#  PART 4 — MODULES, ORACLE, PROGRAM
# ═════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class ModuleUnit:
    """One compilation module, fully lowered."""
    name: str
    short_name: str
    file: str = ""
    imports: FrozenSet[str] = frozenset()
    declarations: Tuple[TypeDecl, ...] = ()
    dispatches: Tuple[DispatchNode, ...] = ()
    suppressed_lines: FrozenSet[int] = frozenset()

    def symbol(self, name: str) -> SymbolRef:
        return SymbolRef(self.name, name)


class HostOracle(ABC):
    """Type relations of the host language.

    Frontends subclass this; the engine only ever asks these four
    questions.
    """

    @abstractmethod
    def is_exported(self, name: str) -> bool:
        """Does *name* count as exported under the host's naming convention?"""

    @abstractmethod
    def lookup(self, ref: TypeRef) -> Optional[TypeDecl]:
        """Return the declaration behind *ref* (pointer flag ignored)."""

    @abstractmethod
    def implements(
        self,
        ref: TypeRef,
        method: str,
        params: int = 0,
        results: int = 0,
    ) -> bool:
        """Does the type *ref* (bare or pointer form) have *method* with that arity?"""

    @abstractmethod
    def is_error(self, ref: TypeRef) -> bool:
        """Does *ref* satisfy the host's built-in error capability?"""


@dataclass
class Program:
    """All modules of one analysis run plus the oracle that describes them."""
    modules: Dict[str, ModuleUnit]
    oracle: HostOracle

    def __iter__(self) -> Iterator[ModuleUnit]:
        return iter(self.modules.values())

    def __len__(self) -> int:
        return len(self.modules)

    def short_name(self, module: str) -> str:
        unit = self.modules.get(module)
        if unit is not None:
            return unit.short_name
        return module.rsplit(".", 1)[-1].rsplit("/", 1)[-1]


__all__ = [
    "UNIVERSE",
    "SymbolRef",
    "TypeRef",
    "SourcePos",
    "TypeKind",
    "MethodSig",
    "TypeDecl",
    "ResultExpr",
    "AbortCall",
    "ReturnStmt",
    "OtherStmt",
    "Stmt",
    "CaseArm",
    "DispatchNode",
    "ModuleUnit",
    "HostOracle",
    "Program",
]
