"""unionlint/frontend/sexpdump.py – pre-resolved S-expression dump → host model.

Some host languages resolve types out of process (the Go toolchain is
the motivating case).  Their exporter writes one S-expression per
program, already type-resolved, and this module lowers it into
:class:`~unionlint.model.ModuleUnit` records plus a :class:`DumpOracle`
that answers the engine's type questions with the host's rules.

Design principles
-----------------
* **Head-symbol dispatch** – every list ``(tag ...)`` inside a module is
  dispatched on ``tag`` to a ``_read_<tag>`` helper registered with
  ``@_register``.
* **Fail-fast with location** – :class:`~unionlint.errors.DumpParseError`
  names the dump file and the module being read.
* **Go method sets** – value-receiver methods belong to ``T`` and ``*T``;
  pointer-receiver methods belong to ``*T`` only.  Interface methods are
  kept sorted by name, the order go/types reports them in.

Surface syntax
--------------
::

    (program
      (module <name>
        (short <name>)                      ;; optional, default: last path part
        (file "<path>")
        (imports <module> ...)
        (interface <Name> (at "<f>" <line> <col>)? (method <m> <params> <results>) ...)
        (struct <Name> (at ...)?)
        (type <Name> (at ...)?)
        (method <recv> <m> <params> <results>)    ;; recv: T | (* T)
        (switch (at "<f>" <line> <col>) (on <type>)
          (case <type> ...) ...
          (default <stmt> ...))
        (suppress <line> ...)))           ;; lines of this module's switches, any file

    <type>  ::= Name | mod.Name | (* <type>) | ?
    <stmt>  ::= (call <callee> <arg> ...) | (return <expr> ...) | (stmt <kind>?)
    <expr>  ::= nil | ? | <type>

Public API
----------
``parse_dump(text, filename) -> Program``
``load_dumps(paths) -> Program``

License: MIT — same as unionlint.
"""

from __future__ import annotations

import logging
import pathlib
from typing import (
    Any,
    Callable,
    Dict,
    FrozenSet,
    Iterable,
    List,
    NoReturn,
    Optional,
    Set,
    Tuple,
)

import sexpdata
from sexpdata import Symbol

from unionlint.errors import DumpParseError, SourceSpan
from unionlint.model import (
    UNIVERSE,
    AbortCall,
    CaseArm,
    DispatchNode,
    HostOracle,
    MethodSig,
    ModuleUnit,
    OtherStmt,
    Program,
    ResultExpr,
    ReturnStmt,
    SourcePos,
    Stmt,
    SymbolRef,
    TypeDecl,
    TypeKind,
    TypeRef,
)

_log = logging.getLogger(__name__)

Sexp = Any  # Union[list, Symbol, str, int]

#: The host's abort primitive.
ABORT_CALLEES: FrozenSet[str] = frozenset({"panic"})

ERROR_TYPE = SymbolRef(UNIVERSE, "error")

#: Predeclared type names resolved into the universe scope.
UNIVERSE_TYPES: FrozenSet[str] = frozenset({
    "error", "any", "bool", "string", "byte", "rune",
    "int", "int8", "int16", "int32", "int64",
    "uint", "uint8", "uint16", "uint32", "uint64", "uintptr",
    "float32", "float64", "complex64", "complex128",
})

UNRESOLVED = "?"
POINTER_HEAD = "*"


# ═══════════════════════════════════════════════════════════════════════
#  Oracle
# ═══════════════════════════════════════════════════════════════════════

class DumpOracle(HostOracle):
    """Type relations of a dumped program, following the host's rules."""

    def __init__(self) -> None:
        self._decls: Dict[SymbolRef, TypeDecl] = {
            ERROR_TYPE: TypeDecl("error", TypeKind.ABSTRACT, (MethodSig("Error", 0, 1),)),
        }
        self._value_methods: Dict[SymbolRef, Dict[str, MethodSig]] = {}
        self._pointer_methods: Dict[SymbolRef, Dict[str, MethodSig]] = {}

    # ── population ───────────────────────────────────────────────────

    def declare(self, module: str, decl: TypeDecl) -> None:
        self._decls[SymbolRef(module, decl.name)] = decl

    def add_method(self, receiver: TypeRef, sig: MethodSig) -> None:
        table = self._pointer_methods if receiver.pointer else self._value_methods
        table.setdefault(receiver.symbol, {})[sig.name] = sig

    # ── HostOracle ───────────────────────────────────────────────────

    def is_exported(self, name: str) -> bool:
        return name[:1].isupper()

    def lookup(self, ref: TypeRef) -> Optional[TypeDecl]:
        decl = self._decls.get(ref.symbol)
        if decl is None and ref.symbol.module == UNIVERSE and ref.symbol.name in UNIVERSE_TYPES:
            return TypeDecl(ref.symbol.name, TypeKind.CONCRETE)
        return decl

    def method_set(self, ref: TypeRef) -> Dict[str, MethodSig]:
        decl = self.lookup(ref)
        if decl is None:
            return {}
        if decl.is_abstract:
            # A pointer to an interface has no methods.
            return {} if ref.pointer else {m.name: m for m in decl.methods}
        methods = dict(self._value_methods.get(ref.symbol, {}))
        if ref.pointer:
            methods.update(self._pointer_methods.get(ref.symbol, {}))
        return methods

    def implements(self, ref: TypeRef, method: str, params: int = 0, results: int = 0) -> bool:
        sig = self.method_set(ref).get(method)
        return sig is not None and sig.params == params and sig.results == results

    def is_error(self, ref: TypeRef) -> bool:
        if ref.symbol == ERROR_TYPE and not ref.pointer:
            return True
        return self.implements(ref, "Error", 0, 1)


# ═══════════════════════════════════════════════════════════════════════
#  Helpers
# ═══════════════════════════════════════════════════════════════════════

def _is_symbol(s: Sexp, name: Optional[str] = None) -> bool:
    return isinstance(s, Symbol) and (name is None or str(s) == name)


def _register(table: dict, tag: str):
    """Decorator: register a reader method under *tag* in *table*."""
    def deco(fn):
        table[tag] = fn
        return fn
    return deco


_MODULE_ITEM_DISPATCH: Dict[str, Callable[..., None]] = {}
_STMT_DISPATCH: Dict[str, Callable[..., Stmt]] = {}

#: Clauses that declare a type name in the current module.
_DECL_TAGS = ("interface", "struct", "type")


# ═══════════════════════════════════════════════════════════════════════
#  Module reader
# ═══════════════════════════════════════════════════════════════════════

class _ModuleReader:
    """Reads one ``(module ...)`` form; collects its parts, then builds the unit."""

    def __init__(self, name: str, filename: str, oracle: DumpOracle) -> None:
        self.name = name
        self.dump_file = filename
        self.oracle = oracle
        self.short_name = name.rsplit("/", 1)[-1]
        self.file = ""
        self.imports: Set[str] = set()
        self.declarations: Dict[str, TypeDecl] = {}
        self.methods: Dict[str, List[MethodSig]] = {}
        self.dispatches: List[DispatchNode] = []
        self.suppressed: Set[int] = set()
        self.local_names: Set[str] = set()

    # ── errors ───────────────────────────────────────────────────────

    def fail(self, message: str) -> NoReturn:
        raise DumpParseError(
            f"module {self.name}: {message}", span=SourceSpan(file=self.dump_file)
        )

    # ── shape checks ─────────────────────────────────────────────────

    def name_of(self, s: Sexp) -> str:
        if _is_symbol(s):
            return str(s)
        self.fail(f"expected a name, got {s!r}")

    def string_of(self, s: Sexp) -> str:
        if isinstance(s, str):
            return str(s)
        self.fail(f"expected a string, got {s!r}")

    def int_of(self, s: Sexp) -> int:
        if isinstance(s, int) and not isinstance(s, bool):
            return s
        self.fail(f"expected an integer, got {s!r}")

    def form(self, s: Sexp, tag: Optional[str] = None, min_len: int = 1) -> list:
        if not isinstance(s, list) or not s or not _is_symbol(s[0]):
            self.fail(f"expected a (tag ...) form, got {s!r}")
        if tag is not None and str(s[0]) != tag:
            self.fail(f"expected ({tag} ...), got ({s[0]} ...)")
        if len(s) < min_len:
            self.fail(f"({s[0]} ...) needs at least {min_len - 1} argument(s)")
        return s

    # ── types ────────────────────────────────────────────────────────

    def type_of(self, s: Sexp) -> Optional[TypeRef]:
        """Resolve a type reference; ``None`` for the unresolved marker."""
        if isinstance(s, list):
            lst = self.form(s, POINTER_HEAD, min_len=2)
            inner = self.type_of(lst[1])
            return None if inner is None else inner.as_pointer()
        text = self.name_of(s)
        if text == UNRESOLVED:
            return None
        if "." in text:
            module, _, name = text.rpartition(".")
            return TypeRef.named(module, name)
        if text in UNIVERSE_TYPES and text not in self.local_names:
            return TypeRef.named(UNIVERSE, text)
        return TypeRef.named(self.name, text)

    def pos_of(self, s: Sexp) -> SourcePos:
        lst = self.form(s, "at", min_len=4)
        return SourcePos(self.string_of(lst[1]), self.int_of(lst[2]), self.int_of(lst[3]))

    def optional_pos(self, items: list) -> Tuple[SourcePos, list]:
        if items and isinstance(items[0], list) and items[0] and _is_symbol(items[0][0], "at"):
            return self.pos_of(items[0]), items[1:]
        return SourcePos(self.file), items

    def sig_of(self, name: Sexp, params: Sexp, results: Sexp) -> MethodSig:
        return MethodSig(self.name_of(name), self.int_of(params), self.int_of(results))

    # ── driver ───────────────────────────────────────────────────────

    def read(self, items: list) -> ModuleUnit:
        # Declared names first, so bare references resolve locally
        # regardless of clause order.
        for item in items:
            lst = self.form(item)
            if str(lst[0]) in _DECL_TAGS and len(lst) > 1:
                self.local_names.add(self.name_of(lst[1]))
        for item in items:
            lst = self.form(item)
            reader = _MODULE_ITEM_DISPATCH.get(str(lst[0]))
            if reader is None:
                self.fail(f"unknown clause ({lst[0]} ...)")
            reader(self, lst)
        return self.build()

    def build(self) -> ModuleUnit:
        decls = []
        for name, decl in self.declarations.items():
            if not decl.is_abstract:
                decl = TypeDecl(name, decl.kind, tuple(self.methods.get(name, ())), decl.pos)
            self.oracle.declare(self.name, decl)
            decls.append(decl)
        return ModuleUnit(
            name=self.name,
            short_name=self.short_name,
            file=self.file,
            imports=frozenset(self.imports),
            declarations=tuple(decls),
            dispatches=tuple(self.dispatches),
            suppressed_lines=frozenset(self.suppressed),
        )

    def declare(self, decl: TypeDecl) -> None:
        if decl.name in self.declarations:
            self.fail(f"type {decl.name} declared twice")
        self.declarations[decl.name] = decl

    # ── statements ───────────────────────────────────────────────────

    def stmt_of(self, s: Sexp) -> Stmt:
        lst = self.form(s)
        reader = _STMT_DISPATCH.get(str(lst[0]))
        if reader is None:
            self.fail(f"unknown statement ({lst[0]} ...)")
        return reader(self, lst)

    def result_of(self, s: Sexp) -> ResultExpr:
        if _is_symbol(s, "nil"):
            return ResultExpr(nil=True)
        return ResultExpr(type=self.type_of(s))


# ── module clauses ───────────────────────────────────────────────────────

@_register(_MODULE_ITEM_DISPATCH, "short")
def _read_short(r: _ModuleReader, lst: list) -> None:
    r.form(lst, min_len=2)
    r.short_name = r.name_of(lst[1])


@_register(_MODULE_ITEM_DISPATCH, "file")
def _read_file(r: _ModuleReader, lst: list) -> None:
    r.form(lst, min_len=2)
    r.file = r.string_of(lst[1])


@_register(_MODULE_ITEM_DISPATCH, "imports")
def _read_imports(r: _ModuleReader, lst: list) -> None:
    r.imports.update(r.name_of(s) for s in lst[1:])


@_register(_MODULE_ITEM_DISPATCH, "interface")
def _read_interface(r: _ModuleReader, lst: list) -> None:
    r.form(lst, min_len=2)
    name = r.name_of(lst[1])
    pos, rest = r.optional_pos(lst[2:])
    methods = []
    for item in rest:
        m = r.form(item, "method", min_len=4)
        methods.append(r.sig_of(m[1], m[2], m[3]))
    # go/types lists interface methods sorted by name, whatever the source order.
    methods.sort(key=lambda sig: sig.name)
    r.declare(TypeDecl(name, TypeKind.ABSTRACT, tuple(methods), pos))


@_register(_MODULE_ITEM_DISPATCH, "struct")
@_register(_MODULE_ITEM_DISPATCH, "type")
def _read_concrete(r: _ModuleReader, lst: list) -> None:
    r.form(lst, min_len=2)
    name = r.name_of(lst[1])
    pos, rest = r.optional_pos(lst[2:])
    if rest:
        r.fail(f"unexpected items in ({lst[0]} {name} ...): {rest!r}")
    r.declare(TypeDecl(name, TypeKind.CONCRETE, pos=pos))


@_register(_MODULE_ITEM_DISPATCH, "method")
def _read_method(r: _ModuleReader, lst: list) -> None:
    r.form(lst, min_len=5)
    receiver = r.type_of(lst[1])
    if receiver is None or receiver.symbol.module != r.name:
        r.fail(f"method receiver {lst[1]!r} is not a type of this module")
    sig = r.sig_of(lst[2], lst[3], lst[4])
    r.oracle.add_method(receiver, sig)
    r.methods.setdefault(receiver.symbol.name, []).append(sig)


@_register(_MODULE_ITEM_DISPATCH, "switch")
def _read_switch(r: _ModuleReader, lst: list) -> None:
    r.form(lst, min_len=3)
    pos = r.pos_of(lst[1])
    on = r.form(lst[2], "on", min_len=2)
    scrutinee = r.type_of(on[1])
    arms: List[CaseArm] = []
    default: Optional[Tuple[Stmt, ...]] = None
    for item in lst[3:]:
        clause = r.form(item)
        tag = str(clause[0])
        if tag == "case":
            arms.append(CaseArm(tuple(r.type_of(t) for t in clause[1:]), pos))
        elif tag == "default":
            if default is not None:
                r.fail(f"switch at {pos} has two default arms")
            default = tuple(r.stmt_of(s) for s in clause[1:])
        else:
            r.fail(f"unknown switch clause ({tag} ...)")
    r.dispatches.append(DispatchNode(pos, scrutinee, tuple(arms), default))


@_register(_MODULE_ITEM_DISPATCH, "suppress")
def _read_suppress(r: _ModuleReader, lst: list) -> None:
    r.suppressed.update(r.int_of(s) for s in lst[1:])


# ── default-arm statements ───────────────────────────────────────────────

@_register(_STMT_DISPATCH, "call")
def _read_call(r: _ModuleReader, lst: list) -> Stmt:
    r.form(lst, min_len=2)
    callee = r.name_of(lst[1])
    if callee in ABORT_CALLEES:
        return AbortCall(callee)
    return OtherStmt("call")


@_register(_STMT_DISPATCH, "return")
def _read_return(r: _ModuleReader, lst: list) -> Stmt:
    return ReturnStmt(tuple(r.result_of(s) for s in lst[1:]))


@_register(_STMT_DISPATCH, "stmt")
def _read_stmt(r: _ModuleReader, lst: list) -> Stmt:
    return OtherStmt(r.name_of(lst[1]) if len(lst) > 1 else "stmt")


# ═══════════════════════════════════════════════════════════════════════
#  Public API
# ═══════════════════════════════════════════════════════════════════════

class DumpLoader:
    """Accumulates the modules of one or more dumps into a single program."""

    def __init__(self) -> None:
        self.oracle = DumpOracle()
        self.modules: Dict[str, ModuleUnit] = {}

    def add_text(self, text: str, filename: str = "<dump>") -> List[ModuleUnit]:
        # Keep nil / t as symbols; the reader interprets them itself.
        try:
            raw = sexpdata.loads(text, nil=None, true=None, false=None)
        except Exception as e:
            raise DumpParseError(
                f"S-expression syntax error: {e}", span=SourceSpan(file=filename), cause=e
            )
        if not isinstance(raw, list) or not raw or not _is_symbol(raw[0], "program"):
            raise DumpParseError("expected (program ...)", span=SourceSpan(file=filename))

        added = []
        for item in raw[1:]:
            if not isinstance(item, list) or len(item) < 2 or not _is_symbol(item[0], "module"):
                raise DumpParseError(
                    f"expected (module <name> ...), got {item!r}",
                    span=SourceSpan(file=filename),
                )
            if not _is_symbol(item[1]):
                raise DumpParseError(
                    f"module name must be a symbol, got {item[1]!r}",
                    span=SourceSpan(file=filename),
                )
            name = str(item[1])
            if name in self.modules:
                raise DumpParseError(
                    f"module {name} appears twice", span=SourceSpan(file=filename)
                )
            unit = _ModuleReader(name, filename, self.oracle).read(item[2:])
            self.modules[name] = unit
            added.append(unit)
            _log.debug(
                "%s: module %s, %d declaration(s), %d switch(es)",
                filename, name, len(unit.declarations), len(unit.dispatches),
            )
        return added

    def add_file(self, path: str) -> List[ModuleUnit]:
        p = pathlib.Path(path)
        try:
            text = p.read_text(encoding="utf-8")
        except OSError as e:
            raise DumpParseError(
                f"cannot read dump: {e}", span=SourceSpan(file=str(p)), cause=e
            )
        return self.add_text(text, filename=str(p))

    def program(self) -> Program:
        return Program(dict(self.modules), self.oracle)


def parse_dump(text: str, filename: str = "<dump>") -> Program:
    """Parse one dump string into a program.

    >>> program = parse_dump('(program (module union (interface R (method isR 0 0))))')
    >>> sorted(program.modules)
    ['union']
    """
    loader = DumpLoader()
    loader.add_text(text, filename)
    return loader.program()


def load_dumps(paths: Iterable[str]) -> Program:
    """Read and merge dump files into one program."""
    loader = DumpLoader()
    for path in paths:
        loader.add_file(path)
    return loader.program()


__all__ = [
    "ABORT_CALLEES",
    "UNIVERSE_TYPES",
    "DumpOracle",
    "DumpLoader",
    "parse_dump",
    "load_dumps",
]
