"""
unionlint/frontend/pysource.py
══════════════════════════════

Python source frontend.

Parses ``.py`` files with the standard :mod:`ast` module, resolves the
static types the engine asks about, and lowers every file into a
:class:`~unionlint.model.ModuleUnit`:

  ┌──────────────┐   discover_sources   ┌──────────────┐
  │ paths        │ ───────────────────▶ │ SourceFile … │
  └──────────────┘                      └──────┬───────┘
                                               │ _ProgramBuilder.add
                                        ┌──────▼───────┐
                                        │ _ModuleInfo  │ bindings, classes,
                                        └──────┬───────┘ functions, variables
                                               │ build
                 ┌─────────────────────────────▼──────────────────────┐
                 │ _ClassInfo: MRO, resolved methods, abstract, error │
                 └─────────────────────────────┬──────────────────────┘
                                               │ lower
                            ModuleUnit …  +  PythonOracle

Host rules
----------
  * A *contract* is a module-level abstract class: ``ABC`` or ``Protocol``
    among its bases, ``metaclass=ABCMeta``, or abstract methods left
    unimplemented.
  * A method name is unexported when it has exactly one leading
    underscore.  Only plain instance methods are listed as contract
    methods; static/class methods and properties are not.
  * A class implements a method when the first definition found along
    its MRO is concrete and has the same arity.  Python has no pointer
    types, so the pointer form never implements anything.
  * The error capability is ``BaseException``: builtin exceptions and
    program classes deriving from them.
  * Dispatch constructs are ``match`` statements.  A guarded arm never
    counts as handling a variant, nor does a class pattern with a
    sub-pattern that can fail (``case Circle(radius=0):``); an unguarded
    irrefutable arm (``case _:`` or a bare capture) is the catch-all arm.
  * ``raise`` and calls to the configured abort functions end a
    catch-all arm the way a panic does.

Everything that cannot be resolved is left unresolved (``None``) and
logged at DEBUG level; files that do not parse are logged and skipped.

License: MIT — same as unionlint.
"""

from __future__ import annotations

import ast
import builtins
import io
import logging
import pathlib
import re
import tokenize
from dataclasses import dataclass, field
from fnmatch import fnmatch
from typing import (
    Dict,
    FrozenSet,
    Iterable,
    Iterator,
    List,
    Mapping,
    Optional,
    Sequence,
    Set,
    Tuple,
)

from unionlint.config import AnalyzerConfig
from unionlint.errors import FrontendError, SourceSpan
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

# ═════════════════════════════════════════════════════════════════════════
#  PART 1 — HOST CONSTANTS
# ═════════════════════════════════════════════════════════════════════════

_ABSTRACT_BASES: FrozenSet[str] = frozenset({
    "abc.ABC",
    "typing.Protocol",
    "typing_extensions.Protocol",
})
_ABSTRACT_METACLASSES: FrozenSet[str] = frozenset({"abc.ABCMeta"})
_ABSTRACT_DECORATORS: FrozenSet[str] = frozenset({
    "abc.abstractmethod",
    "abc.abstractproperty",
    "abc.abstractclassmethod",
    "abc.abstractstaticmethod",
})
_PROPERTY_DECORATORS: FrozenSet[str] = frozenset({
    "builtins.property",
    "functools.cached_property",
    "abc.abstractproperty",
})
_STATIC_DECORATORS: FrozenSet[str] = frozenset({
    "builtins.staticmethod",
    "abc.abstractstaticmethod",
})
_CLASS_DECORATORS: FrozenSet[str] = frozenset({
    "builtins.classmethod",
    "abc.abstractclassmethod",
})
_ACCESSOR_ATTRS: FrozenSet[str] = frozenset({"setter", "getter", "deleter"})

#: Subscripted annotations that never name a single class.
_UNION_FORMS: FrozenSet[str] = frozenset({
    "typing.Optional",
    "typing.Union",
    "typing_extensions.Optional",
    "typing_extensions.Union",
})
#: Subscripted annotations whose first argument is the real type.
_WRAPPER_FORMS: FrozenSet[str] = frozenset({
    "typing.Annotated",
    "typing.Final",
    "typing.ClassVar",
    "typing_extensions.Annotated",
    "typing_extensions.Final",
})

_IGNORE_COMMENT = re.compile(r"#\s*unionlint\s*:\s*ignore\b")
_MAX_ALIAS_DEPTH = 16


class _Kind:
    METHOD = "method"
    STATIC = "staticmethod"
    CLASS = "classmethod"
    PROPERTY = "property"


def _is_private(name: str) -> bool:
    return name.startswith("_") and not name.startswith("__")


def _builtin_type(name: str) -> Optional[type]:
    obj = getattr(builtins, name, None)
    return obj if isinstance(obj, type) else None


def _is_builtin_exception(name: str) -> bool:
    cls = _builtin_type(name)
    return cls is not None and issubclass(cls, BaseException)


def _is_none(expr: Optional[ast.expr]) -> bool:
    return isinstance(expr, ast.Constant) and expr.value is None


_BLOCKS = tuple(
    t for t in (ast.If, ast.Try, getattr(ast, "TryStar", None), ast.With) if t is not None
)
_SCOPES = (ast.FunctionDef, ast.AsyncFunctionDef, ast.ClassDef, ast.Lambda)


def _toplevel(body: Sequence[ast.stmt]) -> Iterator[ast.stmt]:
    """Module-level statements, looking inside if/try/with blocks."""
    for stmt in body:
        yield stmt
        if isinstance(stmt, _BLOCKS):
            for name in ("body", "orelse", "finalbody"):
                yield from _toplevel(getattr(stmt, name, []))
            for handler in getattr(stmt, "handlers", []):
                yield from _toplevel(handler.body)


def _local_nodes(body: Sequence[ast.stmt]) -> Iterator[ast.AST]:
    """Every node of a function body, not descending into nested scopes."""
    stack: List[ast.AST] = list(reversed(body))
    while stack:
        node = stack.pop()
        yield node
        for child in reversed(list(ast.iter_child_nodes(node))):
            if not isinstance(child, _SCOPES):
                stack.append(child)


def _irrefutable(pattern: ast.pattern) -> bool:
    """``_``, a bare capture, or an or-pattern with such an alternative."""
    if isinstance(pattern, ast.MatchAs):
        return pattern.pattern is None or _irrefutable(pattern.pattern)
    if isinstance(pattern, ast.MatchOr):
        return any(_irrefutable(alt) for alt in pattern.patterns)
    return False


def _returns_value(fn: ast.AST) -> bool:
    for node in _local_nodes(fn.body):
        if isinstance(node, (ast.Yield, ast.YieldFrom)):
            return True
        if isinstance(node, ast.Return) and node.value is not None and not _is_none(node.value):
            return True
    return False


def suppressed_lines(source: str) -> FrozenSet[int]:
    """Lines carrying a ``# unionlint: ignore`` comment."""
    lines: Set[int] = set()
    try:
        for tok in tokenize.generate_tokens(io.StringIO(source).readline):
            if tok.type == tokenize.COMMENT and _IGNORE_COMMENT.search(tok.string):
                lines.add(tok.start[0])
    except (tokenize.TokenError, SyntaxError) as e:
        _log.debug("tokenize stopped early: %s", e)
    return frozenset(lines)


# ═════════════════════════════════════════════════════════════════════════
#  PART 2 — SOURCE DISCOVERY
# ═════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class SourceFile:
    """One Python source file together with its dotted module name."""
    module: str
    path: str
    text: str
    is_package: bool = False

    @property
    def short_name(self) -> str:
        return self.module.rpartition(".")[2]


def module_name_for(path: pathlib.Path) -> Tuple[str, bool]:
    """Dotted module name of *path*, climbing enclosing package directories.

    Returns ``(name, is_package)``; ``pkg/__init__.py`` is ``("pkg", True)``.
    """
    absolute = path.absolute()
    is_package = absolute.name == "__init__.py"
    parts: List[str] = [] if is_package else [absolute.stem]
    directory = absolute.parent
    if is_package:
        parts.insert(0, directory.name)
        directory = directory.parent
    while (directory / "__init__.py").is_file() and directory.name:
        parts.insert(0, directory.name)
        directory = directory.parent
    return ".".join(parts), is_package


def _skipped_dir(path: pathlib.Path, root: pathlib.Path) -> bool:
    return any(
        part.startswith(".") or part == "__pycache__"
        for part in path.relative_to(root).parts[:-1]
    )


def _read(path: pathlib.Path) -> str:
    try:
        with tokenize.open(path) as fh:
            return fh.read()
    except (OSError, SyntaxError, UnicodeDecodeError) as e:
        raise FrontendError(
            f"cannot read source: {e}", span=SourceSpan(file=str(path)), cause=e
        )


def discover_sources(paths: Iterable[str], exclude: Sequence[str] = ()) -> List[SourceFile]:
    """Collect ``.py`` files under *paths* (files or directories)."""
    found: List[SourceFile] = []
    for raw in paths:
        root = pathlib.Path(raw)
        if root.is_dir():
            candidates = sorted(
                p for p in root.rglob("*.py") if not _skipped_dir(p, root)
            )
        elif root.is_file():
            candidates = [root]
        else:
            raise FrontendError(
                f"no such file or directory: {raw}", span=SourceSpan(file=str(raw))
            )
        for path in candidates:
            text_path = str(path)
            if any(fnmatch(text_path, pat) or fnmatch(path.name, pat) for pat in exclude):
                _log.debug("excluded %s", text_path)
                continue
            module, is_package = module_name_for(path)
            found.append(SourceFile(module, text_path, _read(path), is_package))
    return found


# ═════════════════════════════════════════════════════════════════════════
#  PART 3 — PER-MODULE SYMBOL TABLES
# ═════════════════════════════════════════════════════════════════════════

@dataclass
class _MethodInfo:
    name: str
    sig: MethodSig
    kind: str = _Kind.METHOD
    abstract: bool = False
    returns: Optional[ast.expr] = None


@dataclass
class _VarInfo:
    annotation: Optional[ast.expr] = None
    value: Optional[ast.expr] = None


@dataclass
class _ClassInfo:
    ref: SymbolRef
    node: ast.ClassDef
    functions: Dict[str, ast.AST] = field(default_factory=dict)
    fields: Dict[str, ast.expr] = field(default_factory=dict)
    # filled in by _ProgramBuilder.build
    methods: Dict[str, _MethodInfo] = field(default_factory=dict)
    bases: List[SymbolRef] = field(default_factory=list)
    mro: List[SymbolRef] = field(default_factory=list)
    resolved: Dict[str, _MethodInfo] = field(default_factory=dict)
    abstract: bool = False
    error: bool = False
    decl: Optional[TypeDecl] = None


@dataclass
class _ModuleInfo:
    source: SourceFile
    tree: ast.Module
    bindings: Dict[str, str] = field(default_factory=dict)
    star_imports: List[str] = field(default_factory=list)
    import_targets: Set[str] = field(default_factory=set)
    classes: Dict[str, _ClassInfo] = field(default_factory=dict)
    functions: Dict[str, ast.AST] = field(default_factory=dict)
    variables: Dict[str, _VarInfo] = field(default_factory=dict)

    @property
    def name(self) -> str:
        return self.source.module

    def defines(self, name: str) -> bool:
        return name in self.classes or name in self.functions or name in self.variables


@dataclass(frozen=True)
class _Target:
    """What a dotted name resolves to inside the program."""
    kind: str           # module | class | function | variable | builtin
    module: str
    name: str = ""


class _Scope:
    """Annotated and assigned names visible at one point of a module."""

    def __init__(
        self,
        module: _ModuleInfo,
        cls: Optional[SymbolRef] = None,
        parent: Optional[_Scope] = None,
    ) -> None:
        self.module = module
        self.cls = cls
        self.parent = parent
        self.annotations: Dict[str, ast.expr] = {}
        self.values: Dict[str, ast.expr] = {}


# ═════════════════════════════════════════════════════════════════════════
#  PART 4 — ORACLE
# ═════════════════════════════════════════════════════════════════════════

class PythonOracle(HostOracle):
    """Answers the engine's type questions for a built Python program."""

    def __init__(self, classes: Mapping[SymbolRef, _ClassInfo]) -> None:
        self._classes = dict(classes)

    def is_exported(self, name: str) -> bool:
        return not _is_private(name)

    def lookup(self, ref: TypeRef) -> Optional[TypeDecl]:
        info = self._classes.get(ref.symbol)
        if info is not None:
            return info.decl
        if ref.symbol.module == UNIVERSE and _builtin_type(ref.symbol.name):
            return TypeDecl(ref.symbol.name, TypeKind.CONCRETE)
        return None

    def implements(self, ref: TypeRef, method: str, params: int = 0, results: int = 0) -> bool:
        if ref.pointer:
            return False
        info = self._classes.get(ref.symbol)
        if info is None:
            return False
        found = info.resolved.get(method)
        return (
            found is not None
            and not found.abstract
            and found.kind == _Kind.METHOD
            and found.sig.params == params
            and found.sig.results == results
        )

    def is_error(self, ref: TypeRef) -> bool:
        if ref.pointer:
            return False
        if ref.symbol.module == UNIVERSE:
            return _is_builtin_exception(ref.symbol.name)
        info = self._classes.get(ref.symbol)
        return info is not None and info.error


# ═════════════════════════════════════════════════════════════════════════
#  PART 5 — PROGRAM BUILDER
# ═════════════════════════════════════════════════════════════════════════

class _ProgramBuilder:

    def __init__(self, config: AnalyzerConfig) -> None:
        self.config = config
        self.abort_functions = frozenset(config.abort_functions)
        self.modules: Dict[str, _ModuleInfo] = {}
        self.classes: Dict[SymbolRef, _ClassInfo] = {}

    # ── collection ───────────────────────────────────────────────────

    def add(self, source: SourceFile) -> None:
        try:
            tree = ast.parse(source.text, filename=source.path)
        except (SyntaxError, ValueError) as e:
            _log.warning("%s: skipped, does not parse: %s", source.path, e)
            return
        if source.module in self.modules:
            _log.warning(
                "%s: module %s already loaded from %s; replacing",
                source.path, source.module, self.modules[source.module].source.path,
            )
        info = _ModuleInfo(source, tree)
        for stmt in _toplevel(tree.body):
            if isinstance(stmt, ast.Import):
                self._collect_import(info, stmt)
            elif isinstance(stmt, ast.ImportFrom):
                self._collect_import_from(info, stmt)
            elif isinstance(stmt, ast.ClassDef):
                # Rebinding a class name keeps the last definition.
                info.classes.pop(stmt.name, None)
                info.classes[stmt.name] = self._collect_class(info, stmt)
            elif isinstance(stmt, (ast.FunctionDef, ast.AsyncFunctionDef)):
                info.functions[stmt.name] = stmt
            elif isinstance(stmt, ast.AnnAssign) and isinstance(stmt.target, ast.Name):
                info.variables[stmt.target.id] = _VarInfo(stmt.annotation, stmt.value)
            elif isinstance(stmt, ast.Assign):
                for target in stmt.targets:
                    if isinstance(target, ast.Name):
                        info.variables[target.id] = _VarInfo(value=stmt.value)
        self.modules[source.module] = info

    def _import_base(self, info: _ModuleInfo, stmt: ast.ImportFrom) -> str:
        if not stmt.level:
            return stmt.module or ""
        package = info.name if info.source.is_package else info.name.rpartition(".")[0]
        for _ in range(stmt.level - 1):
            package = package.rpartition(".")[0]
        if stmt.module:
            return f"{package}.{stmt.module}" if package else stmt.module
        return package

    def _collect_import(self, info: _ModuleInfo, stmt: ast.Import) -> None:
        for alias in stmt.names:
            info.import_targets.add(alias.name)
            if alias.asname:
                info.bindings[alias.asname] = alias.name
            else:
                head = alias.name.partition(".")[0]
                info.bindings[head] = head

    def _collect_import_from(self, info: _ModuleInfo, stmt: ast.ImportFrom) -> None:
        base = self._import_base(info, stmt)
        if not base:
            return
        info.import_targets.add(base)
        for alias in stmt.names:
            if alias.name == "*":
                info.star_imports.append(base)
                continue
            target = f"{base}.{alias.name}"
            info.import_targets.add(target)
            info.bindings[alias.asname or alias.name] = target

    def _collect_class(self, info: _ModuleInfo, node: ast.ClassDef) -> _ClassInfo:
        cls = _ClassInfo(SymbolRef(info.name, node.name), node)
        for stmt in node.body:
            if isinstance(stmt, (ast.FunctionDef, ast.AsyncFunctionDef)):
                cls.functions.pop(stmt.name, None)
                cls.functions[stmt.name] = stmt
                self._collect_self_fields(cls, stmt)
            elif isinstance(stmt, ast.AnnAssign) and isinstance(stmt.target, ast.Name):
                cls.fields[stmt.target.id] = stmt.annotation
        return cls

    def _collect_self_fields(self, cls: _ClassInfo, fn: ast.AST) -> None:
        params = {
            a.arg: a.annotation
            for a in fn.args.posonlyargs + fn.args.args + fn.args.kwonlyargs
            if a.annotation is not None
        }
        for node in _local_nodes(fn.body):
            if isinstance(node, ast.AnnAssign) and self._is_self_attr(node.target):
                cls.fields.setdefault(node.target.attr, node.annotation)
            elif (
                fn.name == "__init__"
                and isinstance(node, ast.Assign)
                and isinstance(node.value, ast.Name)
                and node.value.id in params
            ):
                for target in node.targets:
                    if self._is_self_attr(target):
                        cls.fields.setdefault(target.attr, params[node.value.id])

    @staticmethod
    def _is_self_attr(expr: ast.expr) -> bool:
        return (
            isinstance(expr, ast.Attribute)
            and isinstance(expr.value, ast.Name)
            and expr.value.id == "self"
        )

    def _method_info(self, info: _ModuleInfo, fn: ast.AST) -> _MethodInfo:
        kind = _Kind.METHOD
        abstract = False
        for deco in fn.decorator_list:
            target = deco.func if isinstance(deco, ast.Call) else deco
            if isinstance(target, ast.Attribute) and target.attr in _ACCESSOR_ATTRS:
                kind = _Kind.PROPERTY
                continue
            qualified = self.qualify(info, target)
            if qualified in _ABSTRACT_DECORATORS:
                abstract = True
            if qualified in _PROPERTY_DECORATORS:
                kind = _Kind.PROPERTY
            elif qualified in _STATIC_DECORATORS:
                kind = _Kind.STATIC
            elif qualified in _CLASS_DECORATORS:
                kind = _Kind.CLASS

        args = fn.args
        positional = len(args.posonlyargs) + len(args.args)
        if kind != _Kind.STATIC and positional:
            positional -= 1
        params = (
            positional
            + len(args.kwonlyargs)
            + (1 if args.vararg else 0)
            + (1 if args.kwarg else 0)
        )
        if fn.returns is not None:
            results = 0 if _is_none(fn.returns) else 1
        else:
            results = 1 if _returns_value(fn) else 0
        return _MethodInfo(fn.name, MethodSig(fn.name, params, results), kind, abstract, fn.returns)

    # ── name resolution ──────────────────────────────────────────────

    def qualify(self, info: _ModuleInfo, expr: ast.expr) -> Optional[str]:
        """Dotted name an expression refers to, seen from *info*."""
        if isinstance(expr, ast.Name):
            name = expr.id
            if info.defines(name):
                return f"{info.name}.{name}"
            if name in info.bindings:
                return info.bindings[name]
            for star in info.star_imports:
                candidate = f"{star}.{name}"
                if self.resolve(candidate) is not None:
                    return candidate
            if hasattr(builtins, name):
                return f"builtins.{name}"
            return None
        if isinstance(expr, ast.Attribute):
            base = self.qualify(info, expr.value)
            return f"{base}.{expr.attr}" if base else None
        return None

    def resolve(self, dotted: Optional[str], _depth: int = 0) -> Optional[_Target]:
        """Follow a dotted name through program modules and re-exports."""
        if not dotted or _depth > _MAX_ALIAS_DEPTH:
            return None
        if dotted in self.modules:
            return _Target("module", dotted)
        if dotted.startswith("builtins."):
            name = dotted[len("builtins."):]
            return _Target("builtin", UNIVERSE, name) if hasattr(builtins, name) else None
        parts = dotted.split(".")
        for i in range(len(parts) - 1, 0, -1):
            module = ".".join(parts[:i])
            info = self.modules.get(module)
            if info is None:
                continue
            head, rest = parts[i], parts[i + 1:]
            if not rest:
                if head in info.classes:
                    return _Target("class", module, head)
                if head in info.functions:
                    return _Target("function", module, head)
                if head in info.variables:
                    return _Target("variable", module, head)
            if head in info.bindings:
                return self.resolve(".".join([info.bindings[head], *rest]), _depth + 1)
            return None
        return None

    def class_ref(self, info: _ModuleInfo, expr: ast.expr) -> Optional[TypeRef]:
        target = self.resolve(self.qualify(info, expr))
        if target is None:
            return None
        if target.kind == "class":
            return TypeRef.named(target.module, target.name)
        if target.kind == "builtin" and _builtin_type(target.name):
            return TypeRef.named(UNIVERSE, target.name)
        return None

    def annotation_type(self, info: _ModuleInfo, expr: Optional[ast.expr]) -> Optional[TypeRef]:
        if expr is None or _is_none(expr):
            return None
        if isinstance(expr, ast.Constant) and isinstance(expr.value, str):
            try:
                parsed = ast.parse(expr.value.strip(), mode="eval").body
            except SyntaxError:
                _log.debug("%s: unparsable annotation %r", info.name, expr.value)
                return None
            return self.annotation_type(info, parsed)
        if isinstance(expr, ast.Subscript):
            form = self.qualify(info, expr.value)
            if form in _UNION_FORMS:
                return None
            if form in _WRAPPER_FORMS:
                inner = expr.slice
                if isinstance(inner, ast.Tuple) and inner.elts:
                    inner = inner.elts[0]
                return self.annotation_type(info, inner)
            # Generic alias of a class, e.g. Result[T].
            return self.annotation_type(info, expr.value)
        if isinstance(expr, (ast.Name, ast.Attribute)):
            return self.class_ref(info, expr)
        return None

    # ── expression typing ────────────────────────────────────────────

    def module_scope(self, info: _ModuleInfo) -> _Scope:
        return _Scope(info)

    def function_scope(
        self,
        info: _ModuleInfo,
        fn: ast.AST,
        cls: Optional[SymbolRef],
        parent: Optional[_Scope],
    ) -> _Scope:
        scope = _Scope(info, cls, parent)
        args = fn.args
        for a in args.posonlyargs + args.args + args.kwonlyargs:
            if a.annotation is not None:
                scope.annotations[a.arg] = a.annotation
        for node in _local_nodes(fn.body):
            if isinstance(node, ast.AnnAssign) and isinstance(node.target, ast.Name):
                scope.annotations[node.target.id] = node.annotation
            elif isinstance(node, ast.Assign) and len(node.targets) == 1:
                target = node.targets[0]
                if isinstance(target, ast.Name):
                    scope.values[target.id] = node.value
        return scope

    def field_annotation(self, cls: SymbolRef, attr: str) -> Tuple[Optional[_ModuleInfo], Optional[ast.expr]]:
        info = self.classes.get(cls)
        for ref in (info.mro if info else ()):
            owner = self.classes[ref]
            if attr in owner.fields:
                return self.modules[ref.module], owner.fields[attr]
        return None, None

    def expr_type(self, scope: _Scope, expr: ast.expr, _depth: int = 0) -> Optional[TypeRef]:
        """Best-effort static type of *expr*; ``None`` when unknown."""
        if _depth > _MAX_ALIAS_DEPTH:
            return None
        if isinstance(expr, ast.Name):
            s: Optional[_Scope] = scope
            while s is not None:
                if expr.id in s.annotations:
                    return self.annotation_type(s.module, s.annotations[expr.id])
                if expr.id in s.values:
                    return self.expr_type(s, s.values[expr.id], _depth + 1)
                s = s.parent
            return self._target_type(self.resolve(self.qualify(scope.module, expr)), _depth)
        if isinstance(expr, ast.Attribute):
            if isinstance(expr.value, ast.Name) and expr.value.id == "self":
                if scope.cls is None:
                    return None
                owner, annotation = self.field_annotation(scope.cls, expr.attr)
                return self.annotation_type(owner, annotation) if owner else None
            return self._target_type(self.resolve(self.qualify(scope.module, expr)), _depth)
        if isinstance(expr, ast.Call):
            target = self.resolve(self.qualify(scope.module, expr.func))
            if target is None:
                return None
            if target.kind == "class":
                return TypeRef.named(target.module, target.name)
            if target.kind == "builtin" and _builtin_type(target.name):
                return TypeRef.named(UNIVERSE, target.name)
            if target.kind == "function":
                owner = self.modules[target.module]
                return self.annotation_type(owner, owner.functions[target.name].returns)
        return None

    def _target_type(self, target: Optional[_Target], depth: int) -> Optional[TypeRef]:
        if target is None or target.kind != "variable":
            return None
        owner = self.modules[target.module]
        var = owner.variables[target.name]
        if var.annotation is not None:
            return self.annotation_type(owner, var.annotation)
        if var.value is not None:
            return self.expr_type(self.module_scope(owner), var.value, depth + 1)
        return None

    # ── class analysis ───────────────────────────────────────────────

    def _analyze_classes(self) -> None:
        for info in self.modules.values():
            for cls in info.classes.values():
                self.classes[cls.ref] = cls
        for cls in self.classes.values():
            info = self.modules[cls.ref.module]
            # Decorators resolve against the whole module, imports included.
            cls.methods = {
                name: self._method_info(info, fn) for name, fn in cls.functions.items()
            }
            cls.bases = [
                ref.symbol
                for ref in (self.class_ref(info, b) for b in cls.node.bases)
                if ref is not None and ref.symbol in self.classes
            ]
        for cls in self.classes.values():
            cls.mro = self._mro(cls.ref, ())
        for cls in self.classes.values():
            self._finish_class(cls)

    def _mro(self, ref: SymbolRef, active: Tuple[SymbolRef, ...]) -> List[SymbolRef]:
        """C3 linearization over in-program classes."""
        if ref in active:
            _log.debug("inheritance cycle through %s", ref)
            return []
        if self.classes[ref].mro:
            return list(self.classes[ref].mro)
        bases = self.classes[ref].bases
        seqs = [self._mro(b, active + (ref,)) for b in bases] + [list(bases)]
        seqs = [s for s in seqs if s]
        result = [ref]
        while seqs:
            for seq in seqs:
                head = seq[0]
                if not any(head in s[1:] for s in seqs):
                    break
            else:
                # Inconsistent hierarchy; fall back to depth-first order.
                result.extend(r for s in seqs for r in s if r not in result)
                break
            result.append(head)
            seqs = [s[1:] if s[0] == head else s for s in seqs]
            seqs = [s for s in seqs if s]
        # An inheritance cycle can bring the class back in; keep first occurrences.
        result = list(dict.fromkeys(result))
        self.classes[ref].mro = result
        return list(result)

    def _finish_class(self, cls: _ClassInfo) -> None:
        info = self.modules[cls.ref.module]
        for ref in reversed(cls.mro):
            cls.resolved.update(self.classes[ref].methods)

        explicit = any(self.qualify(info, b) in _ABSTRACT_BASES for b in cls.node.bases)
        if not explicit:
            explicit = any(
                kw.arg == "metaclass" and self.qualify(info, kw.value) in _ABSTRACT_METACLASSES
                for kw in cls.node.keywords
            )
        cls.abstract = explicit or any(m.abstract for m in cls.resolved.values())

        for ref in cls.mro:
            owner = self.classes[ref]
            owner_info = self.modules[ref.module]
            for base in owner.node.bases:
                base_ref = self.class_ref(owner_info, base)
                if base_ref is not None and base_ref.symbol.module == UNIVERSE:
                    if _is_builtin_exception(base_ref.symbol.name):
                        cls.error = True

        cls.decl = TypeDecl(
            name=cls.ref.name,
            kind=TypeKind.ABSTRACT if cls.abstract else TypeKind.CONCRETE,
            methods=tuple(m.sig for m in cls.methods.values() if m.kind == _Kind.METHOD),
            pos=SourcePos(info.source.path, cls.node.lineno, cls.node.col_offset + 1),
        )

    # ── lowering ─────────────────────────────────────────────────────

    def class_at(self, info: _ModuleInfo, node: ast.ClassDef) -> Optional[SymbolRef]:
        cls = info.classes.get(node.name)
        return cls.ref if cls is not None and cls.node is node else None

    def pattern_types(
        self, info: _ModuleInfo, pattern: ast.pattern
    ) -> Tuple[Tuple[Optional[TypeRef], ...], bool]:
        """Types named by a case pattern, and whether it is irrefutable."""
        if isinstance(pattern, ast.MatchAs):
            if pattern.pattern is None:
                return (), True
            return self.pattern_types(info, pattern.pattern)
        if isinstance(pattern, ast.MatchOr):
            types: List[Optional[TypeRef]] = []
            irrefutable = False
            for alt in pattern.patterns:
                alt_types, alt_irrefutable = self.pattern_types(info, alt)
                types.extend(alt_types)
                irrefutable = irrefutable or alt_irrefutable
            return tuple(types), irrefutable
        if isinstance(pattern, ast.MatchClass):
            subpatterns = list(pattern.patterns) + list(pattern.kwd_patterns)
            if not all(_irrefutable(p) for p in subpatterns):
                # Values of the class can still fall through to a later arm.
                _log.debug(
                    "%s:%d: class pattern with refutable sub-patterns not counted",
                    info.source.path, pattern.lineno,
                )
                return (), False
            return (self.class_ref(info, pattern.cls),), False
        return (None,), False

    def lower_match(self, scope: _Scope, node: ast.Match) -> DispatchNode:
        info = scope.module
        path = info.source.path
        arms: List[CaseArm] = []
        default: Optional[Tuple[Stmt, ...]] = None
        for case in node.cases:
            types, irrefutable = self.pattern_types(info, case.pattern)
            if case.guard is not None:
                _log.debug("%s:%d: guarded case not counted", path, case.pattern.lineno)
                continue
            if irrefutable:
                if default is None:
                    default = tuple(self.lower_stmt(scope, s) for s in case.body)
                continue
            arms.append(
                CaseArm(types, SourcePos(path, case.pattern.lineno, case.pattern.col_offset + 1))
            )
        return DispatchNode(
            pos=SourcePos(path, node.lineno, node.col_offset + 1),
            scrutinee=self.expr_type(scope, node.subject),
            arms=tuple(arms),
            default=default,
        )

    def lower_stmt(self, scope: _Scope, stmt: ast.stmt) -> Stmt:
        if isinstance(stmt, ast.Raise):
            return AbortCall("raise")
        if isinstance(stmt, ast.Expr) and isinstance(stmt.value, ast.Call):
            callee = self.qualify(scope.module, stmt.value.func)
            if callee in self.abort_functions:
                return AbortCall(callee)
            return OtherStmt("call")
        if isinstance(stmt, ast.Return):
            if stmt.value is None:
                return ReturnStmt(())
            values = stmt.value.elts if isinstance(stmt.value, ast.Tuple) else [stmt.value]
            return ReturnStmt(tuple(self.lower_result(scope, v) for v in values))
        return OtherStmt(type(stmt).__name__.lower())

    def lower_result(self, scope: _Scope, expr: ast.expr) -> ResultExpr:
        if _is_none(expr):
            return ResultExpr(nil=True)
        return ResultExpr(type=self.expr_type(scope, expr))

    def _dependencies(self, info: _ModuleInfo) -> FrozenSet[str]:
        deps: Set[str] = set()
        for target in info.import_targets:
            parts = target.split(".")
            for i in range(len(parts), 0, -1):
                prefix = ".".join(parts[:i])
                if prefix in self.modules:
                    deps.add(prefix)
                    break
        deps.discard(info.name)
        return frozenset(deps)

    def _lower_module(self, info: _ModuleInfo) -> ModuleUnit:
        collector = _DispatchCollector(self, info)
        collector.visit(info.tree)
        return ModuleUnit(
            name=info.name,
            short_name=info.source.short_name,
            file=info.source.path,
            imports=self._dependencies(info),
            declarations=tuple(cls.decl for cls in info.classes.values()),
            dispatches=tuple(collector.nodes),
            suppressed_lines=suppressed_lines(info.source.text),
        )

    def build(self) -> Program:
        self._analyze_classes()
        units = {}
        for name in sorted(self.modules):
            unit = self._lower_module(self.modules[name])
            units[name] = unit
            _log.debug(
                "%s: %d class(es), %d match statement(s), imports %s",
                name, len(unit.declarations), len(unit.dispatches),
                ", ".join(sorted(unit.imports)) or "-",
            )
        return Program(units, PythonOracle(self.classes))


class _DispatchCollector(ast.NodeVisitor):
    """Lowers every ``match`` statement of a module, tracking scopes."""

    def __init__(self, builder: _ProgramBuilder, info: _ModuleInfo) -> None:
        self.builder = builder
        self.info = info
        self.scope = builder.module_scope(info)
        self.nodes: List[DispatchNode] = []
        self._class: Optional[SymbolRef] = None
        self._in_class_body = False

    def visit_ClassDef(self, node: ast.ClassDef) -> None:
        saved = (self._class, self._in_class_body)
        self._class = self.builder.class_at(self.info, node)
        self._in_class_body = True
        self.generic_visit(node)
        self._class, self._in_class_body = saved

    def _visit_function(self, node: ast.AST) -> None:
        saved = (self.scope, self._class, self._in_class_body)
        cls = self._class if self._in_class_body else self.scope.cls
        self.scope = self.builder.function_scope(self.info, node, cls, self.scope)
        self._in_class_body = False
        self.generic_visit(node)
        self.scope, self._class, self._in_class_body = saved

    visit_FunctionDef = _visit_function
    visit_AsyncFunctionDef = _visit_function

    def visit_Match(self, node: ast.Match) -> None:
        self.nodes.append(self.builder.lower_match(self.scope, node))
        self.generic_visit(node)


# ═════════════════════════════════════════════════════════════════════════
#  PART 6 — PUBLIC API
# ═════════════════════════════════════════════════════════════════════════

def build_program(
    sources: Iterable[SourceFile],
    config: Optional[AnalyzerConfig] = None,
) -> Program:
    """Parse, resolve and lower *sources* into one program."""
    builder = _ProgramBuilder(config or AnalyzerConfig())
    for source in sources:
        builder.add(source)
    return builder.build()


def program_from_sources(
    sources: Mapping[str, str],
    config: Optional[AnalyzerConfig] = None,
) -> Program:
    """Build a program from in-memory ``{module name: source text}``.

    Each module gets the path ``<name with dots as slashes>.py``.
    """
    files = [
        SourceFile(name, name.replace(".", "/") + ".py", text)
        for name, text in sources.items()
    ]
    return build_program(files, config)


def load_paths(paths: Iterable[str], config: Optional[AnalyzerConfig] = None) -> Program:
    """Discover, parse and lower every ``.py`` file under *paths*."""
    config = config or AnalyzerConfig()
    return build_program(discover_sources(paths, config.exclude), config)


__all__ = [
    "SourceFile",
    "PythonOracle",
    "module_name_for",
    "discover_sources",
    "suppressed_lines",
    "build_program",
    "program_from_sources",
    "load_paths",
]
