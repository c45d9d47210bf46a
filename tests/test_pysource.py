# tests/test_pysource.py
"""
Tests for the Python source frontend: sources → host model + oracle.
"""

import textwrap

import pytest

from unionlint.analyzer import Analyzer
from unionlint.config import AnalyzerConfig
from unionlint.errors import FrontendError
from unionlint.frontend.pysource import (
    SourceFile,
    build_program,
    discover_sources,
    load_paths,
    module_name_for,
    program_from_sources,
    suppressed_lines,
)
from unionlint.model import AbortCall, OtherStmt, ReturnStmt, TypeRef
from unionlint.scanner import scan_declarations
from unionlint.variants import build_variant_set
from tests.conftest import CONSUMER_PY, UNION_PY, line_of, py_program


SHAPES = """\
from typing import Protocol


class Shape(Protocol):
    def _is_shape(self) -> None: ...


class Circle:
    def _is_shape(self) -> None:
        pass


class Square:
    def _is_shape(self) -> None:
        pass
"""


def _contracts(source):
    program = py_program(m=source)
    unit = program.modules["m"]
    return {ref.name: marker for ref, marker in scan_declarations(unit, program.oracle).items()}


def _variants(source, marker):
    program = py_program(m=source)
    unit = program.modules["m"]
    return [v.canonical for v in build_variant_set(unit, marker, program.oracle)]


def _messages(source, config=None):
    program = program_from_sources({"shapes": SHAPES, "m": textwrap.dedent(source)}, config)
    return [d.message for d in Analyzer(config).run(program).diagnostics]


class TestContracts:

    def test_abc_base(self):
        assert _contracts("""
            from abc import ABC, abstractmethod
            class Node(ABC):
                @abstractmethod
                def _node(self) -> None: ...
        """) == {"Node": "_node"}

    def test_qualified_abc_base(self):
        assert _contracts("""
            import abc
            class Node(abc.ABC):
                def _node(self): ...
        """) == {"Node": "_node"}

    def test_protocol(self):
        assert _contracts(SHAPES) == {"Shape": "_is_shape"}

    def test_typing_extensions_protocol(self):
        assert _contracts("""
            import typing_extensions
            class Node(typing_extensions.Protocol):
                def _node(self) -> None: ...
        """) == {"Node": "_node"}

    def test_abcmeta_metaclass(self):
        assert _contracts("""
            from abc import ABCMeta
            class Node(metaclass=ABCMeta):
                def _node(self) -> None: ...
        """) == {"Node": "_node"}

    def test_unimplemented_abstract_method(self):
        assert _contracts("""
            import abc
            class Node:
                @abc.abstractmethod
                def _node(self) -> None: ...
        """) == {"Node": "_node"}

    def test_plain_class_is_not_a_contract(self):
        assert _contracts("""
            class Node:
                def _node(self) -> None: ...
        """) == {}

    def test_first_private_method_wins(self):
        assert _contracts("""
            from abc import ABC
            class Node(ABC):
                def pos(self) -> int: ...
                def _expr(self) -> None: ...
                def _stmt(self) -> None: ...
        """) == {"Node": "_expr"}

    @pytest.mark.parametrize("method", [
        "def _node(self, other) -> None: ...",
        "def _node(self) -> int: ...",
        "def _node(self):\n        return 1",
        "def _node(self):\n        yield",
        "def __node(self) -> None: ...",
        "def __len__(self) -> None: ...",
        "def node(self) -> None: ...",
        "@staticmethod\n    def _node() -> None: ...",
        "@classmethod\n    def _node(cls) -> None: ...",
        "@property\n    def _node(self) -> None: ...",
    ])
    def test_not_a_discriminator(self, method):
        source = "from abc import ABC\nclass Node(ABC):\n    " + method + "\n"
        assert _contracts(source) == {}

    def test_explicit_none_return_is_allowed(self):
        assert _contracts("""
            from abc import ABC
            class Node(ABC):
                def _node(self):
                    return None
        """) == {"Node": "_node"}

    def test_redefinition_keeps_last(self):
        source = """
            from abc import ABC
            class Node(ABC):
                def _old(self) -> None: ...
            class Node(ABC):
                def _new(self) -> None: ...
        """
        assert _contracts(source) == {"Node": "_new"}
        program = py_program(m=source)
        assert Analyzer().run(program).facts[0][1].discriminator == "_new"


class TestVariants:

    def test_structural_protocol_members(self):
        assert _variants(SHAPES, "_is_shape") == ["Circle", "Square"]

    def test_inherited_implementation(self):
        assert _variants("""
            from abc import ABC, abstractmethod
            class Expr(ABC):
                @abstractmethod
                def _expr(self) -> None: ...
            class Literal(Expr):
                def _expr(self) -> None:
                    pass
            class Number(Literal):
                pass
            class Binary(Expr):
                pass
        """, "_expr") == ["Literal", "Number"]

    def test_abstract_intermediate_is_not_a_variant(self):
        assert _variants("""
            from abc import ABC, abstractmethod
            class Expr(ABC):
                @abstractmethod
                def _expr(self) -> None: ...
            class Operator(Expr):
                @abstractmethod
                def apply(self) -> int: ...
                def _expr(self) -> None:
                    pass
            class Plus(Operator):
                def apply(self) -> int:
                    return 0
        """, "_expr") == ["Plus"]

    def test_redefined_class_without_marker_dropped(self):
        assert _variants(SHAPES + "\n\nclass Square:\n    pass\n", "_is_shape") == ["Circle"]

    def test_arity_mismatch(self):
        assert _variants(SHAPES + "\n\nclass Odd:\n    def _is_shape(self, x) -> None: ...\n",
                         "_is_shape") == ["Circle", "Square"]

    def test_pointer_form_never_implements(self):
        program = py_program(m=SHAPES)
        ref = TypeRef.named("m", "Circle")
        assert program.oracle.implements(ref, "_is_shape")
        assert not program.oracle.implements(ref.as_pointer(), "_is_shape")


class TestOracle:

    def test_exported(self):
        oracle = py_program(m=SHAPES).oracle
        assert oracle.is_exported("area")
        assert oracle.is_exported("__init__")
        assert not oracle.is_exported("_is_shape")

    def test_error_capability(self):
        program = py_program(m="""
            class AppError(Exception):
                pass
            class NotFound(AppError):
                pass
            class Plain:
                pass
        """)
        oracle = program.oracle
        assert oracle.is_error(TypeRef.named("", "ValueError"))
        assert oracle.is_error(TypeRef.named("m", "AppError"))
        assert oracle.is_error(TypeRef.named("m", "NotFound"))
        assert not oracle.is_error(TypeRef.named("m", "Plain"))
        assert not oracle.is_error(TypeRef.named("", "str"))

    def test_builtin_lookup(self):
        oracle = py_program(m="").oracle
        assert oracle.lookup(TypeRef.named("", "int")) is not None
        assert oracle.lookup(TypeRef.named("", "len")) is None


class TestScrutineeResolution:

    @pytest.mark.parametrize("source", [
        # annotated parameter
        """
        from shapes import Shape, Circle
        def f(s: Shape):
            match s:
                case Circle():
                    pass
        """,
        # string annotation
        """
        from shapes import Circle
        def f(s: "shapes.Shape"):
            match s:
                case Circle():
                    pass
        import shapes
        """,
        # annotated local
        """
        from shapes import Shape, Circle
        def f(make):
            s: Shape = make()
            match s:
                case Circle():
                    pass
        """,
        # return annotation of a called function
        """
        from shapes import Shape, Circle
        def current() -> Shape: ...
        def f():
            match current():
                case Circle():
                    pass
        """,
        # assigned from such a call
        """
        from shapes import Shape, Circle
        def current() -> Shape: ...
        def f():
            s = current()
            match s:
                case Circle():
                    pass
        """,
        # class field
        """
        from shapes import Shape, Circle
        class Canvas:
            shape: Shape
            def draw(self):
                match self.shape:
                    case Circle():
                        pass
        """,
        # attribute set from an annotated __init__ parameter
        """
        from shapes import Shape, Circle
        class Canvas:
            def __init__(self, shape: Shape) -> None:
                self.shape = shape
            def draw(self):
                match self.shape:
                    case Circle():
                        pass
        """,
        # module-level annotated variable
        """
        from shapes import Shape, Circle
        CURRENT: Shape
        match CURRENT:
            case Circle():
                pass
        """,
    ])
    def test_resolved(self, source):
        assert _messages(source) == ["missing cases in type switch on Shape: shapes.Square"]

    @pytest.mark.parametrize("source", [
        """
        from typing import Optional
        from shapes import Shape, Circle
        def f(s: Optional[Shape]):
            match s:
                case Circle():
                    pass
        """,
        """
        from shapes import Shape, Circle
        def f(s: Shape | None):
            match s:
                case Circle():
                    pass
        """,
        """
        from shapes import Circle
        def f(s):
            match s:
                case Circle():
                    pass
        """,
        """
        from shapes import Circle
        def f(s: Circle):
            match s:
                case Circle():
                    pass
        """,
    ])
    def test_not_applicable(self, source):
        assert _messages(source) == []


class TestCaseArms:

    def test_or_pattern(self):
        assert _messages("""
            from shapes import Shape, Circle, Square
            def f(s: Shape):
                match s:
                    case Circle() | Square():
                        pass
        """) == []

    def test_as_pattern(self):
        assert _messages("""
            from shapes import Shape, Circle, Square
            def f(s: Shape):
                match s:
                    case Circle() as c:
                        pass
                    case Square(side=side) as sq:
                        pass
        """) == []

    def test_guarded_arm_does_not_count(self):
        assert _messages("""
            from shapes import Shape, Circle, Square
            def f(s: Shape, big: bool):
                match s:
                    case Circle():
                        pass
                    case Square() if big:
                        pass
        """) == ["missing cases in type switch on Shape: shapes.Square"]

    @pytest.mark.parametrize("arm", [
        "Circle(radius=0)",
        "Circle(0)",
        "Circle(radius=Point())",
        "Circle(radius=[r, *_])",
        "Circle(radius=0) as c",
    ])
    def test_refutable_class_pattern_does_not_count(self, arm):
        assert _messages(f"""
            from shapes import Shape, Circle, Square
            def f(s: Shape):
                match s:
                    case {arm}:
                        pass
                    case Square():
                        pass
        """) == ["missing cases in type switch on Shape: shapes.Circle"]

    def test_refutable_alternative_in_or_pattern(self):
        assert _messages("""
            from shapes import Shape, Circle, Square
            def f(s: Shape):
                match s:
                    case Circle(radius=0) | Square():
                        pass
        """) == ["missing cases in type switch on Shape: shapes.Circle"]

    @pytest.mark.parametrize("arm", [
        "Circle(r)",
        "Circle(radius=r)",
        "Circle(radius=_)",
        "Circle(radius=(r as rr))",
    ])
    def test_irrefutable_sub_patterns_count(self, arm):
        assert _messages(f"""
            from shapes import Shape, Circle, Square
            def f(s: Shape):
                match s:
                    case {arm}:
                        pass
                    case Square():
                        pass
        """) == []

    def test_guarded_wildcard_is_not_a_default(self):
        assert _messages("""
            from shapes import Shape, Circle
            def f(s: Shape, ok: bool):
                match s:
                    case Circle():
                        pass
                    case _ if ok:
                        return "other"
        """) == ["missing cases in type switch on Shape: shapes.Square"]

    def test_capture_pattern_is_a_default(self):
        assert _messages("""
            from shapes import Shape, Circle
            def f(s: Shape):
                match s:
                    case Circle():
                        return 1
                    case other:
                        return 0
        """) == []

    def test_unresolved_arm_dropped(self):
        assert _messages("""
            from shapes import Shape, Square
            def f(s: Shape):
                match s:
                    case Unknown() | Square():
                        pass
        """) == ["missing cases in type switch on Shape: shapes.Circle"]

    def test_nested_match_in_arm(self):
        assert _messages("""
            from shapes import Shape, Circle, Square
            def f(s: Shape, t: Shape):
                match s:
                    case Circle():
                        match t:
                            case Square():
                                pass
                    case Square():
                        pass
        """) == ["missing cases in type switch on Shape: shapes.Circle"]


class TestDefaultArmLowering:

    def _default(self, body, prelude=""):
        source = textwrap.dedent(prelude) + textwrap.dedent("""
            from shapes import Shape, Circle
            def f(s: Shape):
                match s:
                    case Circle():
                        return 1
                    case _:
        """) + textwrap.indent(textwrap.dedent(body), " " * 12)
        return _messages(source)

    @pytest.mark.parametrize("body", [
        "raise ValueError(s)",
        "raise",
        "assert_never(s)",
        "typing.assert_never(s)",
        "sys.exit(1)",
        "return 0, ValueError('x')",
        "return None, KeyError('x')",
        "return ShapeError()",
        "return NOT_FOUND",
        "return fail()",
        "log(s)\nraise ValueError(s)",
    ])
    def test_safety_guard(self, body):
        prelude = """
            import sys
            import typing
            from typing import assert_never
            class ShapeError(Exception):
                pass
            NOT_FOUND = LookupError("missing")
            def fail() -> ShapeError: ...
            def log(x): ...
        """
        assert self._default(body, prelude) == [
            "missing cases in type switch on Shape: shapes.Square",
        ]

    @pytest.mark.parametrize("body", [
        "pass",
        "return 0",
        "return None",
        "return None, None",
        "return",
        "return 'unknown'",
        "print(s)",
        "raise ValueError(s)\nprint(s)",
    ])
    def test_intentional(self, body):
        assert self._default(body) == []

    def test_configured_abort_function(self):
        prelude = "def die(msg): ...\n"
        assert self._default("die('x')", prelude) == []
        config = AnalyzerConfig(abort_functions=("m.die",))
        source = prelude + textwrap.dedent("""
            from shapes import Shape, Circle
            def f(s: Shape):
                match s:
                    case Circle():
                        return 1
                    case _:
                        die("unreachable")
        """)
        assert _messages(source, config) == [
            "missing cases in type switch on Shape: shapes.Square",
        ]

    def test_lowered_statements(self):
        program = py_program(m="""
            from shapes import Shape
            def f(s: Shape):
                match s:
                    case _:
                        x = 1
                        print(x)
                        raise RuntimeError
        """, shapes=SHAPES)
        node = program.modules["m"].dispatches[0]
        assert node.default[0] == OtherStmt("assign")
        assert node.default[1] == OtherStmt("call")
        assert node.default[2] == AbortCall("raise")

    def test_tuple_return_lowering(self):
        program = py_program(m="""
            from shapes import Shape
            def f(s: Shape):
                match s:
                    case _:
                        return None, ValueError("x")
        """, shapes=SHAPES)
        [ret] = program.modules["m"].dispatches[0].default
        assert isinstance(ret, ReturnStmt)
        assert ret.results[0].nil
        assert ret.results[1].type == TypeRef.named("", "ValueError")


class TestSuppression:

    def test_suppressed_lines(self):
        src = "x = 1\nmatch x:  # unionlint: ignore\n    case _: pass\n# unionlint:ignore\n"
        assert suppressed_lines(src) == frozenset({2, 4})

    def test_ignore_comment_silences_site(self):
        source = """
            from shapes import Shape, Circle
            def f(s: Shape):
                match s:  # unionlint: ignore
                    case Circle():
                        pass
        """
        program = program_from_sources({"shapes": SHAPES, "m": textwrap.dedent(source)})
        result = Analyzer().run(program)
        assert result.diagnostics == []
        assert result.suppressed == 1


class TestModulesAndImports:

    def test_relative_imports(self):
        consumer = (
            CONSUMER_PY.replace("import union", "from . import union", 1)
            .replace("from union import", "from .union import", 1)
        )
        program = build_program([
            SourceFile("pkg", "pkg/__init__.py", "", is_package=True),
            SourceFile("pkg.union", "pkg/union.py", UNION_PY),
            SourceFile("pkg.consumer", "pkg/consumer.py", consumer),
        ])
        assert program.modules["pkg.consumer"].imports == frozenset({"pkg", "pkg.union"})
        assert program.modules["pkg.union"].short_name == "union"
        messages = [d.message for d in Analyzer().run(program).by_file("pkg/consumer.py")]
        assert messages == [
            "missing cases in type switch on Result: union.Error",
            "missing cases in type switch on Shape: union.Rectangle, union.Triangle",
            "missing cases in type switch on Shape: union.Triangle",
        ]

    def test_reexport_through_package(self):
        program = build_program([
            SourceFile("pkg", "pkg/__init__.py", "from .shapes import Shape, Circle\n", True),
            SourceFile("pkg.shapes", "pkg/shapes.py", SHAPES),
            SourceFile("app", "app.py", textwrap.dedent("""
                from pkg import Shape, Circle
                def f(s: Shape):
                    match s:
                        case Circle():
                            pass
            """)),
        ])
        assert [d.message for d in Analyzer().run(program).diagnostics] == [
            "missing cases in type switch on Shape: shapes.Square",
        ]

    def test_star_import(self):
        assert _messages("""
            from shapes import *
            def f(s: Shape):
                match s:
                    case Circle():
                        pass
        """) == ["missing cases in type switch on Shape: shapes.Square"]

    def test_syntax_error_skipped(self, caplog):
        program = program_from_sources({"good": SHAPES, "bad": "def broken(:\n"})
        assert sorted(program.modules) == ["good"]
        assert "does not parse" in caplog.text

    def test_positions(self):
        program = program_from_sources({"union": UNION_PY})
        node = program.modules["union"].dispatches[0]
        assert node.pos.file == "union.py"
        assert node.pos.line == line_of(UNION_PY, "match r:  # missing")
        assert node.pos.column == 5


class TestDiscovery:

    def test_module_names(self, python_tree):
        sources = discover_sources([str(python_tree)])
        assert sorted(s.module for s in sources) == ["shapes", "shapes.consumer", "shapes.union"]

    def test_module_name_for_package(self, python_tree):
        assert module_name_for(python_tree / "__init__.py") == ("shapes", True)
        assert module_name_for(python_tree / "union.py") == ("shapes.union", False)

    def test_exclude(self, python_tree):
        sources = discover_sources([str(python_tree)], exclude=["consumer.py"])
        assert sorted(s.module for s in sources) == ["shapes", "shapes.union"]

    def test_pycache_skipped(self, python_tree):
        cache = python_tree / "__pycache__"
        cache.mkdir()
        (cache / "stale.py").write_text("x = 1\n")
        assert "stale" not in {s.short_name for s in discover_sources([str(python_tree)])}

    def test_missing_path(self, tmp_path):
        with pytest.raises(FrontendError):
            discover_sources([str(tmp_path / "nope")])

    def test_load_paths(self, python_tree):
        program = load_paths([str(python_tree)])
        result = Analyzer().run(program)
        assert len(result.diagnostics) == 5
