# tests/conftest.py
"""
Shared fixture sources and builders for the unionlint test-suite.

Two equivalent program pairs are provided:

  * ``UNION_MODULE_DUMP`` / ``CONSUMER_MODULE_DUMP`` — pre-resolved dumps with
    pointer-receiver variants (``union.*Error``);
  * ``UNION_PY`` / ``CONSUMER_PY`` — the same contracts written in Python
    (``Result`` as an ABC, ``Shape`` as a Protocol).

In the Python sources a ``# missing: a, b`` comment on a ``match`` line
is the diagnostic expected for that line; see :func:`expected_missing`.
"""

from __future__ import annotations

import re
import textwrap
from typing import Dict, List

import pytest

from unionlint.frontend.pysource import program_from_sources
from unionlint.frontend.sexpdump import parse_dump
from unionlint.model import Program


# ═════════════════════════════════════════════════════════════════════════
#  Dump fixtures
# ═════════════════════════════════════════════════════════════════════════

UNION_MODULE_DUMP = """\
(module union
  (file "union.go")
  (interface Result (at "union.go" 9 6) (method isResult 0 0))
  (struct Success (at "union.go" 14 6))
  (struct Error (at "union.go" 19 6))
  (method (* Success) isResult 0 0)
  (method (* Error) isResult 0 0)
  (interface Shape (at "union.go" 32 6) (method isShape 0 0))
  (struct Circle (at "union.go" 36 6))
  (struct Rectangle (at "union.go" 40 6))
  (struct Triangle (at "union.go" 45 6))
  (method (* Circle) isShape 0 0)
  (method (* Rectangle) isShape 0 0)
  (method (* Triangle) isShape 0 0)
  (switch (at "union.go" 60 2) (on Result)
    (case (* Success)))
  (switch (at "union.go" 69 2) (on Result)
    (case (* Success)) (case (* Error)))
  (switch (at "union.go" 80 2) (on Result)
    (case (* Success))
    (default (return string)))
  (switch (at "union.go" 94 2) (on Shape)
    (case (* Circle)) (case (* Rectangle)))
  (switch (at "union.go" 105 2) (on Shape)
    (case (* Circle)) (case (* Rectangle)) (case (* Triangle)))
  (switch (at "union.go" 118 2) (on Shape)
    (case (* Circle))
    (default (return float64))))
"""

CONSUMER_MODULE_DUMP = """\
(module consumer
  (file "consumer.go")
  (imports union)
  (switch (at "consumer.go" 11 2) (on union.Result)
    (case (* union.Success)))
  (switch (at "consumer.go" 20 2) (on union.Result)
    (case (* union.Success)) (case (* union.Error)))
  (switch (at "consumer.go" 35 2) (on union.Shape)
    (case (* union.Circle)))
  (switch (at "consumer.go" 44 2) (on union.Shape)
    (case (* union.Circle)) (case (* union.Rectangle)) (case (* union.Triangle)))
  (switch (at "consumer.go" 57 2) (on union.Shape)
    (case (* union.Circle))
    (default (return string)))
  (switch (at "consumer.go" 67 2) (on union.Shape)
    (case (* union.Circle)) (case (* union.Rectangle))))
"""

UNION_DUMP = f"(program\n{UNION_MODULE_DUMP})\n"
PROGRAM_DUMP = f"(program\n{UNION_MODULE_DUMP}{CONSUMER_MODULE_DUMP})\n"

#: (file, line, message) of every diagnostic PROGRAM_DUMP must produce, in order.
PROGRAM_DUMP_EXPECTED = [
    ("consumer.go", 11, "missing cases in type switch on Result: union.*Error"),
    ("consumer.go", 35,
     "missing cases in type switch on Shape: union.*Rectangle, union.*Triangle"),
    ("consumer.go", 67, "missing cases in type switch on Shape: union.*Triangle"),
    ("union.go", 60, "missing cases in type switch on Result: union.*Error"),
    ("union.go", 94, "missing cases in type switch on Shape: union.*Triangle"),
]

#: Module ``union`` with just the Shape contract, for classifier scenarios.
SHAPES_ONLY_DUMP = """\
(module union
  (file "shapes.go")
  (imports errors fmt)
  (interface Shape (method isShape 0 0))
  (struct Circle) (struct Rectangle) (struct Triangle)
  (method (* Circle) isShape 0 0)
  (method (* Rectangle) isShape 0 0)
  (method (* Triangle) isShape 0 0)
  (struct NotFound)
  (method NotFound Error 0 1)
  (struct Plain)
  (method Plain String 0 1))
"""


def shapes_program(*switches: str) -> str:
    """Wrap switch clauses into a program around ``SHAPES_ONLY_DUMP``."""
    body = SHAPES_ONLY_DUMP.rstrip()[:-1]  # drop the module's closing paren
    return "(program\n" + body + "\n" + "\n".join(switches) + "))\n"


# ═════════════════════════════════════════════════════════════════════════
#  Python fixtures
# ═════════════════════════════════════════════════════════════════════════

UNION_PY = textwrap.dedent('''\
    """Sealed contracts used by the consumer module."""

    from abc import ABC, abstractmethod
    from dataclasses import dataclass
    from typing import Protocol


    class Result(ABC):
        """Operation outcome; _is_result() keeps implementations in this module."""

        @abstractmethod
        def _is_result(self) -> None: ...


    class Success(Result):
        def __init__(self, value: str) -> None:
            self.value = value

        def _is_result(self) -> None:
            pass


    class Error(Result):
        def __init__(self, message: str, code: int) -> None:
            self.message = message
            self.code = code

        def _is_result(self) -> None:
            pass


    class Shape(Protocol):
        def _is_shape(self) -> None: ...


    @dataclass
    class Circle:
        radius: float

        def _is_shape(self) -> None:
            pass


    @dataclass
    class Rectangle:
        width: float
        height: float

        def _is_shape(self) -> None:
            pass


    @dataclass
    class Triangle:
        base: float
        height: float

        def _is_shape(self) -> None:
            pass


    def handle_result(r: Result) -> str:
        match r:  # missing: union.Error
            case Success():
                return "success"
        return ""


    def handle_result_complete(r: Result) -> str:
        match r:
            case Success():
                return "success"
            case Error():
                return "error"
        return ""


    def handle_result_with_default(r: Result) -> str:
        match r:
            case Success():
                return "success"
            case _:
                return "unknown"


    def calculate_area(s: Shape) -> float:
        match s:  # missing: union.Triangle
            case Circle(radius=r):
                return 3.14 * r * r
            case Rectangle(width=w, height=h):
                return w * h
        return 0.0


    def calculate_area_complete(s: Shape) -> float:
        match s:
            case Circle(radius=r):
                return 3.14 * r * r
            case Rectangle(width=w, height=h):
                return w * h
            case Triangle(base=b, height=h):
                return 0.5 * b * h
        return 0.0


    def calculate_area_with_default(s: Shape) -> float:
        match s:
            case Circle(radius=r):
                return 3.14 * r * r
            case _:
                return 0.0
''')

CONSUMER_PY = textwrap.dedent('''\
    import union
    from union import Circle, Rectangle


    def process_result(r: union.Result) -> str:
        match r:  # missing: union.Error
            case union.Success():
                return "processed successfully"
        return ""


    def process_result_complete(r: union.Result) -> str:
        match r:
            case union.Success():
                return "processed successfully"
            case union.Error():
                return "processing failed"
        return ""


    def draw_shape(s: union.Shape) -> str:
        match s:  # missing: union.Rectangle, union.Triangle
            case Circle():
                return "drawing circle"
        return ""


    def draw_shape_complete(s: union.Shape) -> str:
        match s:
            case Circle():
                return "drawing circle"
            case Rectangle():
                return "drawing rectangle"
            case union.Triangle():
                return "drawing triangle"
        return ""


    def draw_shape_with_default(s: union.Shape) -> str:
        match s:
            case Circle():
                return "drawing circle"
            case _:
                return "drawing unknown shape"


    def get_shape_name(s: union.Shape) -> str:
        match s:  # missing: union.Triangle
            case Circle() | Rectangle():
                return type(s).__name__
        return ""
''')

_MISSING_MARKER = re.compile(r"#\s*missing:\s*(.+)$")


def expected_missing(source: str) -> Dict[int, List[str]]:
    """Map line number → expected missing variants, from ``# missing:`` comments."""
    expected: Dict[int, List[str]] = {}
    for lineno, line in enumerate(source.splitlines(), start=1):
        m = _MISSING_MARKER.search(line)
        if m:
            expected[lineno] = [v.strip() for v in m.group(1).split(",")]
    return expected


def line_of(source: str, needle: str) -> int:
    """1-based line number of the first line containing *needle*."""
    for lineno, line in enumerate(source.splitlines(), start=1):
        if needle in line:
            return lineno
    raise AssertionError(f"{needle!r} not found in source")


def py_program(**modules: str) -> Program:
    """Build a Python program from ``name=source`` keyword arguments."""
    return program_from_sources({name: textwrap.dedent(src) for name, src in modules.items()})


# ═════════════════════════════════════════════════════════════════════════
#  pytest fixtures
# ═════════════════════════════════════════════════════════════════════════

@pytest.fixture
def dump_program() -> Program:
    return parse_dump(PROGRAM_DUMP, filename="program.sexp")


@pytest.fixture
def python_program() -> Program:
    return program_from_sources({"union": UNION_PY, "consumer": CONSUMER_PY})


@pytest.fixture
def python_tree(tmp_path):
    """The Python fixture pair written to disk as a package ``shapes``."""
    pkg = tmp_path / "shapes"
    pkg.mkdir()
    (pkg / "__init__.py").write_text("")
    (pkg / "union.py").write_text(UNION_PY)
    (pkg / "consumer.py").write_text(
        CONSUMER_PY.replace("import union", "from shapes import union", 1)
        .replace("from union import", "from shapes.union import", 1)
    )
    return pkg
