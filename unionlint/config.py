"""Run configuration for the unionlint analyzer."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Tuple

#: Python callables treated like a ``raise`` when they end a catch-all arm.
DEFAULT_ABORT_FUNCTIONS: Tuple[str, ...] = (
    "typing.assert_never",
    "typing_extensions.assert_never",
    "sys.exit",
    "os.abort",
    "os._exit",
)


@dataclass
class AnalyzerConfig:
    """Tuning knobs for one analysis run."""
    jobs: int = 1
    abort_functions: Tuple[str, ...] = DEFAULT_ABORT_FUNCTIONS
    suppress: Tuple[str, ...] = ()
    suppress_files: Tuple[str, ...] = ()
    exclude: Tuple[str, ...] = ()

    def validate(self) -> List[str]:
        """Return a list of validation warnings (empty if valid)."""
        warnings: List[str] = []
        if self.jobs <= 0:
            warnings.append("jobs must be positive; running single-threaded")
        for name in self.abort_functions:
            if not name or name.startswith(".") or name.endswith("."):
                warnings.append(f"abort function {name!r} is not a dotted name")
        return warnings

    @property
    def workers(self) -> int:
        return max(1, self.jobs)


__all__ = ["DEFAULT_ABORT_FUNCTIONS", "AnalyzerConfig"]
