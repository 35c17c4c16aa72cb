"""
Error kinds raised by the landbase core.

Every failure carries an ``ErrorKind`` plus whatever context identifies it
(coarse cell id, dataset name). Callers get the error immediately; nothing is
retried and arrays already written are not rolled back.
"""
from __future__ import annotations

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    MEMORY = "memory"
    IO = "io"
    TOPOLOGY = "topology"
    LOOKUP = "lookup"


# CLI exit codes per kind
EXIT_CODES = {
    ErrorKind.MEMORY: 3,
    ErrorKind.IO: 4,
    ErrorKind.TOPOLOGY: 5,
    ErrorKind.LOOKUP: 6,
}


class LandbaseError(Exception):
    """Base class for all core errors."""

    kind: ErrorKind = ErrorKind.IO

    def __init__(
        self,
        message: str,
        coarse_cell: Optional[int] = None,
        dataset: Optional[str] = None,
    ) -> None:
        self.message = message
        self.coarse_cell = coarse_cell
        self.dataset = dataset
        super().__init__(self._render())

    def _render(self) -> str:
        ctx = []
        if self.dataset is not None:
            ctx.append(f"dataset={self.dataset}")
        if self.coarse_cell is not None:
            ctx.append(f"coarse_cell={self.coarse_cell}")
        suffix = f" ({', '.join(ctx)})" if ctx else ""
        return f"[{self.kind.value}] {self.message}{suffix}"

    @property
    def exit_code(self) -> int:
        return EXIT_CODES[self.kind]


class AllocationError(LandbaseError):
    kind = ErrorKind.MEMORY


class InputError(LandbaseError):
    """Missing, unreadable or truncated input file."""

    kind = ErrorKind.IO


class TopologyError(LandbaseError):
    """Coarse/fine grid nesting precondition violated."""

    kind = ErrorKind.TOPOLOGY


class LookupResolutionError(LandbaseError):
    """A raw country code is not present in the country lookup table."""

    kind = ErrorKind.LOOKUP
