"""Snapshot report of one connectivity probe cycle.

Renders the expected-vs-observed matrix that accompanies a
``ConvergenceMismatch`` and feeds the HTML report generator.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from .expectations import ConnectivityResult

MATRIX_HEADER = ("source", "destination", "port", "proto", "expected", "observed", "detail")


@dataclass
class ConnectivityReport:
    """Results of the final (or passing) probe cycle of a check.

    Attributes:
        results: Every entry's observation from that cycle.
        cycles: Number of probe cycles the check ran.
        elapsed_seconds: Wall time spent in the check.
        timestamp: ISO-8601 completion time.

    """

    results: list[ConnectivityResult] = field(default_factory=list)
    cycles: int = 0
    elapsed_seconds: float = 0.0
    timestamp: str = field(default_factory=lambda: datetime.now(UTC).isoformat())

    @property
    def mismatches(self) -> list[ConnectivityResult]:
        """Results whose observation contradicts the expectation."""
        return [r for r in self.results if not r.matches]

    @property
    def passed(self) -> bool:
        """Return ``True`` only if every result matches its expectation."""
        return all(r.matches for r in self.results)

    @property
    def pass_count(self) -> int:
        """Number of matching entries."""
        return sum(1 for r in self.results if r.matches)

    @property
    def fail_count(self) -> int:
        """Number of mismatched entries."""
        return len(self.mismatches)

    def summary(self) -> str:
        """Return a one-line summary string."""
        total = len(self.results)
        return (
            f"{self.pass_count}/{total} expectations met after {self.cycles} cycle(s) "
            f"in {self.elapsed_seconds:.1f}s"
        )

    def render_matrix(self, only_mismatches: bool = False) -> str:
        """Render the expected-vs-observed matrix as an aligned text table.

        Args:
            only_mismatches: Restrict rows to mismatched entries.

        """
        rows = [MATRIX_HEADER]
        selected = self.mismatches if only_mismatches else self.results
        for result in selected:
            entry = result.entry
            rows.append(
                (
                    str(entry.source),
                    str(entry.destination),
                    "default" if entry.port is None else str(entry.port),
                    str(entry.protocol),
                    entry.expectation,
                    result.observed,
                    ("" if result.matches else "MISMATCH ") + result.error,
                )
            )
        widths = [max(len(row[i]) for row in rows) for i in range(len(MATRIX_HEADER))]
        lines = ["  ".join(cell.ljust(widths[i]) for i, cell in enumerate(row)).rstrip() for row in rows]
        return "\n".join(lines)

    def failure_message(self) -> str:
        """Return the aggregated diagnostic for a failed check."""
        names = ", ".join(r.entry.describe() for r in self.mismatches)
        return (
            f"Connectivity did not converge: {self.fail_count} mismatched "
            f"expectation(s) [{names}]\n{self.render_matrix()}"
        )

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-friendly representation."""
        return {
            "passed": self.passed,
            "summary": self.summary(),
            "cycles": self.cycles,
            "elapsed_seconds": self.elapsed_seconds,
            "timestamp": self.timestamp,
            "results": [
                {
                    "source": r.entry.source.name,
                    "destination": r.entry.destination.name,
                    "port": r.entry.port,
                    "protocol": str(r.entry.protocol),
                    "expected": r.entry.expectation,
                    "observed": r.observed,
                    "matches": r.matches,
                    "latency_ms": r.latency_ms,
                    "error": r.error,
                }
                for r in self.results
            ],
        }
