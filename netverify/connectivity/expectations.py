"""Expectation matrix: declared reachability and last observed outcomes.

The matrix is an explicit, owned structure.  Scenarios mutate it through
``expect_some`` / ``expect_none`` / ``reset`` and the checker records one
cycle of results at a time through ``record_results``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from ..core.endpoint import Endpoint, Protocol

logger = logging.getLogger(__name__)

EntryKey = tuple[str, str, int | None]


@dataclass(frozen=True)
class ExpectationEntry:
    """A single declared reachability assertion.

    Attributes:
        source: Endpoint traffic originates from.
        destination: Endpoint traffic is sent to.
        port: Destination port; ``None`` means the default port.
        protocol: Transport protocol to probe with.
        expected_reachable: ``True`` for ``expect_some``, ``False`` for
            ``expect_none``.

    """

    source: Endpoint
    destination: Endpoint
    port: int | None
    protocol: Protocol
    expected_reachable: bool

    @property
    def key(self) -> EntryKey:
        """Identity of the entry within one matrix generation."""
        return (self.source.name, self.destination.name, self.port)

    @property
    def expectation(self) -> str:
        """Return ``some`` or ``none``."""
        return "some" if self.expected_reachable else "none"

    def describe(self) -> str:
        """Return ``src -> dst:port/proto``."""
        port = "default" if self.port is None else str(self.port)
        return f"{self.source.name} -> {self.destination.name}:{port}/{self.protocol}"


@dataclass(frozen=True)
class ConnectivityResult:
    """Observed outcome of probing one entry in one cycle.

    Attributes:
        entry: The expectation that was probed.
        reachable: Observed reachability; ``None`` when the probe was
            indeterminate.
        latency_ms: Measured latency, if any.
        error: Failure or transient-error description.
        cycle: Probe cycle that produced this result.

    """

    entry: ExpectationEntry
    reachable: bool | None
    latency_ms: float | None = None
    error: str = ""
    cycle: int = 0

    @property
    def matches(self) -> bool:
        """Return ``True`` if the observation satisfies the expectation."""
        return self.reachable is not None and self.reachable == self.entry.expected_reachable

    @property
    def observed(self) -> str:
        """Return ``some``, ``none``, or ``unknown``."""
        if self.reachable is None:
            return "unknown"
        return "some" if self.reachable else "none"


class ExpectationMatrix:
    """Mutable set of expectations plus the last observed result set.

    Created fresh per scenario and discarded at its end.
    """

    def __init__(self) -> None:
        """Initialize an empty matrix."""
        self._entries: dict[EntryKey, ExpectationEntry] = {}
        self._results: dict[EntryKey, ConnectivityResult] = {}
        self._logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    def __len__(self) -> int:
        return len(self._entries)

    def __bool__(self) -> bool:
        return bool(self._entries)

    def expect(
        self,
        source: Endpoint,
        destination: Endpoint,
        reachable: bool,
        port: int | None = None,
        protocol: Protocol = Protocol.TCP,
    ) -> ExpectationEntry:
        """Insert or overwrite an expectation.

        Raises:
            ValueError: If *source* is a destination-only endpoint.

        """
        if not source.can_source:
            raise ValueError(f"{source.name} is a target-only endpoint and cannot send traffic")
        entry = ExpectationEntry(
            source=source,
            destination=destination,
            port=port,
            protocol=Protocol(protocol),
            expected_reachable=reachable,
        )
        if entry.key in self._entries:
            self._logger.debug("Overwriting expectation %s", entry.describe())
            # A stale observation must not satisfy a changed expectation.
            self._results.pop(entry.key, None)
        self._entries[entry.key] = entry
        return entry

    def expect_some(
        self,
        source: Endpoint,
        destination: Endpoint,
        port: int | None = None,
        protocol: Protocol = Protocol.TCP,
    ) -> ExpectationEntry:
        """Declare that *source* can reach *destination*."""
        return self.expect(source, destination, True, port, protocol)

    def expect_none(
        self,
        source: Endpoint,
        destination: Endpoint,
        port: int | None = None,
        protocol: Protocol = Protocol.TCP,
    ) -> ExpectationEntry:
        """Declare that *source* cannot reach *destination*."""
        return self.expect(source, destination, False, port, protocol)

    def discard(self, key: EntryKey) -> None:
        """Drop the entry stored under *key* and its last observation, if any."""
        self._entries.pop(key, None)
        self._results.pop(key, None)

    def reset(self) -> None:
        """Drop every expectation and observation."""
        self._entries.clear()
        self._results.clear()

    @property
    def entries(self) -> list[ExpectationEntry]:
        """Return the entries in declaration order."""
        return list(self._entries.values())

    def endpoints(self) -> set[str]:
        """Return the names of every endpoint referenced by the matrix."""
        names: set[str] = set()
        for entry in self._entries.values():
            names.add(entry.source.name)
            names.add(entry.destination.name)
        return names

    def record_results(self, results: list[ConnectivityResult]) -> None:
        """Replace the last observations with one cycle's results.

        Results whose entry is no longer declared are ignored.
        """
        self._results = {
            r.entry.key: r for r in results if self._entries.get(r.entry.key) == r.entry
        }

    @property
    def last_results(self) -> list[ConnectivityResult]:
        """Return the most recent observation per entry, in declaration order."""
        return [self._results[key] for key in self._entries if key in self._results]

    def mismatches(self) -> list[ConnectivityResult]:
        """Return last observations that contradict their expectation.

        Entries never observed are reported as ``unknown``.
        """
        mismatched: list[ConnectivityResult] = []
        for key, entry in self._entries.items():
            result = self._results.get(key)
            if result is None:
                result = ConnectivityResult(entry=entry, reachable=None, error="not probed")
            if not result.matches:
                mismatched.append(result)
        return mismatched

    @property
    def converged(self) -> bool:
        """Return ``True`` if every entry's last observation matches."""
        return not self.mismatches()
