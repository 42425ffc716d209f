"""In-memory probe with a programmable reachability table.

Used by unit tests and dry runs to model a dataplane that converges
over time: a rule can be told to take effect only after a number of
attempts, and a pair can be made to fail transiently.

Usage::

    probe = SimulatedProbe()
    probe.allow(wl0, wl1)
    probe.deny(wl0, wl2, port=8055, after=3)   # still reachable for 3 attempts
    probe.fail_transiently(wl1, wl0, times=2)
"""

from __future__ import annotations

import threading
from dataclasses import dataclass

from ..core.endpoint import Endpoint, Protocol
from ..core.exceptions import ProbeTransientFailure
from ..core.probe import Probe, ProbeResult

RuleKey = tuple[str, str, int | None, Protocol | None]


@dataclass
class _Rule:
    reachable: bool
    previous: bool
    pending: int = 0


@dataclass(frozen=True)
class ProbeAttempt:
    """One recorded ``attempt`` call.

    Attributes:
        source: Source endpoint name.
        destination: Destination endpoint name.
        port: Port probed.
        protocol: Protocol probed.
        reachable: Outcome, or ``None`` when the attempt was transient.

    """

    source: str
    destination: str
    port: int
    protocol: Protocol
    reachable: bool | None


class SimulatedProbe(Probe):
    """Probe backed by an in-memory reachability table.

    Rules are looked up from most to least specific: exact port and
    protocol, port only, protocol only, then the bare pair.  Pairs with
    no rule use *default_reachable*.

    Args:
        default_reachable: Outcome for pairs without a rule.
        latency_ms: Latency reported for reachable attempts.

    """

    def __init__(self, default_reachable: bool = False, latency_ms: float = 0.1) -> None:
        """Initialize an empty reachability table."""
        super().__init__()
        self.default_reachable = default_reachable
        self.latency_ms = latency_ms
        self._rules: dict[RuleKey, _Rule] = {}
        self._transient: dict[tuple[str, str], int] = {}
        self._history: list[ProbeAttempt] = []
        self._lock = threading.Lock()

    # -- Table management ---------------------------------------------------

    def allow(
        self,
        source: Endpoint,
        destination: Endpoint,
        port: int | None = None,
        protocol: Protocol | None = None,
        after: int = 0,
    ) -> None:
        """Make *destination* reachable from *source*.

        Args:
            source: Source endpoint.
            destination: Destination endpoint.
            port: Restrict the rule to this port.
            protocol: Restrict the rule to this protocol.
            after: Number of attempts that still see the old state.

        """
        self._set(source, destination, port, protocol, True, after)

    def deny(
        self,
        source: Endpoint,
        destination: Endpoint,
        port: int | None = None,
        protocol: Protocol | None = None,
        after: int = 0,
    ) -> None:
        """Make *destination* unreachable from *source*; see ``allow``."""
        self._set(source, destination, port, protocol, False, after)

    def fail_transiently(self, source: Endpoint, destination: Endpoint, times: int = 1) -> None:
        """Make the next *times* attempts for the pair indeterminate."""
        with self._lock:
            self._transient[(source.name, destination.name)] = times

    def clear(self) -> None:
        """Drop every rule, transient failure, and history entry."""
        with self._lock:
            self._rules.clear()
            self._transient.clear()
            self._history.clear()

    @property
    def history(self) -> list[ProbeAttempt]:
        """Return every recorded attempt in call order."""
        with self._lock:
            return list(self._history)

    def attempts_for(self, source: Endpoint, destination: Endpoint) -> int:
        """Return how many times the pair has been probed."""
        with self._lock:
            return sum(
                1
                for a in self._history
                if a.source == source.name and a.destination == destination.name
            )

    # -- Probe API ----------------------------------------------------------

    def attempt(
        self,
        source: Endpoint,
        destination: Endpoint,
        port: int,
        protocol: Protocol = Protocol.TCP,
    ) -> ProbeResult:
        """Answer from the reachability table.

        Raises:
            ProbeTransientFailure: While the pair has pending transient
                failures.

        """
        pair = (source.name, destination.name)
        with self._lock:
            remaining = self._transient.get(pair, 0)
            if remaining > 0:
                self._transient[pair] = remaining - 1
                self._history.append(ProbeAttempt(*pair, port, protocol, None))
                raise ProbeTransientFailure(
                    "Simulated transient failure",
                    endpoint=source.name,
                    details={"destination": destination.name},
                )
            reachable = self._lookup(source.name, destination.name, port, protocol)
            self._history.append(ProbeAttempt(*pair, port, protocol, reachable))

        if reachable:
            return ProbeResult(reachable=True, latency_ms=self.latency_ms)
        return ProbeResult(reachable=False, error="simulated deny")

    # -- Internal helpers ---------------------------------------------------

    def _set(
        self,
        source: Endpoint,
        destination: Endpoint,
        port: int | None,
        protocol: Protocol | None,
        reachable: bool,
        after: int,
    ) -> None:
        key: RuleKey = (source.name, destination.name, port, protocol)
        with self._lock:
            previous = self._effective(key)
            self._rules[key] = _Rule(reachable=reachable, previous=previous, pending=after)
        self._logger.debug(
            "Rule %s -> %s port=%s proto=%s reachable=%s after=%d",
            source.name,
            destination.name,
            port,
            protocol,
            reachable,
            after,
        )

    def _effective(self, key: RuleKey) -> bool:
        """Return the current outcome for *key* without consuming attempts."""
        rule = self._find(*key)
        if rule is None:
            return self.default_reachable
        return rule.previous if rule.pending > 0 else rule.reachable

    def _find(self, src: str, dst: str, port: int | None, protocol: Protocol | None) -> _Rule | None:
        for key in (
            (src, dst, port, protocol),
            (src, dst, port, None),
            (src, dst, None, protocol),
            (src, dst, None, None),
        ):
            rule = self._rules.get(key)
            if rule is not None:
                return rule
        return None

    def _lookup(self, src: str, dst: str, port: int, protocol: Protocol) -> bool:
        rule = self._find(src, dst, port, protocol)
        if rule is None:
            return self.default_reachable
        if rule.pending > 0:
            rule.pending -= 1
            return rule.previous
        return rule.reachable
