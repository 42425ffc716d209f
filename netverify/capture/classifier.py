"""Live capture classifier with named, concurrently-readable counters.

A ``CaptureSession`` owns one ``CaptureSource`` and a set of named
``Matcher``s.  One background reader thread tests every captured line
against every matcher and bumps each matching counter exactly once per
line; any number of threads may read or reset counters meanwhile.

Usage::

    session = CaptureSession(tcpdump_source("eth0", container="felix-0"))
    session.add_matcher("tunnel", tunnel_pattern(felix0_ip, felix1_ip))
    session.add_matcher("direct", direct_pattern(wl0_ip, wl1_ip))
    with session:
        send_traffic()
        session.wait_for_count("tunnel", greater_than(0))
        session.wait_for_count("direct", equals(0))
"""

from __future__ import annotations

import logging
import operator
import re
import threading
from collections.abc import Callable
from dataclasses import dataclass, field

from ..core.convergence import RetryPolicy, consistently, eventually
from ..core.exceptions import (
    CaptureStartFailure,
    CaptureStateError,
    DuplicateMatcherName,
    MatcherNotFound,
    StabilityViolation,
    TimeoutExceeded,
)
from .sources import CaptureSource

logger = logging.getLogger(__name__)

READER_JOIN_TIMEOUT = 5.0

_COMPARATORS: dict[str, Callable[[int, int], bool]] = {
    "==": operator.eq,
    ">=": operator.ge,
    ">": operator.gt,
    "<=": operator.le,
    "<": operator.lt,
}


@dataclass(frozen=True)
class CountCondition:
    """Numeric predicate over a matcher count (e.g. ``> 0``).

    Attributes:
        op: One of ``==``, ``>=``, ``>``, ``<=``, ``<``.
        value: Right-hand operand.

    """

    op: str
    value: int

    def __post_init__(self) -> None:
        """Validate the comparison operator."""
        if self.op not in _COMPARATORS:
            raise ValueError(f"Unsupported count comparison '{self.op}'")

    def __call__(self, count: int) -> bool:
        """Return ``True`` if *count* satisfies the condition."""
        return _COMPARATORS[self.op](count, self.value)

    @property
    def must_stay_zero(self) -> bool:
        """Return ``True`` if only a count of zero satisfies the condition."""
        return (self.op in ("==", "<=") and self.value == 0) or (
            self.op == "<" and self.value == 1
        )

    def __str__(self) -> str:
        return f"{self.op} {self.value}"


def equals(value: int) -> CountCondition:
    """Condition ``count == value``."""
    return CountCondition("==", value)


def at_least(value: int) -> CountCondition:
    """Condition ``count >= value``."""
    return CountCondition(">=", value)


def greater_than(value: int) -> CountCondition:
    """Condition ``count > value``."""
    return CountCondition(">", value)


def at_most(value: int) -> CountCondition:
    """Condition ``count <= value``."""
    return CountCondition("<=", value)


@dataclass
class Matcher:
    """A named pattern and the number of captured lines it matched.

    Attributes:
        name: Unique name within the session.
        pattern: Compiled regular expression searched in each line.

    """

    name: str
    pattern: re.Pattern[str]
    _count: int = field(default=0, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    @property
    def count(self) -> int:
        """Return the current count."""
        with self._lock:
            return self._count

    def matches(self, line: str) -> bool:
        """Return ``True`` if the pattern occurs anywhere in *line*."""
        return self.pattern.search(line) is not None

    def increment(self) -> None:
        """Add one hit."""
        with self._lock:
            self._count += 1

    def reset(self) -> None:
        """Zero the counter."""
        with self._lock:
            self._count = 0


class CaptureSession:
    """Classify a live capture stream against named matchers.

    Args:
        source: Line source to attach to.
        name: Session label; defaults to the source name.
        policy: Default cadence for ``wait_for_count`` and
            ``assert_count_holds``.

    """

    def __init__(
        self,
        source: CaptureSource,
        name: str | None = None,
        policy: RetryPolicy | None = None,
    ) -> None:
        """Initialize a stopped session with no matchers."""
        self._source = source
        self.name = name or source.name
        self._policy = policy or RetryPolicy()
        self._matchers: dict[str, Matcher] = {}
        self._matchers_lock = threading.Lock()
        self._reader: threading.Thread | None = None
        self._running = False
        self._stopping = threading.Event()
        self._lines_seen = 0
        self._reader_error: BaseException | None = None
        self._logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    # -- Properties ---------------------------------------------------------

    @property
    def is_running(self) -> bool:
        """Return ``True`` between a successful ``start`` and ``stop``."""
        return self._running

    @property
    def matcher_names(self) -> list[str]:
        """Return matcher names in registration order."""
        with self._matchers_lock:
            return list(self._matchers)

    @property
    def lines_seen(self) -> int:
        """Return how many lines the reader has classified."""
        return self._lines_seen

    @property
    def reader_error(self) -> BaseException | None:
        """Return the error that ended the reader early, if any."""
        return self._reader_error

    # -- Context manager ----------------------------------------------------

    def __enter__(self) -> CaptureSession:
        """Start capturing upon entering a ``with`` block."""
        self.start()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object | None,
    ) -> None:
        """Stop capturing when leaving a ``with`` block."""
        try:
            self.stop()
        except Exception:
            self._logger.exception("Error stopping capture session %s", self.name)

    # -- Matchers -----------------------------------------------------------

    def add_matcher(self, name: str, pattern: str | re.Pattern[str]) -> Matcher:
        """Register a named pattern.

        Args:
            name: Unique matcher name.
            pattern: Regular expression source or compiled pattern.

        Returns:
            The registered ``Matcher``.

        Raises:
            DuplicateMatcherName: If *name* is already registered; the
                existing matcher is left untouched.

        """
        compiled = pattern if isinstance(pattern, re.Pattern) else re.compile(pattern)
        with self._matchers_lock:
            if name in self._matchers:
                raise DuplicateMatcherName(
                    f"Matcher '{name}' already registered",
                    endpoint=self.name,
                )
            matcher = Matcher(name=name, pattern=compiled)
            self._matchers[name] = matcher
        self._logger.debug("Added matcher %s: %s", name, compiled.pattern)
        return matcher

    def match_count(self, name: str) -> int:
        """Return the current count for *name*.

        Raises:
            MatcherNotFound: If *name* is not registered.

        """
        return self._get(name).count

    def reset_count(self, name: str) -> None:
        """Zero the counter for *name* without affecting other matchers.

        Raises:
            MatcherNotFound: If *name* is not registered.

        """
        self._get(name).reset()

    def reset_all(self) -> None:
        """Zero every counter."""
        with self._matchers_lock:
            matchers = list(self._matchers.values())
        for matcher in matchers:
            matcher.reset()

    def counts(self) -> dict[str, int]:
        """Return a snapshot of every counter."""
        with self._matchers_lock:
            matchers = list(self._matchers.values())
        return {m.name: m.count for m in matchers}

    def summary(self) -> str:
        """Return ``name=count`` pairs for failure reports."""
        pairs = ", ".join(f"{name}={count}" for name, count in self.counts().items())
        return f"[{self.name}] {pairs or 'no matchers'} ({self._lines_seen} lines)"

    # -- Lifecycle ----------------------------------------------------------

    def start(self) -> None:
        """Open the source and begin classifying lines in the background.

        Raises:
            CaptureStateError: If the session is already running.
            CaptureStartFailure: If the source cannot be opened; the
                source is closed and the session stays stopped.

        """
        if self._running:
            raise CaptureStateError("Capture session already started", endpoint=self.name)

        self._stopping.clear()
        self._reader_error = None
        try:
            self._source.open()
        except CaptureStartFailure:
            self._source.close()
            raise
        except Exception as exc:
            self._source.close()
            raise CaptureStartFailure(
                f"Failed to open capture source: {exc}",
                endpoint=self.name,
            ) from exc

        self._reader = threading.Thread(
            target=self._read_loop,
            name=f"capture-{self.name}",
            daemon=True,
        )
        self._running = True
        self._reader.start()
        self._logger.info("Capture session %s started with %d matcher(s)", self.name, len(self._matchers))

    def stop(self) -> None:
        """Stop capturing and release the source.  Idempotent.

        Counters remain queryable at their last value.
        """
        if not self._running:
            return
        self._stopping.set()
        self._source.close()
        reader = self._reader
        if reader is not None:
            reader.join(timeout=READER_JOIN_TIMEOUT)
            if reader.is_alive():
                self._logger.warning("Capture reader for %s did not exit", self.name)
        self._reader = None
        self._running = False
        self._logger.info("Capture session stopped: %s", self.summary())

    # -- Waiting ------------------------------------------------------------

    def wait_for_count(
        self,
        name: str,
        condition: CountCondition,
        timeout: float | None = None,
        poll_interval: float | None = None,
    ) -> int:
        """Poll a counter until *condition* holds.

        For must-stay-zero conditions a nonzero count fails immediately
        instead of waiting out the timeout.

        Args:
            name: Matcher name.
            condition: Predicate the count must satisfy.
            timeout: Seconds to wait; defaults to the session policy.
            poll_interval: Seconds between reads.

        Returns:
            The count that satisfied the condition.

        Raises:
            MatcherNotFound: If *name* is not registered.
            StabilityViolation: If a must-stay-zero counter is nonzero.
            TimeoutExceeded: If the condition never held.

        """
        matcher = self._get(name)
        if condition.must_stay_zero:
            count = matcher.count
            if not condition(count):
                raise StabilityViolation(
                    f"Unexpected packets for '{name}': expected {condition}, actual {count}",
                    last_value=count,
                    endpoint=self.name,
                )
            return count

        try:
            return eventually(
                lambda: matcher.count,
                timeout,
                poll_interval,
                condition=condition,
                policy=self._policy,
                description=f"count of '{name}' {condition}",
            )
        except TimeoutExceeded as exc:
            raise TimeoutExceeded(
                f"Incorrect packet count for '{name}': expected {condition}, "
                f"actual {exc.last_value}",
                last_value=exc.last_value,
                last_error=exc.last_error,
                endpoint=self.name,
                details=dict(exc.details),
            ) from exc

    def assert_count_holds(
        self,
        name: str,
        condition: CountCondition,
        duration: float | None = None,
        poll_interval: float | None = None,
    ) -> int:
        """Require a counter to satisfy *condition* for a whole window.

        Returns:
            The count at the end of the window.

        Raises:
            MatcherNotFound: If *name* is not registered.
            StabilityViolation: On the first reading that breaks the
                condition.

        """
        matcher = self._get(name)
        try:
            return consistently(
                lambda: matcher.count,
                duration,
                poll_interval,
                condition=condition,
                policy=self._policy,
                description=f"count of '{name}' {condition}",
            )
        except StabilityViolation as exc:
            raise StabilityViolation(
                f"Packet count for '{name}' left {condition}: actual {exc.last_value}",
                last_value=exc.last_value,
                endpoint=self.name,
            ) from exc

    # -- Internal helpers ---------------------------------------------------

    def _get(self, name: str) -> Matcher:
        """Look up a matcher or raise ``MatcherNotFound``."""
        with self._matchers_lock:
            matcher = self._matchers.get(name)
            if matcher is None:
                raise MatcherNotFound(
                    f"Matcher '{name}' not registered",
                    endpoint=self.name,
                    details={"available": list(self._matchers)},
                )
            return matcher

    def _read_loop(self) -> None:
        """Classify lines until the source ends or the session stops."""
        try:
            for line in self._source.lines():
                if self._stopping.is_set():
                    break
                self._classify(line)
        except Exception as exc:
            if not self._stopping.is_set():
                self._reader_error = exc
                self._logger.exception("Capture reader for %s failed", self.name)
        self._logger.debug("Capture reader for %s exited after %d lines", self.name, self._lines_seen)

    def _classify(self, line: str) -> None:
        """Bump every matcher whose pattern occurs in *line*."""
        with self._matchers_lock:
            matchers = list(self._matchers.values())
        for matcher in matchers:
            if matcher.matches(line):
                matcher.increment()
        self._lines_seen += 1
