"""Connectivity checker: cross-probes a declared matrix until it converges.

Usage::

    cc = ConnectivityChecker(ExecProbe())
    cc.expect_some(wl0, wl1)
    cc.expect_some(wl1, wl0)
    cc.expect_none(wl0, wl2, port=8055)
    cc.check_connectivity()               # default timeout
    cc.reset_expectations()

    cc.on_fail = lambda msg: log.info("diagnostics: %s", msg)
    cc.expect_some(felix0, TargetIP("10.96.10.1"), 8055)
    cc.check_connectivity_with_timeout(30)

Each probe cycle issues a fresh probe for every entry and compares that
cycle's snapshot against the expectations as a unit.  Mismatches inside
the convergence window are retried; whatever is still mismatched at the
deadline is raised once as ``ConvergenceMismatch``.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor

from ..core.config import DEFAULT_SETTINGS, Settings
from ..core.endpoint import Endpoint, Protocol
from ..core.exceptions import ConvergenceMismatch, ProbeTransientFailure
from ..core.probe import Probe
from .expectations import ConnectivityResult, ExpectationEntry, ExpectationMatrix
from .report import ConnectivityReport

logger = logging.getLogger(__name__)

OnFailHook = Callable[[str], None]


class ConnectivityChecker:
    """Drive probes across an expectation matrix and verify convergence.

    Args:
        probe: Backend used to attempt each connection.
        settings: Timeouts, cadence, worker bound, and default port.
        on_fail: Optional hook called once with the diagnostic string
            after a check has definitively failed.

    """

    def __init__(
        self,
        probe: Probe,
        settings: Settings = DEFAULT_SETTINGS,
        on_fail: OnFailHook | None = None,
    ) -> None:
        """Initialize the checker with a probe backend and settings."""
        self._probe = probe
        self._settings = settings
        self._matrix = ExpectationMatrix()
        self._cycle = 0
        self._last_report: ConnectivityReport | None = None
        self.on_fail = on_fail
        self._logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    # -- Properties ---------------------------------------------------------

    @property
    def matrix(self) -> ExpectationMatrix:
        """Return the underlying expectation matrix."""
        return self._matrix

    @property
    def expectations(self) -> list[ExpectationEntry]:
        """Return the declared expectations in declaration order."""
        return self._matrix.entries

    @property
    def last_report(self) -> ConnectivityReport | None:
        """Return the report of the most recent check, if any."""
        return self._last_report

    # -- Expectation API ----------------------------------------------------

    def expect_some(
        self,
        source: Endpoint,
        destination: Endpoint,
        port: int | None = None,
        protocol: Protocol = Protocol.TCP,
    ) -> ExpectationEntry:
        """Declare that *source* should reach *destination*."""
        return self._declare(source, destination, True, port, protocol)

    def expect_none(
        self,
        source: Endpoint,
        destination: Endpoint,
        port: int | None = None,
        protocol: Protocol = Protocol.TCP,
    ) -> ExpectationEntry:
        """Declare that *source* should not reach *destination*."""
        return self._declare(source, destination, False, port, protocol)

    def reset_expectations(self) -> None:
        """Clear every expectation.  Capture counters are not touched."""
        self._matrix.reset()
        self._last_report = None

    # -- Checks -------------------------------------------------------------

    def check_connectivity(self) -> ConnectivityReport:
        """Check the matrix using the default timeout.

        Returns:
            The passing ``ConnectivityReport``.

        Raises:
            ConvergenceMismatch: If the matrix has not converged in time.

        """
        return self.check_connectivity_with_timeout(self._settings.default_timeout)

    def check_connectivity_with_timeout(self, timeout: float) -> ConnectivityReport:
        """Probe and compare the whole matrix until it converges or *timeout* elapses.

        Args:
            timeout: Seconds to wait for convergence.

        Returns:
            The passing ``ConnectivityReport``.

        Raises:
            ConvergenceMismatch: If any expectation is still contradicted
                by the last cycle at the deadline.

        """
        if not self._matrix:
            self._logger.warning("check_connectivity called with no expectations declared")
            self._last_report = ConnectivityReport()
            return self._last_report

        policy = self._settings.retry_policy(timeout)
        intervals = policy.intervals()
        started = time.monotonic()
        deadline = started + policy.timeout
        cycles = 0

        while True:
            cycles += 1
            self._cycle += 1
            results = self._run_cycle(self._cycle)
            self._matrix.record_results(results)
            report = ConnectivityReport(
                results=results,
                cycles=cycles,
                elapsed_seconds=time.monotonic() - started,
            )
            self._last_report = report

            if report.passed:
                self._logger.info("Connectivity converged: %s", report.summary())
                return report

            remaining = deadline - time.monotonic()
            if remaining <= 0:
                break
            self._logger.debug(
                "Cycle %d: %d mismatch(es), retrying", cycles, report.fail_count
            )
            time.sleep(min(next(intervals), remaining))

        message = report.failure_message()
        self._logger.error("%s", message)
        self._fire_on_fail(message)
        raise ConvergenceMismatch(message, report=report)

    def resolve_port(self, entry: ExpectationEntry) -> int:
        """Return the port to probe for *entry*.

        Falls back to the destination's own port, then the configured
        default port.
        """
        return self._port_for(entry.destination, entry.port)

    # -- Internal helpers ---------------------------------------------------

    def _port_for(self, destination: Endpoint, port: int | None) -> int:
        if port is not None:
            return port
        if destination.port is not None:
            return destination.port
        return self._settings.default_port

    def _declare(
        self,
        source: Endpoint,
        destination: Endpoint,
        reachable: bool,
        port: int | None,
        protocol: Protocol,
    ) -> ExpectationEntry:
        """Insert an entry, replacing any entry that would probe the same port."""
        resolved = self._port_for(destination, port)
        for entry in self._matrix.entries:
            same_pair = (entry.source.name, entry.destination.name) == (source.name, destination.name)
            if same_pair and entry.port != port and self.resolve_port(entry) == resolved:
                self._logger.debug("Replacing %s, it probes port %d too", entry.describe(), resolved)
                self._matrix.discard(entry.key)
        return self._matrix.expect(source, destination, reachable, port, protocol)

    def _run_cycle(self, cycle: int) -> list[ConnectivityResult]:
        """Probe every entry once; fan-out is bounded by the endpoint count."""
        entries = self._matrix.entries
        workers = min(self._settings.max_workers, len(self._matrix.endpoints()), len(entries))
        if workers <= 1:
            return [self._probe_entry(entry, cycle) for entry in entries]

        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="netverify-probe") as pool:
            return list(pool.map(lambda entry: self._probe_entry(entry, cycle), entries))

    def _probe_entry(self, entry: ExpectationEntry, cycle: int) -> ConnectivityResult:
        """Probe a single entry, absorbing transient failures."""
        port = self.resolve_port(entry)
        try:
            outcome = self._probe.attempt(entry.source, entry.destination, port, entry.protocol)
        except ProbeTransientFailure as exc:
            self._logger.debug("Transient probe failure for %s: %s", entry.describe(), exc)
            return ConnectivityResult(entry=entry, reachable=None, error=exc.message, cycle=cycle)
        return ConnectivityResult(
            entry=entry,
            reachable=outcome.reachable,
            latency_ms=outcome.latency_ms,
            error=outcome.error,
            cycle=cycle,
        )

    def _fire_on_fail(self, message: str) -> None:
        """Invoke the ``on_fail`` hook; its errors never change the outcome."""
        if self.on_fail is None:
            return
        try:
            self.on_fail(message)
        except Exception:
            self._logger.exception("on_fail hook raised")
