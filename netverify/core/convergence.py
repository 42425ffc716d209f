"""Retry and stability combinators for asynchronously converging state.

``eventually`` polls until a probe succeeds; ``consistently`` polls for
a whole window and fails on the first bad evaluation.  Both run on the
caller's thread and only sleep between evaluations, never past the
deadline.

A *probe* is any zero-argument callable.  An evaluation fails if the
probe raises, or if a ``condition`` is given and returns false for the
probe's value.

Usage::

    eventually(lambda: felix.route_table(), timeout=10, poll_interval=0.1,
               condition=lambda out: "dev wg0" in out)

    consistently(lambda: session.match_count("tunnel"), duration=2,
                 condition=lambda n: n == 0)
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from typing import Any, TypeVar

from .exceptions import StabilityViolation, TimeoutExceeded

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_TIMEOUT = 10.0
DEFAULT_POLL_INTERVAL = 0.1

_NOT_EVALUATED = object()


@dataclass(frozen=True)
class RetryPolicy:
    """Polling cadence for the combinators.

    Attributes:
        timeout: Total budget (or stability window) in seconds.
        poll_interval: First sleep between evaluations.
        backoff_factor: Multiplier applied to the sleep after each
            evaluation; ``1.0`` keeps a fixed cadence.
        max_poll_interval: Upper bound for the backed-off sleep.

    """

    timeout: float = DEFAULT_TIMEOUT
    poll_interval: float = DEFAULT_POLL_INTERVAL
    backoff_factor: float = 1.0
    max_poll_interval: float = 1.0

    def intervals(self) -> Iterator[float]:
        """Yield successive sleep intervals, backing off up to the cap."""
        interval = self.poll_interval
        while True:
            yield interval
            interval = min(interval * self.backoff_factor, max(self.max_poll_interval, interval))


def eventually(
    probe: Callable[[], T],
    timeout: float | None = None,
    poll_interval: float | None = None,
    *,
    condition: Callable[[T], bool] | None = None,
    policy: RetryPolicy | None = None,
    description: str = "",
) -> T:
    """Poll *probe* until it succeeds or the timeout elapses.

    Returns as soon as the first successful evaluation is observed; the
    remaining budget is not waited out.  At least one evaluation always
    happens, and one final evaluation is made at the deadline.

    Args:
        probe: Zero-argument callable to evaluate.
        timeout: Seconds to keep trying; overrides ``policy.timeout``.
        poll_interval: First sleep; overrides ``policy.poll_interval``.
        condition: Optional predicate the probe's value must satisfy.
        policy: Base cadence; defaults to ``RetryPolicy()``.
        description: Label used in logs and the failure message.

    Returns:
        The probe's value from the first successful evaluation.

    Raises:
        TimeoutExceeded: If no evaluation succeeded before the deadline;
            carries the last observed value and error.

    """
    policy = _resolve_policy(policy, timeout, poll_interval)
    label = description or getattr(probe, "__name__", "probe")
    deadline = time.monotonic() + policy.timeout
    intervals = policy.intervals()
    attempts = 0
    last_value: Any = _NOT_EVALUATED
    last_error: BaseException | None = None

    while True:
        attempts += 1
        ok, last_value, last_error = _evaluate(probe, condition)
        if ok:
            if attempts > 1:
                logger.debug("%s succeeded after %d attempts", label, attempts)
            return last_value  # type: ignore[no-any-return]

        remaining = deadline - time.monotonic()
        if remaining <= 0:
            break
        time.sleep(min(next(intervals), remaining))

    observed = None if last_value is _NOT_EVALUATED else last_value
    raise TimeoutExceeded(
        f"{label} did not succeed within {policy.timeout:g}s",
        last_value=observed,
        last_error=last_error,
        details=_failure_details(attempts, observed, last_error),
    )


def consistently(
    probe: Callable[[], T],
    duration: float | None = None,
    poll_interval: float | None = None,
    *,
    condition: Callable[[T], bool] | None = None,
    policy: RetryPolicy | None = None,
    description: str = "",
) -> T:
    """Require *probe* to succeed on every evaluation across *duration*.

    The first failing evaluation aborts immediately; a later success
    never excuses an earlier failure.

    Args:
        probe: Zero-argument callable to evaluate.
        duration: Length of the stability window; overrides
            ``policy.timeout``.
        poll_interval: First sleep; overrides ``policy.poll_interval``.
        condition: Optional predicate the probe's value must satisfy.
        policy: Base cadence; defaults to ``RetryPolicy()``.
        description: Label used in logs and the failure message.

    Returns:
        The probe's value from the last evaluation.

    Raises:
        StabilityViolation: On the first failing evaluation.

    """
    policy = _resolve_policy(policy, duration, poll_interval)
    label = description or getattr(probe, "__name__", "probe")
    deadline = time.monotonic() + policy.timeout
    intervals = policy.intervals()
    attempts = 0

    while True:
        attempts += 1
        ok, value, error = _evaluate(probe, condition)
        if not ok:
            raise StabilityViolation(
                f"{label} failed on evaluation {attempts} of a {policy.timeout:g}s window",
                last_value=value,
                last_error=error,
                details=_failure_details(attempts, value, error),
            )

        remaining = deadline - time.monotonic()
        if remaining <= 0:
            logger.debug("%s held for %d evaluations", label, attempts)
            return value  # type: ignore[no-any-return]
        time.sleep(min(next(intervals), remaining))


# -- Internal helpers -------------------------------------------------------


def _resolve_policy(
    policy: RetryPolicy | None,
    timeout: float | None,
    poll_interval: float | None,
) -> RetryPolicy:
    """Merge explicit arguments over the base policy."""
    base = policy or RetryPolicy()
    if timeout is None and poll_interval is None:
        return base
    return RetryPolicy(
        timeout=base.timeout if timeout is None else timeout,
        poll_interval=base.poll_interval if poll_interval is None else poll_interval,
        backoff_factor=base.backoff_factor,
        max_poll_interval=base.max_poll_interval,
    )


def _evaluate(
    probe: Callable[[], T],
    condition: Callable[[T], bool] | None,
) -> tuple[bool, Any, BaseException | None]:
    """Run one evaluation and report ``(ok, value, error)``."""
    try:
        value = probe()
    except Exception as exc:
        return False, None, exc
    if condition is not None and not condition(value):
        return False, value, None
    return True, value, None


def _failure_details(
    attempts: int,
    value: Any,
    error: BaseException | None,
) -> dict[str, object]:
    """Build the ``details`` mapping for a combinator failure."""
    details: dict[str, object] = {"attempts": attempts}
    if error is not None:
        details["last_error"] = f"{type(error).__name__}: {error}"
    else:
        details["last_value"] = value
    return details
