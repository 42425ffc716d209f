"""Abstract reachability probe interface.

Defines the strategy contract for probe backends (local sockets,
``docker exec``, in-memory simulation).  The connectivity checker only
ever talks to this interface, so backends can be swapped per
environment without touching the checker.

Usage::

    probe: Probe = SocketProbe(timeout=1.0)
    result = probe.attempt(wl0, wl1, 8055, Protocol.TCP)
    if result.reachable:
        print(result.latency_ms)
"""

from __future__ import annotations

import abc
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from .endpoint import Endpoint, Protocol

if TYPE_CHECKING:
    from .config import Settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProbeResult:
    """Outcome of a single probe attempt.

    Attributes:
        reachable: Whether the destination answered.
        latency_ms: Round-trip or connect time, when measured.
        error: Short description of why the attempt failed.

    """

    reachable: bool
    latency_ms: float | None = None
    error: str = ""


class Probe(abc.ABC):
    """Abstract base class for reachability probe backends.

    Implementations return a ``ProbeResult`` for definite outcomes
    (connected, refused, timed out) and raise ``ProbeTransientFailure``
    when the attempt itself could not be carried out.
    """

    def __init__(self) -> None:
        """Initialize the probe base class."""
        self._logger = logging.getLogger(
            f"{self.__class__.__module__}.{self.__class__.__name__}"
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> Probe:
        """Build a probe from framework settings.

        Backends that take no tunables ignore *settings*.
        """
        return cls()

    @abc.abstractmethod
    def attempt(
        self,
        source: Endpoint,
        destination: Endpoint,
        port: int,
        protocol: Protocol = Protocol.TCP,
    ) -> ProbeResult:
        """Attempt a transport-level connection from *source* to *destination*.

        Args:
            source: Endpoint the traffic originates from.
            destination: Endpoint the traffic is sent to.
            port: Destination port (ignored for ICMP).
            protocol: Transport protocol to use.

        Returns:
            A ``ProbeResult`` describing the outcome.

        Raises:
            ProbeTransientFailure: If the outcome is indeterminate.

        """

    def close(self) -> None:
        """Release any resources held by the probe.  Idempotent."""

    def __enter__(self) -> Probe:
        """Return the probe for use in a ``with`` block."""
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object | None,
    ) -> None:
        """Close the probe when leaving a ``with`` block."""
        try:
            self.close()
        except Exception:
            self._logger.exception("Error closing probe")
