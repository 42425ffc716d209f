"""Local socket probe: connects from this host to the destination.

Suitable when the test process itself shares the network namespace of
the source endpoint (or the source address is assigned locally).

Usage::

    with SocketProbe(timeout=1.0) as probe:
        result = probe.attempt(wl0, wl1, 8055, Protocol.TCP)
"""

from __future__ import annotations

import errno
import socket
import time

from ..core.config import DEFAULT_SETTINGS, Settings
from ..core.endpoint import Endpoint, Protocol
from ..core.exceptions import ProbeError, ProbeTransientFailure
from ..core.probe import Probe, ProbeResult

UDP_PAYLOAD = b"netverify-probe\n"
UDP_RECV_BYTES = 4096

# Source address not (yet) assigned locally.
_TRANSIENT_ERRNOS = frozenset({errno.EADDRNOTAVAIL})


class SocketProbe(Probe):
    """Probe reachability with plain TCP/UDP sockets.

    TCP succeeds on an accepted connection.  UDP succeeds when the
    destination echoes a datagram back within the timeout.

    Args:
        timeout: Per-attempt timeout in seconds.
        bind_source: Bind the socket to the source endpoint's address.

    """

    def __init__(self, timeout: float = 2.0, bind_source: bool = False) -> None:
        """Initialize the probe with its timeout."""
        super().__init__()
        self.timeout = timeout
        self.bind_source = bind_source

    @classmethod
    def from_settings(cls, settings: Settings = DEFAULT_SETTINGS) -> SocketProbe:
        """Build a probe using ``settings.probe_timeout``."""
        return cls(timeout=settings.probe_timeout)

    def attempt(
        self,
        source: Endpoint,
        destination: Endpoint,
        port: int,
        protocol: Protocol = Protocol.TCP,
    ) -> ProbeResult:
        """Attempt a connection from this host to *destination*.

        Raises:
            ProbeError: For ICMP, which needs raw sockets.
            ProbeTransientFailure: If the source address cannot be bound.

        """
        if protocol is Protocol.TCP:
            return self._attempt_tcp(source, destination, port)
        if protocol is Protocol.UDP:
            return self._attempt_udp(source, destination, port)
        raise ProbeError(
            f"{self.__class__.__name__} does not support {protocol}",
            endpoint=source.name,
        )

    # -- Internal helpers ---------------------------------------------------

    def _source_address(self, source: Endpoint) -> tuple[str, int] | None:
        return (source.address, 0) if self.bind_source else None

    def _attempt_tcp(self, source: Endpoint, destination: Endpoint, port: int) -> ProbeResult:
        started = time.monotonic()
        try:
            with socket.create_connection(
                (destination.address, port),
                timeout=self.timeout,
                source_address=self._source_address(source),
            ):
                latency = (time.monotonic() - started) * 1000
        except TimeoutError:
            return ProbeResult(reachable=False, error="timed out")
        except ConnectionRefusedError:
            return ProbeResult(reachable=False, error="connection refused")
        except OSError as exc:
            return self._unreachable_or_transient(exc, source)

        self._logger.debug("TCP %s -> %s:%d ok in %.1fms", source.name, destination.name, port, latency)
        return ProbeResult(reachable=True, latency_ms=latency)

    def _attempt_udp(self, source: Endpoint, destination: Endpoint, port: int) -> ProbeResult:
        started = time.monotonic()
        try:
            with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
                sock.settimeout(self.timeout)
                bind_to = self._source_address(source)
                if bind_to is not None:
                    sock.bind(bind_to)
                sock.connect((destination.address, port))
                sock.send(UDP_PAYLOAD)
                sock.recv(UDP_RECV_BYTES)
                latency = (time.monotonic() - started) * 1000
        except TimeoutError:
            return ProbeResult(reachable=False, error="no echo before timeout")
        except ConnectionRefusedError:
            return ProbeResult(reachable=False, error="port unreachable")
        except OSError as exc:
            return self._unreachable_or_transient(exc, source)

        self._logger.debug("UDP %s -> %s:%d echoed in %.1fms", source.name, destination.name, port, latency)
        return ProbeResult(reachable=True, latency_ms=latency)

    def _unreachable_or_transient(self, exc: OSError, source: Endpoint) -> ProbeResult:
        if exc.errno in _TRANSIENT_ERRNOS:
            raise ProbeTransientFailure(
                f"Cannot bind source address {source.address}: {exc.strerror}",
                endpoint=source.name,
            ) from exc
        return ProbeResult(reachable=False, error=exc.strerror or str(exc))
