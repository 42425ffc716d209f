"""Endpoint identities used as probe sources and destinations.

An endpoint is anything traffic can be sent from or to: a simulated
workload, a host (node) in the cluster, or a bare target IP such as a
service address.

Usage::

    wl0 = Workload("wl0", "10.65.0.2", port=8055, container="felix-0")
    host1 = Host("felix-1", "172.17.0.3")
    svc = TargetIP("10.96.10.1")
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum


class EndpointKind(StrEnum):
    """Kind of network endpoint."""

    WORKLOAD = "workload"
    HOST = "host"
    TARGET = "target"


class Protocol(StrEnum):
    """Transport protocol used for a reachability probe."""

    TCP = "tcp"
    UDP = "udp"
    ICMP = "icmp"


@dataclass(frozen=True)
class Endpoint:
    """Immutable endpoint identity.

    Attributes:
        name: Unique name within a scenario (e.g., ``wl0``).
        address: IP address traffic is sent to.
        port: Listening port, if the endpoint serves one.
        container: Node or container commands for this endpoint run in.
        kind: Workload, host, or bare target.

    """

    name: str
    address: str
    port: int | None = None
    container: str | None = None
    kind: EndpointKind = EndpointKind.WORKLOAD

    @property
    def can_source(self) -> bool:
        """Return ``True`` if traffic may originate from this endpoint."""
        return self.kind is not EndpointKind.TARGET

    def __str__(self) -> str:
        """Return ``name (address)`` for reports."""
        if self.name == self.address:
            return self.address
        return f"{self.name} ({self.address})"


def Workload(  # noqa: N802
    name: str,
    address: str,
    port: int | None = None,
    container: str | None = None,
) -> Endpoint:
    """Build a workload endpoint."""
    return Endpoint(name, address, port, container, EndpointKind.WORKLOAD)


def Host(  # noqa: N802
    name: str,
    address: str,
    port: int | None = None,
    container: str | None = None,
) -> Endpoint:
    """Build a host endpoint; the host's own name doubles as its container."""
    return Endpoint(name, address, port, container or name, EndpointKind.HOST)


def TargetIP(address: str, port: int | None = None) -> Endpoint:  # noqa: N802
    """Build a destination-only endpoint for a bare IP (e.g., a service IP)."""
    return Endpoint(address, address, port, None, EndpointKind.TARGET)
