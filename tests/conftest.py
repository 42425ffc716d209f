"""Shared pytest fixtures for the dataplane verification framework.

Provides reusable endpoints, fast settings, a simulated probe, a
checker wired to it, and sample tcpdump transcripts used across the
test suite.
"""

from __future__ import annotations

import pytest

from netverify.connectivity import ConnectivityChecker
from netverify.core.config import Settings
from netverify.core.endpoint import Endpoint, Host, TargetIP, Workload
from netverify.probes.simulated import SimulatedProbe

# ---------------------------------------------------------------------------
# Endpoint fixtures
# ---------------------------------------------------------------------------

FELIX0_IP = "172.17.0.3"
FELIX1_IP = "172.17.0.4"


@pytest.fixture
def wl0() -> Endpoint:
    """Workload on the first node."""
    return Workload("wl0", "10.65.0.2", port=8055, container="felix-0")


@pytest.fixture
def wl1() -> Endpoint:
    """Workload on the second node."""
    return Workload("wl1", "10.65.1.3", port=8055, container="felix-1")


@pytest.fixture
def wl2() -> Endpoint:
    """Workload on the second node that policy isolates."""
    return Workload("wl2", "10.65.1.4", port=8055, container="felix-1")


@pytest.fixture
def felix0() -> Endpoint:
    """First cluster node."""
    return Host("felix-0", FELIX0_IP)


@pytest.fixture
def felix1() -> Endpoint:
    """Second cluster node."""
    return Host("felix-1", FELIX1_IP)


@pytest.fixture
def service_ip() -> Endpoint:
    """Destination-only service address."""
    return TargetIP("10.96.10.1", port=8055)


# ---------------------------------------------------------------------------
# Settings and checker fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def fast_settings() -> Settings:
    """Settings with short windows so convergence tests run quickly."""
    return Settings(
        default_timeout=0.5,
        poll_interval=0.01,
        max_poll_interval=0.05,
        probe_timeout=0.5,
        max_workers=4,
    )


@pytest.fixture
def simulated_probe() -> SimulatedProbe:
    """Simulated probe where everything is unreachable until allowed."""
    return SimulatedProbe(default_reachable=False)


@pytest.fixture
def checker(simulated_probe: SimulatedProbe, fast_settings: Settings) -> ConnectivityChecker:
    """Checker driving the simulated probe with fast settings."""
    return ConnectivityChecker(simulated_probe, settings=fast_settings)


# ---------------------------------------------------------------------------
# Capture transcript fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def tunnel_lines() -> list[str]:
    """tcpdump lines for encrypted traffic between the two nodes."""
    return [
        f"12:00:00.000001 IP {FELIX0_IP}.51820 > {FELIX1_IP}.51820: UDP, length 96",
        f"12:00:00.000105 IP {FELIX1_IP}.51820 > {FELIX0_IP}.51820: UDP, length 96",
        f"12:00:00.000210 IP {FELIX0_IP}.51820 > {FELIX1_IP}.51820: UDP, length 128",
    ]


@pytest.fixture
def direct_lines() -> list[str]:
    """tcpdump lines for plaintext workload traffic."""
    return [
        "12:00:01.000001 IP 10.65.0.2.34512 > 10.65.1.3.8055: Flags [S], seq 1, win 64240, length 0",
        "12:00:01.000002 IP 10.65.0.2 > 10.65.1.3: ICMP echo request, id 7, seq 1, length 64",
    ]


# ---------------------------------------------------------------------------
# Markers
# ---------------------------------------------------------------------------


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers."""
    config.addinivalue_line("markers", "integration: mark test as integration test")
    config.addinivalue_line("markers", "slow: mark test as slow-running")
