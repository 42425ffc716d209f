"""Live integration tests against a two-node encrypted-overlay lab.

These tests drive real containers via docker exec: workloads cross-probe
each other, tcpdump runs on each node's uplink, and the tunnel's wg
statistics are read back.

Prerequisites:
    - Two node containers with wireguard enabled, each hosting one
      workload container (names overridable via environment).
    - Run with: pytest tests/integration -m integration -v
"""

from __future__ import annotations

import os
import shutil
import subprocess
from collections.abc import Iterator

import pytest

from netverify.capture import (
    CaptureSession,
    at_least,
    direct_pattern,
    equals,
    parse_transfer_stats,
    tcpdump_source,
    tunnel_pattern,
)
from netverify.connectivity import ConnectivityChecker
from netverify.core.config import load_settings
from netverify.core.endpoint import Endpoint, Host, Workload
from netverify.probes import ExecProbe, diagnostic_hook

# Mark all tests in this module as integration (skip in normal CI)
pytestmark = pytest.mark.integration

# ---------------------------------------------------------------------------
# Topology Constants
# ---------------------------------------------------------------------------

NODES = [
    os.environ.get("NETVERIFY_LAB_NODE0", "felix-0"),
    os.environ.get("NETVERIFY_LAB_NODE1", "felix-1"),
]
WORKLOADS = [
    os.environ.get("NETVERIFY_LAB_WL0", "wl0"),
    os.environ.get("NETVERIFY_LAB_WL1", "wl1"),
]
UPLINK = os.environ.get("NETVERIFY_LAB_UPLINK", "eth0")
WORKLOAD_PORT = 8055


def container_ip(container: str) -> str:
    """Return the first IPv4 address docker reports for *container*."""
    result = subprocess.run(
        ["docker", "inspect", "-f", "{{range .NetworkSettings.Networks}}{{.IPAddress}} {{end}}", container],
        capture_output=True,
        text=True,
        timeout=10,
    )
    return result.stdout.split()[0]


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(scope="module", autouse=True)
def lab_running() -> None:
    """Verify all containers are running before tests execute."""
    if shutil.which("docker") is None:
        pytest.skip("docker CLI not available")
    result = subprocess.run(
        ["docker", "ps", "--format", "{{.Names}}"],
        capture_output=True,
        text=True,
    )
    running = result.stdout.strip().split("\n")
    for container in NODES + WORKLOADS:
        if container not in running:
            pytest.skip(f"Lab not running: {container} not found.")


@pytest.fixture(scope="module")
def nodes() -> list[Endpoint]:
    """Node endpoints."""
    return [Host(name, container_ip(name)) for name in NODES]


@pytest.fixture(scope="module")
def workloads() -> list[Endpoint]:
    """Workload endpoints, each executing in its own container."""
    return [
        Workload(name, container_ip(name), port=WORKLOAD_PORT, container=name)
        for name in WORKLOADS
    ]


@pytest.fixture(scope="module")
def probe() -> ExecProbe:
    """Exec probe configured from the environment."""
    return ExecProbe.from_settings(load_settings())


@pytest.fixture
def captures(nodes: list[Endpoint], workloads: list[Endpoint]) -> Iterator[list[CaptureSession]]:
    """One running tcpdump session per node uplink."""
    sessions = []
    for i, node in enumerate(nodes):
        peer = nodes[1 - i]
        session = CaptureSession(tcpdump_source(UPLINK, container=node.container))
        session.add_matcher("in_tunnel", tunnel_pattern(peer.address, node.address))
        session.add_matcher("out_tunnel", tunnel_pattern(node.address, peer.address))
        session.add_matcher("wl0_to_wl1", direct_pattern(workloads[0].address, workloads[1].address))
        session.add_matcher("wl1_to_wl0", direct_pattern(workloads[1].address, workloads[0].address))
        sessions.append(session)
    try:
        for session in sessions:
            session.start()
        yield sessions
    finally:
        for session in sessions:
            session.stop()


# ---------------------------------------------------------------------------
# Test Class: Connectivity
# ---------------------------------------------------------------------------


class TestWorkloadConnectivity:
    """Workloads on different nodes reach each other."""

    def test_workloads_converge(self, probe: ExecProbe, workloads: list[Endpoint]) -> None:
        checker = ConnectivityChecker(probe, on_fail=diagnostic_hook(probe, NODES))
        checker.expect_some(workloads[0], workloads[1])
        checker.expect_some(workloads[1], workloads[0])
        report = checker.check_connectivity_with_timeout(30)
        assert report.passed, report.render_matrix()


# ---------------------------------------------------------------------------
# Test Class: Encrypted Path
# ---------------------------------------------------------------------------


class TestEncryptedPath:
    """Workload traffic crosses the uplink only inside the tunnel."""

    def test_traffic_is_tunneled(
        self,
        probe: ExecProbe,
        workloads: list[Endpoint],
        captures: list[CaptureSession],
    ) -> None:
        for session in captures:
            for name in session.matcher_names:
                session.reset_count(name)

        for src, dst in ((workloads[0], workloads[1]), (workloads[1], workloads[0])):
            train = probe.send_packets(src, dst, count=5, size=56)
            assert train.loss_percent == 0, train.output

        for session in captures:
            session.wait_for_count("in_tunnel", at_least(10), timeout=2.0)
            session.wait_for_count("out_tunnel", at_least(10), timeout=2.0)
            session.wait_for_count("wl0_to_wl1", equals(0))
            session.wait_for_count("wl1_to_wl0", equals(0))

    def test_tunnel_statistics(self, probe: ExecProbe) -> None:
        for node in NODES:
            stats = parse_transfer_stats(probe.exec_output(node, "wg"))
            assert stats is not None, f"{node}: no wg transfer statistics"
            assert stats.received > 0
            assert stats.sent > 0
