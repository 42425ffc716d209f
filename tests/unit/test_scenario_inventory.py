"""Unit tests for the YAML scenario inventory."""

from __future__ import annotations

from pathlib import Path

import pytest

from netverify.connectivity import ConnectivityChecker
from netverify.core.endpoint import EndpointKind, Protocol
from netverify.core.exceptions import InventoryError
from netverify.inventory import ExpectationSpec, ScenarioInventory

SCENARIO = """\
endpoints:
  wl0: {kind: workload, address: 10.65.0.2, port: 8055, container: felix-0}
  wl1: {kind: workload, address: 10.65.1.3, port: 8055, container: felix-1}
  felix-0: {kind: host, address: 172.17.0.3}
  svc: {kind: target, address: 10.96.10.1, port: 8055}
expectations:
  - {source: wl0, destination: wl1, reachable: true}
  - {source: wl1, destination: wl0, reachable: true, port: 8055, protocol: udp}
  - {source: felix-0, destination: svc, reachable: false}
"""


@pytest.fixture
def scenario_file(tmp_path: Path) -> Path:
    """A scenario with workloads, a host, and a service IP."""
    path = tmp_path / "scenario.yml"
    path.write_text(SCENARIO, encoding="utf-8")
    return path


@pytest.fixture
def inventory(scenario_file: Path) -> ScenarioInventory:
    """A loaded inventory."""
    inv = ScenarioInventory(scenario_file)
    inv.load()
    return inv


class TestLoad:
    """Tests for parsing scenario files."""

    def test_endpoints(self, inventory: ScenarioInventory) -> None:
        assert inventory.endpoint_count == 4
        wl0 = inventory.get_endpoint("wl0")
        assert (wl0.address, wl0.port, wl0.container) == ("10.65.0.2", 8055, "felix-0")

    def test_host_container_defaults_to_name(self, inventory: ScenarioInventory) -> None:
        host = inventory.get_endpoint("felix-0")
        assert host.kind is EndpointKind.HOST
        assert host.container == "felix-0"

    def test_expectations(self, inventory: ScenarioInventory) -> None:
        assert inventory.expectations == [
            ExpectationSpec("wl0", "wl1", True),
            ExpectationSpec("wl1", "wl0", True, 8055, Protocol.UDP),
            ExpectationSpec("felix-0", "svc", False),
        ]

    def test_filter(self, inventory: ScenarioInventory) -> None:
        assert set(inventory.filter(kind="workload")) == {"wl0", "wl1"}
        assert set(inventory.filter(container="felix-0")) == {"wl0", "felix-0"}
        assert set(inventory.filter(kind=EndpointKind.TARGET)) == {"svc"}

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(InventoryError, match="not found"):
            ScenarioInventory(tmp_path / "nope.yml").load()

    @pytest.mark.parametrize(
        "content,match",
        [
            ("- just\n- a list\n", "must contain a mapping"),
            ("endpoints: {wl0: {kind: workload}}\n", "address"),
            ("endpoints: {wl0: {kind: pod, address: 10.0.0.1}}\n", "Unknown kind"),
            (
                "endpoints: {wl0: {address: 10.0.0.1}}\n"
                "expectations: [{source: wl0, destination: wl9, reachable: true}]\n",
                "wl9",
            ),
            (
                "endpoints: {wl0: {address: 10.0.0.1}}\n"
                "expectations: [{source: wl0, destination: wl0}]\n",
                "missing reachable",
            ),
            (
                "endpoints: {wl0: {address: 10.0.0.1}}\n"
                "expectations: [{source: wl0, destination: wl0, reachable: true, protocol: sctp}]\n",
                "Unknown protocol",
            ),
            (
                "endpoints: {svc: {kind: target, address: 10.0.0.1}, wl0: {address: 10.0.0.2}}\n"
                "expectations: [{source: svc, destination: wl0, reachable: true}]\n",
                "cannot send traffic",
            ),
            ("endpoints: [unclosed\n", "Malformed"),
            ("endpoints: {wl0: {address: 10.0.0.1, port: http}}\n", "Invalid port in endpoint 'wl0'"),
            ("endpoints: {wl0: {address: 10.0.0.1, port: 70000}}\n", "out of range"),
            (
                "endpoints: {wl0: {address: 10.0.0.1}}\n"
                "expectations: [{source: wl0, destination: wl0, reachable: true, port: http}]\n",
                "Invalid port in expectation #0",
            ),
        ],
    )
    def test_invalid_scenarios(self, tmp_path: Path, content: str, match: str) -> None:
        path = tmp_path / "bad.yml"
        path.write_text(content, encoding="utf-8")
        with pytest.raises(InventoryError, match=match):
            ScenarioInventory(path).load()

    @pytest.mark.parametrize("value", ["'false'", '"no"', "'0'", "1", "null"])
    def test_reachable_must_be_boolean(self, tmp_path: Path, value: str) -> None:
        path = tmp_path / "quoted.yml"
        path.write_text(
            "endpoints: {wl0: {address: 10.0.0.1}, wl1: {address: 10.0.0.2}}\n"
            f"expectations: [{{source: wl0, destination: wl1, reachable: {value}}}]\n",
            encoding="utf-8",
        )
        with pytest.raises(InventoryError, match="non-boolean reachable"):
            ScenarioInventory(path).load()

    def test_unknown_endpoint_lookup(self, inventory: ScenarioInventory) -> None:
        with pytest.raises(InventoryError, match="not found in scenario"):
            inventory.get_endpoint("wl7")


class TestApply:
    """Tests for populating a checker from a scenario."""

    def test_apply_declares_every_expectation(
        self, inventory: ScenarioInventory, checker: ConnectivityChecker
    ) -> None:
        assert inventory.apply(checker) == 3

        declared = [(e.key, e.protocol, e.expected_reachable) for e in checker.expectations]
        assert declared == [
            (("wl0", "wl1", None), Protocol.TCP, True),
            (("wl1", "wl0", 8055), Protocol.UDP, True),
            (("felix-0", "svc", None), Protocol.TCP, False),
        ]
