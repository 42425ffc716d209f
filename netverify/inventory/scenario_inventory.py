"""YAML-based scenario inventory.

A scenario file declares the endpoints under test and the expectation
matrix between them, so the same matrix can be checked against
different probe backends or environments.

Scenario format::

    endpoints:
      wl0: {kind: workload, address: 10.65.0.2, port: 8055, container: felix-0}
      wl1: {kind: workload, address: 10.65.1.3, port: 8055, container: felix-1}
      svc: {kind: target, address: 10.96.10.1, port: 8055}
    expectations:
      - {source: wl0, destination: wl1, reachable: true}
      - {source: wl1, destination: svc, reachable: false, port: 8055, protocol: tcp}

Usage::

    inv = ScenarioInventory("scenarios/wireguard.yml")
    inv.load()
    inv.apply(checker)
    checker.check_connectivity()
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any

import yaml

from ..core.endpoint import Endpoint, EndpointKind, Protocol
from ..core.exceptions import InventoryError

if TYPE_CHECKING:
    from ..connectivity.checker import ConnectivityChecker

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExpectationSpec:
    """One declared expectation, referencing endpoints by name.

    Attributes:
        source: Source endpoint name.
        destination: Destination endpoint name.
        reachable: Whether traffic should get through.
        port: Port to probe; the checker resolves ``None``.
        protocol: Transport protocol.

    """

    source: str
    destination: str
    reachable: bool
    port: int | None = None
    protocol: Protocol = Protocol.TCP


class ScenarioInventory:
    """Load and query endpoints and expectations from a YAML scenario.

    Args:
        path: Scenario file; optional when building programmatically.

    """

    def __init__(self, path: str | Path | None = None) -> None:
        """Initialize an empty inventory bound to *path*."""
        self._path = Path(path) if path is not None else None
        self._endpoints: dict[str, Endpoint] = {}
        self._expectations: list[ExpectationSpec] = []
        self._logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    def load(self) -> None:
        """Parse the scenario file, replacing any loaded content.

        Raises:
            InventoryError: If the file is missing or malformed, or an
                expectation references an unknown endpoint.

        """
        if self._path is None:
            raise InventoryError("No scenario file configured")
        if not self._path.exists():
            raise InventoryError(f"Scenario file not found: {self._path}")
        try:
            with self._path.open("r", encoding="utf-8") as fh:
                raw: Any = yaml.safe_load(fh) or {}
        except yaml.YAMLError as exc:
            raise InventoryError(
                f"Malformed scenario file: {self._path}",
                details={"error": str(exc)},
            ) from exc
        if not isinstance(raw, dict):
            raise InventoryError(f"Scenario file must contain a mapping: {self._path}")

        self._endpoints.clear()
        self._expectations.clear()
        for name, data in (raw.get("endpoints") or {}).items():
            self.add_endpoint(self._parse_endpoint(str(name), data))
        for index, data in enumerate(raw.get("expectations") or []):
            self.add_expectation(self._parse_expectation(index, data))

        self._logger.info(
            "Scenario loaded from %s (%d endpoints, %d expectations)",
            self._path,
            len(self._endpoints),
            len(self._expectations),
        )

    # -- Endpoints ----------------------------------------------------------

    def add_endpoint(self, endpoint: Endpoint) -> None:
        """Add or replace an endpoint, keyed by its name."""
        self._endpoints[endpoint.name] = endpoint
        self._logger.debug("Added endpoint %s", endpoint)

    def get_endpoint(self, name: str) -> Endpoint:
        """Retrieve an endpoint by name.

        Raises:
            InventoryError: If the endpoint is not declared.

        """
        if name not in self._endpoints:
            raise InventoryError(
                f"Endpoint '{name}' not found in scenario",
                details={"available": list(self._endpoints)},
            )
        return self._endpoints[name]

    def get_all_endpoints(self) -> dict[str, Endpoint]:
        """Return a copy of all endpoints."""
        return dict(self._endpoints)

    def filter(
        self,
        kind: EndpointKind | str | None = None,
        container: str | None = None,
    ) -> dict[str, Endpoint]:
        """Filter endpoints by kind or container.

        Args:
            kind: Endpoint kind (case-insensitive).
            container: Container the endpoint runs in.

        Returns:
            Mapping of matching endpoint names to endpoints.

        """
        results: dict[str, Endpoint] = {}
        for name, endpoint in self._endpoints.items():
            if kind and endpoint.kind != str(kind).lower():
                continue
            if container and endpoint.container != container:
                continue
            results[name] = endpoint
        return results

    @property
    def endpoint_count(self) -> int:
        """Return the number of declared endpoints."""
        return len(self._endpoints)

    # -- Expectations -------------------------------------------------------

    def add_expectation(self, spec: ExpectationSpec) -> None:
        """Append an expectation after checking its endpoints exist.

        Raises:
            InventoryError: If an endpoint is unknown or the source is a
                bare target.

        """
        source = self.get_endpoint(spec.source)
        self.get_endpoint(spec.destination)
        if not source.can_source:
            raise InventoryError(
                f"Endpoint '{spec.source}' is a bare target and cannot send traffic",
            )
        self._expectations.append(spec)

    @property
    def expectations(self) -> list[ExpectationSpec]:
        """Return the declared expectations in file order."""
        return list(self._expectations)

    def apply(self, checker: ConnectivityChecker) -> int:
        """Declare every expectation on *checker*.

        Returns:
            Number of expectations applied.

        """
        for spec in self._expectations:
            source = self.get_endpoint(spec.source)
            destination = self.get_endpoint(spec.destination)
            if spec.reachable:
                checker.expect_some(source, destination, spec.port, spec.protocol)
            else:
                checker.expect_none(source, destination, spec.port, spec.protocol)
        self._logger.debug("Applied %d expectations", len(self._expectations))
        return len(self._expectations)

    # -- Parsing ------------------------------------------------------------

    def _parse_endpoint(self, name: str, data: Any) -> Endpoint:
        if not isinstance(data, dict) or "address" not in data:
            raise InventoryError(
                f"Endpoint '{name}' must be a mapping with an 'address'",
                details={"value": data},
            )
        try:
            kind = EndpointKind(str(data.get("kind", EndpointKind.WORKLOAD)).lower())
        except ValueError as exc:
            raise InventoryError(
                f"Unknown kind for endpoint '{name}': {data.get('kind')}",
                details={"supported": [k.value for k in EndpointKind]},
            ) from exc
        port = data.get("port")
        container = data.get("container")
        if kind is EndpointKind.HOST and container is None:
            container = name
        return Endpoint(
            name=name,
            address=str(data["address"]),
            port=_parse_port(port, f"endpoint '{name}'"),
            container=str(container) if container is not None else None,
            kind=kind,
        )

    def _parse_expectation(self, index: int, data: Any) -> ExpectationSpec:
        if not isinstance(data, dict):
            raise InventoryError(f"Expectation #{index} must be a mapping", details={"value": data})
        missing = [key for key in ("source", "destination", "reachable") if key not in data]
        if missing:
            raise InventoryError(
                f"Expectation #{index} is missing {', '.join(missing)}",
                details={"value": data},
            )
        try:
            protocol = Protocol(str(data.get("protocol", Protocol.TCP)).lower())
        except ValueError as exc:
            raise InventoryError(
                f"Unknown protocol in expectation #{index}: {data.get('protocol')}",
                details={"supported": [p.value for p in Protocol]},
            ) from exc
        reachable = data["reachable"]
        if not isinstance(reachable, bool):
            raise InventoryError(
                f"Expectation #{index} has non-boolean reachable: {reachable!r}",
                details={"value": data},
            )
        return ExpectationSpec(
            source=str(data["source"]),
            destination=str(data["destination"]),
            reachable=reachable,
            port=_parse_port(data.get("port"), f"expectation #{index}"),
            protocol=protocol,
        )


def _parse_port(value: Any, where: str) -> int | None:
    """Convert a YAML port value, rejecting names and out-of-range numbers."""
    if value is None:
        return None
    if isinstance(value, bool):
        raise InventoryError(f"Invalid port in {where}: {value!r}")
    try:
        port = int(value)
    except (TypeError, ValueError) as exc:
        raise InventoryError(f"Invalid port in {where}: {value!r}") from exc
    if not 0 < port < 65536:
        raise InventoryError(f"Port out of range in {where}: {port}")
    return port
