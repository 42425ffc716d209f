"""Factory for creating probe backends by name.

Lets scenario files and settings choose a backend with a short string
(``socket``, ``exec``, ``simulated``) instead of importing classes.

Usage::

    factory = ProbeFactory()
    probe = factory.create("exec", settings)
    factory.register("custom", MyProbe)
"""

from __future__ import annotations

import logging

from ..core.config import DEFAULT_SETTINGS, Settings
from ..core.exceptions import ConfigError
from ..core.probe import Probe
from .exec_probe import ExecProbe
from .simulated import SimulatedProbe
from .socket_probe import SocketProbe

logger = logging.getLogger(__name__)

PROBE_REGISTRY: dict[str, type[Probe]] = {
    "socket": SocketProbe,
    "exec": ExecProbe,
    "docker": ExecProbe,
    "simulated": SimulatedProbe,
}


class ProbeFactory:
    """Registry of probe kinds to ``Probe`` subclasses.

    Args:
        custom_probes: Optional extra kinds to register up front.

    """

    def __init__(self, custom_probes: dict[str, type[Probe]] | None = None) -> None:
        """Initialize the factory with the built-in probe kinds."""
        self._registry: dict[str, type[Probe]] = dict(PROBE_REGISTRY)
        if custom_probes:
            self._registry.update({k.lower(): v for k, v in custom_probes.items()})
        self._logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    def register(self, kind: str, probe_cls: type[Probe]) -> None:
        """Register a probe class under *kind* (case-insensitive)."""
        self._registry[kind.lower()] = probe_cls
        self._logger.info("Registered probe %s for kind '%s'", probe_cls.__name__, kind)

    def create(self, kind: str, settings: Settings = DEFAULT_SETTINGS) -> Probe:
        """Create a probe of the given kind.

        Args:
            kind: Probe kind (case-insensitive).
            settings: Settings handed to ``Probe.from_settings``.

        Returns:
            A ready-to-use probe.

        Raises:
            ConfigError: If the kind is not registered.

        """
        probe_cls = self._registry.get(kind.lower())
        if probe_cls is None:
            supported = ", ".join(sorted(self._registry))
            raise ConfigError(
                f"Unsupported probe kind '{kind}'. Supported: {supported}",
                details={"kind": kind},
            )
        self._logger.debug("Creating %s", probe_cls.__name__)
        return probe_cls.from_settings(settings)

    @property
    def supported_kinds(self) -> list[str]:
        """Return sorted list of registered probe kinds."""
        return sorted(self._registry)
