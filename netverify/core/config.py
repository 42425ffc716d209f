"""Framework settings loaded from YAML and ``NETVERIFY_*`` variables.

Settings resolve in three layers: built-in defaults, an optional YAML
file, then environment variables (highest precedence).

Usage::

    settings = load_settings("netverify.yml")
    checker = ConnectivityChecker(probe, settings=settings)

Example YAML::

    netverify:
      default_timeout: 30
      poll_interval: 0.2
      max_workers: 8
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any

import yaml  # type: ignore[import-untyped]

from .convergence import RetryPolicy
from .exceptions import ConfigError

logger = logging.getLogger(__name__)

ENV_PREFIX = "NETVERIFY_"
SETTINGS_SECTION = "netverify"


@dataclass(frozen=True)
class Settings:
    """Tunable framework parameters.

    Attributes:
        default_timeout: Seconds ``check_connectivity`` waits to converge.
        poll_interval: Seconds between convergence retries.
        backoff_factor: Multiplier applied to the interval after each retry.
        max_poll_interval: Upper bound for the backed-off interval.
        probe_timeout: Per-attempt timeout handed to probe backends.
        max_workers: Upper bound on concurrent probes per cycle.
        default_port: Port probed when an expectation names none.
        tunnel_port: UDP port of the encrypted tunnel.
        docker_binary: Executable used for ``docker exec`` probes.

    """

    default_timeout: float = 10.0
    poll_interval: float = 0.1
    backoff_factor: float = 1.0
    max_poll_interval: float = 1.0
    probe_timeout: float = 2.0
    max_workers: int = 4
    default_port: int = 8055
    tunnel_port: int = 51820
    docker_binary: str = "docker"

    def __post_init__(self) -> None:
        """Reject values that would make the retry loops misbehave."""
        if self.default_timeout < 0 or self.probe_timeout <= 0:
            raise ConfigError(
                "Timeouts must be positive",
                details={
                    "default_timeout": self.default_timeout,
                    "probe_timeout": self.probe_timeout,
                },
            )
        if self.poll_interval <= 0 or self.max_poll_interval < self.poll_interval:
            raise ConfigError(
                "poll_interval must be positive and not exceed max_poll_interval",
                details={
                    "poll_interval": self.poll_interval,
                    "max_poll_interval": self.max_poll_interval,
                },
            )
        if self.backoff_factor < 1.0:
            raise ConfigError(
                "backoff_factor must be >= 1.0",
                details={"backoff_factor": self.backoff_factor},
            )
        if self.max_workers < 1:
            raise ConfigError(
                "max_workers must be >= 1",
                details={"max_workers": self.max_workers},
            )

    def retry_policy(self, timeout: float | None = None) -> RetryPolicy:
        """Build a ``RetryPolicy`` from these settings.

        Args:
            timeout: Overrides ``default_timeout`` when given.

        """
        return RetryPolicy(
            timeout=self.default_timeout if timeout is None else timeout,
            poll_interval=self.poll_interval,
            backoff_factor=self.backoff_factor,
            max_poll_interval=self.max_poll_interval,
        )


DEFAULT_SETTINGS = Settings()


def load_settings(
    path: str | Path | None = None,
    env: Mapping[str, str] | None = None,
) -> Settings:
    """Load settings from an optional YAML file and the environment.

    Args:
        path: YAML file; either a flat mapping or one nested under a
            top-level ``netverify`` key.  Skipped when ``None``.
        env: Environment mapping; defaults to ``os.environ``.

    Returns:
        A validated ``Settings`` instance.

    Raises:
        ConfigError: If the file is unreadable, a key is unknown, or a
            value cannot be converted.

    """
    overrides: dict[str, Any] = {}
    if path is not None:
        overrides.update(_read_yaml(Path(path)))
    overrides.update(_read_env(os.environ if env is None else env))

    known = {f.name: f for f in fields(Settings)}
    unknown = sorted(set(overrides) - set(known))
    if unknown:
        raise ConfigError(
            f"Unknown setting(s): {', '.join(unknown)}",
            details={"supported": sorted(known)},
        )

    converted: dict[str, Any] = {}
    for name, raw in overrides.items():
        converted[name] = _coerce(name, raw, type(getattr(DEFAULT_SETTINGS, name)))

    settings = replace(DEFAULT_SETTINGS, **converted)
    logger.debug("Loaded settings: %s", settings)
    return settings


def _read_yaml(path: Path) -> dict[str, Any]:
    """Read the settings mapping from a YAML file."""
    if not path.exists():
        raise ConfigError(f"Settings file not found: {path}")
    try:
        with path.open("r", encoding="utf-8") as fh:
            raw = yaml.safe_load(fh) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(
            f"Malformed settings file: {path}",
            details={"error": str(exc)},
        ) from exc

    if not isinstance(raw, dict):
        raise ConfigError(f"Settings file must contain a mapping: {path}")
    section = raw.get(SETTINGS_SECTION, raw)
    if not isinstance(section, dict):
        raise ConfigError(f"'{SETTINGS_SECTION}' section must be a mapping: {path}")
    return dict(section)


def _read_env(env: Mapping[str, str]) -> dict[str, str]:
    """Collect ``NETVERIFY_*`` variables as lower-cased setting names."""
    return {
        key[len(ENV_PREFIX):].lower(): value
        for key, value in env.items()
        if key.startswith(ENV_PREFIX)
    }


def _coerce(name: str, raw: Any, target: type) -> Any:
    """Convert *raw* to the type of the default value for *name*."""
    if isinstance(raw, target) and not isinstance(raw, bool):
        return raw
    try:
        return target(raw)
    except (TypeError, ValueError) as exc:
        raise ConfigError(
            f"Invalid value for '{name}': {raw!r}",
            details={"expected": target.__name__},
        ) from exc
