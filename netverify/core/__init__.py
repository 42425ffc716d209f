"""Core module providing endpoints, the probe contract, and convergence logic.

This module contains the foundational components of the verification
framework: endpoint identities, the abstract probe interface, the
``eventually`` / ``consistently`` combinators, settings, and the custom
exception hierarchy.
"""

from .config import DEFAULT_SETTINGS, Settings, load_settings
from .convergence import RetryPolicy, consistently, eventually
from .endpoint import Endpoint, EndpointKind, Host, Protocol, TargetIP, Workload
from .exceptions import (
    CaptureError,
    CaptureStartFailure,
    CaptureStateError,
    ConfigError,
    ConvergenceMismatch,
    DuplicateMatcherName,
    InventoryError,
    MatcherNotFound,
    NetVerifyError,
    ProbeError,
    ProbeTransientFailure,
    StabilityViolation,
    TimeoutExceeded,
)
from .probe import Probe, ProbeResult

__all__ = [
    "DEFAULT_SETTINGS",
    "CaptureError",
    "CaptureStartFailure",
    "CaptureStateError",
    "ConfigError",
    "ConvergenceMismatch",
    "DuplicateMatcherName",
    "Endpoint",
    "EndpointKind",
    "Host",
    "InventoryError",
    "MatcherNotFound",
    "NetVerifyError",
    "Probe",
    "ProbeError",
    "ProbeResult",
    "ProbeTransientFailure",
    "Protocol",
    "RetryPolicy",
    "Settings",
    "StabilityViolation",
    "TargetIP",
    "TimeoutExceeded",
    "Workload",
    "consistently",
    "eventually",
    "load_settings",
]
