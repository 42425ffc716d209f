"""Custom exception hierarchy for the dataplane verification framework.

All framework exceptions inherit from ``NetVerifyError`` to enable
granular catch clauses while still allowing a single top-level handler.

Exception tree::

    NetVerifyError
    ├── ConfigError
    ├── InventoryError
    ├── ProbeError
    │   └── ProbeTransientFailure
    ├── ConvergenceMismatch
    ├── TimeoutExceeded
    ├── StabilityViolation
    └── CaptureError
        ├── MatcherNotFound
        ├── DuplicateMatcherName
        ├── CaptureStartFailure
        └── CaptureStateError
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from ..connectivity.report import ConnectivityReport


class NetVerifyError(Exception):
    """Base exception for all dataplane verification errors.

    Attributes:
        message: Human-readable error description.
        endpoint: Optional endpoint or session name that triggered the error.
        details: Optional mapping of additional contextual data.

    """

    def __init__(
        self,
        message: str,
        endpoint: str | None = None,
        details: dict[str, object] | None = None,
    ) -> None:
        """Initialize with a message, optional endpoint context, and details."""
        self.message = message
        self.endpoint = endpoint
        self.details = details or {}
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        """Format the exception message with optional endpoint context."""
        parts: list[str] = []
        if self.endpoint:
            parts.append(f"[{self.endpoint}]")
        parts.append(self.message)
        if self.details:
            detail_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            parts.append(f"({detail_str})")
        return " ".join(parts)


class ConfigError(NetVerifyError):
    """Raised when settings cannot be loaded or contain invalid values.

    Examples:
        - Unknown key in the settings file
        - Non-numeric timeout in a ``NETVERIFY_*`` variable
        - Malformed YAML

    """


class InventoryError(NetVerifyError):
    """Raised when scenario inventory loading or lookup fails.

    Examples:
        - Missing or malformed scenario file
        - Expectation referencing an undeclared endpoint
        - Unknown endpoint kind or protocol

    """


class ProbeError(NetVerifyError):
    """Raised when a probe cannot be carried out at all."""


class ProbeTransientFailure(ProbeError):
    """Raised when a probe attempt is indeterminate.

    Expected while the dataplane is still converging.  The checker
    records the attempt as "not yet converged" and retries; it is never
    surfaced on its own.

    Examples:
        - ``docker exec`` failed because the container is restarting
        - The source address is not yet assigned on the local host

    """


class ConvergenceMismatch(NetVerifyError):
    """Raised when the expectation matrix has not converged by the deadline.

    Attributes:
        report: The ``ConnectivityReport`` of the final probe cycle.

    """

    def __init__(
        self,
        message: str,
        report: ConnectivityReport | None = None,
        endpoint: str | None = None,
        details: dict[str, object] | None = None,
    ) -> None:
        """Initialize with the final report attached."""
        self.report = report
        super().__init__(message, endpoint=endpoint, details=details)


class _LastObservationError(NetVerifyError):
    """Base for combinator failures that carry the last observation."""

    def __init__(
        self,
        message: str,
        last_value: Any = None,
        last_error: BaseException | None = None,
        endpoint: str | None = None,
        details: dict[str, object] | None = None,
    ) -> None:
        """Initialize with the last observed value and error."""
        self.last_value = last_value
        self.last_error = last_error
        super().__init__(message, endpoint=endpoint, details=details)


class TimeoutExceeded(_LastObservationError):
    """Raised when ``eventually`` reaches its deadline without success.

    Examples:
        - Tunnel packet counter still zero after the wait window
        - Route entry never appeared

    """


class StabilityViolation(_LastObservationError):
    """Raised when a condition that must hold stops holding.

    Examples:
        - ``consistently`` saw a failing evaluation
        - A must-stay-zero traffic counter observed a nonzero value

    """


class CaptureError(NetVerifyError):
    """Base class for capture-session errors."""


class MatcherNotFound(CaptureError):
    """Raised when querying or resetting an unregistered matcher name."""


class DuplicateMatcherName(CaptureError):
    """Raised when registering a matcher under an already-used name."""


class CaptureStartFailure(CaptureError):
    """Raised when the capture handle cannot be acquired.

    Examples:
        - Capture binary not installed
        - Missing ``CAP_NET_RAW`` / permission denied
        - Target container not running

    """


class CaptureStateError(CaptureError):
    """Raised when ``start`` is called on an already-running session."""
