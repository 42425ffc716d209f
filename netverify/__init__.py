"""Network dataplane verification framework.

Drives live traffic across a declared reachability matrix, classifies
captured packets to tell tunneled paths from plaintext ones, and waits
for the dataplane to converge on the declared behavior.
"""

from .capture import CaptureSession, direct_pattern, tcpdump_source, tunnel_pattern
from .connectivity import ConnectivityChecker, ConnectivityReport
from .core import (
    Endpoint,
    Host,
    NetVerifyError,
    Protocol,
    Settings,
    TargetIP,
    Workload,
    consistently,
    eventually,
    load_settings,
)

__version__ = "1.0.0"

__all__ = [
    "CaptureSession",
    "ConnectivityChecker",
    "ConnectivityReport",
    "Endpoint",
    "Host",
    "NetVerifyError",
    "Protocol",
    "Settings",
    "TargetIP",
    "Workload",
    "consistently",
    "direct_pattern",
    "eventually",
    "load_settings",
    "tcpdump_source",
    "tunnel_pattern",
]
