"""Probe backends: local sockets, ``docker exec``, and in-memory simulation."""

from .exec_probe import ExecProbe, PacketTrainResult, diagnostic_hook
from .probe_factory import ProbeFactory
from .simulated import ProbeAttempt, SimulatedProbe
from .socket_probe import SocketProbe

__all__ = [
    "ExecProbe",
    "PacketTrainResult",
    "ProbeAttempt",
    "ProbeFactory",
    "SimulatedProbe",
    "SocketProbe",
    "diagnostic_hook",
]
