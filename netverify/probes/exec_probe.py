"""Remote-exec probe: runs ``nc`` / ``ping`` inside the source container.

Each attempt shells out to ``docker exec <container> ...`` so the
traffic genuinely originates from the source endpoint's network
namespace.  Docker-level failures (container restarting, command not
found, exec hanging past the tool timeout) are indeterminate and
reported as ``ProbeTransientFailure``; the tool's own failure
(connection refused, no reply) is a definite "unreachable".

Usage::

    probe = ExecProbe(timeout=2.0)
    result = probe.attempt(wl0, wl1, 8055)
    train = probe.send_packets(wl0, wl1, count=5, size=1400)
    assert train.loss_percent == 0
"""

from __future__ import annotations

import logging
import re
import subprocess
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass

from ..core.config import DEFAULT_SETTINGS, Settings
from ..core.endpoint import Endpoint, Protocol
from ..core.exceptions import ProbeError, ProbeTransientFailure
from ..core.probe import Probe, ProbeResult

logger = logging.getLogger(__name__)

# docker exec: 125 daemon/container error, 126 not executable, 127 not found.
DOCKER_TRANSIENT_EXIT_CODES = frozenset({125, 126, 127})

# Extra seconds on top of the tool timeout before the subprocess is abandoned.
EXEC_GRACE_SECONDS = 3.0

UDP_PAYLOAD = "netverify-probe\n"

DEFAULT_DIAGNOSTIC_COMMANDS: tuple[tuple[str, ...], ...] = (
    ("ip", "addr"),
    ("ip", "rule", "list"),
    ("ip", "route", "show", "table", "all"),
    ("ip", "route", "show", "cached"),
    ("wg",),
)

_LOSS_RE = re.compile(r"(\d+(?:\.\d+)?)% packet loss")
_COUNTS_RE = re.compile(r"(\d+) packets transmitted, (\d+) (?:packets )?received")


@dataclass(frozen=True)
class PacketTrainResult:
    """Outcome of sending a fixed train of packets.

    Attributes:
        sent: Packets transmitted.
        received: Replies received.
        loss_percent: Packet loss as reported by the tool.
        output: Raw tool output.

    """

    sent: int
    received: int
    loss_percent: float
    output: str = ""

    @property
    def lost(self) -> int:
        """Number of packets without a reply."""
        return self.sent - self.received


class ExecProbe(Probe):
    """Probe reachability by executing tools in the source container.

    Args:
        timeout: Per-attempt tool timeout in seconds.
        docker_binary: Docker CLI executable.

    """

    def __init__(self, timeout: float = 2.0, docker_binary: str = "docker") -> None:
        """Initialize the probe with its timeout and docker binary."""
        super().__init__()
        self.timeout = timeout
        self.docker_binary = docker_binary

    @classmethod
    def from_settings(cls, settings: Settings = DEFAULT_SETTINGS) -> ExecProbe:
        """Build a probe from ``probe_timeout`` and ``docker_binary``."""
        return cls(timeout=settings.probe_timeout, docker_binary=settings.docker_binary)

    # -- Probe API ----------------------------------------------------------

    def attempt(
        self,
        source: Endpoint,
        destination: Endpoint,
        port: int,
        protocol: Protocol = Protocol.TCP,
    ) -> ProbeResult:
        """Attempt a connection from inside *source*'s container.

        Raises:
            ProbeError: If *source* has no container to run in or the
                docker binary is missing.
            ProbeTransientFailure: If ``docker exec`` itself failed or hung.

        """
        container = self._container_for(source)
        wait = self._tool_timeout()
        stdin: str | None = None
        if protocol is Protocol.TCP:
            argv = ["nc", "-z", "-w", wait, destination.address, str(port)]
        elif protocol is Protocol.UDP:
            argv = ["nc", "-u", "-w", wait, destination.address, str(port)]
            stdin = UDP_PAYLOAD
        else:
            argv = ["ping", "-c", "1", "-W", wait, destination.address]

        started = time.monotonic()
        try:
            proc = self._run(container, argv, stdin=stdin)
        except subprocess.TimeoutExpired as exc:
            raise ProbeTransientFailure(
                f"docker exec did not return within {exc.timeout:g}s",
                endpoint=source.name,
            ) from exc
        latency = (time.monotonic() - started) * 1000

        self._raise_if_docker_failed(proc, source)
        if proc.returncode != 0:
            return ProbeResult(reachable=False, error=_first_line(proc.stderr) or f"exit code {proc.returncode}")
        if protocol is Protocol.UDP and not proc.stdout.strip():
            return ProbeResult(reachable=False, error="no echo before timeout")
        return ProbeResult(reachable=True, latency_ms=latency)

    # -- Extras -------------------------------------------------------------

    def send_packets(
        self,
        source: Endpoint,
        destination: Endpoint,
        count: int = 5,
        size: int = 56,
    ) -> PacketTrainResult:
        """Send *count* ICMP echo requests of *size* bytes and report loss.

        Args:
            source: Sending endpoint (must have a container).
            destination: Target endpoint.
            count: Number of packets.
            size: Payload size in bytes.

        Returns:
            A ``PacketTrainResult``; total loss if the tool timed out.

        Raises:
            ProbeTransientFailure: If ``docker exec`` itself failed.

        """
        container = self._container_for(source)
        argv = ["ping", "-c", str(count), "-s", str(size), "-W", self._tool_timeout(), destination.address]
        try:
            proc = self._run(container, argv, timeout=self.timeout * count + EXEC_GRACE_SECONDS)
        except subprocess.TimeoutExpired:
            return PacketTrainResult(sent=count, received=0, loss_percent=100.0)
        self._raise_if_docker_failed(proc, source)

        counts = _COUNTS_RE.search(proc.stdout)
        sent, received = (int(counts.group(1)), int(counts.group(2))) if counts else (count, 0)
        loss = _LOSS_RE.search(proc.stdout)
        loss_percent = float(loss.group(1)) if loss else 100.0
        self._logger.info(
            "Packet train %s -> %s: %d/%d received (%.0f%% loss)",
            source.name,
            destination.name,
            received,
            sent,
            loss_percent,
        )
        return PacketTrainResult(sent=sent, received=received, loss_percent=loss_percent, output=proc.stdout)

    def exec_output(self, container: str, *argv: str) -> str:
        """Run *argv* inside *container* and return its stdout.

        Raises:
            ProbeError: If the command fails or times out.

        """
        try:
            proc = self._run(container, list(argv))
        except subprocess.TimeoutExpired as exc:
            raise ProbeError(
                f"Command timed out: {' '.join(argv)}",
                endpoint=container,
            ) from exc
        if proc.returncode != 0:
            raise ProbeError(
                f"Command failed with exit code {proc.returncode}: {' '.join(argv)}",
                endpoint=container,
                details={"stderr": _first_line(proc.stderr)},
            )
        return proc.stdout

    # -- Internal helpers ---------------------------------------------------

    def _container_for(self, source: Endpoint) -> str:
        if not source.container:
            raise ProbeError(
                f"Endpoint {source} has no container to execute in",
                endpoint=source.name,
            )
        return source.container

    def _tool_timeout(self) -> str:
        return str(max(1, round(self.timeout)))

    def _run(
        self,
        container: str,
        argv: Sequence[str],
        stdin: str | None = None,
        timeout: float | None = None,
    ) -> subprocess.CompletedProcess[str]:
        cmd = [self.docker_binary, "exec", *(["-i"] if stdin is not None else []), container, *argv]
        self._logger.debug("Running: %s", " ".join(cmd))
        try:
            return subprocess.run(
                cmd,
                input=stdin,
                capture_output=True,
                text=True,
                timeout=timeout if timeout is not None else self.timeout + EXEC_GRACE_SECONDS,
            )
        except FileNotFoundError as exc:
            raise ProbeError(
                f"Docker binary not found: {self.docker_binary}",
                endpoint=container,
            ) from exc

    def _raise_if_docker_failed(
        self,
        proc: subprocess.CompletedProcess[str],
        source: Endpoint,
    ) -> None:
        if proc.returncode in DOCKER_TRANSIENT_EXIT_CODES:
            raise ProbeTransientFailure(
                f"docker exec failed with exit code {proc.returncode}",
                endpoint=source.name,
                details={"stderr": _first_line(proc.stderr)},
            )


def _first_line(text: str | None) -> str:
    lines = (text or "").strip().splitlines()
    return lines[0] if lines else ""


def diagnostic_hook(
    probe: ExecProbe,
    containers: Sequence[str],
    commands: Sequence[Sequence[str]] = DEFAULT_DIAGNOSTIC_COMMANDS,
) -> Callable[[str], None]:
    """Build an ``on_fail`` hook that dumps node state after a failed check.

    Each command runs in each container and its output is logged at
    INFO.  A command that fails is logged and skipped.

    Args:
        probe: Exec probe used to run the commands.
        containers: Nodes to inspect.
        commands: Commands to run; defaults to address, rule, route and
            tunnel listings.

    Returns:
        A callable accepting the checker's failure message.

    """

    def dump_diagnostics(message: str) -> None:
        logger.info("Collecting diagnostics after failure: %s", message.splitlines()[0] if message else "")
        for container in containers:
            for command in commands:
                label = " ".join(command)
                try:
                    output = probe.exec_output(container, *command)
                except ProbeError as exc:
                    logger.warning("[%s] %s failed: %s", container, label, exc)
                    continue
                logger.info("[%s] %s:\n%s", container, label, output.rstrip())

    return dump_diagnostics
