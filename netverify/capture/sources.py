"""Line-producing capture sources consumed by the classifier.

The classifier is capture-tool agnostic: it only needs an object that
can be opened, iterated for decoded text lines, and closed.  This module
provides a subprocess-backed source for ``tcpdump``-style tools and two
in-memory sources for replay and tests.

Usage::

    source = tcpdump_source("eth0", container="felix-0")
    source.open()
    for line in source.lines():
        ...
    source.close()
"""

from __future__ import annotations

import abc
import logging
import queue
import subprocess
import threading
from collections import deque
from collections.abc import Iterable, Iterator

from ..core.exceptions import CaptureStartFailure, CaptureStateError

logger = logging.getLogger(__name__)

DEFAULT_READY_TIMEOUT = 10.0
TERMINATE_GRACE_SECONDS = 5.0
STDERR_TAIL_LINES = 20
TCPDUMP_READY_MARKER = "listening on"


class CaptureSource(abc.ABC):
    """Abstract live, ordered stream of decoded packet-description lines.

    Args:
        name: Label used in logs and errors.

    """

    def __init__(self, name: str) -> None:
        """Initialize the source with a display name."""
        self.name = name
        self._logger = logging.getLogger(
            f"{self.__class__.__module__}.{self.__class__.__name__}"
        )

    @abc.abstractmethod
    def open(self) -> None:
        """Acquire the capture handle.

        Raises:
            CaptureStartFailure: If the handle cannot be acquired.

        """

    @abc.abstractmethod
    def lines(self) -> Iterator[str]:
        """Yield lines until the source is closed or exhausted."""

    @abc.abstractmethod
    def close(self) -> None:
        """Release the capture handle.  Must be idempotent."""


class SubprocessCaptureSource(CaptureSource):
    """Capture source backed by a long-running child process.

    Stdout lines are yielded to the reader; stderr is drained on a
    helper thread and logged at DEBUG.  When *ready_marker* is set,
    ``open`` blocks until that text appears on stderr.

    Args:
        argv: Command line of the capture tool.
        name: Display name; defaults to the joined argv.
        ready_marker: Stderr text signalling the tool is capturing.
        ready_timeout: Seconds to wait for *ready_marker*.

    """

    def __init__(
        self,
        argv: list[str],
        name: str | None = None,
        ready_marker: str | None = None,
        ready_timeout: float = DEFAULT_READY_TIMEOUT,
    ) -> None:
        """Initialize the source with the capture command."""
        super().__init__(name or " ".join(argv))
        self._argv = list(argv)
        self._ready_marker = ready_marker
        self._ready_timeout = ready_timeout
        self._proc: subprocess.Popen[str] | None = None
        self._stderr_thread: threading.Thread | None = None
        self._stderr_tail: deque[str] = deque(maxlen=STDERR_TAIL_LINES)
        self._ready = threading.Event()
        self._marker_seen = False
        self._reading = False

    @property
    def argv(self) -> list[str]:
        """Return a copy of the capture command line."""
        return list(self._argv)

    @property
    def stderr_tail(self) -> list[str]:
        """Return the most recent stderr lines."""
        return list(self._stderr_tail)

    def open(self) -> None:
        """Spawn the capture process and wait for readiness.

        Raises:
            CaptureStateError: If the source is already open.
            CaptureStartFailure: If the process cannot be launched, exits
                early, or never reports readiness.

        """
        if self._proc is not None:
            raise CaptureStateError("Capture source already open", endpoint=self.name)

        self._ready.clear()
        self._marker_seen = False
        self._reading = False
        self._stderr_tail.clear()
        try:
            self._proc = subprocess.Popen(
                self._argv,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                bufsize=1,
            )
        except OSError as exc:
            raise CaptureStartFailure(
                f"Failed to launch capture: {exc}",
                endpoint=self.name,
                details={"argv": " ".join(self._argv)},
            ) from exc

        self._stderr_thread = threading.Thread(
            target=self._drain_stderr,
            args=(self._proc,),
            name=f"capture-stderr-{self.name}",
            daemon=True,
        )
        self._stderr_thread.start()
        self._logger.info("Capture process started: %s", " ".join(self._argv))

        if self._ready_marker is None:
            return

        self._ready.wait(self._ready_timeout)
        if self._marker_seen:
            return

        returncode = self._proc.poll()
        if returncode is None and not self._stderr_thread.is_alive():
            # stderr hit EOF, so the process is exiting
            try:
                returncode = self._proc.wait(timeout=TERMINATE_GRACE_SECONDS)
            except subprocess.TimeoutExpired:
                returncode = None
        tail = " | ".join(self._stderr_tail)
        self.close()
        reason = (
            f"exited with code {returncode}"
            if returncode is not None
            else f"not ready after {self._ready_timeout:g}s"
        )
        raise CaptureStartFailure(
            f"Capture process {reason}",
            endpoint=self.name,
            details={"stderr": tail},
        )

    def lines(self) -> Iterator[str]:
        """Yield stdout lines until the process exits or is closed."""
        proc = self._proc
        if proc is None or proc.stdout is None:
            raise CaptureStateError("Capture source is not open", endpoint=self.name)
        self._reading = True
        try:
            for line in proc.stdout:
                yield line.rstrip("\r\n")
        except ValueError:
            # stdout closed underneath the iterator during shutdown
            return
        finally:
            proc.stdout.close()

    def close(self) -> None:
        """Terminate the capture process and reap it.  Idempotent."""
        proc = self._proc
        if proc is None:
            return
        self._proc = None
        if proc.poll() is None:
            proc.terminate()
            try:
                proc.wait(timeout=TERMINATE_GRACE_SECONDS)
            except subprocess.TimeoutExpired:
                self._logger.warning("Capture process did not exit, killing: %s", self.name)
                proc.kill()
                proc.wait()
        if self._stderr_thread is not None:
            self._stderr_thread.join(timeout=TERMINATE_GRACE_SECONDS)
            self._stderr_thread = None
        if proc.stderr is not None:
            proc.stderr.close()
        if not self._reading and proc.stdout is not None:
            proc.stdout.close()
        self._logger.info("Capture process stopped: %s (rc=%s)", self.name, proc.returncode)

    def _drain_stderr(self, proc: subprocess.Popen[str]) -> None:
        """Log stderr and flag readiness when the marker appears."""
        if proc.stderr is None:
            self._ready.set()
            return
        try:
            for raw in proc.stderr:
                line = raw.rstrip("\r\n")
                self._stderr_tail.append(line)
                self._logger.debug("[%s] %s", self.name, line)
                if self._ready_marker and self._ready_marker in line and not self._marker_seen:
                    self._marker_seen = True
                    self._ready.set()
        except ValueError:
            pass
        finally:
            self._ready.set()


class IterableCaptureSource(CaptureSource):
    """Replay a fixed sequence of lines, e.g. a saved tcpdump transcript.

    Args:
        lines: Lines to yield, in order.
        name: Display name.

    """

    def __init__(self, lines: Iterable[str], name: str = "replay") -> None:
        """Initialize the source with the lines to replay."""
        super().__init__(name)
        self._lines = list(lines)
        self._closed = threading.Event()
        self._opened = False

    def open(self) -> None:
        """Mark the source open."""
        self._closed.clear()
        self._opened = True

    def lines(self) -> Iterator[str]:
        """Yield the stored lines until exhausted or closed."""
        if not self._opened:
            raise CaptureStateError("Capture source is not open", endpoint=self.name)
        for line in self._lines:
            if self._closed.is_set():
                return
            yield line

    def close(self) -> None:
        """Stop the replay.  Idempotent."""
        self._closed.set()
        self._opened = False


_CLOSE = object()


class QueueCaptureSource(CaptureSource):
    """Source fed at runtime through ``push``; blocks until lines arrive.

    Args:
        name: Display name.

    """

    def __init__(self, name: str = "queue") -> None:
        """Initialize an empty line queue."""
        super().__init__(name)
        self._queue: queue.Queue[object] = queue.Queue()
        self._opened = False

    def push(self, *lines: str) -> None:
        """Append lines to the stream."""
        for line in lines:
            self._queue.put(line)

    def open(self) -> None:
        """Mark the source open."""
        self._opened = True

    def lines(self) -> Iterator[str]:
        """Yield pushed lines until ``close`` is called."""
        if not self._opened:
            raise CaptureStateError("Capture source is not open", endpoint=self.name)
        # Bound now so a close racing the first read still ends this stream.
        return self._drain(self._queue)

    def close(self) -> None:
        """Unblock the reader and end the stream.  Idempotent.

        Lines still queued are discarded with the stream; lines pushed
        afterwards are kept for the next ``open``.
        """
        if self._opened:
            self._opened = False
            stream, self._queue = self._queue, queue.Queue()
            stream.put(_CLOSE)

    @staticmethod
    def _drain(stream: queue.Queue[object]) -> Iterator[str]:
        while True:
            item = stream.get()
            if item is _CLOSE:
                return
            yield str(item)


def tcpdump_source(
    interface: str,
    container: str | None = None,
    bpf_filter: str | None = None,
    docker_binary: str = "docker",
    ready_timeout: float = DEFAULT_READY_TIMEOUT,
) -> SubprocessCaptureSource:
    """Build a line-buffered ``tcpdump`` source, optionally inside a container.

    Args:
        interface: Interface to capture on (e.g., ``eth0``).
        container: Run via ``docker exec`` in this container when given.
        bpf_filter: Optional BPF filter expression.
        docker_binary: Docker CLI executable.
        ready_timeout: Seconds to wait for ``listening on``.

    Returns:
        An unopened ``SubprocessCaptureSource``.

    """
    argv = ["tcpdump", "-nli", interface]
    if bpf_filter:
        argv.extend(bpf_filter.split())
    if container:
        argv = [docker_binary, "exec", container, *argv]
    name = f"{container}:{interface}" if container else interface
    return SubprocessCaptureSource(
        argv,
        name=name,
        ready_marker=TCPDUMP_READY_MARKER,
        ready_timeout=ready_timeout,
    )
