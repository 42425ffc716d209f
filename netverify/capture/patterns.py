"""Pattern builders for classifying ``tcpdump -n`` text output.

Tunnel traffic between two nodes shows up as UDP between the tunnel
port on both sides::

    IP 172.17.0.3.51820 > 172.17.0.4.51820: UDP, length 128

Plaintext workload traffic shows the workload addresses directly::

    IP 10.65.0.2.34512 > 10.65.1.3.8055: Flags [S], seq 1, length 0

Also parses the per-peer ``transfer:`` line of ``wg`` output so tests
can assert that encrypted bytes actually moved.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

DEFAULT_TUNNEL_PORT = 51820

_ANY_IPV4 = r"\d+\.\d+\.\d+\.\d+"

_TRANSFER_RE = re.compile(
    r"transfer:\s+([0-9a-zA-Z. ]+)\s+received,\s+([0-9a-zA-Z. ]+)\s+sent"
)
_QUANTITY_RE = re.compile(r"^\s*([0-9]+(?:\.[0-9]+)?)\s*([a-zA-Z]*)\s*$")

_UNITS = {
    "": 1,
    "b": 1,
    "kib": 1024,
    "mib": 1024**2,
    "gib": 1024**3,
    "tib": 1024**4,
}


def _ip(address: str | None) -> str:
    """Escape *address*, or match any IPv4 address when omitted."""
    return _ANY_IPV4 if address is None else re.escape(address)


def tunnel_pattern(
    src_ip: str | None = None,
    dst_ip: str | None = None,
    port: int = DEFAULT_TUNNEL_PORT,
) -> re.Pattern[str]:
    """Match tunnel UDP packets from *src_ip* to *dst_ip*.

    Args:
        src_ip: Sending node address; any address when omitted.
        dst_ip: Receiving node address; any address when omitted.
        port: Tunnel UDP port on both sides.

    Returns:
        Compiled pattern for ``CaptureSession.add_matcher``.

    """
    return re.compile(
        rf"IP {_ip(src_ip)}\.{port} > {_ip(dst_ip)}\.{port}: UDP"
    )


def direct_pattern(src_ip: str, dst_ip: str) -> re.Pattern[str]:
    """Match plaintext packets from *src_ip* to *dst_ip*.

    The port suffix is optional so that ICMP lines, which carry none,
    are also counted.
    """
    return re.compile(
        rf"IP {re.escape(src_ip)}(\.\d+)? > {re.escape(dst_ip)}(\.\d+)?: "
    )


@dataclass(frozen=True)
class TransferStats:
    """Byte counters from a ``wg`` peer ``transfer:`` line.

    Attributes:
        received: Bytes received from the peer.
        sent: Bytes sent to the peer.

    """

    received: int
    sent: int

    @property
    def total(self) -> int:
        """Bytes moved in both directions."""
        return self.received + self.sent


def parse_quantity(text: str) -> int:
    """Convert a ``wg`` quantity such as ``1.52 KiB`` into bytes.

    Raises:
        ValueError: If the text is not a number with a known unit.

    """
    match = _QUANTITY_RE.match(text)
    if match is None:
        raise ValueError(f"Unrecognised transfer quantity '{text}'")
    number, unit = match.groups()
    multiplier = _UNITS.get(unit.lower())
    if multiplier is None:
        raise ValueError(f"Unknown transfer unit '{unit}' in '{text}'")
    return int(float(number) * multiplier)


def parse_transfer_stats(output: str) -> TransferStats | None:
    """Extract the first ``transfer: X received, Y sent`` line from *output*.

    Returns:
        The parsed counters, or ``None`` if no peer has transferred yet.

    """
    match = _TRANSFER_RE.search(output)
    if match is None:
        return None
    return TransferStats(
        received=parse_quantity(match.group(1)),
        sent=parse_quantity(match.group(2)),
    )
