"""Capture module for classifying live packet-description streams.

Provides capture sources (subprocess ``tcpdump``, replay, queue), the
``CaptureSession`` classifier with named counters, and tcpdump pattern
builders for telling tunneled traffic apart from plaintext traffic.
"""

from .classifier import (
    CaptureSession,
    CountCondition,
    Matcher,
    at_least,
    at_most,
    equals,
    greater_than,
)
from .patterns import TransferStats, direct_pattern, parse_transfer_stats, tunnel_pattern
from .sources import (
    CaptureSource,
    IterableCaptureSource,
    QueueCaptureSource,
    SubprocessCaptureSource,
    tcpdump_source,
)

__all__ = [
    "CaptureSession",
    "CaptureSource",
    "CountCondition",
    "IterableCaptureSource",
    "Matcher",
    "QueueCaptureSource",
    "SubprocessCaptureSource",
    "TransferStats",
    "at_least",
    "at_most",
    "direct_pattern",
    "equals",
    "greater_than",
    "parse_transfer_stats",
    "tcpdump_source",
    "tunnel_pattern",
]
