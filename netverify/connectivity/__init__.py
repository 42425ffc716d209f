"""Expectation matrix and the connectivity checker that verifies it."""

from .checker import ConnectivityChecker
from .expectations import ConnectivityResult, ExpectationEntry, ExpectationMatrix
from .report import ConnectivityReport

__all__ = [
    "ConnectivityChecker",
    "ConnectivityReport",
    "ConnectivityResult",
    "ExpectationEntry",
    "ExpectationMatrix",
]
