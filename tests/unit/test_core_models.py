"""Unit tests for endpoint identities and the exception hierarchy."""

from __future__ import annotations

import pytest

from netverify.core.endpoint import Endpoint, EndpointKind, Host, TargetIP, Workload
from netverify.core.exceptions import (
    CaptureError,
    ConvergenceMismatch,
    MatcherNotFound,
    NetVerifyError,
    ProbeError,
    ProbeTransientFailure,
    TimeoutExceeded,
)


class TestEndpoints:
    """Tests for endpoint factories."""

    def test_workload(self) -> None:
        wl = Workload("wl0", "10.65.0.2", port=8055, container="felix-0")
        assert wl.kind is EndpointKind.WORKLOAD
        assert wl.can_source
        assert str(wl) == "wl0 (10.65.0.2)"

    def test_host_runs_in_own_container(self) -> None:
        host = Host("felix-1", "172.17.0.4")
        assert host.kind is EndpointKind.HOST
        assert host.container == "felix-1"

    def test_target_ip_is_destination_only(self) -> None:
        svc = TargetIP("10.96.10.1", port=8055)
        assert svc.name == "10.96.10.1"
        assert not svc.can_source
        assert str(svc) == "10.96.10.1"

    def test_endpoints_are_hashable_values(self) -> None:
        assert Endpoint("a", "10.0.0.1") == Endpoint("a", "10.0.0.1")
        assert len({Endpoint("a", "10.0.0.1"), Endpoint("a", "10.0.0.1")}) == 1


class TestExceptions:
    """Tests for the exception hierarchy and message formatting."""

    def test_message_formatting(self) -> None:
        err = NetVerifyError("capture failed", endpoint="felix-0", details={"rc": 1})
        assert str(err) == "[felix-0] capture failed (rc=1)"
        assert err.message == "capture failed"

    def test_plain_message(self) -> None:
        assert str(NetVerifyError("boom")) == "boom"

    @pytest.mark.parametrize(
        "exc_cls,base",
        [
            (ProbeTransientFailure, ProbeError),
            (MatcherNotFound, CaptureError),
            (ConvergenceMismatch, NetVerifyError),
            (TimeoutExceeded, NetVerifyError),
        ],
    )
    def test_hierarchy(self, exc_cls: type[Exception], base: type[Exception]) -> None:
        assert issubclass(exc_cls, base)

    def test_timeout_carries_observation(self) -> None:
        cause = RuntimeError("no route")
        err = TimeoutExceeded("route present", last_value=0, last_error=cause)
        assert err.last_value == 0
        assert err.last_error is cause
