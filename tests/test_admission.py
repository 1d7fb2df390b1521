"""
Tests for the admission controller.

Tests verify:
- Check order (origin -> capacity -> API key)
- Capacity enforced atomically with registration
- Closed controller rejects with GOING_AWAY
"""

import asyncio

import pytest

from socket_bridge.components.admission.controller import AdmissionController
from socket_bridge.components.core.constants import WSCloseCode
from socket_bridge.components.core.context import HandshakeInfo
from socket_bridge.components.core.exceptions import (
    CapacityExceededError,
    InvalidApiKeyError,
    OriginRejectedError,
    ServerShuttingDownError,
)

from conftest import FakeTransport


def handshake(api_key=None, name=None, origin=None) -> HandshakeInfo:
    return HandshakeInfo(endpoint="/ws", origin=origin, api_key=api_key, name=name)


class TestAdmissionChecks:
    """Individual checks and their order."""

    def test_no_key_configured_admits_anyone(self, make_config, registry):
        controller = AdmissionController(make_config(), registry)
        assert controller.check(handshake(), 0).admitted
        assert controller.check(handshake(api_key="anything"), 0).admitted

    def test_wrong_key_rejected(self, make_config, registry):
        controller = AdmissionController(make_config(api_key="k"), registry)
        result = controller.check(handshake(api_key="wrong"), 0)

        assert not result.admitted
        assert isinstance(result.error, InvalidApiKeyError)
        assert result.error.close_code == WSCloseCode.AUTH_FAILED

    def test_missing_key_rejected(self, make_config, registry):
        controller = AdmissionController(make_config(api_key="k"), registry)
        assert controller.check(handshake(), 0).error.close_code == WSCloseCode.AUTH_FAILED

    def test_capacity_wins_over_credentials(self, make_config, registry):
        """A full server answers with the capacity code, valid key or not."""
        controller = AdmissionController(make_config(api_key="k", max_clients=2), registry)

        for key in ("k", "wrong", None):
            result = controller.check(handshake(api_key=key), 2)
            assert isinstance(result.error, CapacityExceededError)
            assert result.error.close_code == WSCloseCode.SERVER_OVERLOADED

    def test_origin_checked_first(self, make_config, registry):
        config = make_config(
            api_key="k",
            max_clients=1,
            validate_origin=True,
            allowed_origins=("https://a.example.com",),
        )
        controller = AdmissionController(config, registry)

        result = controller.check(handshake(api_key="wrong", origin="https://evil.net"), 1)
        assert isinstance(result.error, OriginRejectedError)
        assert result.error.close_code == WSCloseCode.FORBIDDEN

    def test_origin_validation_with_empty_list_rejects_all(self, make_config, registry):
        controller = AdmissionController(make_config(validate_origin=True), registry)
        result = controller.check(handshake(origin="https://a.example.com"), 0)
        assert result.error.close_code == WSCloseCode.FORBIDDEN

    def test_origin_ignored_when_validation_disabled(self, make_config, registry):
        controller = AdmissionController(make_config(), registry)
        assert controller.check(handshake(origin=None), 0).admitted

    def test_closed_controller_rejects_with_going_away(self, make_config, registry):
        controller = AdmissionController(make_config(), registry)
        controller.close()

        result = controller.check(handshake(), 0)
        assert isinstance(result.error, ServerShuttingDownError)
        assert result.error.close_code == WSCloseCode.GOING_AWAY
        assert result.error.reason == "Server shutting down"


class TestAdmit:
    """Check-and-register."""

    @pytest.mark.asyncio
    async def test_admit_registers_with_increasing_ids(self, make_config, registry):
        controller = AdmissionController(make_config(api_key="k"), registry)

        a = await controller.admit(handshake(api_key="k", name="A"), FakeTransport())
        b = await controller.admit(handshake(api_key="k", name="B"), FakeTransport())

        assert (a.id, a.name) == (1, "A")
        assert (b.id, b.name) == (2, "B")
        assert registry.size() == 2

    @pytest.mark.asyncio
    async def test_default_name_uses_own_id(self, make_config, registry):
        controller = AdmissionController(make_config(), registry)
        await controller.admit(handshake(name="first"), FakeTransport())

        connection = await controller.admit(handshake(), FakeTransport())
        assert connection.name == "client-2"

    @pytest.mark.asyncio
    async def test_rejection_does_not_touch_registry(self, make_config, registry):
        controller = AdmissionController(make_config(api_key="k"), registry)

        with pytest.raises(InvalidApiKeyError):
            await controller.admit(handshake(api_key="wrong"), FakeTransport())

        assert registry.size() == 0
        assert registry.get_stats()["last_assigned_id"] == 0

    @pytest.mark.asyncio
    async def test_concurrent_admissions_never_exceed_capacity(self, make_config, registry):
        controller = AdmissionController(make_config(max_clients=5), registry)

        results = await asyncio.gather(
            *[controller.admit(handshake(), FakeTransport()) for _ in range(20)],
            return_exceptions=True,
        )

        admitted = [r for r in results if not isinstance(r, BaseException)]
        rejected = [r for r in results if isinstance(r, CapacityExceededError)]
        assert len(admitted) == 5
        assert len(rejected) == 15
        assert registry.size() == 5
        assert sorted(c.id for c in admitted) == [1, 2, 3, 4, 5]
