"""Tests for the long-context capability probe state machine."""

import pytest

from claude_multi_auth.services.capability_probe import CapabilityProbe, CapabilityStatus


FLAG = "context-1m-2025-08-07"


@pytest.mark.unit
class TestCapabilityProbe:
    def test_starts_unknown_and_attaches(self) -> None:
        probe = CapabilityProbe(FLAG)

        assert probe.status == CapabilityStatus.UNKNOWN
        assert probe.should_attach(True)
        assert not probe.should_attach(False)

    def test_success_grants(self) -> None:
        probe = CapabilityProbe(FLAG)

        probe.record_success()

        assert probe.status == CapabilityStatus.GRANTED
        assert probe.should_attach(True)

    @pytest.mark.parametrize("granted_first", [False, True])
    def test_rejection_denies(self, granted_first: bool) -> None:
        probe = CapabilityProbe(FLAG)
        if granted_first:
            probe.record_success()

        probe.record_rejection()

        assert probe.status == CapabilityStatus.DENIED
        assert not probe.should_attach(True)

    def test_denied_is_sticky(self) -> None:
        probe = CapabilityProbe(FLAG)
        probe.record_rejection()

        probe.record_success()

        assert probe.status == CapabilityStatus.DENIED

    @pytest.mark.parametrize(
        ("status_code", "body", "expected"),
        [
            (400, "The long context beta is not yet available for this subscription.", True),
            (403, '{"error":{"message":"Long context beta incompatible with plan"}}', True),
            (400, "context-1m-2025-08-07 is not supported for this model", True),
            (400, "messages: field required", False),
            (429, "The long context beta is not yet available", False),
            (500, "context-1m not available", False),
        ],
    )
    def test_is_rejection(self, status_code: int, body: str, expected: bool) -> None:
        assert CapabilityProbe.is_rejection(status_code, body) is expected
