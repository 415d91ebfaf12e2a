"""Tests for best-effort follow-up steps."""

import pytest
from storefront.effects import SideEffect, run_side_effects
from storefront.errors import DownstreamFailure
from structlog.testing import capture_logs


def _offline():
    raise ConnectionError("ledger offline")


class TestSideEffect:
    def test_attempt_wraps_failures(self):
        with pytest.raises(DownstreamFailure) as exc:
            SideEffect("record_payment", _offline).attempt()
        assert exc.value.effect == "record_payment"
        assert isinstance(exc.value.cause, ConnectionError)


class TestRunSideEffects:
    def test_failure_does_not_stop_later_effects(self):
        calls = []
        effects = [
            SideEffect("first", _offline),
            SideEffect("second", lambda: calls.append("second")),
        ]
        with capture_logs() as logs:
            run_side_effects(effects, order_id="ord-001")

        assert calls == ["second"]
        events = [entry["event"] for entry in logs]
        assert events == ["side_effect_failed", "side_effect_completed", "side_effects_incomplete"]
        summary = logs[-1]
        assert summary["attempted"] == 2
        assert summary["failed"] == ["first"]
        assert summary["order_id"] == "ord-001"

    def test_no_summary_when_everything_succeeds(self):
        with capture_logs() as logs:
            run_side_effects([SideEffect("only", lambda: None)])
        assert [entry["event"] for entry in logs] == ["side_effect_completed"]
