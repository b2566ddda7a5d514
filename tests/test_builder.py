"""Tests for the event builder: errors, messages, direct alert requests."""

from __future__ import annotations

import pytest

from conftest import make_config, raise_and_catch
from a11ops.breadcrumbs import BreadcrumbTrail
from a11ops.builder import EventBuilder, exception_info
from a11ops.errors import InvalidAlertError, InvalidSeverityError
from a11ops.fingerprint import group_id
from a11ops.scope import ContextStore
from a11ops.severity import Severity


class PaymentError(Exception):
    pass


def _fail_checkout() -> None:
    raise PaymentError("card declined")


def _builder(**overrides) -> tuple[EventBuilder, ContextStore, BreadcrumbTrail]:
    config = make_config(**overrides)
    scope = ContextStore()
    trail = BreadcrumbTrail(config.max_breadcrumbs)
    return EventBuilder(config, scope, trail), scope, trail


def _caught_payment_error() -> PaymentError:
    try:
        _fail_checkout()
    except PaymentError as exc:
        return exc
    raise AssertionError("unreachable")


class TestExceptionInfo:
    def test_frames_end_at_raise_site(self):
        info = exception_info(_caught_payment_error())
        assert info.kind == "PaymentError"
        assert info.value == "card declined"
        assert info.frames[-1].function == "_fail_checkout"
        assert info.top_location.endswith(f":_fail_checkout:{info.frames[-1].lineno}")

    def test_unraised_exception_has_no_frames(self):
        info = exception_info(ValueError("never raised"))
        assert info.frames == ()
        assert info.top_location is None


class TestBuildFromError:
    def test_capture_error_scenario(self):
        builder, scope, trail = _builder()
        scope.set_user({"id": "user-123"})
        trail.add(message="A")
        trail.add(message="B")

        event = builder.build_from_error(_caught_payment_error())
        trail.add(message="C")

        assert event.severity is Severity.ERROR
        assert event.category == "error"
        assert event.title == "PaymentError"
        assert event.message == "card declined"
        assert event.user == {"id": "user-123"}
        assert event.fingerprint == ("PaymentError", event.exception.top_location)
        assert event.group_id == group_id(event.fingerprint)
        assert [b.message for b in event.breadcrumbs] == ["A", "B"]

    def test_same_site_groups_together(self):
        builder, _, _ = _builder()
        a = builder.build_from_error(_caught_payment_error())
        b = builder.build_from_error(_caught_payment_error())
        assert a.event_id != b.event_id
        assert a.group_id == b.group_id

    def test_different_kind_groups_apart(self):
        builder, _, _ = _builder()
        a = builder.build_from_error(raise_and_catch(KeyError("x")))
        b = builder.build_from_error(raise_and_catch(IndexError("x")))
        assert a.group_id != b.group_id

    def test_fingerprint_override(self):
        builder, _, _ = _builder()
        event = builder.build_from_error(
            _caught_payment_error(), fingerprint=["checkout", "payment-failed"]
        )
        assert event.fingerprint == ("checkout", "payment-failed")

    def test_level_and_extra(self):
        builder, _, _ = _builder()
        extra = {"order": {"id": "ORD-1"}}
        event = builder.build_from_error(_caught_payment_error(), level="critical", extra=extra)
        extra["order"]["id"] = "mutated"
        assert event.severity is Severity.CRITICAL
        assert event.extra == {"order": {"id": "ORD-1"}}

    def test_empty_message_falls_back_to_kind(self):
        builder, _, _ = _builder()
        event = builder.build_from_error(raise_and_catch(RuntimeError()))
        assert event.message == "RuntimeError"

    def test_invalid_level_rejected(self):
        builder, _, _ = _builder()
        with pytest.raises(InvalidSeverityError):
            builder.build_from_error(_caught_payment_error(), level="urgent")

    def test_identity_from_config(self):
        builder, _, _ = _builder()
        event = builder.build_from_error(_caught_payment_error())
        assert event.environment == "test"
        assert event.release == "1.0.0"
        assert event.server_name == "test-host"


class TestBuildFromMessage:
    def test_message_defaults(self):
        builder, _, trail = _builder()
        trail.add(message="step")
        event = builder.build_from_message("Disk almost full")
        assert event.severity is Severity.INFO
        assert event.title == event.message == "Disk almost full"
        assert event.category == "message"
        assert event.fingerprint == ("Disk almost full", "message")
        assert len(event.breadcrumbs) == 1

    def test_context_snapshot_is_isolated(self):
        builder, scope, _ = _builder()
        scope.set_context("session", {"id": "sess_1"})
        event = builder.build_from_message("hello", "warning")
        scope.set_context("session", {"id": "sess_2"})
        assert event.contexts == {"session": {"id": "sess_1"}}
        assert event.severity is Severity.WARNING


class TestBuildFromAlertRequest:
    def test_alert_fields(self):
        builder, _, trail = _builder()
        trail.add(message="ignored for alerts")
        event = builder.build_from_alert_request({
            "title": "Checkout failed",
            "message": "Order ORD-1 failed",
            "priority": "critical",
            "metadata": {"region": "eu"},
            "orderId": "ORD-1",
        })
        assert event.severity is Severity.CRITICAL
        assert event.category == "alert"
        assert event.message == "Order ORD-1 failed"
        assert event.extra == {"region": "eu", "orderId": "ORD-1"}
        assert event.breadcrumbs == ()

    def test_severity_key_accepted(self):
        builder, _, _ = _builder()
        event = builder.build_from_alert_request({"title": "t", "severity": "warning"})
        assert event.severity is Severity.WARNING

    def test_default_severity_and_message(self):
        builder, _, _ = _builder()
        event = builder.build_from_alert_request({"title": "t"})
        assert event.severity is Severity.INFO
        assert event.message == ""

    def test_breadcrumbs_attached_when_configured(self):
        builder, _, trail = _builder(attach_breadcrumbs_to_alerts=True)
        trail.add(message="step")
        event = builder.build_from_alert_request({"title": "t"})
        assert [b.message for b in event.breadcrumbs] == ["step"]

    @pytest.mark.parametrize("request_", [{}, {"title": ""}, {"title": "   "}, {"title": 42}])
    def test_missing_title_rejected(self, request_):
        builder, _, _ = _builder()
        with pytest.raises(InvalidAlertError):
            builder.build_from_alert_request(request_)

    def test_non_mapping_request_rejected(self):
        builder, _, _ = _builder()
        with pytest.raises(InvalidAlertError):
            builder.build_from_alert_request("just a title")  # type: ignore[arg-type]

    def test_non_mapping_metadata_rejected(self):
        builder, _, _ = _builder()
        with pytest.raises(InvalidAlertError):
            builder.build_from_alert_request({"title": "t", "metadata": ["x"]})

    def test_invalid_priority_rejected(self):
        builder, _, _ = _builder()
        with pytest.raises(InvalidSeverityError):
            builder.build_from_alert_request({"title": "t", "priority": "urgent"})

    def test_alert_errors_are_value_errors(self):
        builder, _, _ = _builder()
        with pytest.raises(ValueError):
            builder.build_from_alert_request({})
