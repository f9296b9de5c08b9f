"""Tests for error mapping and notifications."""

import asyncio

from genius_writer.core.errors import (
    Affordance,
    AuthenticationError,
    BackendError,
    ErrorKind,
    GenerationCancelled,
    NetworkError,
    QuotaExceededError,
    RateLimitedError,
    StorageError,
    notification_for,
)
from genius_writer.services.generation_backend import error_from_response
from genius_writer.services.notifications import NotificationCenter


class TestNotificationFor:
    def test_cancellation_is_silent(self):
        assert notification_for(GenerationCancelled()) is None
        assert notification_for(asyncio.CancelledError()) is None

    def test_quota_offers_upgrade(self):
        notification = notification_for(QuotaExceededError("limit 10 reached"))
        assert notification.kind == ErrorKind.QUOTA
        assert notification.affordance == Affordance.UPGRADE

    def test_auth_offers_sign_in(self):
        assert notification_for(AuthenticationError("401")).affordance == Affordance.SIGN_IN

    def test_network_offers_retry(self):
        notification = notification_for(NetworkError("reset"))
        assert notification.kind == ErrorKind.NETWORK
        assert notification.affordance == Affordance.RETRY

    def test_unknown_exception_is_generic_backend_error(self):
        notification = notification_for(ValueError("internal detail"))
        assert notification.kind == ErrorKind.BACKEND
        assert "internal detail" not in notification.message

    def test_storage(self):
        assert notification_for(StorageError("quota")).kind == ErrorKind.STORAGE


class TestErrorFromResponse:
    def test_quota_body(self):
        error = error_from_response(
            429,
            {"detail": {"error": "quota", "limit": 10, "currentUsage": 10, "plan": "free"}},
        )
        assert type(error) is QuotaExceededError
        assert (error.limit, error.current, error.plan) == (10, 10, "free")
        assert error.status_code == 429

    def test_rate_limited_body(self):
        error = error_from_response(429, {"detail": {"error": "rate_limited", "message": "slow down"}})
        assert isinstance(error, RateLimitedError)
        assert error.affordance == Affordance.RETRY

    def test_auth(self):
        assert isinstance(error_from_response(401, {"detail": "nope"}), AuthenticationError)
        assert isinstance(error_from_response(403, "forbidden"), AuthenticationError)

    def test_body_stays_out_of_user_message(self):
        error = error_from_response(500, "Traceback: secret internals")
        assert isinstance(error, BackendError)
        assert "secret internals" in str(error)
        assert "secret internals" not in error.user_message


class TestNotificationCenter:
    def test_listeners_receive_notifications(self):
        center = NotificationCenter()
        received = []
        unsubscribe = center.subscribe(received.append)

        center.success("Saved to documents")
        unsubscribe()
        center.info("ignored by listener")

        assert [n.message for n in received] == ["Saved to documents"]
        assert [n.level for n in center.drain()] == ["success", "info"]
        assert center.pending == []

    def test_report_skips_cancellation(self):
        center = NotificationCenter()
        assert center.report(GenerationCancelled()) is None
        assert center.pending == []

        notification = center.report(NetworkError("reset"))
        assert center.pending == [notification]

    def test_pending_is_bounded(self):
        center = NotificationCenter(max_pending=2)
        for i in range(5):
            center.info(str(i))
        assert [n.message for n in center.pending] == ["3", "4"]
