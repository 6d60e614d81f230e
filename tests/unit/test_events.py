"""Tests for Kubernetes event utilities."""

from __future__ import annotations

from unittest.mock import patch

from incluster_provider.utils.events import (
    EventRecorder,
    emit_event,
    emit_external_created,
    emit_external_deleted,
    emit_publish_failed,
    emit_reconcile_failed,
)

BODY = {
    "apiVersion": "incluster.cloud37.dev/v1alpha1",
    "kind": "Postgres",
    "metadata": {"name": "db", "namespace": "apps", "uid": "uid-db"},
}


class TestEmitEvent:
    """Test cases for emit_event function."""

    @patch("incluster_provider.utils.events.kopf.event")
    def test_emit_event_normal(self, mock_event):
        """Test emitting normal event."""
        emit_event(BODY, "TestReason", "Test message")

        mock_event.assert_called_once_with(
            BODY,
            reason="TestReason",
            message="Test message",
            type="Normal",
        )

    @patch("incluster_provider.utils.events.kopf.event")
    def test_emit_reconcile_failed_is_warning(self, mock_event):
        """Test reconcile failures are posted as warnings."""
        emit_reconcile_failed(BODY, "observe failed: boom")

        mock_event.assert_called_once_with(
            BODY,
            reason="ReconcileFailed",
            message="observe failed: boom",
            type="Warning",
        )

    @patch("incluster_provider.utils.events.kopf.event")
    def test_emit_external_created_and_deleted(self, mock_event):
        """Test lifecycle events use their reasons."""
        emit_external_created(BODY)
        emit_external_deleted(BODY)

        reasons = [c.kwargs["reason"] for c in mock_event.call_args_list]
        assert reasons == ["CreatedExternalResource", "DeletedExternalResource"]

    @patch("incluster_provider.utils.events.kopf.event")
    def test_emit_publish_failed(self, mock_event):
        emit_publish_failed(BODY, "cannot publish")
        assert mock_event.call_args.kwargs["type"] == "Warning"
        assert mock_event.call_args.kwargs["reason"] == "CannotPublishConnectionDetails"


class TestEventRecorder:
    """Test cases for the best-effort EventRecorder."""

    @patch("incluster_provider.utils.events.kopf.event")
    def test_posts_events(self, mock_event):
        recorder = EventRecorder()
        recorder.external_created(BODY)
        mock_event.assert_called_once()

    @patch("incluster_provider.utils.events.kopf.event", side_effect=LookupError("no event queue"))
    def test_post_failure_does_not_raise(self, mock_event):
        """Test a failing post is logged, not raised."""
        recorder = EventRecorder()
        recorder.reconcile_failed(BODY, "boom")
        recorder.publish_failed(BODY, "boom")
        assert mock_event.call_count == 2
