"""Unit tests for the framework exception hierarchy."""

from __future__ import annotations

import pytest
from kubernetes.client.exceptions import ApiException

from e2e_framework.errors import (
    ErrorKind,
    FrameworkError,
    FrameworkSetupError,
    NamespaceCleanupError,
    NamespaceCreationError,
    NamespaceDeletionError,
    PodNotRunningError,
)


class TestErrorKind:
    """Tests for ErrorKind.from_api_exception()."""

    @pytest.mark.parametrize(
        ("status", "kind"),
        [
            (404, ErrorKind.NOT_FOUND),
            (403, ErrorKind.FORBIDDEN),
            (408, ErrorKind.TIMEOUT),
            (504, ErrorKind.TIMEOUT),
            (409, ErrorKind.OTHER),
            (None, ErrorKind.OTHER),
        ],
    )
    def test_status_mapping(self, status: int | None, kind: ErrorKind) -> None:
        """Test HTTP statuses map onto error kinds."""
        assert ErrorKind.from_api_exception(ApiException(status=status)) is kind


class TestExceptionHierarchy:
    """Tests for exception types and messages."""

    @pytest.mark.parametrize(
        "error",
        [
            FrameworkSetupError("webhook-test", "client", "no kubeconfig"),
            NamespaceCreationError("webhook-test", "quota exceeded"),
            NamespaceDeletionError("e2e-ab12", ErrorKind.OTHER, "boom"),
            NamespaceCleanupError({}),
            PodNotRunningError("webhook", "e2e-ab12", "Failed"),
        ],
    )
    def test_all_inherit_from_framework_error(self, error: Exception) -> None:
        """Test every framework exception can be caught as FrameworkError."""
        assert isinstance(error, FrameworkError)

    def test_setup_error_message(self) -> None:
        """Test the setup error names the framework and stage."""
        error = FrameworkSetupError("webhook-test", "namespace", "quota exceeded")
        assert str(error) == (
            "Framework 'webhook-test' setup failed during namespace: quota exceeded"
        )

    def test_deletion_error_not_found(self) -> None:
        """Test is_not_found reflects the kind."""
        assert NamespaceDeletionError("a", ErrorKind.NOT_FOUND, "gone").is_not_found
        assert not NamespaceDeletionError("a", ErrorKind.TIMEOUT, "slow").is_not_found

    def test_cleanup_error_aggregates_messages(self) -> None:
        """Test every failed namespace appears in the aggregated message."""
        error = NamespaceCleanupError(
            {
                "webhook-test-ab12": NamespaceDeletionError(
                    "webhook-test-ab12", ErrorKind.TIMEOUT, "still present"
                ),
                "webhook-test-cd34": RuntimeError("connection reset"),
            }
        )

        message = str(error)
        assert message.startswith("Couldn't delete ns: 'webhook-test-ab12': ")
        assert ", Couldn't delete ns: 'webhook-test-cd34': connection reset" in message
        assert "RuntimeError('connection reset')" in message
        assert list(error.errors) == ["webhook-test-ab12", "webhook-test-cd34"]
