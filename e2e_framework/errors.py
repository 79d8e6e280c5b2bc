"""Exception hierarchy for the e2e framework.

All exceptions inherit from FrameworkError so callers can catch every
framework failure with a single except clause.

Exception Hierarchy:
    FrameworkError (base)
    ├── FrameworkSetupError      # Fatal before_each failure
    ├── NamespaceCreationError   # Test namespace could not be created
    ├── NamespaceDeletionError   # Single namespace deletion failed
    ├── NamespaceCleanupError    # Aggregated teardown deletion failures
    └── PodNotRunningError       # Pod reached a terminal phase

Example:
    >>> from e2e_framework.errors import ErrorKind, NamespaceDeletionError
    >>> raise NamespaceDeletionError("e2e-ab12", ErrorKind.TIMEOUT, "still terminating")
    Traceback (most recent call last):
        ...
    NamespaceDeletionError: Couldn't delete namespace 'e2e-ab12' (timeout): still terminating
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from kubernetes.client.exceptions import ApiException

    from e2e_framework.fixtures.namespaces import NamespaceRecord


class ErrorKind(str, Enum):
    """Classification of cluster API failures at the namespace boundary."""

    NOT_FOUND = "not_found"
    TIMEOUT = "timeout"
    FORBIDDEN = "forbidden"
    OTHER = "other"

    @classmethod
    def from_api_exception(cls, exc: ApiException) -> ErrorKind:
        """Map an ApiException HTTP status onto an ErrorKind.

        Args:
            exc: Exception raised by the Kubernetes client.

        Returns:
            The matching ErrorKind, OTHER for unrecognised statuses.
        """
        status = getattr(exc, "status", None)
        if status == 404:
            return cls.NOT_FOUND
        if status == 403:
            return cls.FORBIDDEN
        if status in (408, 504):
            return cls.TIMEOUT
        return cls.OTHER


class FrameworkError(Exception):
    """Base exception for all framework errors."""

    pass


class FrameworkSetupError(FrameworkError):
    """Raised when before_each cannot prepare the test.

    Attributes:
        base_name: Base name of the framework that failed.
        stage: Setup stage that failed (e.g. "client", "namespace").
    """

    def __init__(self, base_name: str, stage: str, reason: str) -> None:
        self.base_name = base_name
        self.stage = stage
        self.reason = reason
        super().__init__(f"Framework {base_name!r} setup failed during {stage}: {reason}")


class NamespaceCreationError(FrameworkError):
    """Raised when a test namespace cannot be created.

    A namespace that was created on the server but never became usable is
    carried in ``namespace`` so that it can still be cleaned up.

    Attributes:
        base_name: Requested namespace base name.
        reason: Why creation failed.
        namespace: Partially created namespace, if any.
    """

    def __init__(
        self,
        base_name: str,
        reason: str,
        namespace: NamespaceRecord | None = None,
    ) -> None:
        self.base_name = base_name
        self.reason = reason
        self.namespace = namespace
        super().__init__(f"Couldn't create namespace for {base_name!r}: {reason}")


class NamespaceDeletionError(FrameworkError):
    """Raised when a namespace cannot be deleted.

    Attributes:
        name: Namespace name.
        kind: Classified failure kind.
        reason: Human-readable failure detail.
    """

    def __init__(self, name: str, kind: ErrorKind, reason: str) -> None:
        self.name = name
        self.kind = kind
        self.reason = reason
        super().__init__(f"Couldn't delete namespace {name!r} ({kind.value}): {reason}")

    @property
    def is_not_found(self) -> bool:
        """Return True if the namespace was already gone."""
        return self.kind is ErrorKind.NOT_FOUND


class NamespaceCleanupError(FrameworkError):
    """Raised by after_each when one or more namespaces could not be deleted.

    Attributes:
        errors: Mapping of namespace name to the deletion error.
    """

    def __init__(self, errors: dict[str, Exception]) -> None:
        self.errors = dict(errors)
        messages = [
            f"Couldn't delete ns: {name!r}: {err} ({err!r})" for name, err in self.errors.items()
        ]
        super().__init__(", ".join(messages))


class PodNotRunningError(FrameworkError):
    """Raised when a pod reaches a terminal phase instead of Running."""

    def __init__(self, pod_name: str, namespace: str, phase: str) -> None:
        self.pod_name = pod_name
        self.namespace = namespace
        self.phase = phase
        super().__init__(f"Pod {namespace}/{pod_name} finished with phase {phase} before running")


__all__ = [
    "ErrorKind",
    "FrameworkError",
    "FrameworkSetupError",
    "NamespaceCleanupError",
    "NamespaceCreationError",
    "NamespaceDeletionError",
    "PodNotRunningError",
]
