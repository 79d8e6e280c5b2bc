"""Namespace utilities for K8s-native integration tests.

Each test gets its own namespace to prevent interference between parallel
test runs. This module creates those namespaces, waits for them to become
usable and deletes them again with a bounded wait.

Functions:
    normalize_namespace_prefix: Turn a free-form base name into a valid prefix
    validate_namespace: Check if a namespace name is valid for K8s
    create_testing_namespace: Create a namespace with a server-generated name
    delete_namespace: Delete a namespace and wait until it is gone
    wait_for_default_service_account: Wait for the "default" service account

Example:
    from e2e_framework.fixtures.namespaces import create_testing_namespace

    ns = create_testing_namespace("webhook_test", client_set, {"team": "e2e"})
    # ns.name: "webhook-test-x7k2p"
"""

from __future__ import annotations

import re
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any

import structlog
from kubernetes import client
from kubernetes.client.exceptions import ApiException

from e2e_framework.errors import (
    ErrorKind,
    NamespaceCreationError,
    NamespaceDeletionError,
)
from e2e_framework.fixtures.polling import (
    PollingConfig,
    PollingTimeoutError,
    wait_for_condition,
)

if TYPE_CHECKING:
    from e2e_framework.fixtures.kube import ClientSet

logger = structlog.get_logger(__name__)

# K8s namespace constraints
MAX_NAMESPACE_LENGTH = 63
NAMESPACE_PATTERN = re.compile(r"^[a-z0-9]([-a-z0-9]*[a-z0-9])?$")

# Length of the random suffix the API server appends to generateName
GENERATED_SUFFIX_LENGTH = 5

DEFAULT_SERVICE_ACCOUNT_NAME = "default"
DEFAULT_NAMESPACE_DELETION_TIMEOUT = 300.0
SERVICE_ACCOUNT_PROVISION_TIMEOUT = 120.0
NAMESPACE_CREATION_TIMEOUT = 30.0

# Per-attempt label used to find a namespace whose create call failed ambiguously
CREATION_ID_LABEL = "e2e-framework/creation-id"


class InvalidNamespaceError(ValueError):
    """Raised when a namespace name is invalid for Kubernetes."""

    def __init__(self, namespace: str, reason: str) -> None:
        self.namespace = namespace
        self.reason = reason
        super().__init__(f"Invalid namespace '{namespace}': {reason}")


@dataclass(frozen=True)
class NamespaceRecord:
    """A namespace created for a test.

    Attributes:
        name: Server-assigned namespace name.
        labels: Labels the namespace was created with.
        created_at: Creation timestamp reported by the API server.
    """

    name: str
    labels: dict[str, str] = field(default_factory=dict)
    created_at: datetime | None = None

    @classmethod
    def from_v1(cls, namespace: Any) -> NamespaceRecord:
        """Build a record from a V1Namespace returned by the API."""
        metadata = namespace.metadata
        return cls(
            name=metadata.name,
            labels=dict(metadata.labels or {}),
            created_at=metadata.creation_timestamp,
        )


def normalize_namespace_prefix(prefix: str, max_length: int = MAX_NAMESPACE_LENGTH) -> str:
    """Normalize a free-form base name into a namespace name prefix.

    The result follows Kubernetes naming conventions:
    - Lowercase alphanumeric characters and hyphens only
    - Must start and end with alphanumeric character
    - At most ``max_length`` characters

    Args:
        prefix: Base name (e.g., "webhook_test"). Underscores become hyphens.
        max_length: Maximum length of the returned prefix.

    Returns:
        Normalized prefix, "e2e" if nothing usable remains.

    Example:
        >>> normalize_namespace_prefix("Webhook_Test")
        'webhook-test'
    """
    # Normalize prefix: lowercase, replace underscores with hyphens
    normalized_prefix = prefix.lower().replace("_", "-")

    # Remove any invalid characters (keep only alphanumeric and hyphens)
    normalized_prefix = re.sub(r"[^a-z0-9-]", "", normalized_prefix)

    # Ensure it doesn't start or end with hyphen
    normalized_prefix = normalized_prefix.strip("-")

    if len(normalized_prefix) > max_length:
        normalized_prefix = normalized_prefix[:max_length].rstrip("-")

    return normalized_prefix or "e2e"


def validate_namespace(namespace: str) -> bool:
    """Check if a namespace name is valid for Kubernetes.

    Validates that the namespace follows K8s naming rules:
    - Contains only lowercase alphanumeric characters and hyphens
    - Starts and ends with alphanumeric character
    - Maximum 63 characters

    Args:
        namespace: The namespace name to validate.

    Returns:
        True if valid, False otherwise.

    Example:
        >>> validate_namespace("webhook-test-x7k2p")
        True
        >>> validate_namespace("Test_Namespace")  # Invalid: uppercase, underscore
        False
    """
    if not namespace:
        return False

    if len(namespace) > MAX_NAMESPACE_LENGTH:
        return False

    return bool(NAMESPACE_PATTERN.match(namespace))


def create_testing_namespace(
    base_name: str,
    client_set: ClientSet,
    labels: dict[str, str] | None = None,
    *,
    timeout: float = NAMESPACE_CREATION_TIMEOUT,
    interval: float = 2.0,
) -> NamespaceRecord:
    """Create a namespace for a test and wait for it to become Active.

    The name is generated by the API server from the normalized base name.
    Creation is retried until ``timeout`` because API servers in freshly
    bootstrapped clusters commonly reject the first requests.

    Every attempt labels its namespace with a fresh creation id. When an
    attempt fails without a definite rejection (a 5xx, a timeout, a dropped
    connection) the namespace may exist anyway, so it is looked up by that id
    and adopted instead of creating a second one.

    Args:
        base_name: Human readable base name.
        client_set: Clients to use.
        labels: Labels to put on the namespace.
        timeout: Bound for the create retries and, separately, for the
            activation wait.
        interval: Poll interval in seconds.

    Returns:
        The created namespace.

    Raises:
        NamespaceCreationError: If the namespace cannot be created, if it is
            unknown whether a failed attempt created one, or if it was created
            but never became Active. In the last case the error carries the
            namespace so that it is still cleaned up.
    """
    prefix = normalize_namespace_prefix(
        base_name, MAX_NAMESPACE_LENGTH - GENERATED_SUFFIX_LENGTH - 1
    )
    created: list[NamespaceRecord] = []
    failures: list[Exception] = []

    def try_create() -> bool:
        creation_id = uuid.uuid4().hex
        body = client.V1Namespace(
            metadata=client.V1ObjectMeta(
                generate_name=f"{prefix}-",
                labels={**(labels or {}), CREATION_ID_LABEL: creation_id},
            ),
        )
        try:
            response = client_set.core_v1.create_namespace(body)
        except Exception as e:
            failures.append(e)
            if isinstance(e, ApiException) and _is_rejection(e):
                logger.debug("namespace.create_rejected", base_name=base_name, status=e.status)
                return False
            response = _find_by_creation_id(client_set, base_name, creation_id, e)
            if response is None:
                return False
        created.append(NamespaceRecord.from_v1(response))
        return True

    try:
        wait_for_condition(
            try_create,
            PollingConfig(
                timeout=timeout,
                interval=interval,
                description=f"namespace creation for {base_name}",
            ),
            retry_on=(),
        )
    except PollingTimeoutError as e:
        reason = str(e)
        if failures:
            reason += f" (last error: {failures[-1]})"
        raise NamespaceCreationError(base_name, reason) from e

    record = created[-1]
    logger.info("namespace.created", namespace=record.name, base_name=base_name)

    if not validate_namespace(record.name):
        cause = InvalidNamespaceError(record.name, "server returned an invalid name")
        raise NamespaceCreationError(base_name, str(cause), namespace=record) from cause

    def is_active() -> bool:
        namespace = client_set.core_v1.read_namespace(record.name)
        return bool(namespace.status and namespace.status.phase == "Active")

    try:
        wait_for_condition(
            is_active,
            PollingConfig(
                timeout=timeout,
                interval=interval,
                description=f"namespace {record.name} to become Active",
            ),
        )
    except PollingTimeoutError as e:
        raise NamespaceCreationError(base_name, str(e), namespace=record) from e

    return record


def delete_namespace(
    client_set: ClientSet,
    name: str,
    timeout: float = DEFAULT_NAMESPACE_DELETION_TIMEOUT,
    *,
    interval: float = 2.0,
) -> None:
    """Delete a namespace and wait until the API server no longer returns it.

    Args:
        client_set: Clients to use.
        name: Namespace name.
        timeout: Maximum time to wait for the namespace to disappear.
        interval: Poll interval in seconds.

    Raises:
        NamespaceDeletionError: With kind NOT_FOUND if the namespace did not
            exist, TIMEOUT if it was still present after ``timeout`` seconds,
            and FORBIDDEN or OTHER for API failures of the delete call.
    """
    try:
        client_set.core_v1.delete_namespace(name)
    except ApiException as e:
        raise NamespaceDeletionError(name, ErrorKind.from_api_exception(e), _api_reason(e)) from e

    def is_gone() -> bool:
        try:
            client_set.core_v1.read_namespace(name)
        except ApiException as e:
            if e.status == 404:
                return True
            raise
        return False

    try:
        wait_for_condition(
            is_gone,
            PollingConfig(
                timeout=timeout,
                interval=interval,
                description=f"namespace {name} deletion",
            ),
        )
    except PollingTimeoutError as e:
        reason = f"namespace still present after {timeout:.1f}s"
        remaining = _remaining_resources(client_set, name)
        if remaining:
            counts = ", ".join(f"{kind}={count}" for kind, count in sorted(remaining.items()))
            reason += f"; remaining resources: {counts}"
        raise NamespaceDeletionError(name, ErrorKind.TIMEOUT, reason) from e

    logger.debug("namespace.deleted", namespace=name)


def wait_for_default_service_account(
    client_set: ClientSet,
    namespace: str,
    *,
    timeout: float = SERVICE_ACCOUNT_PROVISION_TIMEOUT,
    interval: float = 2.0,
) -> None:
    """Wait until the "default" service account exists in ``namespace``.

    Raises:
        PollingTimeoutError: If the service account does not appear in time.
    """

    def exists() -> bool:
        client_set.core_v1.read_namespaced_service_account(DEFAULT_SERVICE_ACCOUNT_NAME, namespace)
        return True

    wait_for_condition(
        exists,
        PollingConfig(
            timeout=timeout,
            interval=interval,
            description=f"service account {DEFAULT_SERVICE_ACCOUNT_NAME} in {namespace}",
        ),
    )


def _is_rejection(exc: ApiException) -> bool:
    # 4xx other than 408 means the request was refused, nothing was created.
    return exc.status is not None and 400 <= exc.status < 500 and exc.status != 408


def _find_by_creation_id(
    client_set: ClientSet,
    base_name: str,
    creation_id: str,
    cause: Exception,
) -> Any:
    try:
        found = client_set.core_v1.list_namespace(
            label_selector=f"{CREATION_ID_LABEL}={creation_id}"
        )
    except Exception as e:
        raise NamespaceCreationError(
            base_name,
            f"create failed ({cause}) and looking up a namespace it may have created "
            f"also failed: {e}",
        ) from e
    if not found.items:
        return None
    namespace = found.items[0]
    logger.warning(
        "namespace.create_adopted",
        namespace=namespace.metadata.name,
        base_name=base_name,
        error=str(cause),
    )
    return namespace


def _api_reason(exc: ApiException) -> str:
    if exc.status is None:
        return str(exc)
    return f"{exc.status} {exc.reason}"


def _remaining_resources(client_set: ClientSet, namespace: str) -> dict[str, int]:
    """Count listable namespaced resources still present in ``namespace``.

    Best effort: discovery or list failures yield fewer counts, never errors.
    """
    counts: dict[str, int] = {}
    try:
        resources = client_set.dynamic.resources.search(namespaced=True)
    except Exception as e:  # noqa: BLE001
        logger.warning("namespace.discovery_failed", namespace=namespace, error=str(e))
        return counts

    for resource in resources:
        if "/" in resource.name or "list" not in (getattr(resource, "verbs", None) or []):
            continue
        try:
            items = client_set.dynamic.get(resource, namespace=namespace).items
        except ApiException:
            continue
        if items:
            counts[resource.kind] = len(items)
    return counts


# Module exports
__all__ = [
    "DEFAULT_NAMESPACE_DELETION_TIMEOUT",
    "InvalidNamespaceError",
    "MAX_NAMESPACE_LENGTH",
    "NamespaceRecord",
    "create_testing_namespace",
    "delete_namespace",
    "normalize_namespace_prefix",
    "validate_namespace",
    "wait_for_default_service_account",
]
