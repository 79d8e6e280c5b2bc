"""Cluster helpers used by the framework and by tests directly.

Utilities:
    wait_for_condition: Poll until condition is true or timeout
    load_config / new_client_set: Build a rate limited ClientSet
    create_testing_namespace / delete_namespace: Namespace lifecycle
    wait_for_default_service_account: Wait for service account provisioning
    wait_for_pod_running: Wait for a pod to reach phase Running
    dump_namespace_info: Log events and pod states of a namespace

Example:
    from e2e_framework.fixtures import PollingConfig, wait_for_condition

    wait_for_condition(
        lambda: webhook_ready(client_set),
        PollingConfig(timeout=60.0, description="webhook readiness"),
    )
"""

from __future__ import annotations

from e2e_framework.fixtures.diagnostics import dump_namespace_info
from e2e_framework.fixtures.kube import (
    ClientSet,
    RateLimitedApiClient,
    TokenBucketRateLimiter,
    load_config,
    new_client_set,
)
from e2e_framework.fixtures.namespaces import (
    DEFAULT_NAMESPACE_DELETION_TIMEOUT,
    InvalidNamespaceError,
    NamespaceRecord,
    create_testing_namespace,
    delete_namespace,
    normalize_namespace_prefix,
    validate_namespace,
    wait_for_default_service_account,
)
from e2e_framework.fixtures.pods import wait_for_pod_running
from e2e_framework.fixtures.polling import (
    PollingConfig,
    PollingTimeoutError,
    wait_for_condition,
)

__all__ = [
    # Polling utilities
    "PollingConfig",
    "PollingTimeoutError",
    "wait_for_condition",
    # Clients
    "ClientSet",
    "RateLimitedApiClient",
    "TokenBucketRateLimiter",
    "load_config",
    "new_client_set",
    # Namespace utilities
    "DEFAULT_NAMESPACE_DELETION_TIMEOUT",
    "InvalidNamespaceError",
    "NamespaceRecord",
    "create_testing_namespace",
    "delete_namespace",
    "normalize_namespace_prefix",
    "validate_namespace",
    "wait_for_default_service_account",
    # Pods and diagnostics
    "dump_namespace_info",
    "wait_for_pod_running",
]
