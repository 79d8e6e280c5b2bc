"""Framework lifecycle and cleanup orchestration.

Classes:
    Framework: Per-test clients, namespaces and guaranteed teardown
    CleanupRegistry: Process-wide ledger of pending cleanup actions
    SuiteConfig: Run-wide switches (namespace deletion, diagnostics)
    FrameworkOptions: Per-framework client options
    ProviderHooks: Provider callbacks around before_each/after_each
    ClusterOperations: Cluster calls the framework depends on

Example:
    from e2e_framework.framework import CleanupRegistry, new_default_framework

    registry = CleanupRegistry()
    f = new_default_framework("webhook-test", registry=registry)
"""

from __future__ import annotations

from e2e_framework.framework.cleanup import (
    CleanupFailure,
    CleanupHandle,
    CleanupRegistry,
)
from e2e_framework.framework.cluster import ClusterOperations
from e2e_framework.framework.context import FrameworkOptions, SuiteConfig
from e2e_framework.framework.framework import (
    FRAMEWORK_LABEL,
    DeletionSkipReason,
    Framework,
    TeardownReport,
    framework_extensions,
    new_default_framework,
    new_framework,
)
from e2e_framework.framework.providers import NullProvider, ProviderHooks

__all__ = [
    "CleanupFailure",
    "CleanupHandle",
    "CleanupRegistry",
    "ClusterOperations",
    "DeletionSkipReason",
    "FRAMEWORK_LABEL",
    "Framework",
    "FrameworkOptions",
    "NullProvider",
    "ProviderHooks",
    "SuiteConfig",
    "TeardownReport",
    "framework_extensions",
    "new_default_framework",
    "new_framework",
]
