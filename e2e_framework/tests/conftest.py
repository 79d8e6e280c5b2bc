"""Pytest configuration for e2e_framework's own tests.

Nothing here talks to a cluster: FakeClusterOperations stands in for every
cluster call and records them in order.
"""

from __future__ import annotations

import itertools
from collections.abc import Callable
from typing import Any
from unittest.mock import MagicMock

import pytest

from e2e_framework.fixtures.namespaces import NamespaceRecord, normalize_namespace_prefix
from e2e_framework.framework.cleanup import CleanupRegistry
from e2e_framework.framework.cluster import ClusterOperations
from e2e_framework.framework.context import SuiteConfig
from e2e_framework.framework.framework import Framework


class FakeClusterOperations(ClusterOperations):
    """ClusterOperations double recording calls and injecting failures.

    Attributes:
        calls: Every call as a tuple of operation name and arguments.
        client_set: Returned by new_client_set.
        load_config_error: Raised by load_config if set.
        create_error: Raised by create_testing_namespace if set.
        service_account_error: Raised by wait_for_default_service_account if set.
        dump_error: Raised by dump_namespace_info if set.
        delete_errors: Namespace name to the error its deletion raises.
    """

    def __init__(self, suite_config: SuiteConfig | None = None) -> None:
        super().__init__(suite_config or SuiteConfig())
        self.calls: list[tuple[Any, ...]] = []
        self.client_set = MagicMock(name="client_set")
        self.load_config_error: Exception | None = None
        self.create_error: Exception | None = None
        self.service_account_error: Exception | None = None
        self.dump_error: Exception | None = None
        self.delete_errors: dict[str, Exception] = {}
        self._suffixes = itertools.count(1)

    def call_names(self) -> list[str]:
        return [call[0] for call in self.calls]

    def deleted(self) -> list[str]:
        return [call[1] for call in self.calls if call[0] == "delete_namespace"]

    def load_config(self) -> Any:
        self.calls.append(("load_config",))
        if self.load_config_error is not None:
            raise self.load_config_error
        return MagicMock(name="configuration")

    def new_client_set(self, configuration: Any, options: Any, component: str | None = None) -> Any:
        self.calls.append(("new_client_set", options, component))
        return self.client_set

    def create_testing_namespace(
        self,
        base_name: str,
        client_set: Any,
        labels: dict[str, str],
    ) -> NamespaceRecord:
        self.calls.append(("create_namespace", base_name, labels))
        if self.create_error is not None:
            raise self.create_error
        name = f"{normalize_namespace_prefix(base_name)}-{next(self._suffixes):05d}"
        return NamespaceRecord(name=name, labels=dict(labels))

    def delete_namespace(self, client_set: Any, name: str, timeout: float) -> None:
        self.calls.append(("delete_namespace", name, timeout))
        if name in self.delete_errors:
            raise self.delete_errors[name]

    def wait_for_default_service_account(self, client_set: Any, namespace: str) -> None:
        self.calls.append(("wait_for_default_service_account", namespace))
        if self.service_account_error is not None:
            raise self.service_account_error

    def dump_namespace_info(self, client_set: Any, namespace: str) -> None:
        self.calls.append(("dump_namespace_info", namespace))
        if self.dump_error is not None:
            raise self.dump_error

    def wait_for_pod_running(
        self,
        client_set: Any,
        pod_name: str,
        namespace: str,
        timeout: float,
    ) -> None:
        self.calls.append(("wait_for_pod_running", pod_name, namespace, timeout))


@pytest.fixture
def fake_cluster() -> FakeClusterOperations:
    return FakeClusterOperations()


@pytest.fixture
def registry() -> CleanupRegistry:
    """Fresh registry, separate from the session one."""
    return CleanupRegistry()


@pytest.fixture
def suite_config() -> SuiteConfig:
    """Default configuration, independent of E2E_* variables set in the shell."""
    return SuiteConfig()


@pytest.fixture
def cluster_operations(fake_cluster: FakeClusterOperations) -> ClusterOperations:
    """Route the plugin's fixtures to the fake cluster."""
    return fake_cluster


@pytest.fixture
def make_framework(
    registry: CleanupRegistry,
    fake_cluster: FakeClusterOperations,
) -> Callable[..., Framework]:
    """Factory for frameworks wired to the fake cluster and fresh registry."""

    def _make(base_name: str = "webhook-test", **kwargs: Any) -> Framework:
        kwargs.setdefault("suite_config", SuiteConfig())
        kwargs.setdefault("cluster", fake_cluster)
        return Framework(base_name, registry=registry, **kwargs)

    return _make
