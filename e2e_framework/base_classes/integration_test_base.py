"""Integration test base class for namespace-isolated cluster tests.

Tests inheriting from IntegrationTestBase get a Framework whose
before_each runs ahead of every test method and whose after_each runs after
it with the test's real outcome:

- Clients built from the suite kubeconfig
- A fresh namespace per test, labelled with the base name
- Teardown of every namespace the test created, even when setup fails

Example:
    from e2e_framework.base_classes import IntegrationTestBase

    class TestWebhook(IntegrationTestBase):
        base_name = "webhook-test"

        def test_admission(self) -> None:
            deploy_webhook(self.client_set, self.namespace)
            self.framework.wait_for_pod_running("webhook")
"""

from __future__ import annotations

from collections.abc import Callable, Iterator
from typing import TYPE_CHECKING, ClassVar

import pytest

from e2e_framework.errors import FrameworkError
from e2e_framework.framework.framework import Framework, new_framework
from e2e_framework.pytest_plugin import framework_lifecycle

if TYPE_CHECKING:
    from e2e_framework.fixtures.kube import ClientSet
    from e2e_framework.fixtures.namespaces import NamespaceRecord
    from e2e_framework.framework.cleanup import CleanupRegistry
    from e2e_framework.framework.cluster import ClusterOperations
    from e2e_framework.framework.context import FrameworkOptions, SuiteConfig
    from e2e_framework.framework.providers import ProviderHooks


class IntegrationTestBase:
    """Base class for tests that need their own namespace.

    Class Attributes:
        base_name: Prefix for the namespaces created for each test.
        framework_options: Client QPS/burst. Defaults to FrameworkOptions().
        skip_namespace_creation: Build clients only, no namespace.
        skip_service_account_wait: Do not wait for the default service
            account of the new namespace.
        namespace_deletion_timeout: Seconds to wait for each namespace
            deletion. None means the framework default.

    Note:
        Requires the e2e_framework.pytest_plugin fixtures. Unit tests
        should NOT inherit from this class.
    """

    # Class attributes - override in subclasses
    base_name: ClassVar[str] = "e2e"
    framework_options: ClassVar[FrameworkOptions | None] = None
    skip_namespace_creation: ClassVar[bool] = False
    skip_service_account_wait: ClassVar[bool] = False
    namespace_deletion_timeout: ClassVar[float | None] = None

    framework: Framework

    @pytest.fixture(autouse=True)
    def _framework_lifecycle(
        self,
        request: pytest.FixtureRequest,
        cleanup_registry: CleanupRegistry,
        suite_config: SuiteConfig,
        cluster_operations: ClusterOperations,
        provider_hooks: ProviderHooks,
    ) -> Iterator[None]:
        self.framework = new_framework(
            self.base_name,
            self.framework_options,
            registry=cleanup_registry,
            suite_config=suite_config,
            cluster=cluster_operations,
            provider=provider_hooks,
            skip_namespace_creation=self.skip_namespace_creation,
            skip_service_account_wait=self.skip_service_account_wait,
            namespace_deletion_timeout=self.namespace_deletion_timeout,
        )
        with framework_lifecycle(self.framework, request.node):
            yield

    @property
    def namespace(self) -> str:
        """Name of the namespace created for the running test.

        Raises:
            FrameworkError: If namespace creation was skipped.
        """
        if self.framework.namespace is None:
            raise FrameworkError(f"{type(self).__name__} has no test namespace")
        return self.framework.namespace.name

    @property
    def client_set(self) -> ClientSet:
        if self.framework.client_set is None:
            raise FrameworkError(f"{type(self).__name__} has no client set")
        return self.framework.client_set

    def create_namespace(
        self,
        base_name: str | None = None,
        labels: dict[str, str] | None = None,
    ) -> NamespaceRecord:
        """Create an extra namespace, deleted with the test's own.

        Args:
            base_name: Name prefix. Defaults to the class base_name.
            labels: Labels for the namespace.

        Returns:
            The created namespace.
        """
        return self.framework.create_namespace(base_name or self.base_name, labels)

    def defer(self, action: Callable[[], object]) -> None:
        """Run ``action`` in after_each, before namespaces are deleted."""
        self.framework.after_each_actions.append(action)


__all__ = ["IntegrationTestBase"]
