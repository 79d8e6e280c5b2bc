"""Cluster operations a Framework depends on.

ClusterOperations bundles the calls that actually talk to a cluster so a
Framework can be driven against a fake in unit tests. The default
implementation delegates to the helpers in e2e_framework.fixtures.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from e2e_framework.fixtures import diagnostics, kube, namespaces, pods

if TYPE_CHECKING:
    from kubernetes.client import Configuration

    from e2e_framework.fixtures.kube import ClientSet
    from e2e_framework.fixtures.namespaces import NamespaceRecord
    from e2e_framework.framework.context import FrameworkOptions, SuiteConfig


class ClusterOperations:
    """Kubernetes-backed cluster operations.

    Args:
        suite_config: Supplies kubeconfig, context and wait timeouts.
    """

    def __init__(self, suite_config: SuiteConfig) -> None:
        self.suite_config = suite_config

    def load_config(self) -> Configuration:
        return kube.load_config(self.suite_config.kubeconfig, self.suite_config.kube_context)

    def new_client_set(
        self,
        configuration: Configuration,
        options: FrameworkOptions,
        component: str | None = None,
    ) -> ClientSet:
        return kube.new_client_set(
            configuration,
            qps=options.client_qps,
            burst=options.client_burst,
            component=component,
        )

    def create_testing_namespace(
        self,
        base_name: str,
        client_set: ClientSet,
        labels: dict[str, str],
    ) -> NamespaceRecord:
        return namespaces.create_testing_namespace(
            base_name,
            client_set,
            labels,
            timeout=self.suite_config.namespace_creation_timeout,
        )

    def delete_namespace(self, client_set: ClientSet, name: str, timeout: float) -> None:
        namespaces.delete_namespace(client_set, name, timeout)

    def wait_for_default_service_account(self, client_set: ClientSet, namespace: str) -> None:
        namespaces.wait_for_default_service_account(
            client_set, namespace, timeout=self.suite_config.service_account_timeout
        )

    def dump_namespace_info(self, client_set: ClientSet, namespace: str) -> None:
        diagnostics.dump_namespace_info(client_set, namespace)

    def wait_for_pod_running(
        self,
        client_set: ClientSet,
        pod_name: str,
        namespace: str,
        timeout: float,
    ) -> None:
        pods.wait_for_pod_running(client_set, pod_name, namespace, timeout)


__all__ = ["ClusterOperations"]
