"""Per-test framework: clients, an isolated namespace, guaranteed teardown.

A Framework is created once per test (or once per test class and reused for
every test in it). before_each builds the clients and a fresh namespace;
after_each deletes every namespace the test created, however the test ended.

The order of events for one test is:
    - before_each: register the abort teardown, build clients, provider hook,
      create the namespace and wait for its default service account
    - the test body
    - after_each: unregister the abort teardown, dump diagnostics if the test
      failed, run after_each_actions (first-in-first-out), provider hook,
      then delete namespaces and reset the instance

If the run is aborted between before_each and after_each, draining the
CleanupRegistry runs the same teardown.

Example:
    registry = CleanupRegistry()
    f = new_default_framework("webhook-test", registry=registry)
    f.before_each(test_path="tests/e2e/test_webhook.py::test_admission")
    try:
        deploy_webhook(f.client_set, f.namespace.name)
    finally:
        f.after_each(test_failed=False)
"""

from __future__ import annotations

import random
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

import structlog

from e2e_framework.errors import (
    FrameworkError,
    FrameworkSetupError,
    NamespaceCleanupError,
    NamespaceCreationError,
    NamespaceDeletionError,
)
from e2e_framework.fixtures.namespaces import (
    DEFAULT_NAMESPACE_DELETION_TIMEOUT,
    normalize_namespace_prefix,
)
from e2e_framework.fixtures.pods import POD_START_TIMEOUT
from e2e_framework.framework.cluster import ClusterOperations
from e2e_framework.framework.context import FrameworkOptions, SuiteConfig
from e2e_framework.framework.providers import NullProvider, ProviderHooks
from e2e_framework.framework.tracing import framework_span, get_tracer

if TYPE_CHECKING:
    from e2e_framework.fixtures.kube import ClientSet
    from e2e_framework.fixtures.namespaces import NamespaceRecord
    from e2e_framework.framework.cleanup import CleanupHandle, CleanupRegistry

    CreateNamespaceFn = Callable[[str, ClientSet, dict[str, str]], NamespaceRecord]

logger = structlog.get_logger(__name__)

# Label put on every namespace created by before_each
FRAMEWORK_LABEL = "e2e-framework"

# Called by new_framework on every framework it builds, in order. Extensions
# may change settings or append after_each_actions.
framework_extensions: list[Callable[[Framework], None]] = []


class DeletionSkipReason(str, Enum):
    """Why after_each did not delete the tracked namespaces."""

    DELETE_NAMESPACE_DISABLED = "delete_namespace is false"
    PRESERVED_ON_FAILURE = "delete_namespace_on_failure is false and the test failed"


@dataclass
class TeardownReport:
    """Outcome of the namespace deletion step of after_each.

    Attributes:
        attempted: Namespaces a deletion was attempted for, in order.
        deleted: Namespaces deleted within the timeout.
        already_gone: Namespaces that no longer existed.
        errors: Namespace name to deletion error for every other outcome.
        skipped: Set when deletion was not attempted at all.
    """

    attempted: list[str] = field(default_factory=list)
    deleted: list[str] = field(default_factory=list)
    already_gone: list[str] = field(default_factory=list)
    errors: dict[str, Exception] = field(default_factory=dict)
    skipped: DeletionSkipReason | None = None

    @property
    def deletion_skipped(self) -> bool:
        return self.skipped is not None


class Framework:
    """Keeps a client set and namespaces for one test and cleans them up.

    Args:
        base_name: Prefix for generated namespace names.
        options: Client options. Defaults to FrameworkOptions().
        client_set: Pre-built clients. Built in before_each if None.
        registry: Cleanup registry the abort teardown is registered with.
        suite_config: Run-wide switches. Defaults to SuiteConfig.from_env().
        cluster: Cluster operations. Defaults to ClusterOperations(suite_config).
        provider: Provider hooks. Defaults to NullProvider().
        create_testing_namespace: Namespace creation strategy. Defaults to
            ``cluster.create_testing_namespace``.
        skip_namespace_creation: Do not create a namespace in before_each.
        skip_service_account_wait: Do not wait for the default service account.
        namespace_deletion_timeout: Seconds to wait for each namespace
            deletion. Defaults to 300.
    """

    def __init__(
        self,
        base_name: str,
        options: FrameworkOptions | None = None,
        client_set: ClientSet | None = None,
        *,
        registry: CleanupRegistry,
        suite_config: SuiteConfig | None = None,
        cluster: ClusterOperations | None = None,
        provider: ProviderHooks | None = None,
        create_testing_namespace: CreateNamespaceFn | None = None,
        skip_namespace_creation: bool = False,
        skip_service_account_wait: bool = False,
        namespace_deletion_timeout: float | None = None,
    ) -> None:
        self._base_name = base_name
        self.options = options or FrameworkOptions()
        self.client_set = client_set
        self.registry = registry
        self.suite_config = suite_config or SuiteConfig.from_env()
        self.cluster = cluster or ClusterOperations(self.suite_config)
        self.provider = provider or NullProvider()
        self.create_testing_namespace = create_testing_namespace
        self.skip_namespace_creation = skip_namespace_creation
        self.skip_service_account_wait = skip_service_account_wait
        self.namespace_deletion_timeout = namespace_deletion_timeout

        self.unique_name: str | None = None
        self.namespace: NamespaceRecord | None = None
        self.namespaces_to_delete: list[NamespaceRecord] = []
        self.after_each_actions: list[Callable[[], object]] = []
        self.cleanup_handle: CleanupHandle | None = None
        self._owns_client_set = False
        self._log = logger.bind(base_name=base_name)

    @property
    def base_name(self) -> str:
        return self._base_name

    def __repr__(self) -> str:
        return f"Framework(base_name={self._base_name!r}, unique_name={self.unique_name!r})"

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def before_each(self, test_path: str | None = None) -> None:
        """Build clients and create the test namespace.

        Args:
            test_path: Descriptive path of the running test, appended to the
                client User-Agent.

        Raises:
            FrameworkSetupError: If the clients, the namespace or the default
                service account cannot be set up. Not retried.
        """
        # Registered first so an abort during setup still tears down.
        self.cleanup_handle = self.registry.add(self._abort_teardown)

        with framework_span(get_tracer(), "before_each", base_name=self.base_name):
            if self.client_set is None:
                self._log.info("before_each.creating_client", test_path=test_path)
                try:
                    configuration = self.cluster.load_config()
                    self.client_set = self.cluster.new_client_set(
                        configuration, self.options, test_path
                    )
                except Exception as e:
                    raise FrameworkSetupError(self.base_name, "client", str(e)) from e
                self._owns_client_set = True

            self.provider.framework_before_each(self)

            if self.skip_namespace_creation:
                # not guaranteed to be unique, but very likely
                self.unique_name = f"{self.base_name}-{random.getrandbits(32):08x}"
                self._log.info("before_each.namespace_skipped", unique_name=self.unique_name)
                return

            self._log.info("before_each.creating_namespace")
            try:
                namespace = self.create_namespace(
                    self.base_name,
                    {FRAMEWORK_LABEL: normalize_namespace_prefix(self.base_name)},
                )
            except Exception as e:
                raise FrameworkSetupError(self.base_name, "namespace", str(e)) from e
            self.namespace = namespace

            if self.suite_config.verify_service_account and not self.skip_service_account_wait:
                self._log.info("before_each.waiting_for_service_account", namespace=namespace.name)
                try:
                    self.cluster.wait_for_default_service_account(self._clients(), namespace.name)
                except Exception as e:
                    raise FrameworkSetupError(self.base_name, "service account", str(e)) from e
            else:
                self._log.info("before_each.service_account_wait_skipped")

            self.unique_name = namespace.name
            self._log.info("before_each.completed", namespace=namespace.name)

    def after_each(self, test_failed: bool = False) -> TeardownReport:
        """Tear down everything before_each and the test created.

        Namespace deletion runs last, even if the diagnostic dump, an
        after-each action or the provider hook raised. If deletion then fails
        as well, NamespaceCleanupError is raised with the earlier error as its
        cause. The instance's namespace, clients and tracked namespaces are
        reset afterwards.

        Args:
            test_failed: Outcome of the test body.

        Returns:
            What happened to the tracked namespaces.

        Raises:
            NamespaceCleanupError: If any namespace could not be deleted for a
                reason other than already being gone.
        """
        self.registry.remove(self.cleanup_handle)
        self.cleanup_handle = None

        with framework_span(
            get_tracer(),
            "after_each",
            base_name=self.base_name,
            extra_attributes={"e2e.test_failed": test_failed},
        ):
            body_error: Exception | None = None
            try:
                if (
                    test_failed
                    and self.suite_config.dump_logs_on_failure
                    and not self.skip_namespace_creation
                ):
                    self._dump_namespace_info()

                for action in self.after_each_actions:
                    action()

                self.provider.framework_after_each(self)
            except Exception as e:
                body_error = e
                raise
            finally:
                report = self._delete_namespaces(test_failed)
                self._reset()
                if report.errors and body_error is not None:
                    raise NamespaceCleanupError(report.errors) from body_error

            if report.errors:
                raise NamespaceCleanupError(report.errors)
            return report

    def _abort_teardown(self) -> None:
        """Teardown run by a registry drain when after_each never ran."""
        self._log.warning("framework.abort_teardown")
        self.after_each(test_failed=True)

    # =========================================================================
    # Namespaces
    # =========================================================================

    def create_namespace(
        self,
        base_name: str,
        labels: dict[str, str] | None = None,
    ) -> NamespaceRecord:
        """Create a namespace and track it for deletion in after_each.

        A namespace returned inside a NamespaceCreationError is tracked too,
        since it may exist on the server.

        Raises:
            NamespaceCreationError: From the creation strategy.
        """
        create = self.create_testing_namespace or self.cluster.create_testing_namespace
        try:
            namespace = create(base_name, self._clients(), dict(labels or {}))
        except NamespaceCreationError as e:
            self.add_namespaces_to_delete(e.namespace)
            raise
        self.add_namespaces_to_delete(namespace)
        return namespace

    def add_namespaces_to_delete(self, *namespaces: NamespaceRecord | None) -> None:
        """Track namespaces for deletion when the test completes."""
        for ns in namespaces:
            if ns is None:
                continue
            self.namespaces_to_delete.append(ns)

    def wait_for_pod_running(self, pod_name: str, timeout: float = POD_START_TIMEOUT) -> None:
        """Wait for a pod in the framework namespace to be running."""
        if self.namespace is None:
            raise FrameworkError(f"Framework {self.base_name!r} has no namespace")
        self.cluster.wait_for_pod_running(self._clients(), pod_name, self.namespace.name, timeout)

    def _clients(self) -> ClientSet:
        if self.client_set is None:
            raise FrameworkError(f"Framework {self.base_name!r} has no client set")
        return self.client_set

    def _dump_namespace_info(self) -> None:
        if self.namespace is None or self.client_set is None:
            return
        try:
            self.cluster.dump_namespace_info(self.client_set, self.namespace.name)
        except Exception:
            self._log.exception("after_each.dump_failed", namespace=self.namespace.name)

    def _delete_namespaces(self, test_failed: bool) -> TeardownReport:
        report = TeardownReport()
        names = [ns.name for ns in self.namespaces_to_delete]

        if not self.suite_config.should_delete_namespaces(test_failed):
            if not self.suite_config.delete_namespace:
                report.skipped = DeletionSkipReason.DELETE_NAMESPACE_DISABLED
            else:
                report.skipped = DeletionSkipReason.PRESERVED_ON_FAILURE
            self._log.info(
                "after_each.namespace_deletion_skipped",
                reason=report.skipped.value,
                namespaces=names,
            )
            return report

        timeout = self.namespace_deletion_timeout or DEFAULT_NAMESPACE_DELETION_TIMEOUT
        for name in names:
            report.attempted.append(name)
            self._log.info("after_each.destroying_namespace", namespace=name, timeout=timeout)
            try:
                with framework_span(get_tracer(), "delete_namespace", namespace=name):
                    self.cluster.delete_namespace(self._clients(), name, timeout)
            except NamespaceDeletionError as e:
                if e.is_not_found:
                    self._log.info("after_each.namespace_already_deleted", namespace=name)
                    report.already_gone.append(name)
                    continue
                report.errors[name] = e
                self._log.error(
                    "after_each.namespace_deletion_failed",
                    namespace=name,
                    kind=e.kind.value,
                    error=str(e),
                )
            except Exception as e:
                report.errors[name] = e
                self._log.error(
                    "after_each.namespace_deletion_failed",
                    namespace=name,
                    kind="other",
                    error=str(e),
                )
            else:
                report.deleted.append(name)
        return report

    def _reset(self) -> None:
        """Prevent reuse of torn down state."""
        if self._owns_client_set and self.client_set is not None:
            try:
                self.client_set.close()
            except Exception as e:  # noqa: BLE001
                self._log.warning("after_each.client_close_failed", error=str(e))
        self.namespace = None
        self.client_set = None
        self.namespaces_to_delete = []
        self.after_each_actions = []
        self._owns_client_set = False


def new_framework(
    base_name: str,
    options: FrameworkOptions | None = None,
    client_set: ClientSet | None = None,
    *,
    registry: CleanupRegistry,
    extensions: list[Callable[[Framework], None]] | None = None,
    **kwargs: object,
) -> Framework:
    """Build a Framework and apply the framework extensions to it.

    Args:
        base_name: Prefix for generated namespace names.
        options: Client options.
        client_set: Pre-built clients, if any.
        registry: Cleanup registry for the abort teardown.
        extensions: Extensions to apply. Defaults to framework_extensions.
        **kwargs: Passed to Framework.
    """
    framework = Framework(
        base_name,
        options,
        client_set,
        registry=registry,
        **kwargs,  # type: ignore[arg-type]
    )
    for extension in framework_extensions if extensions is None else extensions:
        extension(framework)
    return framework


def new_default_framework(
    base_name: str,
    *,
    registry: CleanupRegistry,
    **kwargs: object,
) -> Framework:
    """Build a Framework with the default client options (QPS 20, burst 50)."""
    options = FrameworkOptions(client_qps=20.0, client_burst=50)
    return new_framework(base_name, options, registry=registry, **kwargs)


__all__ = [
    "FRAMEWORK_LABEL",
    "DeletionSkipReason",
    "Framework",
    "TeardownReport",
    "framework_extensions",
    "new_default_framework",
    "new_framework",
]
