"""pytest plugin wiring the framework into a test run.

Load it with ``-p e2e_framework.pytest_plugin`` (or ``addopts`` in the
project's pytest configuration).

What it provides:
    - Command-line options overriding the E2E_* environment variables
    - ``cleanup_registry``/``suite_config`` session fixtures
    - ``cluster_operations``/``provider_hooks`` fixtures that suites override
      to plug in fakes or provider specific hooks
    - ``framework``: factory fixture running before_each/after_each around
      the test with the test's real outcome
    - An ``e2e`` marker added to every test that uses a framework
    - Abort safety: the cleanup registry is drained when the session ends,
      and SIGTERM is turned into KeyboardInterrupt so that a killed run still
      reaches that point

Where a failure is reported tells its cause apart: setup errors are raised
as FrameworkSetupError, assertion failures come from the test body, and
namespaces that could not be deleted fail the test's teardown with
NamespaceCleanupError.
"""

from __future__ import annotations

import signal
import threading
from collections.abc import Callable, Iterator
from contextlib import ExitStack, contextmanager
from typing import Any

import pytest
import structlog
from pydantic import ValidationError

from e2e_framework.framework.cleanup import CleanupFailure, CleanupRegistry
from e2e_framework.framework.cluster import ClusterOperations
from e2e_framework.framework.context import FrameworkOptions, SuiteConfig
from e2e_framework.framework.framework import Framework, new_framework
from e2e_framework.framework.providers import NullProvider, ProviderHooks

logger = structlog.get_logger(__name__)

registry_key = pytest.StashKey[CleanupRegistry]()
suite_config_key = pytest.StashKey[SuiteConfig]()
phase_report_key = pytest.StashKey[dict[str, pytest.TestReport]]()
_previous_sigterm_key = pytest.StashKey[Any]()

# Fixtures that give a test a framework; tests using one are marked e2e
FRAMEWORK_FIXTURES = frozenset({"framework", "_framework_lifecycle"})


def pytest_addoption(parser: pytest.Parser) -> None:
    """Register e2e framework command-line options."""
    group = parser.getgroup("e2e-framework", "per-test namespace harness")
    group.addoption(
        "--kubeconfig",
        default=None,
        help="Path to kubeconfig (default: $KUBECONFIG, in-cluster, ~/.kube/config)",
    )
    group.addoption(
        "--kube-context",
        default=None,
        help="Kubeconfig context to use (default: $E2E_KUBE_CONTEXT or current context)",
    )
    group.addoption(
        "--keep-namespaces",
        action="store_true",
        default=False,
        help="Never delete test namespaces",
    )
    group.addoption(
        "--keep-namespaces-on-failure",
        action="store_true",
        default=False,
        help="Keep the namespaces of failed tests for debugging",
    )
    group.addoption(
        "--no-dump-logs",
        action="store_true",
        default=False,
        help="Do not dump namespace events and pods after a failed test",
    )
    group.addoption(
        "--skip-service-account-wait",
        action="store_true",
        default=False,
        help="Do not wait for the default service account in new namespaces",
    )


def suite_config_from_options(config: pytest.Config) -> SuiteConfig:
    """Build the SuiteConfig from the environment and command-line options.

    Command-line options win over environment variables.
    """
    overrides: dict[str, Any] = {
        "kubeconfig": config.getoption("kubeconfig"),
        "kube_context": config.getoption("kube_context"),
    }
    if config.getoption("keep_namespaces"):
        overrides["delete_namespace"] = False
    if config.getoption("keep_namespaces_on_failure"):
        overrides["delete_namespace_on_failure"] = False
    if config.getoption("no_dump_logs"):
        overrides["dump_logs_on_failure"] = False
    if config.getoption("skip_service_account_wait"):
        overrides["verify_service_account"] = False
    return SuiteConfig.from_env(**overrides)


def pytest_configure(config: pytest.Config) -> None:
    """Create the session registry and suite config, install SIGTERM handling."""
    config.addinivalue_line(
        "markers",
        "e2e: test runs against a real cluster through the e2e framework",
    )
    try:
        config.stash[suite_config_key] = suite_config_from_options(config)
    except ValidationError as e:
        raise pytest.UsageError(f"Invalid e2e framework configuration:\n{e}") from e
    config.stash[registry_key] = CleanupRegistry()
    _install_sigterm_handler(config)


def _install_sigterm_handler(config: pytest.Config) -> None:
    if threading.current_thread() is not threading.main_thread():
        return

    def _on_sigterm(signum: int, _frame: Any) -> None:
        raise KeyboardInterrupt(f"received {signal.Signals(signum).name}")

    config.stash[_previous_sigterm_key] = signal.signal(signal.SIGTERM, _on_sigterm)


def pytest_unconfigure(config: pytest.Config) -> None:
    """Restore the SIGTERM handler that was active before the run."""
    if _previous_sigterm_key in config.stash:
        signal.signal(signal.SIGTERM, config.stash[_previous_sigterm_key])
        del config.stash[_previous_sigterm_key]


@pytest.hookimpl(tryfirst=True)
def pytest_collection_modifyitems(items: list[pytest.Item]) -> None:
    """Mark tests that use a framework with ``e2e``, so ``-m "not e2e"`` skips them."""
    for item in items:
        if FRAMEWORK_FIXTURES.intersection(getattr(item, "fixturenames", ())):
            item.add_marker(pytest.mark.e2e)


def pytest_report_header(config: pytest.Config) -> str | None:
    suite_config = config.stash.get(suite_config_key, None)
    if suite_config is None:
        return None
    return (
        f"e2e-framework: delete_namespace={suite_config.delete_namespace}, "
        f"delete_namespace_on_failure={suite_config.delete_namespace_on_failure}, "
        f"dump_logs_on_failure={suite_config.dump_logs_on_failure}, "
        f"verify_service_account={suite_config.verify_service_account}"
    )


@pytest.hookimpl(hookwrapper=True, tryfirst=True)
def pytest_runtest_makereport(item: pytest.Item, call: pytest.CallInfo[None]) -> Iterator[None]:
    """Keep each phase's report on the item so fixtures can see the outcome."""
    outcome = yield
    report: pytest.TestReport = outcome.get_result()
    item.stash.setdefault(phase_report_key, {})[report.when] = report


@pytest.hookimpl(trylast=True)
def pytest_sessionfinish(session: pytest.Session, exitstatus: int) -> None:
    """Run every cleanup action still pending when the session ends."""
    failures = drain_registry(session.config)
    if failures:
        logger.error("session.cleanup_failures", count=len(failures), exitstatus=int(exitstatus))


def drain_registry(config: pytest.Config) -> list[CleanupFailure]:
    """Drain the session's cleanup registry, if the plugin configured one."""
    registry = config.stash.get(registry_key, None)
    if registry is None:
        return []
    return registry.drain()


def test_failed(item: pytest.Item) -> bool:
    """Return True if any phase of ``item`` reported so far has failed."""
    reports = item.stash.get(phase_report_key, {})
    return any(report.failed for report in reports.values())


# pytest would otherwise collect the helper above as a test
test_failed.__test__ = False  # type: ignore[attr-defined]


@contextmanager
def framework_lifecycle(framework: Framework, item: pytest.Item) -> Iterator[Framework]:
    """Run ``framework``'s before_each, yield, then its after_each.

    If before_each fails, after_each still runs immediately, so that whatever
    was created before the failure is deleted; the setup error is re-raised.
    after_each also runs when the exit is caused by an exception, such as a
    later framework's teardown failing inside the same ExitStack.
    """
    try:
        framework.before_each(test_path=item.nodeid)
    except BaseException:
        _teardown_after_failed_setup(framework)
        raise
    try:
        yield framework
    finally:
        framework.after_each(test_failed=test_failed(item))


def _teardown_after_failed_setup(framework: Framework) -> None:
    try:
        framework.after_each(test_failed=True)
    except Exception:
        # The setup error is the one reported; this only must not hide it.
        logger.exception("framework.setup_cleanup_failed", base_name=framework.base_name)


@pytest.fixture(scope="session")
def cleanup_registry(pytestconfig: pytest.Config) -> CleanupRegistry:
    """Session-wide cleanup registry, drained at session end."""
    return pytestconfig.stash[registry_key]


@pytest.fixture(scope="session")
def suite_config(pytestconfig: pytest.Config) -> SuiteConfig:
    """Suite configuration from the environment and command line."""
    return pytestconfig.stash[suite_config_key]


@pytest.fixture(scope="session")
def cluster_operations(suite_config: SuiteConfig) -> ClusterOperations:
    """Cluster operations used by every framework. Override to use a fake."""
    return ClusterOperations(suite_config)


@pytest.fixture(scope="session")
def provider_hooks() -> ProviderHooks:
    """Provider hooks used by every framework. Override for a provider."""
    return NullProvider()


@pytest.fixture
def framework(
    request: pytest.FixtureRequest,
    cleanup_registry: CleanupRegistry,
    suite_config: SuiteConfig,
    cluster_operations: ClusterOperations,
    provider_hooks: ProviderHooks,
) -> Iterator[Callable[..., Framework]]:
    """Factory for frameworks bound to the current test.

    Each call builds a framework and runs its before_each. When the test
    finishes, after_each runs for every framework built, last built first.

    Example:
        def test_webhook(framework) -> None:
            f = framework("webhook-test")
            assert f.namespace is not None
    """
    with ExitStack() as stack:

        def factory(
            base_name: str,
            options: FrameworkOptions | None = None,
            **kwargs: Any,
        ) -> Framework:
            kwargs.setdefault("suite_config", suite_config)
            kwargs.setdefault("cluster", cluster_operations)
            kwargs.setdefault("provider", provider_hooks)
            instance = new_framework(base_name, options, registry=cleanup_registry, **kwargs)
            stack.enter_context(framework_lifecycle(instance, request.node))
            return instance

        yield factory


__all__ = [
    "drain_registry",
    "framework_lifecycle",
    "suite_config_from_options",
    "test_failed",
]
