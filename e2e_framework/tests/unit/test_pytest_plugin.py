"""Unit tests for the pytest plugin.

Helpers are tested directly; the fixtures are exercised by running an inner
pytest session with pytester against a fake cluster.
"""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from e2e_framework.errors import FrameworkSetupError, NamespaceCleanupError
from e2e_framework.pytest_plugin import (
    framework_lifecycle,
    phase_report_key,
    suite_config_from_options,
    test_failed,
)

FAKE_CLUSTER_CONFTEST = '''
from unittest.mock import MagicMock

import pytest

from e2e_framework.fixtures.namespaces import NamespaceRecord
from e2e_framework.framework.cluster import ClusterOperations
from e2e_framework.framework.context import SuiteConfig

CALLS = []


class FakeCluster(ClusterOperations):
    def __init__(self):
        super().__init__(SuiteConfig())

    def load_config(self):
        return MagicMock()

    def new_client_set(self, configuration, options, component=None):
        return MagicMock()

    def create_testing_namespace(self, base_name, client_set, labels):
        if base_name == "broken":
            raise RuntimeError("apiserver unavailable")
        return NamespaceRecord(f"{base_name}-abcde", labels)

    def delete_namespace(self, client_set, name, timeout):
        CALLS.append(f"delete:{name}")
        if name.startswith("stuck"):
            raise RuntimeError("still terminating")

    def wait_for_default_service_account(self, client_set, namespace):
        pass

    def dump_namespace_info(self, client_set, namespace):
        CALLS.append(f"dump:{namespace}")


@pytest.fixture(scope="session")
def cluster_operations():
    return FakeCluster()


def pytest_sessionfinish(session):
    (session.config.rootpath / "calls.txt").write_text("\\n".join(CALLS))
'''

LIFECYCLE_TESTS = '''
from e2e_framework.base_classes import IntegrationTestBase


def test_passes(framework):
    f = framework("webhook-test")
    assert f.unique_name == "webhook-test-abcde"


def test_assertion_fails(framework):
    framework("failing")
    assert False, "webhook rejected the request"


class TestBroken(IntegrationTestBase):
    base_name = "broken"

    def test_never_runs(self):
        pass


class TestStuck(IntegrationTestBase):
    base_name = "stuck"

    def test_body_passes(self):
        assert self.namespace == "stuck-abcde"
'''


def _calls(pytester: pytest.Pytester) -> list[str]:
    return (pytester.path / "calls.txt").read_text().splitlines()


class TestSuiteConfigFromOptions:
    """Tests for suite_config_from_options()."""

    def _config(self, **options: object) -> MagicMock:
        values = {
            "kubeconfig": None,
            "kube_context": None,
            "keep_namespaces": False,
            "keep_namespaces_on_failure": False,
            "no_dump_logs": False,
            "skip_service_account_wait": False,
            **options,
        }
        config = MagicMock()
        config.getoption.side_effect = values.__getitem__
        return config

    def test_flags_override_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test command-line flags win over E2E_* variables."""
        monkeypatch.setenv("E2E_DELETE_NAMESPACE", "true")
        monkeypatch.setenv("E2E_KUBE_CONTEXT", "from-env")

        suite_config = suite_config_from_options(
            self._config(keep_namespaces=True, no_dump_logs=True, kube_context="kind-e2e")
        )

        assert suite_config.delete_namespace is False
        assert suite_config.dump_logs_on_failure is False
        assert suite_config.kube_context == "kind-e2e"

    def test_unset_flags_keep_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test absent flags leave environment values alone."""
        monkeypatch.setenv("E2E_VERIFY_SERVICE_ACCOUNT", "false")

        suite_config = suite_config_from_options(self._config())

        assert suite_config.verify_service_account is False
        assert suite_config.delete_namespace_on_failure is True


class TestTestFailed:
    """Tests for test_failed()."""

    def _item(self, **reports: bool) -> MagicMock:
        item = MagicMock()
        item.stash = pytest.Stash()
        if reports:
            item.stash[phase_report_key] = {
                when: MagicMock(failed=failed) for when, failed in reports.items()
            }
        return item

    def test_no_reports_means_not_failed(self) -> None:
        """Test an item without reports has not failed."""
        assert test_failed(self._item()) is False

    def test_call_failure(self) -> None:
        """Test a failed call phase counts as failed."""
        assert test_failed(self._item(setup=False, call=True)) is True

    def test_passing_phases(self) -> None:
        """Test passing setup and call phases are not failed."""
        assert test_failed(self._item(setup=False, call=False)) is False


class TestFrameworkLifecycle:
    """Tests for framework_lifecycle()."""

    def test_runs_before_and_after_each(self) -> None:
        """Test the test outcome is passed to after_each."""
        framework = MagicMock()
        item = MagicMock(nodeid="tests/test_webhook.py::test_admission")
        item.stash = pytest.Stash()

        with framework_lifecycle(framework, item) as f:
            assert f is framework

        framework.before_each.assert_called_once_with(
            test_path="tests/test_webhook.py::test_admission"
        )
        framework.after_each.assert_called_once_with(test_failed=False)

    def test_setup_failure_tears_down_and_reraises(self) -> None:
        """Test a failed before_each still runs after_each as a failure."""
        framework = MagicMock()
        framework.before_each.side_effect = FrameworkSetupError("x", "namespace", "denied")
        framework.after_each.side_effect = NamespaceCleanupError({"x-1": RuntimeError("stuck")})
        item = MagicMock()
        item.stash = pytest.Stash()

        with pytest.raises(FrameworkSetupError):
            with framework_lifecycle(framework, item):
                pytest.fail("body must not run")

        framework.after_each.assert_called_once_with(test_failed=True)

    def test_exception_at_exit_still_runs_after_each(self) -> None:
        """Test after_each runs when the block is left by an exception."""
        framework = MagicMock()
        item = MagicMock(nodeid="tests/test_webhook.py::test_admission")
        item.stash = pytest.Stash()

        with pytest.raises(NamespaceCleanupError):
            with framework_lifecycle(framework, item):
                raise NamespaceCleanupError({"second-1": RuntimeError("stuck")})

        framework.after_each.assert_called_once_with(test_failed=False)


class TestPluginSession:
    """Tests running an inner pytest session with the plugin loaded."""

    def test_failure_kinds_are_reported_in_distinct_phases(
        self, pytester: pytest.Pytester
    ) -> None:
        """Test setup, assertion and cleanup failures are told apart."""
        pytester.makeconftest(FAKE_CLUSTER_CONFTEST)
        pytester.makepyfile(test_lifecycle=LIFECYCLE_TESTS)

        result = pytester.runpytest("-p", "e2e_framework.pytest_plugin")

        result.assert_outcomes(passed=2, failed=1, errors=2)
        result.stdout.fnmatch_lines(
            [
                "*ERROR at setup of TestBroken.test_never_runs*",
                "*ERROR at teardown of TestStuck.test_body_passes*",
            ]
        )
        result.stdout.re_match_lines([r".*FrameworkSetupError.*apiserver unavailable.*"])
        result.stdout.re_match_lines([r".*NamespaceCleanupError.*stuck-abcde.*"])

        calls = _calls(pytester)
        assert "delete:webhook-test-abcde" in calls
        assert calls.index("dump:failing-abcde") < calls.index("delete:failing-abcde")
        assert "delete:stuck-abcde" in calls

    def test_keep_namespaces_option(self, pytester: pytest.Pytester) -> None:
        """Test --keep-namespaces leaves every namespace in place."""
        pytester.makeconftest(FAKE_CLUSTER_CONFTEST)
        pytester.makepyfile(
            test_keep='''
            def test_passes(framework):
                framework("kept")
            '''
        )

        result = pytester.runpytest("-p", "e2e_framework.pytest_plugin", "--keep-namespaces")

        result.assert_outcomes(passed=1)
        assert _calls(pytester) == []

    def test_keep_namespaces_on_failure_option(self, pytester: pytest.Pytester) -> None:
        """Test failed tests keep their namespace, passing ones do not."""
        pytester.makeconftest(FAKE_CLUSTER_CONFTEST)
        pytester.makepyfile(
            test_keep='''
            def test_passes(framework):
                framework("passing")

            def test_fails(framework):
                framework("failing")
                assert False
            '''
        )

        result = pytester.runpytest(
            "-p", "e2e_framework.pytest_plugin", "--keep-namespaces-on-failure"
        )

        result.assert_outcomes(passed=1, failed=1)
        calls = _calls(pytester)
        assert "delete:passing-abcde" in calls
        assert "delete:failing-abcde" not in calls

    def test_frameworks_torn_down_last_first(self, pytester: pytest.Pytester) -> None:
        """Test several frameworks in one test are torn down in reverse order."""
        pytester.makeconftest(FAKE_CLUSTER_CONFTEST)
        pytester.makepyfile(
            test_order='''
            def test_two_frameworks(framework):
                framework("first")
                framework("second")
            '''
        )

        result = pytester.runpytest("-p", "e2e_framework.pytest_plugin")

        result.assert_outcomes(passed=1)
        assert _calls(pytester) == ["delete:second-abcde", "delete:first-abcde"]

    def test_failed_teardown_does_not_skip_earlier_frameworks(
        self, pytester: pytest.Pytester
    ) -> None:
        """Test a framework whose cleanup fails does not leak the ones built before it."""
        pytester.makeconftest(FAKE_CLUSTER_CONFTEST)
        pytester.makepyfile(
            test_order='''
            def test_two_frameworks(framework):
                framework("first")
                framework("stuck")
            '''
        )

        result = pytester.runpytest("-p", "e2e_framework.pytest_plugin")

        result.assert_outcomes(passed=1, errors=1)
        result.stdout.re_match_lines([r".*NamespaceCleanupError.*stuck-abcde.*"])
        assert _calls(pytester) == ["delete:stuck-abcde", "delete:first-abcde"]

    def test_framework_tests_are_marked_e2e(self, pytester: pytest.Pytester) -> None:
        """Test ``-m "not e2e"`` deselects every test that uses a framework."""
        pytester.makeconftest(FAKE_CLUSTER_CONFTEST)
        pytester.makepyfile(
            test_marks='''
            from e2e_framework.base_classes import IntegrationTestBase


            def test_uses_framework(framework):
                framework("factory")


            class TestOnCluster(IntegrationTestBase):
                base_name = "class-based"

                def test_body(self):
                    pass


            def test_plain():
                pass
            '''
        )

        result = pytester.runpytest(
            "-p", "e2e_framework.pytest_plugin", "--strict-markers", "-m", "not e2e"
        )

        result.assert_outcomes(passed=1, deselected=2)
        assert _calls(pytester) == []

    def test_invalid_environment_is_usage_error(
        self, pytester: pytest.Pytester, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Test a malformed E2E_* variable stops the run before collection."""
        monkeypatch.setenv("E2E_DELETE_NAMESPACE", "sometimes")
        pytester.makepyfile(test_nothing="def test_nothing(): pass")

        result = pytester.runpytest("-p", "e2e_framework.pytest_plugin")

        assert result.ret == pytest.ExitCode.USAGE_ERROR
        result.stderr.fnmatch_lines(["*Invalid e2e framework configuration*"])
