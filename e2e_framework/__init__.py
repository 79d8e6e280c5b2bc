"""Per-test namespace harness for Kubernetes integration tests.

This package gives every integration test its own namespace and client set,
tracks everything that must be torn down, and guarantees teardown runs even
when the test body fails or the run is aborted partway.

Components:
    framework: Framework lifecycle, cleanup registry, configuration, hooks
    fixtures: Cluster helpers (clients, namespaces, pods, polling, diagnostics)
    base_classes: IntegrationTestBase for class-based tests
    pytest_plugin: Command-line options, fixtures and the abort-time drain

Usage:
    # conftest.py is not needed; the plugin is loaded with
    #   pytest -p e2e_framework.pytest_plugin

    def test_webhook_admission(framework) -> None:
        f = framework("webhook-test")
        deploy_webhook(f.client_set, f.namespace.name)
"""

from __future__ import annotations

__version__ = "0.1.0"
