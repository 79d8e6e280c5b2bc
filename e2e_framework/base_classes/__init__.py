"""Test base classes for namespace-isolated cluster testing.

Classes:
    IntegrationTestBase: Base class giving each test a Framework and namespace

Example:
    from e2e_framework.base_classes import IntegrationTestBase

    class TestWebhook(IntegrationTestBase):
        base_name = "webhook-test"

        def test_admission(self) -> None:
            assert self.namespace.startswith("webhook-test-")
"""

from __future__ import annotations

from e2e_framework.base_classes.integration_test_base import IntegrationTestBase

__all__ = ["IntegrationTestBase"]
