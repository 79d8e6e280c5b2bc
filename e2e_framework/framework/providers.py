"""Cloud provider hooks invoked at fixed points of the framework lifecycle.

Providers that need per-test setup (extra RBAC, cloud credentials, node
labels) subclass ProviderHooks and override the hooks they need.

Example:
    class KindProvider(ProviderHooks):
        def framework_before_each(self, framework: Framework) -> None:
            framework.after_each_actions.append(collect_kind_logs)
"""

from __future__ import annotations

from abc import ABC
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from e2e_framework.framework.framework import Framework


class ProviderHooks(ABC):  # noqa: B024
    """Per-provider callbacks. Every hook is a no-op by default."""

    name: str = "abstract"

    def framework_before_each(self, framework: Framework) -> None:  # noqa: B027
        """Called once per before_each, after the clients are available."""

    def framework_after_each(self, framework: Framework) -> None:  # noqa: B027
        """Called once per after_each, after the after-each actions."""


class NullProvider(ProviderHooks):
    """Provider that does nothing."""

    name = "null"


__all__ = ["NullProvider", "ProviderHooks"]
