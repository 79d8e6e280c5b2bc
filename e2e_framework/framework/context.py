"""Suite and framework configuration models.

SuiteConfig holds the run-wide switches every Framework reads (whether to
delete namespaces, dump diagnostics, wait for service accounts). It is built
from ``E2E_*`` environment variables and, under pytest, from command-line
options that override them.

FrameworkOptions holds the per-framework client settings.

Environment Variables:
    E2E_DELETE_NAMESPACE: Delete test namespaces after each test (default: true)
    E2E_DELETE_NAMESPACE_ON_FAILURE: Also delete them when the test failed (default: true)
    E2E_DUMP_LOGS_ON_FAILURE: Dump namespace events and pods on failure (default: true)
    E2E_VERIFY_SERVICE_ACCOUNT: Wait for the default service account (default: true)
    E2E_SERVICE_ACCOUNT_TIMEOUT: Seconds to wait for it (default: 120)
    E2E_NAMESPACE_CREATION_TIMEOUT: Seconds to retry namespace creation (default: 30)
    KUBECONFIG: Kubeconfig path (default: in-cluster, then ~/.kube/config)
    E2E_KUBE_CONTEXT: Kubeconfig context (default: current context)

Example:
    >>> config = SuiteConfig.from_env({"E2E_DELETE_NAMESPACE": "false"})
    >>> config.delete_namespace
    False
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

# Field name -> environment variable
_ENV_FIELDS: dict[str, str] = {
    "delete_namespace": "E2E_DELETE_NAMESPACE",
    "delete_namespace_on_failure": "E2E_DELETE_NAMESPACE_ON_FAILURE",
    "dump_logs_on_failure": "E2E_DUMP_LOGS_ON_FAILURE",
    "verify_service_account": "E2E_VERIFY_SERVICE_ACCOUNT",
    "service_account_timeout": "E2E_SERVICE_ACCOUNT_TIMEOUT",
    "namespace_creation_timeout": "E2E_NAMESPACE_CREATION_TIMEOUT",
    "kubeconfig": "KUBECONFIG",
    "kube_context": "E2E_KUBE_CONTEXT",
}


class FrameworkOptions(BaseModel):
    """Client options for one Framework.

    Attributes:
        client_qps: Sustained API queries per second.
        client_burst: API calls allowed back to back before throttling.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    client_qps: float = Field(
        default=20.0,
        ge=0.0,
        description="Sustained API queries per second (0 disables limiting)",
    )
    client_burst: int = Field(
        default=50,
        ge=1,
        description="API calls allowed back to back before throttling",
    )


class SuiteConfig(BaseModel):
    """Run-wide configuration read by every Framework.

    Whether a namespace is deleted is decided by delete_namespace,
    delete_namespace_on_failure and the test result:
    - delete_namespace false: namespaces are always preserved.
    - delete_namespace true, delete_namespace_on_failure false: namespaces
      of failed tests are preserved.
    - both true: namespaces are always deleted.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    delete_namespace: bool = Field(
        default=True,
        description="Delete test namespaces after each test",
    )
    delete_namespace_on_failure: bool = Field(
        default=True,
        description="Delete test namespaces even if the test failed",
    )
    dump_logs_on_failure: bool = Field(
        default=True,
        description="Dump namespace events and pod states after a failed test",
    )
    verify_service_account: bool = Field(
        default=True,
        description="Wait for the default service account in new namespaces",
    )
    service_account_timeout: float = Field(
        default=120.0,
        gt=0.0,
        description="Seconds to wait for the default service account",
    )
    namespace_creation_timeout: float = Field(
        default=30.0,
        gt=0.0,
        description="Seconds to retry namespace creation and activation",
    )
    kubeconfig: str | None = Field(
        default=None,
        description="Path to kubeconfig file. None tries in-cluster config first.",
    )
    kube_context: str | None = Field(
        default=None,
        description="Kubeconfig context to use. None uses current context.",
    )

    @field_validator("kubeconfig")
    @classmethod
    def expand_kubeconfig_path(cls, v: str | None) -> str | None:
        """Expand ~ in kubeconfig path."""
        if not v:
            return None
        return str(Path(v).expanduser())

    def should_delete_namespaces(self, test_failed: bool) -> bool:
        """Return True if namespaces of a test with this outcome are deleted."""
        return self.delete_namespace and (self.delete_namespace_on_failure or not test_failed)

    @classmethod
    def from_env(
        cls,
        environ: Mapping[str, str] | None = None,
        **overrides: Any,
    ) -> SuiteConfig:
        """Build a SuiteConfig from environment variables.

        Args:
            environ: Mapping to read instead of os.environ.
            **overrides: Field values taking precedence over the environment.
                None values are ignored.

        Raises:
            pydantic.ValidationError: If a variable holds an invalid value.
        """
        env = os.environ if environ is None else environ
        values: dict[str, Any] = {}
        for field_name, env_key in _ENV_FIELDS.items():
            raw = env.get(env_key)
            if raw is not None and raw.strip() != "":
                values[field_name] = raw.strip()
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls.model_validate(values)


__all__ = ["FrameworkOptions", "SuiteConfig"]
