"""Kubernetes client construction for e2e tests.

Loads cluster configuration (explicit kubeconfig, in-cluster, or default
kubeconfig), and builds the ClientSet a Framework uses for one test: the raw
ApiClient, the typed CoreV1Api client and a lazily discovered dynamic client.

The Python Kubernetes client has no QPS/burst settings, so every API call
made through a ClientSet goes through a token bucket instead.

Example:
    from e2e_framework.fixtures.kube import load_config, new_client_set

    configuration = load_config(kubeconfig=None, context="kind-e2e")
    client_set = new_client_set(configuration, qps=20.0, burst=50)
    client_set.core_v1.list_namespace(limit=1)
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from functools import cached_property
from typing import TYPE_CHECKING, Any

import structlog
from kubernetes import client
from kubernetes import config as k8s_config

if TYPE_CHECKING:
    from kubernetes.dynamic import DynamicClient

logger = structlog.get_logger(__name__)


class TokenBucketRateLimiter:
    """Blocking token bucket allowing ``qps`` calls per second on average.

    Up to ``burst`` calls may be made back to back before the limiter starts
    spacing them out. A non-positive ``qps`` disables limiting.

    Thread Safety:
        Token accounting is protected by a lock; sleeping happens outside it.
    """

    def __init__(
        self,
        qps: float,
        burst: int,
        *,
        clock: Any = time.monotonic,
        sleep: Any = time.sleep,
    ) -> None:
        self.qps = qps
        self.burst = max(1, burst)
        self._tokens = float(self.burst)
        self._clock = clock
        self._sleep = sleep
        self._last = clock()
        self._lock = threading.Lock()

    def _reserve(self) -> float:
        """Take one token, returning how long the caller must wait for it."""
        with self._lock:
            now = self._clock()
            self._tokens = min(self.burst, self._tokens + (now - self._last) * self.qps)
            self._last = now
            self._tokens -= 1.0
            if self._tokens >= 0:
                return 0.0
            return -self._tokens / self.qps

    def acquire(self) -> None:
        """Block until a call is allowed."""
        if self.qps <= 0:
            return
        delay = self._reserve()
        if delay > 0:
            self._sleep(delay)


class RateLimitedApiClient(client.ApiClient):
    """ApiClient that takes a rate limiter token before every request."""

    def __init__(
        self,
        configuration: client.Configuration | None = None,
        rate_limiter: TokenBucketRateLimiter | None = None,
    ) -> None:
        super().__init__(configuration)
        self.rate_limiter = rate_limiter

    def call_api(self, *args: Any, **kwargs: Any) -> Any:
        if self.rate_limiter is not None:
            self.rate_limiter.acquire()
        return super().call_api(*args, **kwargs)


@dataclass
class ClientSet:
    """Clients one Framework uses against the cluster.

    Attributes:
        api_client: Underlying (rate limited) ApiClient.
        core_v1: Typed client for namespaces, pods, events, service accounts.
        dynamic: Dynamic client, discovered on first use.
    """

    api_client: client.ApiClient
    core_v1: client.CoreV1Api = field(init=False)

    def __post_init__(self) -> None:
        self.core_v1 = client.CoreV1Api(self.api_client)

    @cached_property
    def dynamic(self) -> DynamicClient:
        from kubernetes.dynamic import DynamicClient

        return DynamicClient(self.api_client)

    @property
    def user_agent(self) -> str:
        return str(self.api_client.user_agent)

    def close(self) -> None:
        """Release the ApiClient's connection pool."""
        self.api_client.close()


def load_config(
    kubeconfig: str | None = None,
    context: str | None = None,
) -> client.Configuration:
    """Load cluster configuration into a fresh Configuration object.

    Attempts to load configuration in this order:
    1. Explicit kubeconfig path
    2. In-cluster configuration
    3. Default kubeconfig (~/.kube/config)

    Args:
        kubeconfig: Optional path to a kubeconfig file.
        context: Optional kubeconfig context.

    Returns:
        A Configuration not shared with the client's global default.

    Raises:
        kubernetes.config.ConfigException: If no configuration can be loaded.
    """
    configuration = client.Configuration()
    if kubeconfig:
        k8s_config.load_kube_config(
            config_file=kubeconfig,
            context=context,
            client_configuration=configuration,
        )
        logger.info("kube.config_loaded", source="kubeconfig", path=kubeconfig, context=context)
        return configuration

    try:
        k8s_config.load_incluster_config(client_configuration=configuration)
        logger.info("kube.config_loaded", source="in-cluster")
    except k8s_config.ConfigException:
        k8s_config.load_kube_config(context=context, client_configuration=configuration)
        logger.info("kube.config_loaded", source="default-kubeconfig", context=context)
    return configuration


def new_client_set(
    configuration: client.Configuration,
    *,
    qps: float = 20.0,
    burst: int = 50,
    component: str | None = None,
) -> ClientSet:
    """Build a rate limited ClientSet from a Configuration.

    Args:
        configuration: Loaded cluster configuration.
        qps: Sustained queries per second.
        burst: Calls allowed back to back before throttling.
        component: Appended to the default User-Agent as
            ``"<default> -- <component>"`` so server logs show which test
            issued a request.

    Returns:
        A new ClientSet owning its ApiClient.
    """
    api_client = RateLimitedApiClient(configuration, TokenBucketRateLimiter(qps, burst))
    if component:
        api_client.user_agent = f"{api_client.user_agent} -- {component}"
    logger.debug(
        "kube.client_set_created", qps=qps, burst=burst, user_agent=api_client.user_agent
    )
    return ClientSet(api_client)


__all__ = [
    "ClientSet",
    "RateLimitedApiClient",
    "TokenBucketRateLimiter",
    "load_config",
    "new_client_set",
]
