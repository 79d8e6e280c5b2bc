"""Pod helpers for e2e tests."""

from __future__ import annotations

from typing import TYPE_CHECKING

from e2e_framework.errors import PodNotRunningError
from e2e_framework.fixtures.polling import PollingConfig, wait_for_condition

if TYPE_CHECKING:
    from e2e_framework.fixtures.kube import ClientSet

POD_START_TIMEOUT = 300.0

TERMINAL_POD_PHASES = frozenset({"Succeeded", "Failed"})


def wait_for_pod_running(
    client_set: ClientSet,
    pod_name: str,
    namespace: str,
    timeout: float = POD_START_TIMEOUT,
    interval: float = 2.0,
) -> None:
    """Wait until a pod reports phase Running.

    Raises:
        PodNotRunningError: If the pod finished before it was seen running.
        PollingTimeoutError: If the pod is not running within ``timeout``.
    """
    last_phase: list[str] = []

    def is_running_or_done() -> bool:
        pod = client_set.core_v1.read_namespaced_pod(pod_name, namespace)
        phase = pod.status.phase if pod.status else None
        if phase is None:
            return False
        last_phase.append(phase)
        return phase == "Running" or phase in TERMINAL_POD_PHASES

    wait_for_condition(
        is_running_or_done,
        PollingConfig(
            timeout=timeout,
            interval=interval,
            description=f"pod {namespace}/{pod_name} to be running",
        ),
    )

    if last_phase[-1] in TERMINAL_POD_PHASES:
        raise PodNotRunningError(pod_name, namespace, last_phase[-1])


__all__ = ["POD_START_TIMEOUT", "wait_for_pod_running"]
