"""Diagnostic dumps for failed tests.

dump_namespace_info logs what happened inside a test namespace: its events
in time order and the phase and container states of every pod. It is called
by the framework after a failed test, before the namespace is deleted.

Example:
    from e2e_framework.fixtures.diagnostics import dump_namespace_info

    dump_namespace_info(client_set, "webhook-test-x7k2p")
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

import structlog

if TYPE_CHECKING:
    from e2e_framework.fixtures.kube import ClientSet

logger = structlog.get_logger(__name__)

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def _event_time(event: Any) -> datetime:
    """Return the most specific timestamp an event carries."""
    for value in (
        getattr(event, "last_timestamp", None),
        getattr(event, "event_time", None),
        getattr(event, "first_timestamp", None),
        getattr(event.metadata, "creation_timestamp", None),
    ):
        if value is not None:
            return value
    return _EPOCH


def _container_states(pod: Any) -> dict[str, str]:
    states: dict[str, str] = {}
    for status in (pod.status.container_statuses or []) if pod.status else []:
        state = status.state
        if state is None:
            states[status.name] = "unknown"
        elif state.running is not None:
            states[status.name] = "running"
        elif state.waiting is not None:
            states[status.name] = f"waiting: {state.waiting.reason}"
        elif state.terminated is not None:
            states[status.name] = (
                f"terminated: {state.terminated.reason} (exit {state.terminated.exit_code})"
            )
    return states


def dump_namespace_info(client_set: ClientSet, namespace: str) -> None:
    """Log events and pod states of ``namespace``.

    Args:
        client_set: Clients to use.
        namespace: Namespace to describe.

    Raises:
        kubernetes.client.exceptions.ApiException: If listing fails. The
            framework catches this so a failed dump never hides the test
            failure.
    """
    events = client_set.core_v1.list_namespaced_event(namespace).items
    logger.info("diagnostics.events", namespace=namespace, count=len(events))
    for event in sorted(events, key=_event_time):
        involved = event.involved_object
        logger.info(
            "diagnostics.event",
            namespace=namespace,
            time=str(_event_time(event)),
            object=f"{involved.kind}/{involved.name}" if involved else None,
            type=event.type,
            reason=event.reason,
            message=event.message,
        )

    pods = client_set.core_v1.list_namespaced_pod(namespace).items
    logger.info("diagnostics.pods", namespace=namespace, count=len(pods))
    for pod in pods:
        logger.info(
            "diagnostics.pod",
            namespace=namespace,
            pod=pod.metadata.name,
            phase=pod.status.phase if pod.status else None,
            node=pod.spec.node_name if pod.spec else None,
            containers=_container_states(pod),
        )


__all__ = ["dump_namespace_info"]
