"""OpenTelemetry tracing helpers for the framework lifecycle.

before_each, after_each and every namespace deletion run inside a span so
that slow or failing teardown shows up next to the traces of the system
under test.

Example:
    >>> tracer = get_tracer()
    >>> with framework_span(tracer, "after_each", base_name="webhook-test") as span:
    ...     span.set_attribute("e2e.namespace_count", 2)
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode

if TYPE_CHECKING:
    from collections.abc import Iterator

TRACER_NAME = "e2e_framework"

ATTR_OPERATION = "e2e.operation"
ATTR_BASE_NAME = "e2e.base_name"
ATTR_NAMESPACE = "e2e.namespace"


def get_tracer() -> trace.Tracer:
    """Return the framework tracer from the global tracer provider."""
    return trace.get_tracer(TRACER_NAME)


@contextmanager
def framework_span(
    tracer: trace.Tracer,
    operation: str,
    *,
    base_name: str | None = None,
    namespace: str | None = None,
    extra_attributes: dict[str, Any] | None = None,
) -> Iterator[trace.Span]:
    """Context manager for creating framework lifecycle spans.

    The span is named ``e2e.{operation}``. Exceptions mark the span as
    failed and are re-raised.

    Args:
        tracer: OpenTelemetry tracer instance.
        operation: Operation name (e.g., "before_each", "delete_namespace").
        base_name: Framework base name.
        namespace: Namespace the operation acts on.
        extra_attributes: Additional span attributes.

    Yields:
        The active span for adding custom attributes.
    """
    attributes: dict[str, Any] = {ATTR_OPERATION: operation}

    if base_name is not None:
        attributes[ATTR_BASE_NAME] = base_name
    if namespace is not None:
        attributes[ATTR_NAMESPACE] = namespace
    if extra_attributes:
        attributes.update(extra_attributes)

    with tracer.start_as_current_span(
        f"e2e.{operation}",
        attributes=attributes,
        record_exception=False,
        set_status_on_exception=False,
    ) as span:
        try:
            yield span
            span.set_status(Status(StatusCode.OK))
        except Exception as e:
            span.set_status(Status(StatusCode.ERROR, type(e).__name__))
            span.set_attribute("exception.type", type(e).__name__)
            span.set_attribute("exception.message", str(e))
            raise


__all__ = [
    "ATTR_BASE_NAME",
    "ATTR_NAMESPACE",
    "ATTR_OPERATION",
    "TRACER_NAME",
    "framework_span",
    "get_tracer",
]
