"""Observability utilities: OpenTelemetry spans.

Wraps store-facing work (bulk batch writes, similarity searches) in spans. The
global tracer provider is left to the host process; without one configured the
OpenTelemetry API hands out non-recording spans, so instrumentation costs nothing.
"""
from contextlib import contextmanager
from typing import Any, Dict, Iterator, Optional

from opentelemetry import trace

_tracer = trace.get_tracer("insurance_rag")


@contextmanager
def span(name: str, attributes: Optional[Dict[str, Any]] = None) -> Iterator[trace.Span]:
    """Context manager opening a span with optional attributes.

    Exceptions escaping the block are recorded on the span and re-raised.
    """
    with _tracer.start_as_current_span(name) as current:
        for key, value in (attributes or {}).items():
            if value is not None:
                current.set_attribute(key, value)
        yield current
