"""Spans around engine entry points.

Only identifiers become span attributes. Record snapshots, action configs
and rendered templates stay out of traces.
"""

import inspect
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from functools import wraps
from typing import Any

from opentelemetry import trace
from opentelemetry.trace import Span, StatusCode

SPAN_ID_ARGS = (
    "tenant_id",
    "entity_type",
    "entity_id",
    "trigger_type",
    "trigger_instance_id",
    "workflow_id",
    "rule_id",
    "action_id",
)


@contextmanager
def _engine_span(tracer: trace.Tracer, name: str, call_kwargs: dict[str, Any]) -> Iterator[Span]:
    with tracer.start_as_current_span(name, record_exception=False) as span:
        for arg in SPAN_ID_ARGS:
            if call_kwargs.get(arg) is not None:
                span.set_attribute(f"crmflow.{arg}", str(call_kwargs[arg]))
        try:
            yield span
        except Exception as exc:
            span.record_exception(exc)
            span.set_status(StatusCode.ERROR, f"{type(exc).__name__}: {exc}")
            raise


def traced(name: str | None = None) -> Callable:
    """Run the decorated coroutine (or function) inside a span.

    Identifier arguments listed in SPAN_ID_ARGS are attached when passed by
    keyword or position. Exceptions are recorded and re-raised.
    """

    def decorator(func: Callable) -> Callable:
        tracer = trace.get_tracer(func.__module__)
        span_name = name or func.__qualname__
        signature = inspect.signature(func)

        def bound(args: tuple, kwargs: dict) -> dict[str, Any]:
            try:
                return signature.bind_partial(*args, **kwargs).arguments
            except TypeError:
                return kwargs

        if inspect.iscoroutinefunction(func):

            @wraps(func)
            async def run_async(*args: Any, **kwargs: Any) -> Any:
                with _engine_span(tracer, span_name, bound(args, kwargs)):
                    return await func(*args, **kwargs)

            return run_async

        @wraps(func)
        def run(*args: Any, **kwargs: Any) -> Any:
            with _engine_span(tracer, span_name, bound(args, kwargs)):
                return func(*args, **kwargs)

        return run

    return decorator


def add_span_attributes(**attributes: str | int | float | bool) -> None:
    """Attach attributes to the active span, if one is recording."""
    span = trace.get_current_span()
    if span.is_recording():
        span.set_attributes(attributes)


def add_span_event(name: str, attributes: dict | None = None) -> None:
    span = trace.get_current_span()
    if span.is_recording():
        span.add_event(name, attributes=attributes or {})
