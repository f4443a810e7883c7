"""
OpenTelemetry tracing for the automation rules

Spans wrap each rule evaluation (ingest, SLA check, escalation, pattern
linking, synthesis, impact analysis) and each scheduled pipeline cycle.
When tracing was never initialized the global no-op tracer is used, so the
decorators cost next to nothing in library use.
"""

import functools
import logging
import time
from contextlib import contextmanager
from typing import Any, Callable, Optional, ParamSpec, TypeVar

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.sdk.trace.sampling import TraceIdRatioBased
from opentelemetry.trace import Status, StatusCode

from .config import TelemetryConfig

logger = logging.getLogger(__name__)

_tracer: Optional[trace.Tracer] = None
_config: Optional[TelemetryConfig] = None

P = ParamSpec("P")
T = TypeVar("T")

_SIMPLE_TYPES = (str, int, float, bool)


def initialize_tracing(config: TelemetryConfig) -> None:
    """Initialize OpenTelemetry tracing with the given configuration"""
    global _tracer, _config

    if not config.enabled or not config.tracing.enabled:
        logger.info("Tracing is disabled")
        return

    _config = config

    resource = Resource.create(config.get_resource_attributes())
    sampler = TraceIdRatioBased(config.tracing.sample_rate)
    provider = TracerProvider(resource=resource, sampler=sampler)

    if config.should_export_traces():
        try:
            exporter = OTLPSpanExporter(
                endpoint=config.tracing.otlp_endpoint,
                headers=config.tracing.otlp_headers,
                insecure=config.tracing.otlp_insecure,
            )
            provider.add_span_processor(BatchSpanProcessor(exporter))
            logger.info(
                f"OTLP trace exporter configured for {config.tracing.otlp_endpoint}"
            )
        except Exception as e:
            logger.error(f"Failed to configure OTLP exporter: {e}")

    trace.set_tracer_provider(provider)
    _tracer = trace.get_tracer(
        instrumenting_module_name="itilops",
        instrumenting_library_version=config.tracing.service_version,
    )

    logger.info(
        f"OpenTelemetry tracing initialized (sample_rate={config.tracing.sample_rate})"
    )


def get_tracer() -> trace.Tracer:
    """Get the configured tracer, or a no-op tracer before initialization"""
    if _tracer is None:
        return trace.NoOpTracer()
    return _tracer


@contextmanager
def trace_operation(
    operation_name: str,
    attributes: Optional[dict[str, Any]] = None,
    set_status_on_exception: bool = True,
):
    """
    Context manager for tracing operations

    Args:
        operation_name: Name of the operation being traced
        attributes: Additional attributes to add to the span
        set_status_on_exception: Whether to set error status on exceptions
    """
    tracer = get_tracer()

    with tracer.start_as_current_span(operation_name) as span:
        for key, value in (attributes or {}).items():
            span.set_attribute(key, value)

        try:
            yield span
        except Exception as e:
            if set_status_on_exception:
                span.set_status(Status(StatusCode.ERROR, str(e)))
                span.record_exception(e)
            raise


def _argument_attributes(args: tuple, kwargs: dict) -> dict[str, Any]:
    """Record only simple argument types to keep spans small"""
    attributes: dict[str, Any] = {}
    for i, arg in enumerate(args):
        if isinstance(arg, _SIMPLE_TYPES):
            attributes[f"arg.{i}"] = arg
    for key, value in kwargs.items():
        if isinstance(value, _SIMPLE_TYPES):
            attributes[f"kwarg.{key}"] = value
    return attributes


def _record_result(span, result: Any) -> None:
    if isinstance(result, _SIMPLE_TYPES):
        span.set_attribute("result", result)
    elif hasattr(result, "__len__"):
        span.set_attribute("result.length", len(result))


def trace_sync(
    operation_name: Optional[str] = None,
    record_args: bool = False,
    record_result: bool = False,
):
    """
    Decorator for tracing synchronous functions

    Args:
        operation_name: Custom operation name (defaults to function name)
        record_args: Whether to record simple arguments as attributes
        record_result: Whether to record the result (or its length)
    """

    def decorator(func: Callable[P, T]) -> Callable[P, T]:
        @functools.wraps(func)
        def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            name = operation_name or f"{func.__module__}.{func.__qualname__}"
            span_attributes = _argument_attributes(args, kwargs) if record_args else {}

            with trace_operation(name, span_attributes) as span:
                start_time = time.time()
                try:
                    result = func(*args, **kwargs)
                except Exception as e:
                    span.set_attribute("error.type", type(e).__name__)
                    raise
                finally:
                    span.set_attribute(
                        "operation.duration_ms", (time.time() - start_time) * 1000
                    )

                if record_result and result is not None:
                    _record_result(span, result)
                return result

        return wrapper

    return decorator


def trace_async(
    operation_name: Optional[str] = None,
    record_args: bool = False,
):
    """Decorator for tracing coroutine functions"""

    def decorator(func: Callable[P, T]) -> Callable[P, T]:
        @functools.wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            name = operation_name or f"{func.__module__}.{func.__qualname__}"
            span_attributes = _argument_attributes(args, kwargs) if record_args else {}

            with trace_operation(name, span_attributes) as span:
                start_time = time.time()
                try:
                    return await func(*args, **kwargs)
                except Exception as e:
                    span.set_attribute("error.type", type(e).__name__)
                    raise
                finally:
                    span.set_attribute(
                        "operation.duration_ms", (time.time() - start_time) * 1000
                    )

        return wrapper

    return decorator


def add_event(name: str, attributes: Optional[dict[str, Any]] = None) -> None:
    """Add an event to the current span"""
    span = trace.get_current_span()
    if span.is_recording():
        span.add_event(name, attributes or {})


def set_attribute(key: str, value: Any) -> None:
    """Set an attribute on the current span"""
    span = trace.get_current_span()
    if span.is_recording():
        span.set_attribute(key, value)


def get_trace_id() -> str:
    """Current trace id as hex, empty when no span is recording"""
    span = trace.get_current_span()
    if span.is_recording():
        return format(span.get_span_context().trace_id, "032x")
    return ""


def is_tracing_enabled() -> bool:
    return _tracer is not None and _config is not None and _config.tracing.enabled
