"""
Observability initialization

Wires logging, tracing and metrics from one TelemetryConfig. Logging is
configured with ``logging.config.dictConfig`` and, for the json format,
python-json-logger's formatter.
"""

import logging
import logging.config
from typing import Optional

from opentelemetry import trace
from opentelemetry.sdk.trace import TracerProvider

from .config import TelemetryConfig
from .metrics import initialize_metrics
from .tracer import initialize_tracing

logger = logging.getLogger(__name__)

_initialized = False
_config: Optional[TelemetryConfig] = None


def configure_logging(level: str = "INFO", log_format: str = "text") -> None:
    """Configure root and itilops loggers with a console handler"""
    log_config = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "json": {
                "()": "pythonjsonlogger.json.JsonFormatter",
                "format": "%(asctime)s %(name)s %(levelname)s %(message)s %(trace_id)s",
            },
            "text": {"format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s"},
        },
        "filters": {"trace_context": {"()": TraceContextFilter}},
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": level,
                "formatter": log_format,
                "filters": ["trace_context"],
                "stream": "ext://sys.stderr",
            }
        },
        "root": {"level": level, "handlers": ["console"]},
        "loggers": {"itilops": {"level": level, "propagate": True}},
    }
    logging.config.dictConfig(log_config)


class TraceContextFilter(logging.Filter):
    """Attach the current trace id to every log record"""

    def filter(self, record: logging.LogRecord) -> bool:
        span = trace.get_current_span()
        if span.is_recording():
            record.trace_id = format(span.get_span_context().trace_id, "032x")
        else:
            record.trace_id = ""
        return True


def initialize_observability(config: TelemetryConfig) -> None:
    """
    Initialize all observability features

    Safe to call more than once; later calls are ignored.
    """
    global _initialized, _config

    if _initialized:
        logger.warning("Observability already initialized, skipping")
        return

    _config = config

    if config.logging.enabled:
        configure_logging(config.logging.level, config.logging.format)

    if not config.enabled:
        logger.info("Telemetry is disabled")
        _initialized = True
        return

    logger.info(f"Initializing observability for environment: {config.environment}")

    if config.tracing.enabled:
        try:
            initialize_tracing(config)
        except Exception as e:
            logger.error(f"Failed to initialize tracing: {e}")

    if config.metrics.enabled:
        try:
            initialize_metrics(config)
        except Exception as e:
            logger.error(f"Failed to initialize metrics: {e}")

    _initialized = True
    logger.info("Observability initialization complete")


def get_observability_config() -> Optional[TelemetryConfig]:
    return _config


def is_observability_initialized() -> bool:
    return _initialized


def shutdown_observability() -> None:
    """Flush and shut down the tracer provider"""
    global _initialized

    if not _initialized:
        return

    provider = trace.get_tracer_provider()
    if isinstance(provider, TracerProvider):
        try:
            provider.shutdown()
        except Exception as e:
            logger.error(f"Error shutting down tracing: {e}")

    _initialized = False
    logger.info("Observability shutdown complete")
