"""Logging and tracing setup for the ticketdesk service.

Logging goes through :func:`logging.config.dictConfig`; spans are exported
over OTLP/HTTP only when ``otel_enabled`` is set, otherwise every tracer
handed out by :func:`get_tracer` is a no-op.
"""

from __future__ import annotations

import logging
from logging.config import dictConfig
from typing import Any, Mapping

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

from ticketdesk import __version__
from ticketdesk.core.config import Settings

PACKAGE_LOGGER = "ticketdesk"

_active_provider: TracerProvider | None = None


def _level(name: str, default: int = logging.INFO) -> int:
    value = logging.getLevelName(name.strip().upper())
    return value if isinstance(value, int) else default


def parse_otlp_headers(raw: str | None) -> dict[str, str]:
    """Parse ``key=value,key2=value2`` as used by ``OTEL_EXPORTER_OTLP_HEADERS``."""

    headers: dict[str, str] = {}
    for item in (raw or "").split(","):
        key, sep, value = item.partition("=")
        if sep and key.strip():
            headers[key.strip()] = value.strip()
    return headers


def logging_config(settings: Settings) -> dict[str, Any]:
    """Build the ``dictConfig`` mapping for ``settings``."""

    level = _level(settings.log_level)
    loggers: dict[str, dict[str, Any]] = {
        PACKAGE_LOGGER: {"level": level},
        "sqlalchemy.engine": {"level": logging.INFO if settings.database_echo else logging.WARNING},
    }
    overrides: Mapping[str, str] = settings.log_levels
    for name, value in overrides.items():
        loggers[name] = {"level": _level(value, level)}
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {"default": {"format": settings.log_format}},
        "handlers": {
            "default": {
                "class": "logging.StreamHandler",
                "formatter": "default",
            }
        },
        "loggers": loggers,
        "root": {"handlers": ["default"], "level": level},
    }


def configure_logging(settings: Settings) -> logging.Logger:
    """Apply :func:`logging_config` and return the package logger."""

    dictConfig(logging_config(settings))
    return logging.getLogger(PACKAGE_LOGGER)


def init_tracer(settings: Settings) -> TracerProvider | None:
    """Install an OTLP-exporting tracer provider when tracing is enabled."""

    global _active_provider

    if _active_provider is not None or not settings.otel_enabled:
        return None

    resource = Resource(
        attributes={
            "service.name": settings.otel_service_name,
            "service.version": __version__,
            "deployment.environment": settings.environment,
        }
    )
    provider = TracerProvider(resource=resource)
    exporter_kwargs: dict[str, Any] = {}
    if settings.otel_exporter_otlp_endpoint:
        exporter_kwargs["endpoint"] = settings.otel_exporter_otlp_endpoint
    headers = parse_otlp_headers(settings.otel_exporter_otlp_headers)
    if headers:
        exporter_kwargs["headers"] = headers
    provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(**exporter_kwargs)))

    trace.set_tracer_provider(provider)
    _active_provider = provider
    return provider


def shutdown_tracer(provider: TracerProvider | None) -> None:
    """Flush and shut down ``provider``."""

    global _active_provider

    if provider is None:
        return
    provider.shutdown()
    if provider is _active_provider:
        _active_provider = None


def get_tracer(name: str) -> trace.Tracer:
    return trace.get_tracer(name)
