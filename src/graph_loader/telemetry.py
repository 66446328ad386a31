"""OpenTelemetry integration for graph-loader.

Instruments are created through the OTel API, which hands out no-op
implementations until ``init_telemetry`` installs real providers, so the rest
of the codebase can instrument unconditionally.  Exporter packages beyond the
SDK's console exporter are optional (``[otel]`` extra) and imported lazily.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from loguru import logger
from opentelemetry import metrics as otel_metrics
from opentelemetry import trace as otel_trace

if TYPE_CHECKING:
    from graph_loader.settings import ObservabilitySettings

# ---------------------------------------------------------------------------
# Singleton state
# ---------------------------------------------------------------------------

_initialized: bool = False
_enabled: bool = False

# ---------------------------------------------------------------------------
# Factory functions (safe to call at module level)
# ---------------------------------------------------------------------------


def get_tracer(name: str) -> otel_trace.Tracer:
    """Return a tracer; a proxy that starts recording once a provider is set."""
    return otel_trace.get_tracer(name)


def get_meter(name: str) -> otel_metrics.Meter:
    """Return a meter; a proxy that starts recording once a provider is set."""
    return otel_metrics.get_meter(name)


# ---------------------------------------------------------------------------
# Metric instruments (centralized, lazy-initialized)
# ---------------------------------------------------------------------------


def _noop_meter() -> otel_metrics.Meter:
    return otel_metrics.NoOpMeter("graph_loader")


@dataclass
class _Metrics:
    """Central registry of metric instruments."""

    batches_total: Any = field(default_factory=lambda: _noop_meter().create_counter("batches_total"))
    records_loaded_total: Any = field(default_factory=lambda: _noop_meter().create_counter("records_loaded_total"))
    records_failed_total: Any = field(default_factory=lambda: _noop_meter().create_counter("records_failed_total"))
    fallbacks_total: Any = field(default_factory=lambda: _noop_meter().create_counter("fallbacks_total"))
    batch_duration: Any = field(default_factory=lambda: _noop_meter().create_histogram("batch_duration"))


_metrics = _Metrics()


def get_metrics() -> _Metrics:
    """Return the centralized metrics namespace."""
    return _metrics


# ---------------------------------------------------------------------------
# Initialization / shutdown
# ---------------------------------------------------------------------------


def init_telemetry(settings: ObservabilitySettings) -> None:
    """Configure OTel providers and instruments based on *settings*.

    Safe to call multiple times; only the first call has effect.
    """
    global _initialized, _enabled, _metrics  # noqa: PLW0603

    if _initialized:
        return
    _initialized = True

    if not settings.enabled:
        logger.debug("Telemetry disabled")
        return

    _enabled = True

    from opentelemetry.sdk.metrics import MeterProvider  # noqa: PLC0415
    from opentelemetry.sdk.resources import Resource  # noqa: PLC0415
    from opentelemetry.sdk.trace import TracerProvider  # noqa: PLC0415
    from opentelemetry.sdk.trace.sampling import TraceIdRatioBased  # noqa: PLC0415

    resource = Resource.create(
        {
            "service.name": settings.service_name,
            "service.version": _get_version(),
        }
    )

    # Tracer provider
    tracer_provider = TracerProvider(resource=resource, sampler=TraceIdRatioBased(settings.sample_rate))

    span_exporter = _build_span_exporter(settings)
    if span_exporter is not None:
        from opentelemetry.sdk.trace.export import BatchSpanProcessor  # noqa: PLC0415

        tracer_provider.add_span_processor(BatchSpanProcessor(span_exporter))

    otel_trace.set_tracer_provider(tracer_provider)

    # Meter provider
    metric_reader = _build_metric_reader(settings)
    readers = [metric_reader] if metric_reader is not None else []
    otel_metrics.set_meter_provider(MeterProvider(resource=resource, metric_readers=readers))

    meter = otel_metrics.get_meter("graph_loader")
    _metrics = _Metrics(
        batches_total=meter.create_counter("loader_batches_total", description="Batches executed"),
        records_loaded_total=meter.create_counter("loader_records_loaded_total", description="Records loaded"),
        records_failed_total=meter.create_counter("loader_records_failed_total", description="Records failed"),
        fallbacks_total=meter.create_counter(
            "loader_fallbacks_total", description="Batches replayed record by record"
        ),
        batch_duration=meter.create_histogram(
            "loader_batch_duration_seconds", description="Batch execution duration", unit="s"
        ),
    )

    logger.info("Telemetry initialized (exporter={}, sample_rate={})", settings.exporter, settings.sample_rate)


def shutdown_telemetry() -> None:
    """Flush and shut down OTel providers. Safe to call even when not initialized."""
    global _initialized, _enabled  # noqa: PLW0603

    if not _initialized or not _enabled:
        return

    tp = otel_trace.get_tracer_provider()
    if hasattr(tp, "shutdown"):
        tp.shutdown()

    mp = otel_metrics.get_meter_provider()
    if hasattr(mp, "shutdown"):
        mp.shutdown()

    _initialized = False
    _enabled = False
    logger.debug("Telemetry shut down")


# ---------------------------------------------------------------------------
# Private helpers
# ---------------------------------------------------------------------------


def _get_version() -> str:
    """Best-effort version string."""
    from importlib.metadata import PackageNotFoundError, version  # noqa: PLC0415

    try:
        return version("graph-loader")
    except PackageNotFoundError:
        return "0.0.0-dev"


def _build_span_exporter(settings: ObservabilitySettings) -> Any:
    """Build a span exporter based on settings, or ``None``."""
    if settings.exporter == "none":
        return None
    if settings.exporter == "console":
        from opentelemetry.sdk.trace.export import ConsoleSpanExporter  # noqa: PLC0415

        return ConsoleSpanExporter()
    # Default: OTLP gRPC
    from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter  # noqa: PLC0415

    return OTLPSpanExporter(endpoint=settings.endpoint)


def _build_metric_reader(settings: ObservabilitySettings) -> Any:
    """Build a metric reader based on settings, or ``None``."""
    if settings.exporter == "none":
        return None
    if settings.exporter == "console":
        from opentelemetry.sdk.metrics.export import (  # noqa: PLC0415
            ConsoleMetricExporter,
            PeriodicExportingMetricReader,
        )

        return PeriodicExportingMetricReader(ConsoleMetricExporter())
    # Default: OTLP gRPC
    from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter  # noqa: PLC0415
    from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader  # noqa: PLC0415

    return PeriodicExportingMetricReader(OTLPMetricExporter(endpoint=settings.endpoint))
