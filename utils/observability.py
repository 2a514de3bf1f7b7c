"""Tracing, metrics and logging context for order processing."""

from __future__ import annotations

import contextlib
import contextvars
import logging
import os
import time
from typing import Dict, Iterator, Optional

from opentelemetry import metrics, trace
from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import MetricReader, PeriodicExportingMetricReader
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, SpanExporter, SpanProcessor
from opentelemetry.trace import Span, Status, StatusCode

_logger = logging.getLogger(__name__)

_TRACER_NAME = "shipping.labels"
_SERVICE_NAME = "shipping-label-automation"

_order_id_var: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "current_order_id", default=None
)

_tracer_provider: Optional[TracerProvider] = None
_meter_provider: Optional[MeterProvider] = None
_configured = False
_global_providers_set = False

_order_counter = None
_fulfillment_counter = None
_escalation_counter = None
_latency_histogram = None


def configure_observability(
    *,
    span_exporter: Optional[SpanExporter] = None,
    span_processor: Optional[SpanProcessor] = None,
    metric_reader: Optional[MetricReader] = None,
    service_name: str = _SERVICE_NAME,
    force: bool = False,
) -> None:
    """Set up the tracer and meter providers.

    Without explicit exporters, OTLP exporters are created only when
    ``OTEL_EXPORTER_OTLP_ENDPOINT`` is set; otherwise spans and metrics stay
    in process.
    """

    global _configured, _tracer_provider, _meter_provider, _global_providers_set

    if _configured and not force:
        return

    resource = Resource.create({"service.name": service_name})
    otlp_enabled = bool(os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT"))

    _tracer_provider = TracerProvider(resource=resource)
    processor = span_processor
    exporter = span_exporter
    if processor is None and exporter is None and otlp_enabled:
        try:
            exporter = OTLPSpanExporter()
        except Exception as exc:  # pragma: no cover - exporter misconfiguration
            _logger.warning("Failed to initialise OTLP span exporter: %s", exc)
    if processor is None and exporter is not None:
        processor = BatchSpanProcessor(exporter)
    if processor is not None:
        _tracer_provider.add_span_processor(processor)

    reader = metric_reader
    if reader is None and otlp_enabled:
        try:
            reader = PeriodicExportingMetricReader(OTLPMetricExporter())
        except Exception as exc:  # pragma: no cover - exporter misconfiguration
            _logger.warning("Failed to initialise OTLP metric exporter: %s", exc)
    _meter_provider = MeterProvider(
        resource=resource, metric_readers=[reader] if reader is not None else []
    )

    # The global providers can only be installed once per process.
    if not _global_providers_set:
        trace.set_tracer_provider(_tracer_provider)
        metrics.set_meter_provider(_meter_provider)
        _global_providers_set = True

    _reset_instruments()
    _configured = True


def shutdown_observability() -> None:
    """Flush pending exports and release the providers."""

    global _configured, _tracer_provider, _meter_provider

    if not _configured:
        return
    for provider, label in ((_tracer_provider, "tracer"), (_meter_provider, "meter")):
        if provider is None:
            continue
        try:
            provider.shutdown()
        except Exception:  # pragma: no cover - exporter failures on shutdown
            _logger.exception("Failed to shutdown %s provider", label)
    _configured = False
    _tracer_provider = None
    _meter_provider = None


def get_current_order_id() -> str:
    return _order_id_var.get() or "-"


@contextlib.contextmanager
def order_context(order_id: Optional[str]) -> Iterator[None]:
    """Tag every log record emitted inside the block with *order_id*."""

    token = _order_id_var.set(order_id)
    try:
        yield
    finally:
        _order_id_var.reset(token)


def _mark_failed(span: Span, exc: BaseException) -> None:
    span.record_exception(exc)
    span.set_status(Status(StatusCode.ERROR, str(exc)))


@contextlib.contextmanager
def order_run(order_id: str) -> Iterator[Span]:
    """Root span and log context for one paid-order webhook."""

    if not _configured:
        configure_observability()

    tracer = _tracer_provider.get_tracer(_TRACER_NAME)
    status = "success"
    with order_context(order_id), tracer.start_as_current_span(
        "shipping.order",
        attributes={"shop.order_id": order_id},
        record_exception=False,
        set_status_on_exception=False,
    ) as span:
        try:
            yield span
        except Exception as exc:
            status = "failure"
            _mark_failed(span, exc)
            raise
        finally:
            span.set_attribute("shipping.order.status", status)
            if _order_counter is not None:
                _order_counter.add(1, attributes={"status": status})


@contextlib.contextmanager
def observe_operation(
    operation: str, attributes: Optional[Dict[str, str]] = None
) -> Iterator[Span]:
    """Child span and latency sample for one step of order processing."""

    if not _configured:
        configure_observability()

    span_attributes: Dict[str, str] = {"shipping.operation": operation}
    order_id = _order_id_var.get()
    if order_id:
        span_attributes["shop.order_id"] = order_id
    if attributes:
        span_attributes.update(attributes)

    tracer = _tracer_provider.get_tracer(_TRACER_NAME)
    start = time.perf_counter()
    with tracer.start_as_current_span(
        f"shipping.{operation}",
        attributes=span_attributes,
        record_exception=False,
        set_status_on_exception=False,
    ) as span:
        try:
            yield span
        except Exception as exc:
            _mark_failed(span, exc)
            raise
        finally:
            duration_ms = (time.perf_counter() - start) * 1000
            span.set_attribute("shipping.operation.duration_ms", duration_ms)
            if _latency_histogram is not None:
                _latency_histogram.record(duration_ms, attributes={"operation": operation})


def record_fulfillment_outcome(status: str) -> None:
    if not _configured:
        configure_observability()
    if _fulfillment_counter is not None:
        _fulfillment_counter.add(1, attributes={"status": status})


def record_escalation(error_kind: str) -> None:
    if not _configured:
        configure_observability()
    if _escalation_counter is not None:
        _escalation_counter.add(1, attributes={"error.kind": error_kind})


def _reset_instruments() -> None:
    global _order_counter, _fulfillment_counter, _escalation_counter, _latency_histogram

    meter = _meter_provider.get_meter(_TRACER_NAME)
    _order_counter = meter.create_counter(
        "shipping_orders_total",
        description="Paid-order webhooks processed, by outcome.",
    )
    _fulfillment_counter = meter.create_counter(
        "shipping_fulfillment_orders_total",
        description="Fulfillment orders processed, by outcome.",
    )
    _escalation_counter = meter.create_counter(
        "shipping_rate_escalations_total",
        description="Rate searches that ended without a suitable rate.",
    )
    _latency_histogram = meter.create_histogram(
        "shipping_operation_duration_ms",
        description="Latency distribution for order processing steps.",
        unit="ms",
    )


class OrderIdFilter(logging.Filter):
    """Ensure every log record carries the current order identifier."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.order_id = get_current_order_id()
        return True
