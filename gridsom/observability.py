"""
Observability infrastructure for gridsom
Provides structured logging, metrics and operation tracing
"""

import logging
import time
import uuid
from contextlib import contextmanager

import psutil
import structlog
from prometheus_client import (
    Counter,
    Histogram,
    Gauge,
    generate_latest,
)


# Prometheus Metrics
TRAINING_DURATION = Histogram(
    "gridsom_training_duration_seconds",
    "SOM training duration in seconds",
    ["width", "height"],
)

TRAINING_ITERATIONS = Counter(
    "gridsom_training_iterations_total", "Total training iterations completed"
)

BMU_QUERIES = Counter(
    "gridsom_bmu_queries_total", "Total best matching unit searches outside training"
)

SNAPSHOT_OPERATIONS = Counter(
    "gridsom_snapshot_operations_total",
    "Snapshots saved or loaded",
    ["operation", "format"],
)

PROCESS_MEMORY_USAGE = Gauge(
    "gridsom_process_memory_rss_bytes", "Resident memory of the current process"
)

PROCESS_CPU_USAGE = Gauge(
    "gridsom_process_cpu_usage_percent", "CPU usage of the current process"
)


OPERATION_DURATION = Histogram(
    "gridsom_operation_duration_seconds",
    "Duration of traced operations",
    ["operation", "status"],
)


class CorrelationIDProcessor:
    """Add correlation ID to log entries"""

    def __call__(self, logger, method_name, event_dict):
        event_dict.setdefault("correlation_id", "none")
        return event_dict


def setup_logging(log_level="INFO", json_format: bool = True) -> None:
    """
    Configure structlog on top of the standard library logging module

    Args:
        log_level: Level name ("debug", "WARNING", ...) or logging constant
        json_format: Render JSON lines instead of the coloured console format
    """
    if isinstance(log_level, str):
        level = logging.getLevelName(log_level.upper())
        if not isinstance(level, int):
            raise ValueError(f"Unknown log level: {log_level}")
    else:
        level = int(log_level)

    renderer = (
        structlog.processors.JSONRenderer()
        if json_format
        else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="ISO"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            CorrelationIDProcessor(),
            renderer,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(format="%(message)s", level=level)
    logging.getLogger("gridsom").setLevel(level)


def get_correlation_id() -> str:
    """Generate a new correlation ID"""
    return uuid.uuid4().hex


@contextmanager
def trace_operation(operation_name: str, **extra_context):
    """
    Log the start and outcome of a block and record its duration

    Yields the correlation ID shared by every log line of the block.
    Exceptions are logged and re-raised.
    """
    correlation_id = get_correlation_id()
    log = structlog.get_logger("gridsom.trace").bind(
        operation=operation_name, correlation_id=correlation_id, **extra_context
    )
    start_time = time.time()
    log.info("Operation started")

    try:
        yield correlation_id
    except Exception as e:
        duration = time.time() - start_time
        OPERATION_DURATION.labels(operation=operation_name, status="error").observe(duration)
        log.error(
            "Operation failed",
            duration_seconds=duration,
            error=str(e),
            error_type=type(e).__name__,
        )
        raise

    duration = time.time() - start_time
    OPERATION_DURATION.labels(operation=operation_name, status="ok").observe(duration)
    log.info("Operation completed", duration_seconds=duration)


def update_process_metrics():
    """Refresh memory and CPU gauges for the current process"""
    try:
        process = psutil.Process()
        PROCESS_MEMORY_USAGE.set(process.memory_info().rss)
        PROCESS_CPU_USAGE.set(process.cpu_percent(interval=None))
    except psutil.Error as e:
        structlog.get_logger(__name__).error(
            "Failed to update process metrics", error=str(e)
        )


def get_metrics() -> bytes:
    """Prometheus exposition text for every gridsom metric"""
    update_process_metrics()
    return generate_latest()


def log_training_metrics(width: int, height: int, duration: float, iterations: int):
    """Record one finished train() call"""
    TRAINING_DURATION.labels(width=str(width), height=str(height)).observe(duration)
    TRAINING_ITERATIONS.inc(iterations)


def log_bmu_query(count: int = 1):
    BMU_QUERIES.inc(count)


def log_snapshot_operation(operation: str, file_format: str):
    SNAPSHOT_OPERATIONS.labels(operation=operation, format=file_format).inc()
