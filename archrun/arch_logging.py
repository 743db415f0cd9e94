"""Logging and observability for archrun.

Everything logs under the ``archrun`` logger hierarchy. Console output is
plain text; the optional log file receives one JSON object per line, with the
delivery context (component, unit, error kind) passed through
``extra={"extra_fields": {...}}``. Pipeline stages announce themselves as
workflow events that observers can subscribe to.
"""

from __future__ import annotations

import json
import logging as std_logging
import time
from collections import defaultdict
from contextlib import contextmanager
from dataclasses import asdict, dataclass, field
from datetime import datetime
from functools import wraps
from pathlib import Path
from typing import Any, Callable, DefaultDict, Dict, Iterator, List, Optional, Union


ROOT_LOGGER = "archrun"

CONSOLE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(module)s:%(funcName)s:%(lineno)d - %(message)s"


def _child(name: str) -> std_logging.Logger:
    return std_logging.getLogger(f"{ROOT_LOGGER}.{name}")


def setup_logging(log_level: Union[str, int] = std_logging.INFO, log_file: Optional[Path] = None) -> None:
    """Configure the archrun logger: readable console output, JSON lines on disk."""
    root = std_logging.getLogger(ROOT_LOGGER)
    root.setLevel(log_level)
    root.handlers.clear()

    console = std_logging.StreamHandler()
    console.setLevel(log_level)
    console.setFormatter(std_logging.Formatter(CONSOLE_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    root.addHandler(console)

    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        on_disk = std_logging.FileHandler(path, encoding="utf-8")
        on_disk.setLevel(std_logging.DEBUG)
        on_disk.setFormatter(JsonFormatter())
        root.addHandler(on_disk)

    root.debug(f"archrun logging initialized at level {std_logging.getLevelName(root.level)}")


class JsonFormatter(std_logging.Formatter):
    """One JSON object per record, merged with the record's ``extra_fields``."""

    def format(self, record: std_logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
            "message": record.getMessage(),
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        entry.update(getattr(record, "extra_fields", None) or {})
        return json.dumps(entry, default=str)


@dataclass
class Metric:
    name: str
    value: Any
    tags: Dict[str, str] = field(default_factory=dict)
    timestamp: str = field(default_factory=lambda: datetime.utcnow().isoformat())


class PerformanceMonitor:
    """In-memory series of named measurements, mostly operation durations."""

    def __init__(self):
        self.metrics: DefaultDict[str, List[Dict[str, Any]]] = defaultdict(list)

    def record_metric(self, name: str, value: Any, tags: Optional[Dict[str, str]] = None) -> None:
        metric = asdict(Metric(name=name, value=value, tags=dict(tags or {})))
        self.metrics[name].append(metric)
        _child("performance").debug(f"Metric recorded: {name}={value}", extra={"extra_fields": metric})

    def get_metrics(self, name: Optional[str] = None) -> Dict[str, List[Dict[str, Any]]]:
        """One series when ``name`` is given, otherwise a snapshot of all of them."""
        if name:
            return {name: list(self.metrics.get(name, []))}
        return {key: list(series) for key, series in self.metrics.items()}

    def reset(self) -> None:
        self.metrics.clear()


performance_monitor = PerformanceMonitor()


@contextmanager
def _timed(operation_name: str) -> Iterator[Dict[str, Any]]:
    """Measure the enclosed block; the yielded dict ends up holding status and duration."""
    outcome: Dict[str, Any] = {"operation": operation_name}
    started = time.perf_counter()
    try:
        yield outcome
    except Exception as e:
        outcome.update(status="error", error_type=type(e).__name__, error_message=str(e))
        raise
    else:
        outcome["status"] = "success"
    finally:
        outcome["duration"] = time.perf_counter() - started


def log_performance(operation_name: str):
    """Record ``<operation>_duration`` for every call of the decorated function."""

    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            logger = _child("performance")
            timing: Dict[str, Any] = {}
            try:
                with _timed(operation_name) as timing:
                    return func(*args, **kwargs)
            finally:
                tags = {"status": timing.get("status", "error")}
                if "error_type" in timing:
                    tags["error_type"] = timing["error_type"]
                performance_monitor.record_metric(f"{operation_name}_duration", timing.get("duration", 0.0), tags)
                if tags["status"] == "success":
                    logger.debug(
                        f"Completed operation: {operation_name} in {timing['duration']:.3f}s",
                        extra={"extra_fields": timing},
                    )
                else:
                    logger.warning(
                        f"Operation {operation_name} failed after {timing.get('duration', 0.0):.3f}s: "
                        f"{timing.get('error_message', '')}",
                        extra={"extra_fields": timing},
                    )

        return wrapper

    return decorator


@contextmanager
def log_operation(operation_name: str, **extra_fields):
    """Log the start and the outcome of a block, tagged with ``extra_fields``."""
    logger = std_logging.getLogger(f"{ROOT_LOGGER}.operations")
    logger.debug(
        f"Starting operation: {operation_name}",
        extra={"extra_fields": {"operation": operation_name, "status": "started", **extra_fields}},
    )

    timing: Dict[str, Any] = {}
    try:
        with _timed(operation_name) as timing:
            yield
    except Exception:
        logger.info(
            f"Operation {operation_name} halted after {timing['duration']:.3f}s: {timing['error_message']}",
            extra={"extra_fields": {**timing, "status": "failed", **extra_fields}},
        )
        raise

    logger.info(
        f"Completed operation: {operation_name} in {timing['duration']:.3f}s",
        extra={"extra_fields": {**timing, "status": "completed", **extra_fields}},
    )


Hook = Callable[..., Any]


class ObservabilityHooks:
    """Subscribers for delivery events (unit committed, status advanced, ...)."""

    def __init__(self):
        self.hooks: DefaultDict[str, List[Hook]] = defaultdict(list)
        self.logger = _child("observability")

    def register_hook(self, event_type: str, callback: Hook) -> None:
        self.hooks[event_type].append(callback)
        self.logger.debug(f"Registered hook for event: {event_type}")

    def unregister_hook(self, event_type: str, callback: Hook) -> None:
        if callback in self.hooks.get(event_type, ()):
            self.hooks[event_type].remove(callback)

    def trigger_hooks(self, event_type: str, **data) -> None:
        for hook in tuple(self.hooks.get(event_type, ())):
            try:
                hook(**data)
            except Exception as e:
                # A broken observer must not abort a delivery that already committed.
                self.logger.error(f"Hook {getattr(hook, '__name__', hook)!s} failed on {event_type}: {e}", exc_info=True)

    def log_workflow_event(self, event_type: str, component: Optional[str] = None, **data) -> None:
        """Log ``event_type`` and hand its payload (without the type) to the subscribers."""
        payload = {"timestamp": datetime.utcnow().isoformat(), "component": component, **data}
        self.logger.info(
            f"Workflow event: {event_type}",
            extra={"extra_fields": {"event_type": event_type, **payload}},
        )
        self.trigger_hooks(event_type, **payload)


observability_hooks = ObservabilityHooks()


def log_error_with_context(error: Exception, context: Dict[str, Any], **extra_fields) -> None:
    """Log an error together with the operation it interrupted."""
    fields = {
        "timestamp": datetime.utcnow().isoformat(),
        "error_type": type(error).__name__,
        "error_kind": getattr(error, "kind", None),
        "error_message": str(error),
        "context": context,
        **extra_fields,
    }
    operation = context.get("operation", "unknown operation")
    std_logging.getLogger(f"{ROOT_LOGGER}.errors").error(
        f"Error in {operation}: {error}", extra={"extra_fields": fields}
    )


def log_resolution(component: Optional[str], requested: str, exact: bool, **extra_fields) -> None:
    observability_hooks.log_workflow_event(
        "component_resolved", component=component, requested=requested, exact=exact, **extra_fields
    )


def log_plan_created(component: str, unit_count: int, **extra_fields) -> None:
    observability_hooks.log_workflow_event("plan_created", component=component, unit_count=unit_count, **extra_fields)


def log_plan_sequenced(component: str, step_count: int, **extra_fields) -> None:
    observability_hooks.log_workflow_event("plan_sequenced", component=component, step_count=step_count, **extra_fields)


def log_unit_completed(component: str, unit_id: str, kind: str, **extra_fields) -> None:
    observability_hooks.log_workflow_event(
        "unit_completed", component=component, unit_id=unit_id, kind=kind, **extra_fields
    )


def log_docs_synthesized(component: str, unit_id: str, block_count: int, **extra_fields) -> None:
    observability_hooks.log_workflow_event(
        "docs_synthesized", component=component, unit_id=unit_id, block_count=block_count, **extra_fields
    )


def log_status_transition(component: str, from_state: str, to_state: str, **extra_fields) -> None:
    observability_hooks.log_workflow_event(
        "status_advanced", component=component, from_state=from_state, to_state=to_state, **extra_fields
    )
