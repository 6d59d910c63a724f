"""Meter binders that register a fixed set of runtime metrics on a registry.

All built-in binders register function gauges, so values are sampled when
the registry is collected rather than pushed on a timer.
"""

import gc
import os
import platform
import threading
import time
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable
from typing import Any

from metrics_bootstrap.exceptions import ConfigurationError
from metrics_bootstrap.metrics.registry import MeterRegistry

_PROCESS_START_TIME = time.time()


class MeterBinder(ABC):
    """Registers a predefined set of meters onto a registry."""

    @abstractmethod
    def bind_to(self, registry: MeterRegistry) -> None: ...


class FunctionBinder(MeterBinder):
    """Adapts a plain callable taking a registry to a binder."""

    def __init__(self, fn: Callable[[Any], None]):
        self._fn = fn

    def bind_to(self, registry: MeterRegistry) -> None:
        self._fn(registry)

    def __repr__(self) -> str:
        return f"FunctionBinder({getattr(self._fn, '__name__', repr(self._fn))})"


def as_binder(obj: MeterBinder | Callable[[Any], None]) -> MeterBinder:
    if isinstance(obj, MeterBinder):
        return obj
    if callable(obj):
        return FunctionBinder(obj)
    raise TypeError(f"{obj!r} is not a meter binder")


class UptimeMetrics(MeterBinder):
    """Process start time and uptime."""

    def __init__(self, start_time: float | None = None, clock: Callable[[], float] = time.time):
        self._start_time = _PROCESS_START_TIME if start_time is None else start_time
        self._clock = clock

    def bind_to(self, registry: MeterRegistry) -> None:
        registry.gauge(
            "process_uptime_seconds",
            description="Uptime of the process in seconds",
            fn=lambda: self._clock() - self._start_time,
        )
        registry.gauge(
            "process_start_time_seconds",
            description="Start time of the process since unix epoch in seconds",
            fn=lambda: self._start_time,
        )


class ProcessorMetrics(MeterBinder):
    """CPU count and, where the platform has one, the 1 minute load average."""

    def bind_to(self, registry: MeterRegistry) -> None:
        registry.gauge(
            "system_cpu_count",
            description="Number of processors available to the process",
            fn=lambda: os.cpu_count() or 0,
        )
        if hasattr(os, "getloadavg"):
            registry.gauge(
                "system_load_average_1m",
                description="System load average over the last minute",
                fn=lambda: os.getloadavg()[0],
            )


class GcMetrics(MeterBinder):
    """Garbage collector activity per generation."""

    def bind_to(self, registry: MeterRegistry) -> None:
        for generation in range(len(gc.get_count())):
            tags = {"generation": str(generation)}
            registry.gauge(
                "python_gc_collections",
                tags,
                "Number of times this generation was collected",
                fn=lambda g=generation: gc.get_stats()[g]["collections"],
            )
            registry.gauge(
                "python_gc_objects_tracked",
                tags,
                "Allocations minus deallocations since the generation was last collected",
                fn=lambda g=generation: gc.get_count()[g],
            )


class ThreadMetrics(MeterBinder):
    """Live and daemon thread counts."""

    def bind_to(self, registry: MeterRegistry) -> None:
        registry.gauge(
            "python_threads_live",
            description="Number of live threads",
            fn=threading.active_count,
        )
        registry.gauge(
            "python_threads_daemon",
            description="Number of live daemon threads",
            fn=lambda: sum(1 for thread in threading.enumerate() if thread.daemon),
        )


class PythonInfoMetrics(MeterBinder):
    """Constant gauge describing the interpreter."""

    def bind_to(self, registry: MeterRegistry) -> None:
        registry.gauge(
            "python_info",
            {
                "version": platform.python_version(),
                "implementation": platform.python_implementation(),
            },
            "Python platform information",
        ).set(1)


BINDERS: dict[str, type[MeterBinder]] = {
    "uptime": UptimeMetrics,
    "processor": ProcessorMetrics,
    "gc": GcMetrics,
    "threads": ThreadMetrics,
    "python_info": PythonInfoMetrics,
}


def binders_from_names(names: Iterable[str]) -> list[MeterBinder]:
    """Instantiate built-in binders by key.

    Raises:
        ConfigurationError: If any name is not a built-in binder.
    """
    names = list(names)
    unknown = [name for name in names if name not in BINDERS]
    if unknown:
        raise ConfigurationError(
            f"Unknown metric binders {unknown}; expected any of {sorted(BINDERS)}"
        )
    return [BINDERS[name]() for name in names]
