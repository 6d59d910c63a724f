"""Process-wide global meter registry.

The global registry is a CompositeMeterRegistry created on first use and kept
for the lifetime of the process. Registries added to it receive every meter
registered through it:

    from metrics_bootstrap.metrics import global_registry as metrics

    metrics.add_registry(PrometheusMeterRegistry())
    metrics.counter("jobs_processed").inc()

Tests must call reset_global_registry() between cases.
"""

import logging
import threading
from collections.abc import Callable
from typing import Any

from metrics_bootstrap.metrics.composite import CompositeMeterRegistry
from metrics_bootstrap.metrics.registry import MeterRegistry, Tags

logger = logging.getLogger(__name__)

_global_registry: CompositeMeterRegistry | None = None
_global_lock = threading.Lock()


def global_registry() -> CompositeMeterRegistry:
    """Get the global registry, creating it on first use."""
    global _global_registry
    with _global_lock:
        if _global_registry is None:
            _global_registry = CompositeMeterRegistry()
            logger.debug("Created global meter registry")
        return _global_registry


def add_registry(registry: MeterRegistry) -> None:
    """Add a registry to the global registry; adding it twice is a no-op."""
    global_registry().add(registry)
    logger.info("Added registry to global registry", extra={"registry": repr(registry)})


def remove_registry(registry: MeterRegistry) -> None:
    global_registry().remove(registry)


def reset_global_registry() -> None:
    """Discard the global registry so the next access creates a fresh one."""
    global _global_registry
    with _global_lock:
        _global_registry = None


def counter(name: str, tags: Tags | None = None, description: str = "") -> Any:
    """Get or create a counter on the global registry."""
    return global_registry().counter(name, tags, description)


def gauge(
    name: str,
    tags: Tags | None = None,
    description: str = "",
    fn: Callable[[], float] | None = None,
) -> Any:
    """Get or create a gauge on the global registry."""
    return global_registry().gauge(name, tags, description, fn=fn)


def histogram(
    name: str,
    tags: Tags | None = None,
    description: str = "",
    buckets: tuple[float, ...] | None = None,
) -> Any:
    """Get or create a histogram on the global registry."""
    return global_registry().histogram(name, tags, description, buckets=buckets)
