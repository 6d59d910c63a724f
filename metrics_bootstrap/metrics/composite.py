"""Composite meter registry that fans out to child registries."""

import logging
import time
from collections.abc import Callable, Iterable, Iterator
from contextlib import contextmanager
from typing import Any

from metrics_bootstrap.exceptions import MeterRegistrationError
from metrics_bootstrap.metrics.registry import MeterId, MeterRegistry

logger = logging.getLogger(__name__)


class CompositeMeter:
    """Meter that forwards every operation to the matching meter of each child.

    Child meters are resolved on every call, so a registry added to the
    composite later starts receiving updates immediately. Each child applies
    its own common tags and filters to the forwarded id.
    """

    def __init__(self, composite: "CompositeMeterRegistry", meter_id: MeterId, options: dict[str, Any]):
        self._composite = composite
        self._id = meter_id
        self._options = {key: value for key, value in options.items() if value is not None}

    @property
    def id(self) -> MeterId:
        return self._id

    def materialize(self, registry: MeterRegistry) -> Any:
        """Return this meter as registered on a child registry."""
        return registry.meter(
            self._id.kind,
            self._id.name,
            self._id.tags_dict,
            self._id.description,
            **self._options,
        )

    def _children(self) -> list[Any]:
        meters = []
        for registry in self._composite.registries:
            try:
                meters.append(self.materialize(registry))
            except MeterRegistrationError as e:
                logger.warning(
                    "Skipping registry with a conflicting meter",
                    extra={"meter": self._id.name, "registry": repr(registry), "error": str(e)},
                )
        return meters

    def inc(self, amount: float = 1) -> None:
        for meter in self._children():
            meter.inc(amount)

    def dec(self, amount: float = 1) -> None:
        for meter in self._children():
            meter.dec(amount)

    def set(self, value: float) -> None:
        for meter in self._children():
            meter.set(value)

    def set_function(self, fn: Callable[[], float]) -> None:
        self._options["fn"] = fn
        for meter in self._children():
            meter.set_function(fn)

    def observe(self, amount: float) -> None:
        for meter in self._children():
            meter.observe(amount)

    @contextmanager
    def time(self) -> Iterator[None]:
        start = time.perf_counter()
        try:
            yield
        finally:
            self.observe(time.perf_counter() - start)


class CompositeMeterRegistry(MeterRegistry):
    """Registry that holds no meters of its own and delegates to child registries.

    Adding and removing children is synchronized, so registries configured on
    different threads can join the same composite concurrently. Adding a
    registry that is already a child is a no-op.
    """

    def __init__(self, registries: Iterable[MeterRegistry] = ()):
        super().__init__()
        self._registries: list[MeterRegistry] = []
        for registry in registries:
            self.add(registry)

    @property
    def registries(self) -> tuple[MeterRegistry, ...]:
        with self._lock:
            return tuple(self._registries)

    def add(self, registry: MeterRegistry) -> "CompositeMeterRegistry":
        """Add a child registry; existing meters are created on it as well."""
        if registry is self:
            return self

        with self._lock:
            if any(existing is registry for existing in self._registries):
                return self
            self._registries.append(registry)
            meters: list[CompositeMeter] = list(self._meters.values())

        for meter in meters:
            try:
                meter.materialize(registry)
            except MeterRegistrationError as e:
                logger.warning(
                    "Could not create composite meter on added registry",
                    extra={"meter": meter.id.name, "registry": repr(registry), "error": str(e)},
                )

        logger.debug(
            "Added registry to composite",
            extra={"composite": repr(self), "registry": repr(registry)},
        )
        return self

    def remove(self, registry: MeterRegistry) -> "CompositeMeterRegistry":
        with self._lock:
            self._registries = [
                existing for existing in self._registries if existing is not registry
            ]
        return self

    def _new_meter(self, meter_id: MeterId, **options: Any) -> CompositeMeter:
        meter = CompositeMeter(self, meter_id, options)
        meter._children()
        return meter

    def close(self) -> None:
        with self._lock:
            self._registries.clear()
        super().close()
