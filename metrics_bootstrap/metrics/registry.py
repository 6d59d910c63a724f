"""Meter registries backed by prometheus_client.

A MeterRegistry hands out meters (counters, gauges and histograms) by name
and tags. Each registry carries a RegistryConfig holding common tags and
meter filters; both are applied when a meter is registered, so they only
affect meters registered afterwards:

    registry = PrometheusMeterRegistry()
    registry.config().common_tags(env="prod")

    registry.counter("requests", tags={"path": "/items"}).inc()
    registry.gauge("queue_depth", fn=lambda: len(queue))

The meters returned are the prometheus_client metric objects themselves, or a
NoopMeter when the meter was denied by a filter or the registry is closed.
"""

import logging
import re
import threading
from abc import ABC, abstractmethod
from collections.abc import Callable, Mapping
from contextlib import nullcontext
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, generate_latest

from metrics_bootstrap.exceptions import MeterRegistrationError

logger = logging.getLogger(__name__)

Tags = Mapping[str, Any]

_INVALID_NAME_CHARS = re.compile(r"[^a-zA-Z0-9_:]")
_VALID_NAME = re.compile(r"^[a-zA-Z_:][a-zA-Z0-9_:]*$")


def normalize_name(name: str) -> str:
    """Convert a dotted meter name to the Prometheus naming convention."""
    return _INVALID_NAME_CHARS.sub("_", name.replace(".", "_"))


def _tag_tuple(tags: Tags | None) -> tuple[tuple[str, str], ...]:
    if not tags:
        return ()
    return tuple(sorted((str(key), str(value)) for key, value in tags.items()))


class MeterKind(str, Enum):
    """Kinds of meter a registry can hold."""

    COUNTER = "counter"
    GAUGE = "gauge"
    HISTOGRAM = "histogram"


@dataclass(frozen=True)
class MeterId:
    """Identity of a meter: name, kind and sorted tags.

    The description is carried along but is not part of the identity.
    """

    name: str
    kind: MeterKind
    tags: tuple[tuple[str, str], ...] = ()
    description: str = field(default="", compare=False)

    @property
    def tags_dict(self) -> dict[str, str]:
        return dict(self.tags)

    def with_tags(self, tags: Tags) -> "MeterId":
        return replace(self, tags=_tag_tuple(tags))


class MeterFilterReply(str, Enum):
    ACCEPT = "accept"
    DENY = "deny"
    NEUTRAL = "neutral"


class MeterFilter:
    """Maps or vetoes meter ids before a registry creates the meter.

    Filters run in the order they were added. Every filter's map() is applied
    first; then accept() is asked of each filter in turn and the first
    non-neutral reply decides. A meter nobody decides on is accepted.
    """

    def map(self, meter_id: MeterId) -> MeterId:
        return meter_id

    def accept(self, meter_id: MeterId) -> MeterFilterReply:
        return MeterFilterReply.NEUTRAL

    @staticmethod
    def deny_name_prefix(prefix: str) -> "MeterFilter":
        return _NamePrefixFilter(prefix, MeterFilterReply.DENY)

    @staticmethod
    def accept_name_prefix(prefix: str) -> "MeterFilter":
        return _NamePrefixFilter(prefix, MeterFilterReply.ACCEPT)

    @staticmethod
    def rename_tag(old_key: str, new_key: str) -> "MeterFilter":
        return _RenameTagFilter(old_key, new_key)


class _NamePrefixFilter(MeterFilter):
    def __init__(self, prefix: str, reply: MeterFilterReply):
        self._prefix = normalize_name(prefix)
        self._reply = reply

    def accept(self, meter_id: MeterId) -> MeterFilterReply:
        if meter_id.name.startswith(self._prefix):
            return self._reply
        return MeterFilterReply.NEUTRAL

    def __repr__(self) -> str:
        return f"{self._reply.value}_name_prefix({self._prefix!r})"


class _RenameTagFilter(MeterFilter):
    def __init__(self, old_key: str, new_key: str):
        self._old_key = old_key
        self._new_key = new_key

    def map(self, meter_id: MeterId) -> MeterId:
        tags = meter_id.tags_dict
        if self._old_key not in tags:
            return meter_id
        tags[self._new_key] = tags.pop(self._old_key)
        return meter_id.with_tags(tags)

    def __repr__(self) -> str:
        return f"rename_tag({self._old_key!r}, {self._new_key!r})"


class RegistryConfig:
    """Common tags and meter filters of a single registry."""

    def __init__(self) -> None:
        self._common_tags: dict[str, str] = {}
        self._filters: list[MeterFilter] = []
        self._lock = threading.Lock()

    def common_tags(self, tags: Tags | None = None, **kwargs: Any) -> "RegistryConfig":
        """Add tags stamped onto every meter registered from now on."""
        merged = dict(tags or {})
        merged.update(kwargs)
        with self._lock:
            self._common_tags.update(_tag_tuple(merged))
        return self

    @property
    def common_tags_dict(self) -> dict[str, str]:
        with self._lock:
            return dict(self._common_tags)

    def meter_filter(self, meter_filter: MeterFilter) -> "RegistryConfig":
        with self._lock:
            self._filters.append(meter_filter)
        return self

    @property
    def meter_filters(self) -> tuple[MeterFilter, ...]:
        with self._lock:
            return tuple(self._filters)

    def apply(self, meter_id: MeterId) -> MeterId | None:
        """Return the id the registry should use, or None if it is denied."""
        with self._lock:
            common_tags = dict(self._common_tags)
            filters = list(self._filters)

        if common_tags:
            # The meter's own tags win over common tags with the same key
            meter_id = meter_id.with_tags({**common_tags, **meter_id.tags_dict})

        for meter_filter in filters:
            meter_id = meter_filter.map(meter_id)

        for meter_filter in filters:
            reply = meter_filter.accept(meter_id)
            if reply == MeterFilterReply.DENY:
                return None
            if reply == MeterFilterReply.ACCEPT:
                break

        return meter_id


class NoopMeter:
    """Meter that ignores every operation."""

    def inc(self, amount: float = 1) -> None:
        pass

    def dec(self, amount: float = 1) -> None:
        pass

    def set(self, value: float) -> None:
        pass

    def set_function(self, fn: Callable[[], float]) -> None:
        pass

    def observe(self, amount: float) -> None:
        pass

    def time(self) -> nullcontext:
        return nullcontext()


NOOP_METER = NoopMeter()


class MeterRegistry(ABC):
    """Base class for registries that collect and expose meters."""

    def __init__(self) -> None:
        self._config = RegistryConfig()
        self._lock = threading.RLock()
        self._meters: dict[MeterId, Any] = {}
        self._closed = False

    def config(self) -> RegistryConfig:
        return self._config

    def counter(self, name: str, tags: Tags | None = None, description: str = "") -> Any:
        return self.meter(MeterKind.COUNTER, name, tags, description)

    def gauge(
        self,
        name: str,
        tags: Tags | None = None,
        description: str = "",
        fn: Callable[[], float] | None = None,
    ) -> Any:
        """Get or create a gauge; with fn, the gauge samples it on collection."""
        return self.meter(MeterKind.GAUGE, name, tags, description, fn=fn)

    def histogram(
        self,
        name: str,
        tags: Tags | None = None,
        description: str = "",
        buckets: tuple[float, ...] | None = None,
    ) -> Any:
        return self.meter(MeterKind.HISTOGRAM, name, tags, description, buckets=buckets)

    def meter(
        self,
        kind: MeterKind,
        name: str,
        tags: Tags | None = None,
        description: str = "",
        **options: Any,
    ) -> Any:
        """Get or create a meter of the given kind.

        Args:
            kind: Kind of meter.
            name: Meter name; dots are converted to underscores.
            tags: Tags identifying this meter within its name.
            description: Help text.
            **options: Kind specific options (fn for gauges, buckets for
                histograms).

        Raises:
            MeterRegistrationError: If the name is not a valid metric name, or
                is already registered with a different kind or a different set
                of tag keys.
        """
        meter_id = MeterId(normalize_name(name), kind, _tag_tuple(tags), description)
        if not _VALID_NAME.match(meter_id.name):
            raise MeterRegistrationError(meter_id.name, "it is not a valid metric name")

        mapped_id = self._config.apply(meter_id)
        if mapped_id is None:
            logger.debug(
                "Meter denied by filter",
                extra={"meter": meter_id.name, "registry": repr(self)},
            )
            return NOOP_METER

        fn = options.get("fn")
        with self._lock:
            if self._closed:
                return NOOP_METER

            meter = self._meters.get(mapped_id)
            if meter is None:
                meter = self._new_meter(mapped_id, **options)
                self._meters[mapped_id] = meter
            elif fn is not None:
                meter.set_function(fn)
            return meter

    @property
    def meters(self) -> tuple[MeterId, ...]:
        with self._lock:
            return tuple(self._meters)

    @abstractmethod
    def _new_meter(self, meter_id: MeterId, **options: Any) -> Any:
        """Create the backing meter for an id the registry has not seen yet."""
        ...

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        """Close the registry; meters requested afterwards are no-ops."""
        with self._lock:
            self._closed = True
            self._meters.clear()

    def __repr__(self) -> str:
        return f"{type(self).__name__}@{id(self):x}"


class PrometheusMeterRegistry(MeterRegistry):
    """Registry that keeps its meters in its own Prometheus CollectorRegistry."""

    def __init__(self, prometheus_registry: CollectorRegistry | None = None):
        super().__init__()
        self.prometheus_registry = prometheus_registry or CollectorRegistry(auto_describe=True)
        self._families: dict[str, tuple[MeterKind, tuple[str, ...], Any]] = {}

    def _new_meter(
        self,
        meter_id: MeterId,
        fn: Callable[[], float] | None = None,
        buckets: tuple[float, ...] | None = None,
    ) -> Any:
        label_names = tuple(key for key, _ in meter_id.tags)
        family = self._families.get(meter_id.name)

        if family is None:
            metric = self._create_family(meter_id, label_names, buckets)
            self._families[meter_id.name] = (meter_id.kind, label_names, metric)
        else:
            kind, existing_labels, metric = family
            if kind != meter_id.kind:
                raise MeterRegistrationError(
                    meter_id.name, f"it is already registered as a {kind.value}"
                )
            if existing_labels != label_names:
                raise MeterRegistrationError(
                    meter_id.name,
                    f"it is already registered with tags {list(existing_labels)}",
                )

        meter = metric.labels(**meter_id.tags_dict) if label_names else metric
        if fn is not None:
            meter.set_function(fn)
        return meter

    def _create_family(
        self,
        meter_id: MeterId,
        label_names: tuple[str, ...],
        buckets: tuple[float, ...] | None,
    ) -> Any:
        documentation = meter_id.description or meter_id.name
        try:
            match meter_id.kind:
                case MeterKind.COUNTER:
                    return Counter(
                        meter_id.name, documentation, label_names, registry=self.prometheus_registry
                    )
                case MeterKind.GAUGE:
                    return Gauge(
                        meter_id.name, documentation, label_names, registry=self.prometheus_registry
                    )
                case MeterKind.HISTOGRAM:
                    return Histogram(
                        meter_id.name,
                        documentation,
                        label_names,
                        registry=self.prometheus_registry,
                        buckets=buckets or Histogram.DEFAULT_BUCKETS,
                    )
        except ValueError as e:
            raise MeterRegistrationError(meter_id.name, str(e)) from e

    def scrape(self) -> str:
        """Render the registry in Prometheus text format."""
        return generate_latest(self.prometheus_registry).decode("utf-8")

    def get_sample_value(self, name: str, labels: dict[str, str] | None = None) -> float | None:
        return self.prometheus_registry.get_sample_value(name, labels or {})

    def close(self) -> None:
        with self._lock:
            for _kind, _labels, metric in self._families.values():
                try:
                    self.prometheus_registry.unregister(metric)
                except KeyError:
                    pass  # Never made it into the collector registry
            self._families.clear()
            super().close()
