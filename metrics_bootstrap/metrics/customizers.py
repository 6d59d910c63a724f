"""Meter registry customizers.

A customizer adjusts a registry's configuration (common tags, meter filters)
before any meters are bound to it. Customizers declare the registry type they
apply to; registries of other types are left alone.
"""

from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable
from typing import Any

from metrics_bootstrap.metrics.registry import MeterFilter, MeterRegistry


class MeterRegistryCustomizer(ABC):
    """Configuration logic applied to a registry before use."""

    registry_type: type[MeterRegistry] = MeterRegistry

    def supports(self, registry: MeterRegistry) -> bool:
        return isinstance(registry, self.registry_type)

    @abstractmethod
    def customize(self, registry: MeterRegistry) -> None:
        """Customize the given registry."""
        ...


class FunctionCustomizer(MeterRegistryCustomizer):
    """Adapts a plain callable taking a registry to a customizer."""

    def __init__(
        self,
        fn: Callable[[Any], None],
        registry_type: type[MeterRegistry] = MeterRegistry,
    ):
        self._fn = fn
        self.registry_type = registry_type

    def customize(self, registry: MeterRegistry) -> None:
        self._fn(registry)

    def __repr__(self) -> str:
        return f"FunctionCustomizer({getattr(self._fn, '__name__', repr(self._fn))})"


def as_customizer(obj: MeterRegistryCustomizer | Callable[[Any], None]) -> MeterRegistryCustomizer:
    if isinstance(obj, MeterRegistryCustomizer):
        return obj
    if callable(obj):
        return FunctionCustomizer(obj)
    raise TypeError(f"{obj!r} is not a meter registry customizer")


class CommonTagsCustomizer(MeterRegistryCustomizer):
    """Adds a fixed set of common tags to every registry."""

    def __init__(self, tags: dict[str, str]):
        self._tags = dict(tags)

    def customize(self, registry: MeterRegistry) -> None:
        if self._tags:
            registry.config().common_tags(self._tags)

    def __repr__(self) -> str:
        return f"CommonTagsCustomizer({self._tags!r})"


class MeterFilterCustomizer(MeterRegistryCustomizer):
    """Installs meter filters on every registry, in order."""

    def __init__(self, filters: Iterable[MeterFilter]):
        self._filters = list(filters)

    @classmethod
    def from_settings(
        cls, deny_prefixes: Iterable[str], accept_prefixes: Iterable[str] = ()
    ) -> "MeterFilterCustomizer":
        """Build filters from name prefixes; accepted prefixes win over denied ones."""
        filters = [MeterFilter.accept_name_prefix(prefix) for prefix in accept_prefixes]
        filters.extend(MeterFilter.deny_name_prefix(prefix) for prefix in deny_prefixes)
        return cls(filters)

    def customize(self, registry: MeterRegistry) -> None:
        config = registry.config()
        for meter_filter in self._filters:
            config.meter_filter(meter_filter)

    def __repr__(self) -> str:
        return f"MeterFilterCustomizer({self._filters!r})"
