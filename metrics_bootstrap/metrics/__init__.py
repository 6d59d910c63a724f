"""Meter registries and their configuration."""

from metrics_bootstrap.metrics.binders import MeterBinder
from metrics_bootstrap.metrics.composite import CompositeMeterRegistry
from metrics_bootstrap.metrics.configurator import (
    MeterRegistryConfigurator,
    configure_registry,
    configured_registry,
)
from metrics_bootstrap.metrics.customizers import MeterRegistryCustomizer
from metrics_bootstrap.metrics.registry import (
    MeterFilter,
    MeterRegistry,
    PrometheusMeterRegistry,
)

__all__ = [
    "CompositeMeterRegistry",
    "MeterBinder",
    "MeterFilter",
    "MeterRegistry",
    "MeterRegistryConfigurator",
    "MeterRegistryCustomizer",
    "PrometheusMeterRegistry",
    "configure_registry",
    "configured_registry",
]
