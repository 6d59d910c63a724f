"""Dependency injection container for metrics bootstrapping."""

import logging

from dependency_injector import containers, providers

from metrics_bootstrap.config import Settings
from metrics_bootstrap.core.lifecycle import LifecycleCoordinator
from metrics_bootstrap.metrics.binders import binders_from_names
from metrics_bootstrap.metrics.configurator import MeterRegistryConfigurator, configured_registry
from metrics_bootstrap.metrics.customizers import CommonTagsCustomizer, MeterFilterCustomizer
from metrics_bootstrap.metrics.registry import PrometheusMeterRegistry

logger = logging.getLogger(__name__)


class MetricsContainer(containers.DeclarativeContainer):
    """Container wiring settings, extensions and the configured registry.

    Apps add their own customizers or binders by overriding the lists
    before the registry is first resolved:

        container.customizers.override(
            providers.List(
                container.common_tags_customizer,
                container.meter_filter_customizer,
                providers.Singleton(MyCustomizer),
            )
        )
    """

    # Configuration - must be overridden
    config = providers.Dependency(instance_of=Settings)

    lifecycle_coordinator = providers.Singleton(LifecycleCoordinator)

    common_tags_customizer = providers.Singleton(
        CommonTagsCustomizer,
        tags=config.provided.metrics_tags,
    )

    meter_filter_customizer = providers.Singleton(
        MeterFilterCustomizer.from_settings,
        deny_prefixes=config.provided.metrics_deny,
        accept_prefixes=config.provided.metrics_accept,
    )

    customizers = providers.List(
        common_tags_customizer,
        meter_filter_customizer,
    )

    binders = providers.Singleton(
        binders_from_names,
        names=config.provided.metrics_binders,
    )

    registry_configurator = providers.Singleton(
        MeterRegistryConfigurator,
        customizers=customizers,
        binders=binders,
        add_to_global_registry=config.provided.metrics_use_global_registry,
    )

    # Prometheus registry, configured once when first resolved
    meter_registry = providers.Singleton(
        configured_registry,
        registry=providers.Factory(PrometheusMeterRegistry),
        configurator=registry_configurator,
        lifecycle_coordinator=lifecycle_coordinator,
    )


def create_container(settings: Settings | None = None) -> MetricsContainer:
    """Create a container with validated settings.

    Args:
        settings: Optional settings instance (loaded from the environment if
            not provided)

    Raises:
        ConfigurationError: If the settings are invalid.
    """
    if settings is None:
        settings = Settings.load()

    settings.validate_config()

    container = MetricsContainer()
    container.config.override(settings)

    logger.info(
        "Metrics container created",
        extra={
            "use_global_registry": settings.metrics_use_global_registry,
            "binders": settings.metrics_binders,
        },
    )
    return container
