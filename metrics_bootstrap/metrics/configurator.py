"""Applies customizers, binders and global registration to meter registries.

Call the configurator once per registry, right after the registry is built:

    configurator = MeterRegistryConfigurator(
        customizers=[CommonTagsCustomizer({"env": "prod"})],
        binders=[UptimeMetrics()],
        add_to_global_registry=True,
    )
    registry = configurator.post_process(PrometheusMeterRegistry())

Composite registries are skipped: their children are registries in their own
right and are expected to go through the configurator themselves. Calling
configure twice on the same registry applies customizers and binders twice.
"""

import logging
from collections.abc import Callable, Iterable
from typing import Any, TypeVar

from metrics_bootstrap.core.lifecycle import LifecycleCoordinatorProtocol, LifecycleEvent
from metrics_bootstrap.metrics.binders import MeterBinder, as_binder
from metrics_bootstrap.metrics.composite import CompositeMeterRegistry
from metrics_bootstrap.metrics.customizers import MeterRegistryCustomizer, as_customizer
from metrics_bootstrap.metrics.global_registry import (
    add_registry,
    global_registry,
    remove_registry,
)
from metrics_bootstrap.metrics.registry import MeterRegistry

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R", bound=MeterRegistry)


class MeterRegistryConfigurator:
    """Configures meter registries as they become available.

    Failures of individual customizers or binders are logged and skipped;
    configure() never raises because of an extension.
    """

    def __init__(
        self,
        customizers: Iterable[MeterRegistryCustomizer | Callable[[Any], None]] | None = None,
        binders: Iterable[MeterBinder | Callable[[Any], None]] | None = None,
        add_to_global_registry: bool = True,
    ):
        """Initialize the configurator.

        Args:
            customizers: Customizers, or callables taking a registry.
            binders: Binders, or callables taking a registry.
            add_to_global_registry: Whether configured registries join the
                global registry.
        """
        self._customizers = [as_customizer(customizer) for customizer in customizers or ()]
        self._binders = [as_binder(binder) for binder in binders or ()]
        self._add_to_global_registry = add_to_global_registry

    def post_process(self, component: T, name: str | None = None) -> T:
        """Configure the component if it is a meter registry and return it unchanged."""
        if isinstance(component, MeterRegistry):
            logger.debug(
                "Configuring meter registry",
                extra={"registry": repr(component), "component_name": name},
            )
            self.configure(component)
        return component

    def configure(self, registry: MeterRegistry) -> None:
        if isinstance(registry, CompositeMeterRegistry):
            return

        # Customizers must be applied before binders, as they may add common
        # tags or meter filters the bound meters depend on.
        self._customize(registry)
        self._bind(registry)

        if self._add_to_global_registry and registry is not global_registry():
            add_registry(registry)

    def _customize(self, registry: MeterRegistry) -> None:
        for customizer in self._customizers:
            try:
                if not customizer.supports(registry):
                    logger.debug(
                        "Customizer does not apply to registry",
                        extra={"customizer": repr(customizer), "registry": repr(registry)},
                    )
                    continue

                customizer.customize(registry)
            except Exception as e:
                logger.error(
                    "Meter registry customizer failed",
                    exc_info=True,
                    extra={
                        "customizer": repr(customizer),
                        "registry": repr(registry),
                        "error": str(e),
                    },
                )

    def _bind(self, registry: MeterRegistry) -> None:
        for binder in self._binders:
            try:
                binder.bind_to(registry)
            except Exception as e:
                logger.error(
                    "Meter binder failed",
                    exc_info=True,
                    extra={
                        "binder": repr(binder),
                        "registry": repr(registry),
                        "error": str(e),
                    },
                )


def configure_registry(
    registry: MeterRegistry,
    customizers: Iterable[MeterRegistryCustomizer | Callable[[Any], None]] = (),
    binders: Iterable[MeterBinder | Callable[[Any], None]] = (),
    add_to_global_registry: bool = True,
) -> None:
    """Configure a single registry without keeping a configurator around."""
    MeterRegistryConfigurator(customizers, binders, add_to_global_registry).configure(registry)


def configured_registry(
    registry: R,
    configurator: MeterRegistryConfigurator,
    lifecycle_coordinator: LifecycleCoordinatorProtocol | None = None,
) -> R:
    """Configure a freshly built registry and tie it to the application lifecycle.

    With a lifecycle coordinator, the registry is removed from the global
    registry and closed on SHUTDOWN.
    """
    configurator.post_process(registry)

    if lifecycle_coordinator is not None:

        def _on_lifecycle_event(event: LifecycleEvent) -> None:
            if event == LifecycleEvent.SHUTDOWN:
                remove_registry(registry)
                registry.close()
                logger.info("Closed meter registry", extra={"registry": repr(registry)})

        lifecycle_coordinator.register_lifecycle_notification(_on_lifecycle_event)

    return registry
