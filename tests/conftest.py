"""Pytest fixtures for metrics bootstrapping tests."""

from collections.abc import Generator

import pytest

from metrics_bootstrap.config import Settings
from metrics_bootstrap.container import MetricsContainer, create_container
from metrics_bootstrap.metrics.global_registry import reset_global_registry
from metrics_bootstrap.metrics.registry import PrometheusMeterRegistry


@pytest.fixture(autouse=True)
def clear_global_registry() -> Generator[None, None, None]:
    """Reset the global registry before and after each test for isolation."""
    reset_global_registry()
    yield
    reset_global_registry()


@pytest.fixture
def registry() -> Generator[PrometheusMeterRegistry, None, None]:
    """A fresh Prometheus-backed registry."""
    meter_registry = PrometheusMeterRegistry()
    yield meter_registry
    meter_registry.close()


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        metrics_use_global_registry=True,
        metrics_tags={"env": "test"},
        metrics_binders=["uptime", "threads"],
        metrics_deny=[],
        metrics_accept=[],
    )


@pytest.fixture
def container(test_settings: Settings) -> Generator[MetricsContainer, None, None]:
    metrics_container = create_container(test_settings)
    yield metrics_container
    metrics_container.lifecycle_coordinator().shutdown()
