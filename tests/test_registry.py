"""Tests for the Prometheus-backed meter registry."""

import threading

import pytest

from metrics_bootstrap.exceptions import MeterRegistrationError
from metrics_bootstrap.metrics.registry import (
    MeterFilter,
    MeterId,
    MeterKind,
    NoopMeter,
    PrometheusMeterRegistry,
    normalize_name,
)


class TestMeters:
    """Tests for creating and updating meters."""

    def test_counter(self, registry):
        registry.counter("http.requests", {"path": "/items"}).inc()
        registry.counter("http.requests", {"path": "/items"}).inc(2)

        assert registry.get_sample_value("http_requests_total", {"path": "/items"}) == 3.0

    def test_same_meter_is_returned(self, registry):
        first = registry.counter("requests", {"path": "/"})
        second = registry.counter("requests", {"path": "/"})

        assert first is second
        assert len(registry.meters) == 1

    def test_description_is_not_part_of_identity(self, registry):
        first = registry.counter("requests", {"path": "/"}, description="Requests served")
        second = registry.counter("requests", {"path": "/"})

        assert first is second
        assert len(registry.meters) == 1
        assert MeterId("jobs", MeterKind.COUNTER, description="one") == MeterId(
            "jobs", MeterKind.COUNTER, description="two"
        )

    def test_gauge_with_function(self, registry):
        values = [5]
        registry.gauge("queue_depth", fn=lambda: values[-1])

        assert registry.get_sample_value("queue_depth") == 5.0
        values.append(9)
        assert registry.get_sample_value("queue_depth") == 9.0

    def test_histogram(self, registry):
        histogram = registry.histogram("latency_seconds", buckets=(0.1, 1.0))
        histogram.observe(0.5)

        assert registry.get_sample_value("latency_seconds_count") == 1.0
        assert registry.get_sample_value("latency_seconds_bucket", {"le": "1.0"}) == 1.0
        assert registry.get_sample_value("latency_seconds_bucket", {"le": "0.1"}) == 0.0

    def test_scrape_renders_text_format(self, registry):
        registry.gauge("temperature", {"room": "lab"}, "Room temperature").set(21)

        text = registry.scrape()

        assert "# HELP temperature Room temperature" in text
        assert 'temperature{room="lab"} 21.0' in text

    def test_kind_conflict_raises(self, registry):
        registry.counter("jobs")

        with pytest.raises(MeterRegistrationError) as exc_info:
            registry.gauge("jobs")

        assert exc_info.value.name == "jobs"

    def test_tag_key_conflict_raises(self, registry):
        registry.counter("jobs", {"queue": "a"})

        with pytest.raises(MeterRegistrationError):
            registry.counter("jobs", {"worker": "1"})

    def test_invalid_name_raises(self, registry):
        with pytest.raises(MeterRegistrationError) as exc_info:
            registry.counter("1jobs")

        assert exc_info.value.name == "1jobs"
        assert "not a valid metric name" in str(exc_info.value)
        assert registry.meters == ()
        assert "1jobs" not in registry.scrape()

    def test_invalid_name_raises_on_closed_registry(self, registry):
        registry.close()

        with pytest.raises(MeterRegistrationError):
            registry.gauge("9lives")

    def test_closed_registry_returns_noop(self, registry):
        registry.counter("jobs").inc()
        registry.close()

        assert registry.closed
        assert isinstance(registry.counter("jobs"), NoopMeter)
        assert registry.get_sample_value("jobs_total") is None

    def test_close_during_registration_leaves_no_meters(self, registry):
        barrier = threading.Barrier(9)

        def register(worker):
            barrier.wait()
            for i in range(50):
                registry.counter(f"jobs_{worker}_{i}")

        threads = [threading.Thread(target=register, args=(worker,)) for worker in range(8)]
        for thread in threads:
            thread.start()
        barrier.wait()
        registry.close()
        for thread in threads:
            thread.join()

        assert registry.meters == ()
        assert isinstance(registry.counter("jobs_0_0"), NoopMeter)


class TestCommonTags:
    """Common tags are stamped onto meters registered after they are set."""

    def test_common_tags_applied(self, registry):
        registry.config().common_tags(env="prod", region="eu")
        registry.counter("jobs", {"queue": "a"}).inc()

        assert registry.get_sample_value(
            "jobs_total", {"env": "prod", "region": "eu", "queue": "a"}
        ) == 1.0

    def test_meter_tags_win_over_common_tags(self, registry):
        registry.config().common_tags({"env": "prod"})
        registry.counter("jobs", {"env": "staging"}).inc()

        assert registry.get_sample_value("jobs_total", {"env": "staging"}) == 1.0

    def test_meters_registered_earlier_do_not_carry_common_tags(self, registry):
        registry.gauge("early").set(1)
        registry.config().common_tags(env="prod")

        assert registry.get_sample_value("early") == 1.0
        assert registry.config().common_tags_dict == {"env": "prod"}


class TestMeterFilters:
    """Tests for meter filters."""

    def test_deny_name_prefix(self, registry):
        registry.config().meter_filter(MeterFilter.deny_name_prefix("python.gc"))

        meter = registry.gauge("python_gc_collections")

        assert isinstance(meter, NoopMeter)
        assert registry.meters == ()

    def test_accept_before_deny_wins(self, registry):
        config = registry.config()
        config.meter_filter(MeterFilter.accept_name_prefix("python_gc_collections"))
        config.meter_filter(MeterFilter.deny_name_prefix("python_gc"))

        registry.gauge("python_gc_collections").set(3)
        denied = registry.gauge("python_gc_objects_tracked")

        assert registry.get_sample_value("python_gc_collections") == 3.0
        assert isinstance(denied, NoopMeter)

    def test_rename_tag(self, registry):
        registry.config().meter_filter(MeterFilter.rename_tag("uri", "path"))

        registry.counter("requests", {"uri": "/items"}).inc()

        assert registry.get_sample_value("requests_total", {"path": "/items"}) == 1.0


def test_normalize_name():
    assert normalize_name("http.server.requests") == "http_server_requests"
    assert normalize_name("disk-usage") == "disk_usage"


def test_meter_id_tags_are_sorted():
    meter_id = MeterId("jobs", MeterKind.COUNTER).with_tags({"b": 2, "a": "1"})

    assert meter_id.tags == (("a", "1"), ("b", "2"))


def test_registries_are_isolated():
    first = PrometheusMeterRegistry()
    second = PrometheusMeterRegistry()

    first.counter("jobs").inc()
    second.counter("jobs").inc(5)

    assert first.get_sample_value("jobs_total") == 1.0
    assert second.get_sample_value("jobs_total") == 5.0
