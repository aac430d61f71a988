# -*- coding: utf-8 -*-
"""
Prometheus 文本格式转换测试
"""

import threading

from opentelemetry.metrics import Observation
from opentelemetry.sdk.metrics.view import ExplicitBucketHistogramAggregation, View

from conftest import metric_values
from otel_lib.metric.prometheus.exposition import (
    ExpositionCollector,
    cumulative_buckets,
    render,
    sanitize_label_name,
    sanitize_metric_name,
    translate,
)
from otel_lib.metric.registry import InstrumentRegistry

BOUNDARIES = (0, 5, 10, 25, 50)


def _histogram_registry(resource):
    view = View(
        instrument_name="latency",
        aggregation=ExplicitBucketHistogramAggregation(boundaries=BOUNDARIES),
    )
    registry = InstrumentRegistry(resource, views=[view])
    histogram = registry.meter("test").create_histogram("latency", description="request latency")
    for value in (3, 3, 7, 40, 40):
        histogram.record(value)
    return registry


def _sample_lines(text, prefix):
    return [line for line in text.splitlines() if line.startswith(prefix)]


class TestSanitize:
    def test_metric_name(self):
        assert sanitize_metric_name("http.server.duration") == "http_server_duration"
        assert sanitize_metric_name("1st") == "_1st"
        assert sanitize_metric_name("ns:requests") == "ns:requests"

    def test_label_name(self):
        assert sanitize_label_name("service.name") == "service_name"
        assert sanitize_label_name("a:b") == "a_b"


class TestHistogram:
    """Histogram 转换测试"""

    def test_cumulative_buckets(self, resource):
        registry = _histogram_registry(resource)
        point = metric_values(registry.snapshot(), "latency")[0]
        registry.shutdown()

        buckets, total = cumulative_buckets(point)
        assert buckets == [(0, 0), (5, 2), (10, 3), (25, 3), (50, 5)]
        assert total == 5

    def test_render_histogram(self, resource):
        registry = _histogram_registry(resource)
        text = render(registry.snapshot())
        registry.shutdown()

        buckets = _sample_lines(text, "latency_bucket")
        assert len(buckets) == 6
        expected = [("0.0", "0.0"), ("5.0", "2.0"), ("10.0", "3.0"), ("25.0", "3.0"), ("50.0", "5.0"), ("+Inf", "5.0")]
        for line, (le, count) in zip(buckets, expected):
            assert f'le="{le}"' in line
            assert line.endswith(f" {count}")

        assert _sample_lines(text, "latency_sum")[0].endswith(" 93.0")
        assert _sample_lines(text, "latency_count")[0].endswith(" 5.0")
        assert "# TYPE latency histogram" in text


class TestTranslate:
    """指标类型转换测试"""

    def test_target_info_first(self, registry):
        registry.meter("test").create_counter("requests").add(1)
        families = translate(registry.snapshot(), registry.resource)

        assert families[0].name == "target_info"
        sample = families[0].samples[0]
        assert sample.value == 1
        assert sample.labels["service_name"] == "test-service"
        assert sample.labels["enterprise_number"] == "1234"

    def test_target_info_without_data(self, resource):
        families = translate(None, resource)
        assert [family.name for family in families] == ["target_info"]

    def test_counter(self, registry):
        registry.meter("test").create_counter("requests").add(3, {"method": "GET"})
        text = render(registry.snapshot(), registry.resource)

        assert "# TYPE requests_total counter" in text
        line = _sample_lines(text, "requests_total{")[0]
        assert 'method="GET"' in line
        assert 'otel_scope_name="test"' in line
        assert 'service_name="test-service"' in line
        assert 'deployment_environment="test"' in line
        assert line.endswith(" 3.0")

    def test_counter_with_total_suffix(self, registry):
        registry.meter("test").create_counter("jobs_total").add(1)
        text = render(registry.snapshot(), registry.resource)

        assert "# TYPE jobs_total counter" in text
        assert "jobs_total_total" not in text

    def test_up_down_counter_is_gauge(self, registry):
        counter = registry.meter("test").create_up_down_counter("queue_depth")
        counter.add(5)
        counter.add(-2)
        text = render(registry.snapshot(), registry.resource)

        assert "# TYPE queue_depth gauge" in text
        assert _sample_lines(text, "queue_depth{")[0].endswith(" 3.0")

    def test_observable_gauge(self, registry):
        registry.meter("test").create_observable_gauge(
            "temperature",
            callbacks=[lambda options: [Observation(21.5, {"room": "a"})]],
        )
        text = render(registry.snapshot(), registry.resource)

        assert "# TYPE temperature gauge" in text
        line = _sample_lines(text, "temperature{")[0]
        assert 'room="a"' in line
        assert line.endswith(" 21.5")

    def test_dotted_names_sanitized(self, registry):
        registry.meter("test").create_counter("http.requests").add(1, {"http.method": "GET"})
        text = render(registry.snapshot(), registry.resource)

        assert 'http_requests_total{' in text
        assert 'http_method="GET"' in text

    def test_same_name_different_scopes_merged(self, registry):
        registry.meter("scope.a").create_counter("requests").add(1)
        registry.meter("scope.b").create_counter("requests").add(2)
        families = translate(registry.snapshot(), registry.resource)

        requests = [family for family in families if family.name == "requests"]
        assert len(requests) == 1
        scopes = {sample.labels["otel_scope_name"] for sample in requests[0].samples}
        assert scopes == {"scope.a", "scope.b"}

    def test_type_clash_dropped(self, registry, caplog):
        registry.meter("scope.a").create_counter("requests").add(1)
        registry.meter("scope.b").create_histogram("requests").record(1)
        families = translate(registry.snapshot(), registry.resource)

        requests = [family for family in families if family.name == "requests"]
        assert len(requests) == 1
        assert "dropping metric requests" in caplog.text


class _BrokenRegistry:
    resource = None

    def snapshot(self):
        raise RuntimeError("registry unavailable")


class TestExpositionCollector:
    """Collector 测试"""

    def test_render(self, registry):
        registry.meter("test").create_counter("requests").add(1)
        text = ExpositionCollector(registry).render()

        assert text.splitlines()[0].startswith("# HELP target_info")
        assert "requests_total" in text

    def test_registry_failure_renders_target_info(self, resource, caplog):
        text = ExpositionCollector(_BrokenRegistry(), resource).render()

        assert "target_info" in text
        assert "reading instrument registry failed" in caplog.text

    def test_concurrent_scrapes_during_updates(self, registry):
        counter = registry.meter("test").create_counter("requests")
        histogram = registry.meter("test").create_histogram("latency")
        collector = ExpositionCollector(registry)
        errors = []
        stop = threading.Event()

        def update():
            while not stop.is_set():
                counter.add(1)
                histogram.record(7)

        def scrape():
            try:
                for _ in range(50):
                    text = collector.render()
                    assert text.startswith("# HELP target_info")
            except Exception as e:
                errors.append(e)

        writer = threading.Thread(target=update)
        readers = [threading.Thread(target=scrape) for _ in range(4)]
        writer.start()
        for reader in readers:
            reader.start()
        for reader in readers:
            reader.join()
        stop.set()
        writer.join()

        assert errors == []
