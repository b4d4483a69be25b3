"""Unit tests for the resolution registry and monitoring wiring."""

from __future__ import annotations

import threading
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

from image_rampup import monitoring
from image_rampup.models import (
    FlowContext,
    ImageVersion,
    ResolutionResult,
    Selection,
    State,
    VersionDecision,
)
from image_rampup.monitoring.registry import ResolutionRegistry


def make_result():
    result = ResolutionResult(unresolved={"pig"}, bucket=17)
    result.decide(
        "spark",
        VersionDecision(ImageVersion("spark", "1.1", "reg/spark", State.NEW), Selection.RAMPUP),
    )
    return result


class TestResolutionRegistry:
    """Test ResolutionRegistry thread-safe operations."""

    def test_record_and_get(self):
        """Test basic record and get operations."""
        registry = ResolutionRegistry()
        flow = FlowContext("etl", "reports", execution_id=9)
        entry = registry.record("execution", flow=flow, result=make_result())

        stored = registry.get(entry.record_id)
        assert stored is entry
        assert stored.status == "resolved"
        assert stored.flow == "reports.etl"
        assert stored.execution_id == 9
        assert stored.bucket == 17
        assert stored.decisions["spark"]["version"] == "1.1"
        assert stored.unresolved == ["pig"]

    def test_record_error(self):
        """Test failed calls keep the error and its type."""
        registry = ResolutionRegistry()
        entry = registry.record("subset", error=RuntimeError("catalog down"))
        assert entry.status == "failed"
        assert entry.error == "catalog down"
        assert entry.error_type == "RuntimeError"
        assert entry.flow is None
        assert registry.counts() == {"resolved": 0, "failed": 1}

    def test_list_records_filters(self):
        """Test listing is newest first and filterable."""
        registry = ResolutionRegistry()
        registry.record("execution", flow=FlowContext("a"))
        registry.record("metadata")
        registry.record("execution", flow=FlowContext("b"), error=ValueError("x"))

        assert [r.record_id for r in registry.list_records()] == [3, 2, 1]
        assert [r.record_id for r in registry.list_records(operation="execution")] == [3, 1]
        assert [r.record_id for r in registry.list_records(flow="a")] == [1]
        assert [r.record_id for r in registry.list_records(failed_only=True)] == [3]

    def test_history_limit(self):
        """Test oldest records are dropped past the limit."""
        registry = ResolutionRegistry(history_limit=3)
        for _ in range(5):
            registry.record("metadata")
        assert [r.record_id for r in registry.list_records()] == [5, 4, 3]

    def test_non_positive_history_limit(self):
        """Test a limit below 1 keeps nothing without failing."""
        registry = ResolutionRegistry(history_limit=-1)
        entry = registry.record("metadata")
        assert entry.record_id == 1
        assert registry.list_records() == []

    def test_cleanup_old_entries(self):
        """Test TTL cleanup."""
        registry = ResolutionRegistry(history_ttl=60)
        old = registry.record("metadata")
        registry.record("metadata")
        old.recorded_at = datetime.now(timezone.utc) - timedelta(seconds=120)

        assert registry.cleanup_old_entries() == 1
        assert registry.get(old.record_id) is None
        assert len(registry.list_records()) == 1

    def test_clear(self):
        """Test clear removes every record."""
        registry = ResolutionRegistry()
        registry.record("metadata")
        registry.clear()
        assert registry.list_records() == []

    def test_concurrent_records(self):
        """Test concurrent recording keeps unique ids."""
        registry = ResolutionRegistry(history_limit=1000)

        def worker():
            for _ in range(50):
                registry.record("execution", flow=FlowContext("etl"))

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        ids = [r.record_id for r in registry.list_records()]
        assert len(ids) == 400
        assert len(set(ids)) == 400

    def test_to_dict(self):
        """Test serialization for the HTTP API."""
        registry = ResolutionRegistry()
        data = registry.record("execution", result=make_result()).to_dict()
        assert data["operation"] == "execution"
        assert data["decisions"]["spark"]["selection"] == "rampup"
        assert isinstance(data["recorded_at"], str)


class TestMonitoringWiring:
    """Test config-driven server startup."""

    def test_registry_from_config(self, monkeypatch):
        """Test registry limits come from config."""
        monkeypatch.setenv("IMAGE_RAMPUP_MONITORING_HISTORY_LIMIT", "2")
        registry = monitoring.registry_from_config()
        for _ in range(3):
            registry.record("metadata")
        assert len(registry.list_records()) == 2

    def test_disabled_by_default(self):
        """Test no server is started unless enabled."""
        resolver = MagicMock()
        resolver.registry = None
        assert monitoring.start_monitoring_from_config(resolver, "svc") is None
        assert resolver.registry is None

    def test_enabled_attaches_registry(self, monkeypatch):
        """Test enabling monitoring attaches a registry and starts the server."""
        monkeypatch.setenv("IMAGE_RAMPUP_MONITORING_ENABLED", "true")
        monkeypatch.setenv("IMAGE_RAMPUP_MONITORING_BIND", "127.0.0.1:0")
        started = MagicMock()
        monkeypatch.setattr(monitoring, "start_monitoring_server", started)
        resolver = MagicMock()
        resolver.registry = None

        monitoring.start_monitoring_from_config(resolver, "svc")
        assert isinstance(resolver.registry, ResolutionRegistry)
        started.assert_called_once_with("127.0.0.1", 0, "svc", resolver, resolver.registry)

    def test_stop_none(self):
        """Test stopping a server that never started is a no-op."""
        monitoring.stop_monitoring_server(None)
