"""
Tests for logging, tracing and Prometheus metrics
"""

import pytest
import numpy as np
from prometheus_client import REGISTRY
from gridsom import SOM, get_metrics, setup_logging, trace_operation


def sample_value(name, labels=None):
    return REGISTRY.get_sample_value(name, labels or {}) or 0.0


@pytest.mark.unit
class TestTracing:
    """Test trace_operation"""

    @pytest.mark.unit
    def test_yields_correlation_id(self):
        with trace_operation("unit-test", answer=42) as correlation_id:
            assert isinstance(correlation_id, str)
            assert len(correlation_id) == 32

    @pytest.mark.unit
    def test_records_duration(self):
        labels = {"operation": "timed", "status": "ok"}
        before = sample_value("gridsom_operation_duration_seconds_count", labels)

        with trace_operation("timed"):
            pass

        after = sample_value("gridsom_operation_duration_seconds_count", labels)
        assert after == before + 1

    @pytest.mark.unit
    def test_reraises_and_records_failure(self):
        labels = {"operation": "failing", "status": "error"}
        before = sample_value("gridsom_operation_duration_seconds_count", labels)

        with pytest.raises(RuntimeError, match="boom"):
            with trace_operation("failing"):
                raise RuntimeError("boom")

        after = sample_value("gridsom_operation_duration_seconds_count", labels)
        assert after == before + 1


@pytest.mark.unit
class TestMetrics:
    """Test Prometheus counters fed by the SOM"""

    @pytest.mark.unit
    def test_get_metrics_exposition(self):
        text = get_metrics()
        assert isinstance(text, bytes)
        assert b"gridsom_training_iterations_total" in text
        assert b"gridsom_process_memory_rss_bytes" in text

    @pytest.mark.unit
    def test_bmu_queries_counted(self, corner_som):
        before = sample_value("gridsom_bmu_queries_total")

        corner_som.calc_best_matching_unit([0.1, 0.1])
        corner_som.transform(np.zeros((3, 2)))

        assert sample_value("gridsom_bmu_queries_total") == before + 4

    @pytest.mark.unit
    def test_training_iterations_counted(self, small_data):
        before = sample_value("gridsom_training_iterations_total")

        SOM.create(3, 3, 2, seed=0, verbose=False).train(small_data, iterations=7)

        assert sample_value("gridsom_training_iterations_total") == before + 7

    @pytest.mark.io
    def test_snapshot_operations_counted(self, corner_som, tmp_path):
        saved = {"operation": "save", "format": "yaml"}
        loaded = {"operation": "load", "format": "yaml"}
        before_save = sample_value("gridsom_snapshot_operations_total", saved)
        before_load = sample_value("gridsom_snapshot_operations_total", loaded)

        path = tmp_path / "model.yaml"
        corner_som.save(path)
        SOM.load(path)

        assert sample_value("gridsom_snapshot_operations_total", saved) == before_save + 1
        assert sample_value("gridsom_snapshot_operations_total", loaded) == before_load + 1


@pytest.mark.unit
class TestLogging:
    """Test logging configuration"""

    @pytest.mark.unit
    def test_unknown_level_rejected(self):
        with pytest.raises(ValueError, match="Unknown log level"):
            setup_logging("chatty")
