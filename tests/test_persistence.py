"""
Tests for snapshot save/load
"""

import pytest
import numpy as np
import yaml
from gridsom import (
    SOM,
    DistanceType,
    NeighborhoodKernel,
    SOMFileFormat,
    Snapshot,
    CorruptState,
    UnsupportedFormat,
)
from gridsom.persistence import resolve_format, save_snapshot, load_snapshot


def write_record(path, record):
    with open(path, "w") as f:
        yaml.safe_dump(record, f)


def valid_record():
    return {
        "W": 2,
        "H": 1,
        "D": 2,
        "DistanceType": 2,
        "NeighborhoodKernel": 1,
        "weights": [0.1, 0.2, 0.3, 0.4],
    }


@pytest.mark.io
class TestSnapshotRoundTrip:
    """Save then load restores the lattice exactly"""

    @pytest.mark.io
    @pytest.mark.parametrize(
        "file_format,filename",
        [(SOMFileFormat.YAML, "model.yaml"), (SOMFileFormat.KEYVALUE, "model.db")],
    )
    def test_round_trip(self, tmp_path, file_format, filename):
        som = SOM.create(
            4,
            3,
            5,
            distance_type=DistanceType.COSINE_SIMILARITY,
            kernel=NeighborhoodKernel.GAUSSIAN,
            seed=17,
            verbose=False,
        )
        path = str(tmp_path / filename)
        som.save(path, file_format)

        loaded = SOM.load(path, file_format)
        assert (loaded.width, loaded.height, loaded.n_features) == (4, 3, 5)
        assert loaded.config.distance_type == DistanceType.COSINE_SIMILARITY
        assert loaded.config.kernel == NeighborhoodKernel.GAUSSIAN
        np.testing.assert_array_equal(loaded.weights, som.weights)

    @pytest.mark.io
    def test_trained_model_round_trip(self, trained_som, tmp_path, sample_data):
        path = tmp_path / "trained.yaml"
        trained_som.save(path)

        loaded = SOM.load(path)
        np.testing.assert_array_equal(loaded.predict(sample_data), trained_som.predict(sample_data))

    @pytest.mark.io
    def test_float32_round_trip(self, tmp_path):
        som = SOM.create(3, 3, 2, dtype=np.float32, seed=4, verbose=False)
        path = str(tmp_path / "model.yaml")
        som.save(path)

        loaded = SOM.load(path, dtype=np.float32)
        assert loaded.weights.dtype == np.float32
        np.testing.assert_array_equal(loaded.weights, som.weights)

    @pytest.mark.io
    def test_yaml_layout(self, corner_som, tmp_path):
        path = tmp_path / "corner.yaml"
        corner_som.save(path, SOMFileFormat.YAML)

        with open(path) as f:
            record = yaml.safe_load(f)
        assert list(record) == ["W", "H", "D", "DistanceType", "NeighborhoodKernel", "weights"]
        assert record["W"] == 2 and record["H"] == 2 and record["D"] == 2
        assert record["DistanceType"] == 0
        assert record["NeighborhoodKernel"] == 0
        assert record["weights"] == [0.0, 0.0, 1.0, 0.0, 0.0, 1.0, 1.0, 1.0]

    @pytest.mark.io
    def test_snapshot_functions(self, tmp_path):
        snapshot = Snapshot.from_record(valid_record())
        path = tmp_path / "snap.db"
        save_snapshot(path, snapshot, "kv")

        restored = load_snapshot(path, "kv")
        assert restored.distance_type == DistanceType.COSINE_SIMILARITY
        assert restored.kernel == NeighborhoodKernel.EXPONENTIAL_DECAY
        np.testing.assert_array_equal(restored.weights, [0.1, 0.2, 0.3, 0.4])


@pytest.mark.io
class TestReload:
    """Loading into an existing lattice"""

    @pytest.mark.io
    def test_reload_replaces_shape_and_strategies(self, corner_som, tmp_path):
        other = SOM.create(3, 2, 2, kernel=NeighborhoodKernel.GAUSSIAN, seed=1, verbose=False)
        path = tmp_path / "other.yaml"
        other.save(path)

        corner_som.reload(path)
        assert (corner_som.rows(), corner_som.cols(), corner_som.dims()) == (2, 3, 2)
        assert corner_som.config.kernel == NeighborhoodKernel.GAUSSIAN
        assert corner_som.kernel.kernel == NeighborhoodKernel.GAUSSIAN
        np.testing.assert_array_equal(corner_som.weights, other.weights)

    @pytest.mark.io
    def test_old_views_detach_on_reload(self, corner_som, tmp_path):
        path = tmp_path / "corner.yaml"
        corner_som.save(path)

        view = corner_som.node_at(1, 1)
        corner_som.reload(path)
        view[:] = 9.0

        np.testing.assert_array_equal(corner_som.node_at(1, 1), [1.0, 1.0])

    @pytest.mark.io
    def test_failed_reload_keeps_state(self, corner_som, tmp_path):
        path = tmp_path / "broken.yaml"
        record = valid_record()
        del record["weights"]
        write_record(path, record)

        with pytest.raises(CorruptState):
            corner_som.reload(path)
        assert corner_som.width == 2
        np.testing.assert_array_equal(corner_som.node_at(0, 1), [1.0, 0.0])


@pytest.mark.io
class TestSnapshotErrors:
    """Bad tags, bad files, bad records"""

    @pytest.mark.io
    @pytest.mark.parametrize("file_format", ["xml", 9, "", None])
    def test_unsupported_format(self, corner_som, tmp_path, file_format):
        with pytest.raises(UnsupportedFormat):
            corner_som.save(tmp_path / "model.out", file_format)
        with pytest.raises(UnsupportedFormat):
            SOM.load(tmp_path / "model.out", file_format)

    @pytest.mark.io
    def test_format_aliases(self):
        assert resolve_format("kv") == SOMFileFormat.KEYVALUE
        assert resolve_format("yml") == SOMFileFormat.YAML
        assert resolve_format("YAML") == SOMFileFormat.YAML
        assert resolve_format(1) == SOMFileFormat.KEYVALUE

    @pytest.mark.io
    @pytest.mark.parametrize("file_format", list(SOMFileFormat))
    def test_missing_file(self, tmp_path, file_format):
        with pytest.raises(IOError):
            SOM.load(tmp_path / "does_not_exist", file_format)

    @pytest.mark.io
    def test_unwritable_path(self, corner_som, tmp_path):
        with pytest.raises(IOError):
            corner_som.save(tmp_path / "no_such_dir" / "model.yaml")

    @pytest.mark.io
    @pytest.mark.parametrize("field", ["W", "H", "D", "DistanceType", "NeighborhoodKernel", "weights"])
    def test_missing_field(self, tmp_path, field):
        record = valid_record()
        del record[field]
        path = tmp_path / "model.yaml"
        write_record(path, record)

        with pytest.raises(CorruptState, match=field):
            SOM.load(path)

    @pytest.mark.io
    @pytest.mark.parametrize(
        "field,value",
        [
            ("W", 0),
            ("H", -2),
            ("D", "two"),
            ("DistanceType", 9),
            ("NeighborhoodKernel", 5),
            ("weights", [0.1, 0.2, 0.3]),
            ("weights", ["a", "b", "c", "d"]),
        ],
    )
    def test_invalid_field(self, tmp_path, field, value):
        record = valid_record()
        record[field] = value
        path = tmp_path / "model.yaml"
        write_record(path, record)

        with pytest.raises(CorruptState):
            SOM.load(path)

    @pytest.mark.io
    def test_not_a_mapping(self, tmp_path):
        path = tmp_path / "model.yaml"
        write_record(path, [1, 2, 3])

        with pytest.raises(CorruptState, match="mapping"):
            SOM.load(path)

    @pytest.mark.io
    def test_malformed_yaml(self, tmp_path):
        path = tmp_path / "model.yaml"
        path.write_text("W: [1, 2\nH: 3\n")

        with pytest.raises(CorruptState):
            SOM.load(path)

    @pytest.mark.io
    def test_legacy_kernel_key(self, tmp_path):
        record = valid_record()
        record["BMDistType"] = record.pop("NeighborhoodKernel")
        path = tmp_path / "legacy.yaml"
        write_record(path, record)

        som = SOM.load(path)
        assert som.config.kernel == NeighborhoodKernel.EXPONENTIAL_DECAY
        np.testing.assert_array_almost_equal(som.node_at(0, 1), [0.3, 0.4])

    @pytest.mark.unit
    def test_snapshot_rejects_wrong_weight_count(self):
        with pytest.raises(CorruptState, match="3 weights, expected 8"):
            Snapshot(2, 2, 2, DistanceType.EUCLIDEAN, NeighborhoodKernel.UNIFORM, np.zeros(3))

    @pytest.mark.unit
    @pytest.mark.parametrize(
        "fields",
        [
            (0, 2, 2, 0, 0),
            (2, -1, 2, 0, 0),
            (2, 2, 2.5, 0, 0),
            (2, 2, 2, 7, 0),
            (2, 2, 2, 0, "gaussian"),
        ],
    )
    def test_snapshot_rejects_bad_fields(self, fields):
        with pytest.raises(CorruptState):
            Snapshot(*fields, np.zeros(8))

    @pytest.mark.unit
    def test_import_state_rejects_mismatched_weights(self, corner_som):
        snapshot = Snapshot(
            3, 3, 2, DistanceType.COSINE_SIMILARITY, NeighborhoodKernel.GAUSSIAN, np.zeros(18)
        )
        # A record mutated after construction is checked again on import
        snapshot.weights = np.zeros(3)
        before = corner_som.get_weights()
        config = corner_som.config

        with pytest.raises(CorruptState):
            corner_som.import_state(snapshot)

        assert corner_som.config is config
        np.testing.assert_array_equal(corner_som.get_weights(), before)
        np.testing.assert_array_equal(corner_som.node_at(1, 1), [1.0, 1.0])
