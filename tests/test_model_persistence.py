"""
test_model_persistence.py
~~~~~~~~~~~~~~~~~~~~~~~~~~

Unit tests for state record persistence and the SQLite model store.
"""

import json
import os
import sqlite3

import numpy as np
import pytest

from feedforward import Network, ParseError
from feedforward.model_persistence import (
    ModelDatabase,
    dump_network,
    dumps_network,
    load_network,
    loads_network,
    network_from_file,
    network_to_record,
)


@pytest.fixture
def temp_db_dir(tmp_path):
    """Create a temporary directory for database storage."""
    db_dir = tmp_path / "test_models"
    db_dir.mkdir()
    return str(db_dir)


@pytest.fixture
def db(temp_db_dir):
    return ModelDatabase(db_path=os.path.join(temp_db_dir, "networks.db"))


@pytest.fixture
def simple_network():
    """Create a simple 3-4-2 network for testing."""
    return Network(3, 2, 4, rng=7)


@pytest.fixture
def trained_network(simple_network):
    """A network with non-zero weight deltas."""
    rs = np.random.default_rng(0)
    for _ in range(5):
        simple_network.forward(rs.standard_normal(3))
        simple_network.backward([1.0, 0.0], 0.3, 0.2)
    return simple_network


def assert_same_parameters(a, b):
    for family in ('biases', 'weights', 'weight_deltas'):
        for x, y in zip(getattr(a, family), getattr(b, family)):
            assert np.array_equal(x, y)


def age_network(db_path, network_id, modifier):
    conn = sqlite3.connect(db_path)
    conn.execute(
        "UPDATE networks SET created_at = datetime('now', ?) "
        "WHERE network_id = ?",
        (modifier, network_id)
    )
    conn.commit()
    conn.close()


@pytest.mark.unit
class TestStateRecord:
    """Test the state record layout and file round trips."""

    def test_record_keys(self, simple_network):
        """Test that the record holds topology and parameters only."""
        record = network_to_record(simple_network)
        assert set(record) == {
            'inputNeurons', 'hiddenNeurons', 'outputNeurons', 'b', 'w', 'dw'
        }
        assert record['inputNeurons'] == 3
        assert record['hiddenNeurons'] == 4
        assert record['outputNeurons'] == 2

    def test_dumped_json_layout(self, trained_network):
        """Test the nesting of the JSON arrays."""
        record = json.loads(dumps_network(trained_network))
        assert [len(b) for b in record['b']] == [4, 2]
        assert [len(w) for w in record['w']] == [3, 4]
        assert [len(w[0]) for w in record['w']] == [4, 2]
        assert [len(dw) for dw in record['dw']] == [3, 4]

    def test_round_trip_is_exact(self, trained_network, tmp_path):
        """Test that dump then load reproduces every value exactly."""
        path = str(tmp_path / "dump.json")
        dump_network(trained_network, path)

        fresh = Network(3, 2, 4, rng=99)
        load_network(fresh, path)

        assert fresh.sizes == trained_network.sizes
        assert_same_parameters(fresh, trained_network)

    def test_network_methods(self, trained_network, tmp_path):
        """Test the dump and load shortcuts on Network."""
        path = str(tmp_path / "dump.json")
        trained_network.dump(path)

        fresh = Network(3, 2, 4, rng=99)
        fresh.load(path)

        assert_same_parameters(fresh, trained_network)
        assert fresh.to_record()['inputNeurons'] == 3

    def test_load_keeps_activation(self, simple_network, tmp_path):
        """Test that loading does not replace the activation functions."""
        path = str(tmp_path / "dump.json")
        simple_network.dump(path)

        custom = (np.tanh, lambda a: 1 - a ** 2)
        other = Network(3, 2, 4, activation=custom)
        activation = other.activation
        other.load(path)

        assert other.activation is activation

    def test_load_other_topology(self, simple_network, tmp_path):
        """Test that loading resizes every buffer to the dumped topology."""
        path = str(tmp_path / "dump.json")
        simple_network.dump(path)

        other = Network(1, 1, 1)
        other.load(path)

        assert other.sizes == [3, 4, 2]
        assert [a.shape for a in other.activations] == [(3,), (4,), (2,)]
        assert [e.shape for e in other.errors] == [(4,), (2,)]
        assert np.array_equal(other.read([0.1, 0.2, 0.3]),
                              simple_network.read([0.1, 0.2, 0.3]))

    def test_network_from_file(self, trained_network, tmp_path):
        """Test building a new network straight from a dump."""
        path = str(tmp_path / "dump.json")
        trained_network.dump(path)

        loaded = network_from_file(path)

        assert loaded.sizes == [3, 4, 2]
        assert_same_parameters(loaded, trained_network)

    def test_load_missing_file(self, simple_network, tmp_path):
        """Test that I/O errors reach the caller unchanged."""
        with pytest.raises(FileNotFoundError):
            simple_network.load(str(tmp_path / "notfound.json"))
        with pytest.raises(OSError):
            simple_network.load("")

    def test_dump_to_missing_directory(self, simple_network, tmp_path):
        with pytest.raises(OSError):
            simple_network.dump(str(tmp_path / "missing" / "dump.json"))

    def test_load_invalid_json(self, simple_network):
        """Test that undecodable bytes raise ParseError."""
        with pytest.raises(ParseError):
            loads_network(simple_network, b"{not json")

    @pytest.mark.parametrize("mutate", [
        lambda r: r.pop('dw'),
        lambda r: r.update(hiddenNeurons=0),
        lambda r: r.update(inputNeurons="3"),
        lambda r: r.update(b=r['b'][:1]),
        lambda r: r['w'][0].pop(),
        lambda r: r['dw'][1][0].append(0.5),
        lambda r: r.update(b=[["x"] * 4, [0.0, 0.0]]),
    ])
    def test_load_malformed_record(self, simple_network, mutate):
        """Test that inconsistent records are rejected untouched."""
        record = json.loads(dumps_network(simple_network))
        mutate(record)
        target = Network(3, 2, 4, rng=5)
        before = [w.copy() for w in target.weights]

        with pytest.raises(ParseError):
            loads_network(target, json.dumps(record).encode())

        for a, b in zip(before, target.weights):
            assert np.array_equal(a, b)

    def test_load_non_object(self, simple_network):
        with pytest.raises(ParseError):
            loads_network(simple_network, b"[1, 2, 3]")


@pytest.mark.unit
class TestModelDatabase:
    """Test the SQLite model store."""

    def test_creates_database(self, temp_db_dir):
        """Test that the database file and directories are created."""
        path = os.path.join(temp_db_dir, "nested", "networks.db")
        ModelDatabase(db_path=path)
        assert os.path.exists(path)

    def test_save_and_load(self, db, trained_network):
        """Test that a stored network comes back with equal parameters."""
        db.save_network_to_db(trained_network, "net", trained=True, rate=0.02)

        loaded = db.load_network_from_db("net")

        assert isinstance(loaded, Network)
        assert loaded.sizes == [3, 4, 2]
        assert_same_parameters(loaded, trained_network)

    def test_load_with_activation(self, db, simple_network):
        """Test that the caller chooses the activation of a loaded network."""
        db.save_network_to_db(simple_network, "net")
        pair = (np.tanh, lambda a: 1 - a ** 2)

        loaded = db.load_network_from_db("net", activation=pair)

        assert loaded.activation.activate.pyfunc is np.tanh

    def test_load_nonexistent(self, db):
        assert db.load_network_from_db("nonexistent") is None

    def test_metadata(self, db, simple_network):
        """Test that metadata is recorded."""
        db.save_network_to_db(simple_network, "net", trained=False)

        metadata = db.get_network_metadata_from_db("net")

        assert metadata['network_id'] == "net"
        assert metadata['architecture'] == [3, 4, 2]
        assert metadata['trained'] is False
        assert metadata['rate'] is None
        assert 'created_at' in metadata
        assert 'updated_at' in metadata

    def test_metadata_nonexistent(self, db):
        assert db.get_network_metadata_from_db("nonexistent") is None

    def test_update_network(self, db, simple_network):
        """Test that saving under the same id replaces the entry."""
        db.save_network_to_db(simple_network, "net", trained=False)
        db.save_network_to_db(simple_network, "net", trained=True, rate=0.01)

        metadata = db.get_network_metadata_from_db("net")
        assert metadata['trained'] is True
        assert metadata['rate'] == 0.01
        assert len(db.list_networks_from_db()) == 1

    def test_list_networks(self, db, simple_network):
        """Test listing with shapes derived from the architecture."""
        db.save_network_to_db(simple_network, "net1", rate=0.5)
        db.save_network_to_db(Network(2, 1, 4), "net2", trained=False)

        networks = {n['network_id']: n for n in db.list_networks_from_db()}

        assert set(networks) == {"net1", "net2"}
        assert networks['net1']['weights_shape'] == [[3, 4], [4, 2]]
        assert networks['net1']['biases_shape'] == [[4], [2]]
        assert networks['net2']['architecture'] == [2, 4, 1]

    def test_list_empty(self, db):
        assert db.list_networks_from_db() == []

    def test_delete(self, db, simple_network):
        db.save_network_to_db(simple_network, "net")

        assert db.delete_network_from_db("net") is True
        assert db.load_network_from_db("net") is None
        assert db.delete_network_from_db("net") is False

    @pytest.mark.parametrize("network_id,rate", [
        ("", None),
        ("net", -0.1),
    ])
    def test_save_rejects_bad_arguments(self, db, simple_network,
                                        network_id, rate):
        with pytest.raises(ValueError):
            db.save_network_to_db(simple_network, network_id, rate=rate)

    def test_corrupt_record(self, db, simple_network):
        """Test that a damaged stored record raises ParseError."""
        db.save_network_to_db(simple_network, "net")
        conn = sqlite3.connect(db.db_path)
        conn.execute("UPDATE networks SET network_data = '{}'")
        conn.commit()
        conn.close()

        with pytest.raises(ParseError):
            db.load_network_from_db("net")


@pytest.mark.unit
class TestDeleteOldNetworks:
    """Tests for cleanup of old networks."""

    def test_mixed_ages(self, db, simple_network):
        """Test that only networks past the threshold are deleted."""
        for network_id in ("old_1", "old_2", "recent_1"):
            db.save_network_to_db(simple_network, network_id)
        age_network(db.db_path, "old_1", '-3 days')
        age_network(db.db_path, "old_2", '-14 days')

        assert db.delete_old_networks_from_db(days=2) == 2
        assert db.load_network_from_db("old_1") is None
        assert db.load_network_from_db("old_2") is None
        assert db.load_network_from_db("recent_1") is not None

    def test_custom_days(self, db, simple_network):
        db.save_network_to_db(simple_network, "net")
        age_network(db.db_path, "net", '-5 days')

        assert db.delete_old_networks_from_db(days=7) == 0
        assert db.delete_old_networks_from_db(days=3) == 1

    def test_resave_keeps_created_at(self, db, simple_network):
        """Test that updating a network does not reset its age."""
        db.save_network_to_db(simple_network, "net")
        age_network(db.db_path, "net", '-3 days')
        db.save_network_to_db(simple_network, "net", rate=0.1)

        assert db.delete_old_networks_from_db(days=2) == 1

    def test_empty_db(self, db):
        assert db.delete_old_networks_from_db(days=2) == 0

    def test_negative_days(self, db):
        with pytest.raises(ValueError) as exc_info:
            db.delete_old_networks_from_db(days=-1)
        assert "non-negative" in str(exc_info.value)


@pytest.mark.integration
class TestPersistenceIntegration:
    """Integration tests for persistence around training."""

    def test_save_load_train_cycle(self, db, simple_network, tmp_path):
        """Test store, reload, keep training, dump, reload again."""
        db.save_network_to_db(simple_network, "cycle", trained=False)
        net = db.load_network_from_db("cycle")

        inputs = [[0.0, 0.0, 1.0], [1.0, 1.0, 0.0]]
        outputs = [[1.0, 0.0], [0.0, 1.0]]
        rate, _ = net.train(inputs, outputs, 0.3, 0.1, 10, 10)
        db.save_network_to_db(net, "cycle", trained=True, rate=rate)

        path = str(tmp_path / "cycle.json")
        db.load_network_from_db("cycle").dump(path)
        final = network_from_file(path)

        assert_same_parameters(final, net)
        assert db.get_network_metadata_from_db("cycle")['trained'] is True
