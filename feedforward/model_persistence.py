"""
model_persistence.py
~~~~~~~~~~~~~~~~~~~~

Persistence for feedforward networks.

Two layers are provided:

- the state record, a JSON document holding topology, biases, weights
  and weight deltas, written to and read from plain files;
- ModelDatabase, a SQLite store keeping many named networks together
  with training metadata.

Activation functions, activations and error signals are never persisted:
a network loaded from a record uses whatever activation its caller
configures.
"""

import json
import logging
import os
import sqlite3
from contextlib import contextmanager
from typing import Any, Dict, Generator, List, Optional, Tuple

import numpy as np

from feedforward.activation import ActivationSpec
from feedforward.exceptions import ParseError
from feedforward.network import CONNECTIONS, Network

logger = logging.getLogger(__name__)

TOPOLOGY_KEYS = ('inputNeurons', 'hiddenNeurons', 'outputNeurons')


class NetworkEncoder(json.JSONEncoder):
    """JSON encoder that understands numpy arrays and scalars."""

    def default(self, obj: Any) -> Any:
        if isinstance(obj, np.ndarray):
            return obj.tolist()
        if isinstance(obj, np.integer):
            return int(obj)
        if isinstance(obj, np.floating):
            return float(obj)
        return super().default(obj)


# ============================================================================
# STATE RECORD
# ============================================================================

def network_to_record(network: Network) -> Dict[str, Any]:
    """
    Build the state record of a network.

    Args:
        network: Network to describe

    Returns:
        dict: ``inputNeurons``, ``hiddenNeurons``, ``outputNeurons``,
        ``b``, ``w`` and ``dw``; arrays are copies
    """
    record = dict(zip(TOPOLOGY_KEYS, network.sizes))
    record['b'] = [b.copy() for b in network.biases]
    record['w'] = [w.copy() for w in network.weights]
    record['dw'] = [dw.copy() for dw in network.weight_deltas]
    return record


def _parse_layers(
    record: Dict[str, Any],
    key: str,
    shapes: List[Tuple[int, ...]]
) -> List[np.ndarray]:
    layers = record.get(key)
    if not isinstance(layers, list) or len(layers) != CONNECTIONS:
        raise ParseError(f"'{key}' must be a list of {CONNECTIONS} layers")

    arrays = []
    for layer, (values, shape) in enumerate(zip(layers, shapes)):
        try:
            array = np.array(values, dtype=np.float64)
        except (TypeError, ValueError) as e:
            raise ParseError(f"'{key}' layer {layer} is not numeric: {e}") from e
        if array.shape != shape:
            raise ParseError(
                f"'{key}' layer {layer} has shape {array.shape}, "
                f"expected {shape}"
            )
        arrays.append(array)
    return arrays


def parse_record(record: Any) -> Tuple[List[int], List[np.ndarray],
                                       List[np.ndarray], List[np.ndarray]]:
    """
    Validate a decoded state record.

    Returns:
        tuple: ``(sizes, biases, weights, weight_deltas)``

    Raises:
        ParseError: If a key is missing or a shape disagrees with the
            topology
    """
    if not isinstance(record, dict):
        raise ParseError("state record must be a JSON object")

    sizes = []
    for key in TOPOLOGY_KEYS:
        count = record.get(key)
        if isinstance(count, bool) or not isinstance(count, int) or count < 1:
            raise ParseError(f"'{key}' must be an integer >= 1, got {count!r}")
        sizes.append(count)

    weight_shapes = [(sizes[i], sizes[i + 1]) for i in range(CONNECTIONS)]
    biases = _parse_layers(record, 'b', [(n,) for n in sizes[1:]])
    weights = _parse_layers(record, 'w', weight_shapes)
    weight_deltas = _parse_layers(record, 'dw', weight_shapes)
    return sizes, biases, weights, weight_deltas


def dumps_network(network: Network) -> bytes:
    """Encode the state record of ``network`` as JSON bytes."""
    return json.dumps(
        network_to_record(network), cls=NetworkEncoder
    ).encode('utf-8')


def loads_network(network: Network, data: bytes) -> None:
    """
    Overwrite ``network`` in place from JSON bytes.

    The record is fully validated before the network is touched.

    Raises:
        ParseError: If the bytes are not a valid state record
    """
    try:
        record = json.loads(data)
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise ParseError(f"state record is not valid JSON: {e}") from e
    network._restore(*parse_record(record))


def dump_network(network: Network, filename: str) -> None:
    """
    Write the state record of ``network`` to ``filename``.

    Raises:
        OSError: If the file cannot be written
    """
    data = dumps_network(network)
    with open(filename, 'wb') as f:
        f.write(data)
    logger.info(f"Dumped network {network.sizes} to '{filename}'")


def load_network(network: Network, filename: str) -> None:
    """
    Overwrite topology and parameters of ``network`` from ``filename``.

    Raises:
        OSError: If the file cannot be read
        ParseError: If the file does not hold a valid state record
    """
    with open(filename, 'rb') as f:
        data = f.read()
    loads_network(network, data)
    logger.info(f"Loaded network {network.sizes} from '{filename}'")


def network_from_file(
    filename: str,
    activation: ActivationSpec = None
) -> Network:
    """
    Create a new network from a dump.

    Args:
        filename: Path of the state record
        activation: Activation for the new network (default sigmoid)

    Returns:
        Network: network with the dumped topology and parameters
    """
    with open(filename, 'rb') as f:
        data = f.read()
    try:
        record = json.loads(data)
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise ParseError(f"state record is not valid JSON: {e}") from e
    return _network_from_record(record, activation)


def _network_from_record(record: Any, activation: ActivationSpec) -> Network:
    sizes, biases, weights, weight_deltas = parse_record(record)
    network = Network(sizes[0], sizes[2], sizes[1], activation=activation)
    network._restore(sizes, biases, weights, weight_deltas)
    return network


# ============================================================================
# MODEL STORE
# ============================================================================

class ModelDatabase:
    """
    SQLite store for named networks.

    The ``networks`` table keeps, per network:
    - its architecture as a JSON list, for listing without decoding
    - the JSON state record
    - whether it was trained, and the final error rate
    """

    def __init__(self, db_path: str = 'models/networks.db'):
        """
        Args:
            db_path: Path to the SQLite database file
        """
        self.db_path = db_path
        self._ensure_directory()
        self._initialize_schema()

    def _ensure_directory(self) -> None:
        db_dir = os.path.dirname(self.db_path)
        if db_dir:
            os.makedirs(db_dir, exist_ok=True)

    @contextmanager
    def _get_connection(self) -> Generator[sqlite3.Connection, None, None]:
        """
        Open a connection that commits on success and rolls back on error.

        Yields:
            sqlite3.Connection: Database connection
        """
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _initialize_schema(self) -> None:
        with self._get_connection() as conn:
            conn.execute('''
                CREATE TABLE IF NOT EXISTS networks (
                    network_id TEXT PRIMARY KEY,
                    architecture TEXT NOT NULL,
                    network_data TEXT NOT NULL,
                    trained INTEGER NOT NULL DEFAULT 0,
                    rate REAL,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            ''')
            conn.execute('''
                CREATE INDEX IF NOT EXISTS idx_created_at
                ON networks(created_at DESC)
            ''')

    @staticmethod
    def _metadata(row: sqlite3.Row) -> Dict[str, Any]:
        return {
            'network_id': row['network_id'],
            'architecture': json.loads(row['architecture']),
            'trained': bool(row['trained']),
            'rate': row['rate'],
            'created_at': row['created_at'],
            'updated_at': row['updated_at']
        }

    def save_network_to_db(
        self,
        network: Network,
        network_id: str,
        trained: bool = True,
        rate: Optional[float] = None
    ) -> None:
        """
        Insert or replace a network.

        Args:
            network: Network to store
            network_id: Unique identifier
            trained: Whether the network has been trained
            rate: Error rate reached by training

        Raises:
            ValueError: If ``network_id`` is empty or ``rate`` is negative
        """
        if not network_id or not isinstance(network_id, str):
            raise ValueError("network_id must be a non-empty string")
        if rate is not None and not rate >= 0:
            raise ValueError(f"rate must be >= 0, got {rate}")

        # Keep created_at of an existing row, refresh everything else
        with self._get_connection() as conn:
            conn.execute('''
                INSERT INTO networks
                (network_id, architecture, network_data, trained, rate)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(network_id) DO UPDATE SET
                    architecture = excluded.architecture,
                    network_data = excluded.network_data,
                    trained = excluded.trained,
                    rate = excluded.rate,
                    updated_at = CURRENT_TIMESTAMP
            ''', (
                network_id,
                json.dumps(network.sizes),
                dumps_network(network).decode('utf-8'),
                1 if trained else 0,
                rate
            ))

        logger.info(
            f"Saved network '{network_id}' {network.sizes}, "
            f"trained={trained}, rate={rate}"
        )

    def load_network_from_db(
        self,
        network_id: str,
        activation: ActivationSpec = None
    ) -> Optional[Network]:
        """
        Rebuild a stored network.

        Args:
            network_id: Unique identifier
            activation: Activation for the rebuilt network

        Returns:
            Network, or None if no network has that identifier

        Raises:
            ParseError: If the stored record is corrupt
        """
        with self._get_connection() as conn:
            row = conn.execute(
                'SELECT network_data FROM networks WHERE network_id = ?',
                (network_id,)
            ).fetchone()

        if row is None:
            logger.warning(f"Network '{network_id}' not found")
            return None

        try:
            record = json.loads(row['network_data'])
        except json.JSONDecodeError as e:
            raise ParseError(
                f"stored record of '{network_id}' is not valid JSON: {e}"
            ) from e
        network = _network_from_record(record, activation)
        logger.info(f"Loaded network '{network_id}'")
        return network

    def list_networks_from_db(self) -> List[Dict[str, Any]]:
        """Metadata of every stored network, newest first."""
        with self._get_connection() as conn:
            rows = conn.execute('''
                SELECT network_id, architecture, trained, rate,
                       created_at, updated_at
                FROM networks
                ORDER BY created_at DESC, network_id
            ''').fetchall()

        networks = []
        for row in rows:
            metadata = self._metadata(row)
            architecture = metadata['architecture']
            metadata['weights_shape'] = [
                [architecture[i], architecture[i + 1]]
                for i in range(CONNECTIONS)
            ]
            metadata['biases_shape'] = [[n] for n in architecture[1:]]
            networks.append(metadata)

        logger.debug(f"Listed {len(networks)} networks")
        return networks

    def get_network_metadata_from_db(
        self,
        network_id: str
    ) -> Optional[Dict[str, Any]]:
        """Metadata of one network without decoding its parameters."""
        with self._get_connection() as conn:
            row = conn.execute('''
                SELECT network_id, architecture, trained, rate,
                       created_at, updated_at
                FROM networks
                WHERE network_id = ?
            ''', (network_id,)).fetchone()

        if row is None:
            logger.warning(f"Metadata for network '{network_id}' not found")
            return None
        return self._metadata(row)

    def delete_network_from_db(self, network_id: str) -> bool:
        """
        Returns:
            bool: True if a network was deleted, False if none matched
        """
        with self._get_connection() as conn:
            deleted = conn.execute(
                'DELETE FROM networks WHERE network_id = ?',
                (network_id,)
            ).rowcount > 0

        if deleted:
            logger.info(f"Deleted network '{network_id}'")
        else:
            logger.warning(f"Could not delete network '{network_id}': not found")
        return deleted

    def delete_old_networks_from_db(self, days: float) -> int:
        """
        Delete networks created more than ``days`` days ago.

        Returns:
            int: Number of networks deleted

        Raises:
            ValueError: If ``days`` is negative
        """
        if days < 0:
            raise ValueError(f"days must be non-negative, got {days}")

        with self._get_connection() as conn:
            deleted = conn.execute('''
                DELETE FROM networks
                WHERE julianday('now') - julianday(created_at) > ?
            ''', (days,)).rowcount

        logger.info(f"Deleted {deleted} network(s) older than {days} day(s)")
        return deleted
