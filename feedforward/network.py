"""
network.py
~~~~~~~~~~

A feedforward neural network with exactly one hidden layer, trained by
stochastic gradient descent with momentum.

Every numeric family of the network (activations, errors, biases,
weights and weight deltas) lives in a single flat ``float64`` buffer.
Layer offsets and row strides are computed once at allocation time and
the per-layer arrays handed out by the properties are numpy *views*
into those buffers, so updating a view updates the network.

Typical use::

    >>> net = Network(2, 1, 4, rng=7)
    >>> net.train(inputs, outputs, speed=0.2, moment=0.05,
    ...           rate=0.01, epochs=10000)
    >>> net.read([0, 1])
"""

import itertools
import logging
from typing import Callable, List, Optional, Sequence, Tuple, Union

import numpy as np

from feedforward.activation import ActivationSpec, resolve_activation
from feedforward.exceptions import (
    EpochBudgetExceeded,
    InvalidDataset,
    InvalidEpochBudget,
    InvalidMoment,
    InvalidRate,
    InvalidSpeed,
    InvalidTopology,
    InvalidVector,
)

logger = logging.getLogger(__name__)

Vector = Union[Sequence[float], np.ndarray]
Dataset = Union[Sequence[Vector], np.ndarray]
EpochCallback = Callable[[int, float], None]
RandomSource = Union[None, int, np.random.Generator]

# Input, hidden and output layers
LAYERS = 3
CONNECTIONS = LAYERS - 1


def _offsets(lengths: Sequence[int]) -> List[int]:
    """Start offsets of consecutive blocks, plus the total length."""
    return [0] + list(itertools.accumulate(lengths))


class Network:
    """
    Single hidden layer feedforward network.

    Attributes:
        sizes: neuron counts as ``[input, hidden, output]``
        activation: the Activation used by forward and backward passes
        rng: numpy Generator used to initialize the parameters
    """

    def __init__(
        self,
        input_neurons: int,
        output_neurons: int,
        hidden_neurons: int,
        activation: ActivationSpec = None,
        rng: RandomSource = None
    ):
        """
        Build a network with randomly initialized biases and weights.

        Args:
            input_neurons: Width of the input layer
            output_neurons: Width of the output layer
            hidden_neurons: Width of the hidden layer
            activation: None for the sigmoid, an Activation, or an
                ``(activate, derivative)`` pair
            rng: Seed or numpy Generator for reproducible initialization

        Raises:
            InvalidTopology: If any neuron count is less than 1
            InvalidActivationPair: If the activation pair is incomplete
        """
        for name, count in (
            ('input', input_neurons),
            ('output', output_neurons),
            ('hidden', hidden_neurons)
        ):
            if (isinstance(count, bool)
                    or not isinstance(count, (int, np.integer))
                    or count < 1):
                raise InvalidTopology(
                    f"{name} neurons must be an integer >= 1, got {count!r}"
                )

        self.activation = resolve_activation(activation)
        self.rng = np.random.default_rng(rng)

        self._allocate(int(input_neurons), int(hidden_neurons),
                       int(output_neurons))

        # Biases first, then input->hidden and hidden->output weights
        self._biases[:] = self.rng.random(self._biases.size) - 0.5
        self._weights[:] = self.rng.random(self._weights.size) - 0.5

        logger.info(f"Created network {self.sizes} with {self.activation!r}")

    def __repr__(self) -> str:
        return "<Network sizes=%s>" % self.sizes

    # ------------------------------------------------------------------
    # Storage
    # ------------------------------------------------------------------

    def _allocate(self, input_neurons: int, hidden_neurons: int,
                  output_neurons: int) -> None:
        """Allocate zeroed flat buffers and the per-layer views into them."""
        self.sizes = [input_neurons, hidden_neurons, output_neurons]
        connections = [
            self.sizes[i] * self.sizes[i + 1] for i in range(CONNECTIONS)
        ]

        self._activation_offsets = _offsets(self.sizes)
        self._neuron_offsets = _offsets(self.sizes[1:])
        self._weight_offsets = _offsets(connections)
        # Row stride of weights[layer] is the width of the next layer
        self._weight_strides = self.sizes[1:]

        self._activations = np.zeros(self._activation_offsets[-1])
        self._errors = np.zeros(self._neuron_offsets[-1])
        self._biases = np.zeros(self._neuron_offsets[-1])
        self._weights = np.zeros(self._weight_offsets[-1])
        self._weight_deltas = np.zeros(self._weight_offsets[-1])

        self._activation_views = self._vectors(
            self._activations, self._activation_offsets)
        self._error_views = self._vectors(self._errors, self._neuron_offsets)
        self._bias_views = self._vectors(self._biases, self._neuron_offsets)
        self._weight_views = self._matrices(self._weights)
        self._delta_views = self._matrices(self._weight_deltas)

    @staticmethod
    def _vectors(buffer: np.ndarray, offsets: List[int]) -> List[np.ndarray]:
        return [
            buffer[offsets[i]:offsets[i + 1]]
            for i in range(len(offsets) - 1)
        ]

    def _matrices(self, buffer: np.ndarray) -> List[np.ndarray]:
        return [
            buffer[self._weight_offsets[i]:self._weight_offsets[i + 1]]
            .reshape(self.sizes[i], self.sizes[i + 1])
            for i in range(CONNECTIONS)
        ]

    def _restore(
        self,
        sizes: Sequence[int],
        biases: Sequence[np.ndarray],
        weights: Sequence[np.ndarray],
        weight_deltas: Sequence[np.ndarray]
    ) -> None:
        """
        Replace topology and parameters with already validated values.

        Activation and error buffers are reallocated to the new topology
        and start out zeroed.
        """
        self._allocate(*sizes)
        for layer in range(CONNECTIONS):
            self._bias_views[layer][:] = biases[layer]
            self._weight_views[layer][:] = weights[layer]
            self._delta_views[layer][:] = weight_deltas[layer]

    @property
    def input_neurons(self) -> int:
        return self.sizes[0]

    @property
    def hidden_neurons(self) -> int:
        return self.sizes[1]

    @property
    def output_neurons(self) -> int:
        return self.sizes[2]

    @property
    def activations(self) -> List[np.ndarray]:
        """Views of the input, hidden and output activations."""
        return list(self._activation_views)

    @property
    def errors(self) -> List[np.ndarray]:
        """Views of the hidden and output error signals."""
        return list(self._error_views)

    @property
    def biases(self) -> List[np.ndarray]:
        """Views of the hidden and output biases."""
        return list(self._bias_views)

    @property
    def weights(self) -> List[np.ndarray]:
        """Views of the weight matrices, ``weights[layer][src, dst]``."""
        return list(self._weight_views)

    @property
    def weight_deltas(self) -> List[np.ndarray]:
        """Views of the previous weight updates, shaped like ``weights``."""
        return list(self._delta_views)

    def weight(self, layer: int, src: int, dst: int) -> float:
        """
        Weight of the connection from neuron ``src`` of ``layer`` to
        neuron ``dst`` of ``layer + 1``, read from the flat buffer.
        """
        if not 0 <= layer < CONNECTIONS:
            raise IndexError(f"connection layer {layer} out of range")
        if not 0 <= src < self.sizes[layer]:
            raise IndexError(f"source neuron {src} out of range")
        if not 0 <= dst < self.sizes[layer + 1]:
            raise IndexError(f"destination neuron {dst} out of range")
        index = (self._weight_offsets[layer]
                 + src * self._weight_strides[layer] + dst)
        return float(self._weights[index])

    # ------------------------------------------------------------------
    # Validation helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _as_vector(values: Vector, width: int, what: str) -> np.ndarray:
        try:
            vector = np.asarray(values, dtype=np.float64)
        except (TypeError, ValueError) as e:
            raise InvalidVector(f"{what} vector is not numeric: {e}") from e
        if vector.shape != (width,):
            raise InvalidVector(
                f"{what} vector has shape {vector.shape}, expected ({width},)"
            )
        return vector

    def _as_dataset(
        self,
        inputs: Dataset,
        outputs: Dataset
    ) -> Tuple[List[np.ndarray], List[np.ndarray]]:
        if len(inputs) == 0:
            raise InvalidDataset("dataset is empty")
        try:
            xs = [self._as_vector(x, self.input_neurons, 'input')
                  for x in inputs]
            ys = [self._as_vector(y, self.output_neurons, 'output')
                  for y in outputs]
        except InvalidVector as e:
            raise InvalidDataset(str(e)) from e
        return xs, ys

    # ------------------------------------------------------------------
    # Forward and backward passes
    # ------------------------------------------------------------------

    def _propagate(self, x: np.ndarray) -> np.ndarray:
        a = self._activation_views
        a[0][:] = x
        for layer in range(1, LAYERS):
            z = (self._bias_views[layer - 1]
                 + a[layer - 1] @ self._weight_views[layer - 1])
            a[layer][:] = self.activation.activate(z)
        return a[-1]

    def forward(self, inputs: Vector) -> np.ndarray:
        """
        Feed ``inputs`` through the network.

        The input is copied into the network, and the returned output
        vector is a copy too, so neither side can disturb the other.

        Raises:
            InvalidVector: If ``inputs`` does not match the input width
        """
        x = self._as_vector(inputs, self.input_neurons, 'input')
        return self._propagate(x).copy()

    def _backpropagate(self, target: np.ndarray, speed: float,
                       moment: float) -> None:
        a_hidden, a_out = self._activation_views[1:]
        e_hidden, e_out = self._error_views
        derivative = self.activation.derivative

        e_out[:] = (target - a_out) * derivative(a_out)
        # Hidden error uses the weights before this step's update
        e_hidden[:] = (self._weight_views[1] @ e_out) * derivative(a_hidden)

        for layer in range(CONNECTIONS):
            delta = self._delta_views[layer]
            delta *= moment
            delta += np.outer(speed * self._activation_views[layer],
                              self._error_views[layer])
            self._weight_views[layer] += delta

        # Biases take no momentum term
        for layer in range(CONNECTIONS):
            self._bias_views[layer] += speed * self._error_views[layer]

    def backward(self, targets: Vector, speed: float, moment: float) -> None:
        """
        Backpropagate the error against ``targets`` and update the
        weights and biases. ``forward`` must have been called for the
        matching input first.

        Args:
            targets: Expected output vector
            speed: Learning rate
            moment: Fraction of the previous weight update carried over

        Raises:
            InvalidVector: If ``targets`` does not match the output width
        """
        target = self._as_vector(targets, self.output_neurons, 'output')
        self._backpropagate(target, speed, moment)

    # ------------------------------------------------------------------
    # Evaluation and training
    # ------------------------------------------------------------------

    def _rate(self, xs: List[np.ndarray], ys: List[np.ndarray]) -> float:
        total = 0.0
        for x, y in zip(xs, ys):
            output = self._propagate(x)
            total += float(np.sum((output - y) ** 2))
        return total / len(ys)

    def rate(self, inputs: Dataset, outputs: Dataset) -> float:
        """
        Mean squared error of the network over a dataset.

        Runs a forward pass for every sample, so the activations are left
        holding the last sample's values.

        Raises:
            InvalidDataset: If the dataset is empty, unbalanced or holds
                vectors of the wrong width
        """
        if len(inputs) != len(outputs):
            raise InvalidDataset("inputs length is not equal to outputs length")
        xs, ys = self._as_dataset(inputs, outputs)
        return self._rate(xs, ys)

    def train(
        self,
        inputs: Dataset,
        outputs: Dataset,
        speed: float,
        moment: float,
        rate: float,
        epochs: int,
        callback: Optional[EpochCallback] = None
    ) -> Tuple[float, int]:
        """
        Train with per-sample updates until the error rate drops to
        ``rate`` or the epoch budget runs out.

        The dataset-wide rate is re-evaluated after every sample, and
        training stops as soon as it is low enough, possibly mid-epoch.

        Args:
            inputs: Input vectors
            outputs: Expected output vectors, paired with ``inputs``
            speed: Learning rate, > 0
            moment: Momentum coefficient, >= 0
            rate: Target mean squared error, >= 0
            epochs: Epoch budget, > 0
            callback: Called as ``callback(epoch, rate)`` after every
                completed epoch

        Returns:
            tuple: ``(rate, epoch)`` reached

        Raises:
            InvalidDataset, InvalidSpeed, InvalidMoment, InvalidRate,
            InvalidEpochBudget: On bad arguments, before any update
            EpochBudgetExceeded: If the budget ran out; carries the
                ``rate`` and ``epoch`` reached
        """
        if len(inputs) != len(outputs):
            raise InvalidDataset("inputs length is not equal to outputs length")
        if not speed > 0:
            raise InvalidSpeed(f"speed must be > 0, got {speed}")
        if not moment >= 0:
            raise InvalidMoment(f"moment must be >= 0, got {moment}")
        if not rate >= 0:
            raise InvalidRate(f"rate must be >= 0, got {rate}")
        if (isinstance(epochs, bool)
                or not isinstance(epochs, (int, np.integer))
                or epochs <= 0):
            raise InvalidEpochBudget(f"epochs must be an integer > 0, got {epochs!r}")
        xs, ys = self._as_dataset(inputs, outputs)

        logger.info(
            f"Training {self!r} on {len(xs)} samples: speed={speed}, "
            f"moment={moment}, rate={rate}, epochs={epochs}"
        )

        current_rate = float('nan')
        for epoch in itertools.count():
            for x, y in zip(xs, ys):
                self._propagate(x)
                self._backpropagate(y, speed, moment)
                current_rate = self._rate(xs, ys)
                if current_rate <= rate:
                    logger.info(
                        f"Training converged at epoch {epoch} "
                        f"with rate {current_rate:.6f}"
                    )
                    return current_rate, epoch
                # Strict comparison lets the run reach epoch == epochs
                if epoch > epochs:
                    logger.warning(
                        f"Epoch budget {epochs} exceeded, "
                        f"rate {current_rate:.6f}"
                    )
                    raise EpochBudgetExceeded(current_rate, epoch)

            logger.debug(f"Epoch {epoch}: rate {current_rate:.6f}")
            if callback is not None:
                callback(epoch, current_rate)

    def read(self, inputs: Vector) -> np.ndarray:
        """Run inference on one input vector and return a copy of the output."""
        return self.forward(inputs)

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def to_record(self) -> dict:
        """The persisted state record of this network."""
        from feedforward.model_persistence import network_to_record
        return network_to_record(self)

    def dump(self, filename: str) -> None:
        """Write the state record to ``filename`` as JSON."""
        from feedforward.model_persistence import dump_network
        dump_network(self, filename)

    def load(self, filename: str) -> None:
        """
        Overwrite topology and parameters from a dump at ``filename``.
        The activation functions are kept.
        """
        from feedforward.model_persistence import load_network
        load_network(self, filename)
