"""
activation.py
~~~~~~~~~~~~~

Activation functions for the network neurons.

An activation is a pair of functions: ``activate`` maps a weighted sum
to a neuron output, ``derivative`` maps a neuron *output* (not the sum)
to the slope used during backpropagation.

An Activation object receives whole layers as numpy arrays and must work
elementwise. A plain ``(activate, derivative)`` pair is called on one
neuron value at a time, so scalar functions such as ``math.tanh`` work.
"""

from typing import Callable, Optional, Sequence, Union

import numpy as np

from feedforward.exceptions import InvalidActivationPair

ArrayFunction = Callable[[np.ndarray], np.ndarray]


def sigmoid(z: np.ndarray) -> np.ndarray:
    """The logistic sigmoid function."""
    return 1.0 / (1.0 + np.exp(-z))


def sigmoid_prime(a: np.ndarray) -> np.ndarray:
    """Derivative of the sigmoid, expressed in terms of its output."""
    return a * (1.0 - a)


class Activation:
    """A complete activate/derivative pair."""

    def __init__(self, activate: ArrayFunction, derivative: ArrayFunction):
        if not callable(activate) or not callable(derivative):
            raise InvalidActivationPair(
                "activation and derivative must both be callable"
            )
        self.activate = activate
        self.derivative = derivative

    def __repr__(self) -> str:
        return (
            f"Activation(activate={_name(self.activate)}, "
            f"derivative={_name(self.derivative)})"
        )


def _name(function: ArrayFunction) -> str:
    function = getattr(function, 'pyfunc', function)
    return getattr(function, '__name__', repr(function))


SIGMOID = Activation(sigmoid, sigmoid_prime)

ActivationSpec = Union[None, Activation, Sequence[Optional[ArrayFunction]]]


def resolve_activation(choice: ActivationSpec) -> Activation:
    """
    Turn whatever the caller passed as ``activation`` into an Activation.

    Args:
        choice: None, an Activation, or an ``(activate, derivative)`` sequence

    Returns:
        Activation: the capability to use

    Raises:
        InvalidActivationPair: if the sequence does not hold exactly two
            slots, or exactly one of them is missing
    """
    if choice is None:
        return SIGMOID
    if isinstance(choice, Activation):
        return choice
    if callable(choice):
        raise InvalidActivationPair(
            "a single function was given, expected (activate, derivative)"
        )

    try:
        functions = list(choice)
    except TypeError as e:
        raise InvalidActivationPair(
            f"activation must be an Activation or a pair of functions, "
            f"got {choice!r}"
        ) from e
    if len(functions) != 2:
        raise InvalidActivationPair(
            f"activation functions sequence length is {len(functions)}, "
            f"expected 2"
        )

    activate, derivative = functions
    if activate is None and derivative is None:
        return SIGMOID
    if activate is None or derivative is None:
        raise InvalidActivationPair(
            "activation and derivative must be supplied together"
        )
    if not callable(activate) or not callable(derivative):
        raise InvalidActivationPair(
            "activation and derivative must both be callable"
        )
    # Plain pairs take one neuron value at a time
    return Activation(
        np.vectorize(activate, otypes=[float]),
        np.vectorize(derivative, otypes=[float])
    )
