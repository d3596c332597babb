"""
feedforward package
~~~~~~~~~~~~~~~~~~~

Single hidden layer feedforward neural network trained by stochastic
gradient descent with momentum, plus persistence of its state.
"""

from feedforward.activation import SIGMOID, Activation
from feedforward.exceptions import (
    EpochBudgetExceeded,
    InvalidActivationPair,
    InvalidDataset,
    InvalidEpochBudget,
    InvalidMoment,
    InvalidRate,
    InvalidSpeed,
    InvalidTopology,
    InvalidVector,
    NetworkError,
    ParseError,
)
from feedforward.network import Network

__version__ = "1.0.0"

__all__ = [
    'Activation',
    'SIGMOID',
    'Network',
    'NetworkError',
    'InvalidTopology',
    'InvalidActivationPair',
    'InvalidVector',
    'InvalidDataset',
    'InvalidSpeed',
    'InvalidMoment',
    'InvalidRate',
    'InvalidEpochBudget',
    'EpochBudgetExceeded',
    'ParseError',
]
