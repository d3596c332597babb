"""
exceptions.py
~~~~~~~~~~~~~

Errors raised by the feedforward network and its persistence layer.

Argument problems also derive from ValueError so callers that only
know about built-in exceptions can still catch them. I/O failures are
never wrapped: they surface as the built-in OSError family.
"""


class NetworkError(Exception):
    """Base class for every error raised by this package."""


class InvalidTopology(NetworkError, ValueError):
    """A neuron count is not a positive integer."""


class InvalidActivationPair(NetworkError, ValueError):
    """The activation functions do not form a complete pair."""


class InvalidVector(NetworkError, ValueError):
    """An input or target vector does not match the layer width."""


class InvalidDataset(NetworkError, ValueError):
    """Inputs and outputs cannot be paired up into training samples."""


class InvalidSpeed(NetworkError, ValueError):
    """Learning rate is not strictly positive."""


class InvalidMoment(NetworkError, ValueError):
    """Momentum coefficient is negative."""


class InvalidRate(NetworkError, ValueError):
    """Target error rate is negative."""


class InvalidEpochBudget(NetworkError, ValueError):
    """Maximum epoch count is not strictly positive."""


class EpochBudgetExceeded(NetworkError):
    """
    Training ran out of epochs before reaching the target rate.

    The rate and epoch reached are kept so the caller can inspect the
    partial progress.
    """

    def __init__(self, rate: float, epoch: int):
        super().__init__(
            f"maximum count of epochs exceeded at epoch {epoch} "
            f"with rate {rate:.6f}"
        )
        self.rate = rate
        self.epoch = epoch

    def __reduce__(self):
        return self.__class__, (self.rate, self.epoch)


class ParseError(NetworkError, ValueError):
    """A persisted state record could not be decoded."""
