"""
config.py
~~~~~~~~~

Environment driven settings.

- ``LOG_LEVEL``: level passed to ``configure_logging`` (default INFO)
- ``FFN_SPEED``, ``FFN_MOMENT``, ``FFN_RATE``, ``FFN_EPOCHS``: training
  defaults read by ``TrainingSettings.from_env``
- ``FFN_MODEL_DIR``: directory of the model store database
"""

import logging
import os
from typing import Callable, Optional, TypeVar

T = TypeVar('T')

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def configure_logging(level: Optional[str] = None) -> None:
    """
    Set up root logging for scripts using the package.

    The library itself only creates module loggers; applications call
    this once at startup.

    Args:
        level: Level name; defaults to ``LOG_LEVEL`` or INFO
    """
    level_name = (level or os.getenv('LOG_LEVEL', 'INFO')).upper()
    log_level = getattr(logging, level_name, logging.INFO)
    logging.basicConfig(level=log_level, format=LOG_FORMAT)
    logging.getLogger('feedforward').setLevel(log_level)


def _env(name: str, parse: Callable[[str], T], default: T) -> T:
    raw = os.getenv(name)
    if raw is None or raw.strip() == '':
        return default
    try:
        return parse(raw)
    except ValueError as e:
        raise ValueError(f"{name}={raw!r} is not valid: {e}") from e


def model_dir() -> str:
    """Directory holding the model store, from ``FFN_MODEL_DIR``."""
    return os.getenv('FFN_MODEL_DIR') or 'models'


class TrainingSettings:
    """Hyperparameters handed to ``Network.train``."""

    def __init__(
        self,
        speed: float = 0.2,
        moment: float = 0.05,
        rate: float = 0.01,
        epochs: int = 10000
    ):
        self.speed = speed
        self.moment = moment
        self.rate = rate
        self.epochs = epochs

    def __repr__(self) -> str:
        return (
            f"TrainingSettings(speed={self.speed}, moment={self.moment}, "
            f"rate={self.rate}, epochs={self.epochs})"
        )

    @classmethod
    def from_env(cls) -> 'TrainingSettings':
        """
        Read settings from the environment, falling back to the defaults.

        Raises:
            ValueError: If a variable is set but cannot be parsed
        """
        defaults = cls()
        return cls(
            speed=_env('FFN_SPEED', float, defaults.speed),
            moment=_env('FFN_MOMENT', float, defaults.moment),
            rate=_env('FFN_RATE', float, defaults.rate),
            epochs=_env('FFN_EPOCHS', int, defaults.epochs)
        )

    def as_kwargs(self) -> dict:
        """Keyword arguments for ``Network.train``."""
        return {
            'speed': self.speed,
            'moment': self.moment,
            'rate': self.rate,
            'epochs': self.epochs
        }
