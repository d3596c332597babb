#!/usr/bin/env python3
"""
Train a feedforward network on XOR and print its answers.

Usage:
    python scripts/train_xor.py [dump.json]

Training settings come from FFN_SPEED, FFN_MOMENT, FFN_RATE and
FFN_EPOCHS. The trained network is saved in the model store under
FFN_MODEL_DIR as "xor", and dumped to the given file if one is passed.
"""

import os
import sys

from feedforward import EpochBudgetExceeded, Network
from feedforward.config import TrainingSettings, configure_logging, model_dir
from feedforward.model_persistence import ModelDatabase

INPUTS = [[0, 0], [0, 1], [1, 0], [1, 1]]
OUTPUTS = [[0], [1], [1], [0]]


def print_epoch(epoch: int, rate: float) -> None:
    print(f"Current epoch: {epoch}. Current rate: {rate:.3f}")


def main() -> int:
    configure_logging()
    settings = TrainingSettings.from_env()
    print(f"🧠 Training XOR with {settings}")

    net = Network(2, 1, 4)
    try:
        rate, epoch = net.train(
            INPUTS, OUTPUTS, callback=print_epoch, **settings.as_kwargs()
        )
    except EpochBudgetExceeded as e:
        print(f"❌ {e}")
        return 1

    print(f"✅ Rate: {rate:.3f}\n   Epoch: {epoch}")
    print("Testing")
    for x, y in zip(INPUTS, OUTPUTS):
        print(f"   Input: {x}. Expected output: {y}. Output: {net.read(x)}")

    db = ModelDatabase(db_path=os.path.join(model_dir(), 'networks.db'))
    db.save_network_to_db(net, 'xor', trained=True, rate=rate)

    if len(sys.argv) > 1:
        net.dump(sys.argv[1])
        print(f"💾 Dumped network to {sys.argv[1]}")
    return 0


if __name__ == '__main__':
    sys.exit(main())
