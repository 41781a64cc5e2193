"""
Synthetic identifier generation.

Identifiers look like ``user_1718035200123_k3j9x0a1b``: a prefix, the
wall-clock time in epoch milliseconds, and nine random base-36 characters.
Clock and randomness are injectable so tests can pin the output.
"""

import random
import re
import time
from typing import Callable

BASE36_ALPHABET = "0123456789abcdefghijklmnopqrstuvwxyz"
SUFFIX_LENGTH = 9

SYNTHETIC_ID_PATTERN = re.compile(r"^(user|program|task)_\d+_[0-9a-z]{9}$")


class IdGenerator:
    """
    Generates collision-resistant synthetic identifiers.

    Args:
        clock: Returns the current time in seconds (default: time.time)
        rng: Random source (default: a fresh random.Random)
    """

    def __init__(
        self,
        clock: Callable[[], float] | None = None,
        rng: random.Random | None = None,
    ):
        self.clock = clock or time.time
        self.rng = rng or random.Random()

    def new_id(self, prefix: str) -> str:
        millis = int(self.clock() * 1000)
        suffix = "".join(self.rng.choice(BASE36_ALPHABET) for _ in range(SUFFIX_LENGTH))
        return f"{prefix}_{millis}_{suffix}"

    def user_id(self) -> str:
        return self.new_id("user")

    def program_id(self) -> str:
        return self.new_id("program")

    def task_id(self) -> str:
        return self.new_id("task")


def is_synthetic_id(value: str) -> bool:
    """True if ``value`` was produced by an IdGenerator."""
    return bool(SYNTHETIC_ID_PATTERN.match(value or ""))
