"""
Per-order salt generation.
"""

import secrets
from typing import Optional, Protocol

from .constants import SALT_MASK


class RandomSource(Protocol):
    def getrandbits(self, k: int) -> int:
        ...


class SaltGenerator:
    """
    Generates order salts from an injectable random source.

    Salts are 64 random bits masked down to 53 bits so they survive JSON
    consumers that store integers as doubles. The width is part of the
    exchange protocol and must not change.
    """

    def __init__(self, rng: Optional[RandomSource] = None):
        self._rng = rng or secrets.SystemRandom()

    def generate(self) -> int:
        return self._rng.getrandbits(64) & SALT_MASK
