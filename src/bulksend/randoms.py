"""Random source for amounts and delays.

Everything that should be reproducible draws from a ``random.Random`` instance
passed in by the caller. Throwaway keys never come from here, they use the OS
CSPRNG through xrpl-py.
"""

import random
from typing import Protocol


class RandomSource(Protocol):
    def randint(self, a: int, b: int) -> int: ...


def new_source(seed: int | str | None = None) -> random.Random:
    return random.Random(seed)


def randint(a: int, b: int, *, source: RandomSource) -> int:
    """Inclusive on both ends. ``a == b`` returns ``a``."""
    return source.randint(a, b)
