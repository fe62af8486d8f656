# services/hash_generator.py
# ============================================================================
# SALEOR ORDER HASH APP — HASH GENERATOR
# ============================================================================
# 256 bits from the OS CSPRNG, hex encoded, followed by a nanosecond
# timestamp in hex. The timestamp keeps candidates distinct even if the
# random source were ever weak.
# ============================================================================

import secrets
import time
from typing import Callable

RANDOM_BYTES = 32
MIN_HASH_LENGTH = RANDOM_BYTES * 2


class HashGenerator:
    """Produces candidate order hashes. Sources are injectable for tests."""

    def __init__(
        self,
        random_bytes: Callable[[int], bytes] = secrets.token_bytes,
        clock_ns: Callable[[], int] = time.time_ns,
    ):
        self._random_bytes = random_bytes
        self._clock_ns = clock_ns

    def generate(self) -> str:
        # No fallback: a missing CSPRNG is fatal for the process
        entropy = self._random_bytes(RANDOM_BYTES).hex()
        return f"{entropy}{self._clock_ns():x}"


_default_generator = HashGenerator()


def generate_order_hash() -> str:
    return _default_generator.generate()
