"""
Transaction id generation.

Ids look like ``YB12345678K3Q9ZX`` + a short counter: the configured prefix,
the last eight digits of the millisecond clock and a six character random
base36 suffix, followed by a per-process counter so two ids issued in the
same millisecond by this process can never coincide. Collisions across
processes remain possible and are caught by the ledger's uniqueness check.
"""

import itertools
import secrets
import string
import threading
import time
from typing import Callable, Optional

from .errors import DuplicateTransactionIdError


_ALPHABET = string.digits + string.ascii_uppercase


def _base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_ALPHABET[rem])
    return "".join(reversed(digits))


class TransactionIdGenerator:
    """Issues transaction ids; thread-safe"""

    def __init__(self, prefix: str = "YB", clock: Optional[Callable[[], float]] = None):
        if not prefix or not prefix.isalpha():
            raise ValueError("Transaction id prefix must be alphabetic")
        self.prefix = prefix.upper()
        self._clock = clock or time.time
        self._counter = itertools.count()
        self._lock = threading.Lock()

    def generate(self) -> str:
        with self._lock:
            sequence = next(self._counter)
        millis = int(self._clock() * 1000)
        random_part = "".join(secrets.choice(_ALPHABET) for _ in range(6))
        return f"{self.prefix}{millis % 10**8:08d}{random_part}{_base36(sequence)}"

    def generate_unique(self, exists: Callable[[str], bool], max_attempts: int = 5) -> str:
        """
        Generate an id for which ``exists`` returns False

        Raises:
            DuplicateTransactionIdError: If every attempt collided
        """
        for _ in range(max_attempts):
            candidate = self.generate()
            if not exists(candidate):
                return candidate
        raise DuplicateTransactionIdError(
            f"Could not allocate a free transaction id after {max_attempts} attempts"
        )
