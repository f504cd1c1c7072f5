"""
Tests for transaction id generation
"""

import pytest
from concurrent.futures import ThreadPoolExecutor

from core_payments.ids import TransactionIdGenerator
from core_payments.errors import DuplicateTransactionIdError


class TestTransactionIdGenerator:

    def test_format(self):
        generator = TransactionIdGenerator("YB", clock=lambda: 1712345678.5)
        tx_id = generator.generate()

        assert tx_id.startswith("YB45678500")
        assert tx_id.isalnum()
        assert tx_id == tx_id.upper()

    def test_unique_within_same_millisecond(self):
        generator = TransactionIdGenerator(clock=lambda: 1000.0)
        ids = {generator.generate() for _ in range(2000)}
        assert len(ids) == 2000

    def test_unique_across_threads(self):
        generator = TransactionIdGenerator()
        with ThreadPoolExecutor(max_workers=8) as pool:
            ids = list(pool.map(lambda _: generator.generate(), range(4000)))
        assert len(set(ids)) == len(ids)

    def test_generate_unique_skips_taken_ids(self):
        generator = TransactionIdGenerator()
        calls = []

        def exists(candidate):
            calls.append(candidate)
            # First candidate collides
            return len(calls) == 1

        tx_id = generator.generate_unique(exists)
        assert tx_id == calls[-1]
        assert len(calls) == 2

    def test_generate_unique_gives_up(self):
        generator = TransactionIdGenerator()
        with pytest.raises(DuplicateTransactionIdError):
            generator.generate_unique(lambda _: True, max_attempts=3)

    def test_prefix_must_be_alphabetic(self):
        with pytest.raises(ValueError):
            TransactionIdGenerator("12")
