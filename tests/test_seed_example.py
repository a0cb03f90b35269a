from __future__ import annotations

import unittest

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from warehouse_portal.models import Base
from warehouse_portal.seed_example import seed
from warehouse_portal.services.memory_receipt_store import SAMPLE_RECEIPTS
from warehouse_portal.services.sql_receipt_store import SqlReceiptStore

SAMPLE_NUMBERS = {sample['receipt_number'] for sample in SAMPLE_RECEIPTS}


class SeedExampleTests(unittest.TestCase):
    def setUp(self) -> None:
        self.engine = create_engine(
            'sqlite://',
            connect_args={'check_same_thread': False},
            poolclass=StaticPool,
        )
        Base.metadata.create_all(bind=self.engine)
        self.session_factory = sessionmaker(bind=self.engine, autoflush=False, expire_on_commit=False)
        self.store = SqlReceiptStore(self.session_factory)

    def tearDown(self) -> None:
        self.engine.dispose()

    def test_seed_is_idempotent_per_user(self) -> None:
        self.assertEqual(seed('u1', session_factory=self.session_factory), len(SAMPLE_RECEIPTS))
        self.assertEqual(seed('u1', session_factory=self.session_factory), 0)

        numbers = {receipt.receipt_number for receipt in self.store.list_by_user('u1')}
        self.assertEqual(numbers, SAMPLE_NUMBERS)

    def test_second_user_gets_fresh_receipt_numbers(self) -> None:
        seed('u1', session_factory=self.session_factory)

        self.assertEqual(seed('u2', session_factory=self.session_factory), len(SAMPLE_RECEIPTS))
        self.assertEqual(seed('u2', session_factory=self.session_factory), 0)

        second = self.store.list_by_user('u2')
        self.assertEqual(len(second), len(SAMPLE_RECEIPTS))
        self.assertFalse({receipt.receipt_number for receipt in second} & SAMPLE_NUMBERS)
        self.assertEqual(
            {receipt.tracking_number for receipt in second},
            {sample['tracking_number'] for sample in SAMPLE_RECEIPTS},
        )
        self.assertEqual(len(self.store.list_by_user('u1')), len(SAMPLE_RECEIPTS))


if __name__ == '__main__':
    unittest.main()
