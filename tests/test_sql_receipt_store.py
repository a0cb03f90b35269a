from __future__ import annotations

import unittest
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from unittest.mock import MagicMock, patch

from sqlalchemy import create_engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from warehouse_portal.errors import NotFound, StoreUnavailable, ValidationError
from warehouse_portal.models import Base
from warehouse_portal.services.aggregation_service import compute_dashboard_stats, get_dashboard_stats
from warehouse_portal.services.receipt_store import AttachmentInput, ReceiptInput
from warehouse_portal.services.sql_receipt_store import SqlReceiptStore


class SqlReceiptStoreTests(unittest.TestCase):
    def setUp(self) -> None:
        self.engine = create_engine(
            'sqlite://',
            connect_args={'check_same_thread': False},
            poolclass=StaticPool,
        )
        Base.metadata.create_all(bind=self.engine)
        self.store = SqlReceiptStore(sessionmaker(bind=self.engine, autoflush=False, expire_on_commit=False))
        self.store.ensure_default_locations()

    def tearDown(self) -> None:
        self.engine.dispose()

    def _create(self, user_id: str = 'u1', **values):
        return self.store.create(ReceiptInput(user_id=user_id, **values))

    def test_ensure_default_locations_is_repeatable(self) -> None:
        self.store.ensure_default_locations()
        codes = [location.code for location in self.store.list_locations()]
        self.assertEqual(sorted(codes), ['JFK', 'LAX', 'MIA', 'ORD'])

    def test_create_and_read_back(self) -> None:
        created = self._create(
            total_pieces=25,
            total_weight_lb=450.5,
            total_volume_ft3=68.2,
            warehouse_location_code='JFK',
            tracking_number='TBA322325434471',
        )
        loaded = self.store.get_by_id(created.id, user_id='u1')

        self.assertEqual(loaded.receipt_number, created.receipt_number)
        self.assertEqual(loaded.status, 'received_on_hand')
        self.assertEqual(loaded.total_weight_lb, Decimal('450.50'))
        self.assertEqual(loaded.total_volume_ft3, Decimal('68.200'))
        self.assertEqual(loaded.warehouse_location_code, 'JFK')
        self.assertEqual(loaded.warehouse_location_name, 'JFK International Airport')
        self.assertIsNotNone(loaded.created_at.tzinfo)

    def test_duplicate_receipt_number_is_a_validation_error(self) -> None:
        self._create(receipt_number='WR26001001')
        with self.assertRaises(ValidationError):
            self._create(receipt_number='WR26001001')

    def test_generated_numbers_skip_taken_ones(self) -> None:
        first = self._create()
        second = self._create()
        self.assertNotEqual(first.receipt_number, second.receipt_number)
        self.assertEqual(first.receipt_number[:7], second.receipt_number[:7])

    def test_negative_values_are_rejected_before_writing(self) -> None:
        with self.assertRaises(ValidationError):
            self._create(total_pieces=-3)
        self.assertEqual(self.store.list_by_user('u1'), [])

    def test_list_order_filters_and_scope(self) -> None:
        older = self._create(received_date=datetime(2025, 6, 25, tzinfo=timezone.utc), warehouse_location_code='MIA')
        newer = self._create(received_date=datetime(2025, 6, 29, tzinfo=timezone.utc), status='shipped')
        self._create(user_id='u2')

        self.assertEqual([r.id for r in self.store.list_by_user('u1')], [newer.id, older.id])
        self.assertEqual([r.id for r in self.store.list_by_user('u1', limit=1)], [newer.id])
        self.assertEqual([r.id for r in self.store.list_by_user('u1', location_id='MIA')], [older.id])
        self.assertEqual([r.id for r in self.store.list_by_user('u1', status='shipped')], [newer.id])
        self.assertEqual(self.store.list_by_user('u1', status='not-a-status'), [])
        with self.assertRaises(NotFound):
            self.store.get_by_id(older.id, user_id='u2')

    def test_search_is_an_or_across_fields(self) -> None:
        shipper = self._create(shipper_name='Samsung Electronics')
        carrier = self._create(carrier_name='SAMSUNG LOGISTICS')
        self._create(shipper_name='Apple')

        found = {receipt.id for receipt in self.store.search('u1', 'samsung')}
        self.assertEqual(found, {shipper.id, carrier.id})
        self.assertEqual(self.store.search('u1', '100%'), [])

    def test_update_and_status_change(self) -> None:
        receipt = self._create(dimensions_length=24, dimensions_width=12, dimensions_height=12)
        self.assertEqual(receipt.total_volume_ft3, Decimal('2.000'))

        edited = self.store.update(receipt.id, {'shipperName': 'ACME', 'warehouseLocationCode': 'ORD'}, user_id='u1')
        self.assertEqual(edited.shipper_name, 'ACME')
        self.assertEqual(self.store.get_by_id(receipt.id).warehouse_location_name, 'Chicago Warehouse')

        moved = self.store.update_status(receipt.id, 'released_by_ocean', user_id='u1', notes='Vessel MSC-1')
        self.assertEqual(moved.status, 'released_by_ocean')
        self.assertIn('Vessel MSC-1', moved.notes)

        with self.assertRaises(NotFound):
            self.store.update_status(receipt.id, 'shipped', user_id='u2')

    def test_update_refreshes_updated_at(self) -> None:
        receipt = self._create(shipper_name='ACME')
        later = datetime(2030, 1, 2, 8, 30, tzinfo=timezone.utc)
        with patch('warehouse_portal.services.sql_receipt_store.now_utc', return_value=later):
            self.store.update(receipt.id, {'notes': 'Recounted'}, user_id='u1')

        loaded = self.store.get_by_id(receipt.id, user_id='u1')
        self.assertEqual(loaded.updated_at, later)
        self.assertEqual(loaded.created_at, receipt.created_at)

    def test_get_attachment_round_trip(self) -> None:
        receipt = self._create()
        added = self.store.add_attachment(
            AttachmentInput(warehouse_receipt_id=receipt.id, file_name='bol.pdf', file_url='https://files/bol.pdf')
        )
        loaded = self.store.get_attachment(added.id)
        self.assertEqual(loaded.warehouse_receipt_id, receipt.id)
        self.assertEqual(loaded.file_name, 'bol.pdf')

        with self.assertRaises(NotFound):
            self.store.get_attachment('missing')

    def test_delete_cascades_and_is_idempotent(self) -> None:
        receipt = self._create()
        self.store.add_attachment(
            AttachmentInput(warehouse_receipt_id=receipt.id, file_name='wr.pdf', file_url='https://files/wr.pdf')
        )
        self.assertEqual(len(self.store.list_attachments(receipt.id)), 1)

        self.store.delete(receipt.id, user_id='u1')
        self.store.delete(receipt.id, user_id='u1')

        self.assertEqual(self.store.list_attachments(receipt.id), [])
        with self.assertRaises(NotFound):
            self.store.get_by_id(receipt.id)

    def test_sql_aggregation_matches_fallback_computation(self) -> None:
        self._create(total_pieces=25, total_weight_lb='450.5', total_volume_ft3='68.2', warehouse_location_code='JFK')
        self._create(total_pieces=5, total_weight_lb='45.55', total_volume_ft3='3.75', status='released_by_air',
                     warehouse_location_code='MIA')
        self._create(total_pieces=1, total_weight_lb='0.1', total_volume_ft3='0.2', status='shipped')
        self._create(user_id='u2', total_pieces=99)

        now = datetime.now(tz=timezone.utc) + timedelta(seconds=1)
        primary = self.store.try_aggregate_stats('u1', now=now)
        fallback = compute_dashboard_stats(self.store.list_by_user('u1'), now=now)

        self.assertIsNotNone(primary)
        self.assertEqual(primary, fallback)
        self.assertEqual(primary.total_receipts, 3)
        self.assertEqual(primary.total_pieces, 31)
        self.assertEqual(primary.total_weight, Decimal('496.15'))
        self.assertEqual(primary.total_volume, Decimal('72.150'))
        self.assertEqual(primary.by_location, {'JFK': 1, 'MIA': 1})
        self.assertEqual(sum(primary.by_status.values()), primary.total_receipts)

    def test_broken_database_degrades_to_empty_stats(self) -> None:
        broken = SqlReceiptStore(MagicMock(side_effect=OperationalError('SELECT 1', {}, Exception('down'))))

        self.assertIsNone(broken.try_aggregate_stats('u1', now=datetime.now(tz=timezone.utc)))
        with self.assertRaises(StoreUnavailable):
            broken.list_by_user('u1')
        self.assertEqual(get_dashboard_stats(broken, 'u1').total_receipts, 0)


if __name__ == '__main__':
    unittest.main()
