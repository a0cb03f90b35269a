from __future__ import annotations

import unittest
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from unittest.mock import MagicMock

from warehouse_portal.errors import StoreUnavailable
from warehouse_portal.services.aggregation_service import (
    UNKNOWN_LOCATION,
    compute_dashboard_stats,
    get_dashboard_stats,
    group_receipts_by_location,
)
from warehouse_portal.services.memory_receipt_store import MemoryReceiptStore
from warehouse_portal.services.receipt_store import ReceiptInput, WarehouseReceipt

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _receipt(idx: int, **overrides) -> WarehouseReceipt:
    values = dict(
        id=f'r{idx}',
        receipt_number=f'WR26001{idx:03d}',
        user_id='u1',
        status='received_on_hand',
        received_date=NOW - timedelta(days=idx),
        created_at=NOW - timedelta(days=idx),
        updated_at=NOW - timedelta(days=idx),
        total_pieces=1,
        total_weight_lb=Decimal('10.00'),
        total_volume_ft3=Decimal('1.000'),
        warehouse_location_id='JFK',
        warehouse_location_code='JFK',
        warehouse_location_name='JFK International Airport',
    )
    values.update(overrides)
    return WarehouseReceipt(**values)


class ComputeDashboardStatsTests(unittest.TestCase):
    def test_example_receipt_totals(self) -> None:
        store = MemoryReceiptStore()
        store.create(
            ReceiptInput(
                user_id='u1',
                total_pieces=25,
                total_weight_lb=450.5,
                total_volume_ft3=68.2,
                status='received_on_hand',
                warehouse_location_code='JFK',
            )
        )

        stats = get_dashboard_stats(store, 'u1')

        self.assertEqual(stats.total_receipts, 1)
        self.assertEqual(stats.total_pieces, 25)
        self.assertEqual(stats.total_weight, Decimal('450.5'))
        self.assertEqual(stats.total_volume, Decimal('68.2'))
        self.assertEqual(stats.by_status, {'received_on_hand': 1})
        self.assertEqual(stats.by_location, {'JFK': 1})

    def test_two_statuses_give_two_keys(self) -> None:
        stats = compute_dashboard_stats(
            [_receipt(1, status='shipped'), _receipt(2, status='released_by_air')],
            now=NOW,
        )
        self.assertEqual(stats.total_receipts, 2)
        self.assertEqual(stats.by_status, {'shipped': 1, 'released_by_air': 1})

    def test_status_counts_sum_to_total_and_locations_never_exceed_it(self) -> None:
        receipts = [
            _receipt(1),
            _receipt(2, status='shipped'),
            _receipt(3, warehouse_location_id=None, warehouse_location_code=None, warehouse_location_name=None),
            _receipt(4, warehouse_location_code='MIA', warehouse_location_name='Miami Warehouse'),
        ]
        stats = compute_dashboard_stats(receipts, now=NOW)
        self.assertEqual(sum(stats.by_status.values()), stats.total_receipts)
        self.assertLessEqual(sum(stats.by_location.values()), stats.total_receipts)
        self.assertEqual(stats.by_location, {'JFK': 2, 'MIA': 1})

    def test_missing_numbers_count_as_zero(self) -> None:
        stats = compute_dashboard_stats(
            [_receipt(1, total_pieces=0, total_weight_lb=None, total_volume_ft3=None), _receipt(2)],
            now=NOW,
        )
        self.assertEqual(stats.total_pieces, 1)
        self.assertEqual(stats.total_weight, Decimal('10.00'))
        self.assertEqual(stats.total_volume, Decimal('1.000'))

    def test_recent_activity_is_windowed_newest_first_and_limited(self) -> None:
        receipts = [_receipt(idx) for idx in range(0, 40)]
        stats = compute_dashboard_stats(receipts, now=NOW)
        self.assertEqual(len(stats.recent_activity), 10)
        self.assertEqual([r.id for r in stats.recent_activity[:3]], ['r0', 'r1', 'r2'])

        narrow = compute_dashboard_stats(receipts, now=NOW, recent_days=2, recent_limit=50)
        self.assertEqual([r.id for r in narrow.recent_activity], ['r0', 'r1', 'r2'])

    def test_empty_input_gives_zeroed_stats(self) -> None:
        stats = compute_dashboard_stats([], now=NOW)
        self.assertEqual(stats.total_receipts, 0)
        self.assertEqual(stats.by_status, {})
        self.assertEqual(stats.total_weight, Decimal('0.00'))
        self.assertEqual(stats.recent_activity, [])


class GetDashboardStatsTests(unittest.TestCase):
    def test_primary_result_is_used_when_available(self) -> None:
        primary = compute_dashboard_stats([_receipt(1)], now=NOW)
        store = MagicMock()
        store.try_aggregate_stats.return_value = primary

        self.assertIs(get_dashboard_stats(store, 'u1', now=NOW), primary)
        store.list_by_user.assert_not_called()

    def test_falls_back_to_raw_receipts_when_primary_is_unavailable(self) -> None:
        receipts = [_receipt(1), _receipt(2, status='shipped')]
        store = MagicMock()
        store.try_aggregate_stats.return_value = None
        store.list_by_user.return_value = receipts

        stats = get_dashboard_stats(store, 'u1', now=NOW)

        self.assertEqual(stats, compute_dashboard_stats(receipts, now=NOW))
        store.list_by_user.assert_called_once_with('u1')

    def test_zeroed_stats_when_fallback_also_fails(self) -> None:
        store = MagicMock()
        store.try_aggregate_stats.return_value = None
        store.list_by_user.side_effect = StoreUnavailable('down')

        stats = get_dashboard_stats(store, 'u1', now=NOW)

        self.assertEqual(stats.total_receipts, 0)
        self.assertEqual(stats.by_location, {})


class GroupReceiptsByLocationTests(unittest.TestCase):
    def test_groups_by_name_with_unknown_bucket(self) -> None:
        receipts = [
            _receipt(1),
            _receipt(2, warehouse_location_id=None, warehouse_location_code=None, warehouse_location_name=None),
            replace(_receipt(3), warehouse_location_name=None),
        ]
        grouped = group_receipts_by_location(receipts)
        self.assertEqual([r.id for r in grouped['JFK International Airport']], ['r1'])
        self.assertEqual([r.id for r in grouped['JFK']], ['r3'])
        self.assertEqual([r.id for r in grouped[UNKNOWN_LOCATION]], ['r2'])


if __name__ == '__main__':
    unittest.main()
