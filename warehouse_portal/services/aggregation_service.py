from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal

from warehouse_portal.config import settings
from warehouse_portal.errors import StoreUnavailable
from warehouse_portal.services.receipt_store import ReceiptStore, WarehouseReceipt, as_utc, now_utc
from warehouse_portal.services.unit_conversion import VOLUME_QUANT, WEIGHT_QUANT

logger = logging.getLogger(__name__)

UNKNOWN_LOCATION = 'Unknown Location'


@dataclass(frozen=True)
class DashboardStats:
    total_receipts: int = 0
    by_status: dict[str, int] = field(default_factory=dict)
    by_location: dict[str, int] = field(default_factory=dict)
    total_pieces: int = 0
    total_weight: Decimal = Decimal('0.00')
    total_volume: Decimal = Decimal('0.000')
    recent_activity: list[WarehouseReceipt] = field(default_factory=list)


def empty_dashboard_stats() -> DashboardStats:
    return DashboardStats()


def recent_cutoff(now: datetime, recent_days: int) -> datetime:
    return as_utc(now) - timedelta(days=recent_days)


def select_recent_activity(
    receipts: Iterable[WarehouseReceipt],
    *,
    now: datetime,
    recent_days: int,
    recent_limit: int,
) -> list[WarehouseReceipt]:
    cutoff = recent_cutoff(now, recent_days)
    recent = [receipt for receipt in receipts if as_utc(receipt.created_at) >= cutoff]
    recent.sort(key=lambda r: (r.created_at, r.id), reverse=True)
    return recent[:recent_limit]


def finalize_totals(*, total_weight, total_volume) -> tuple[Decimal, Decimal]:
    weight = Decimal(str(total_weight or 0)).quantize(WEIGHT_QUANT)
    volume = Decimal(str(total_volume or 0)).quantize(VOLUME_QUANT)
    return weight, volume


def compute_dashboard_stats(
    receipts: Iterable[WarehouseReceipt],
    *,
    now: datetime,
    recent_days: int | None = None,
    recent_limit: int | None = None,
) -> DashboardStats:
    """Reduce a user's receipt set to dashboard statistics.

    This is the reference computation: every backend's aggregation routine must
    produce the same values for the same receipts.
    """
    rows = list(receipts)
    by_status = Counter(receipt.status for receipt in rows)
    by_location = Counter(receipt.location_label for receipt in rows if receipt.location_label)
    total_weight, total_volume = finalize_totals(
        total_weight=sum((receipt.total_weight_lb or Decimal('0') for receipt in rows), Decimal('0')),
        total_volume=sum((receipt.total_volume_ft3 or Decimal('0') for receipt in rows), Decimal('0')),
    )
    return DashboardStats(
        total_receipts=len(rows),
        by_status=dict(by_status),
        by_location=dict(by_location),
        total_pieces=sum(receipt.total_pieces or 0 for receipt in rows),
        total_weight=total_weight,
        total_volume=total_volume,
        recent_activity=select_recent_activity(
            rows,
            now=now,
            recent_days=recent_days if recent_days is not None else settings.recent_activity_days,
            recent_limit=recent_limit if recent_limit is not None else settings.recent_activity_limit,
        ),
    )


def _compute_from_raw(store: ReceiptStore, user_id: str, *, now: datetime) -> DashboardStats:
    try:
        receipts = store.list_by_user(user_id)
    except StoreUnavailable as exc:
        logger.error('Fallback stats computation failed for user %s: %s', user_id, exc)
        return empty_dashboard_stats()
    return compute_dashboard_stats(receipts, now=now)


def get_dashboard_stats(store: ReceiptStore, user_id: str, *, now: datetime | None = None) -> DashboardStats:
    now = now or now_utc()
    stats = store.try_aggregate_stats(user_id, now=now)
    if stats is not None:
        return stats
    logger.warning('Primary stats routine unavailable for user %s; computing from raw receipts', user_id)
    return _compute_from_raw(store, user_id, now=now)


def group_receipts_by_location(receipts: Iterable[WarehouseReceipt]) -> dict[str, list[WarehouseReceipt]]:
    grouped: dict[str, list[WarehouseReceipt]] = {}
    for receipt in receipts:
        label = receipt.warehouse_location_name or receipt.warehouse_location_code or UNKNOWN_LOCATION
        grouped.setdefault(label, []).append(receipt)
    return grouped
