from __future__ import annotations

import sys

from sqlalchemy import select

from warehouse_portal.db import SessionLocal, init_db
from warehouse_portal.models import WarehouseReceiptRow
from warehouse_portal.services.memory_receipt_store import SAMPLE_RECEIPTS
from warehouse_portal.services.receipt_store import ReceiptInput, parse_datetime
from warehouse_portal.services.sql_receipt_store import SqlReceiptStore


def seed(user_id: str, *, session_factory=SessionLocal) -> int:
    store = SqlReceiptStore(session_factory)
    store.ensure_default_locations()

    with session_factory() as db:
        rows = db.execute(
            select(WarehouseReceiptRow.receipt_number, WarehouseReceiptRow.user_id, WarehouseReceiptRow.tracking_number)
        ).all()
    # Receipt numbers are unique across users, so a sample number may already belong to someone else.
    taken_numbers = {number for number, _, _ in rows}
    seeded_tracking = {tracking for _, owner, tracking in rows if owner == user_id}

    created = 0
    for sample in SAMPLE_RECEIPTS:
        if sample['tracking_number'] in seeded_tracking:
            continue
        values = {**sample, 'received_date': parse_datetime(sample['received_date'])}
        if sample['receipt_number'] in taken_numbers:
            values.pop('receipt_number')
        store.create(ReceiptInput(user_id=user_id, **values))
        created += 1
    return created


if __name__ == '__main__':
    target_user = sys.argv[1] if len(sys.argv) > 1 else 'demo-user'
    init_db()
    count = seed(target_user)
    print(f'Seed data inserted/verified for {target_user} ({count} new receipts).')
