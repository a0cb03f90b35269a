from __future__ import annotations

import threading
from dataclasses import replace
from datetime import datetime

from warehouse_portal.errors import NotFound, ValidationError
from warehouse_portal.services.aggregation_service import DashboardStats, compute_dashboard_stats
from warehouse_portal.services.receipt_status import parse_status
from warehouse_portal.services.receipt_store import (
    DEFAULT_WAREHOUSE_LOCATIONS,
    Attachment,
    AttachmentInput,
    ReceiptInput,
    WarehouseLocation,
    WarehouseReceipt,
    append_note,
    apply_changes,
    build_attachment,
    build_receipt,
    clean_text,
    matches_search,
    new_record_id,
    newest_first,
    next_receipt_number,
    now_utc,
    parse_datetime,
)

SAMPLE_RECEIPTS: tuple[dict, ...] = (
    {
        'receipt_number': 'WR23303',
        'received_date': '2025-06-25T15:06:00+00:00',
        'received_by': 'Manuel Acosta',
        'shipper_name': 'AMAZON',
        'shipper_address': '172 TRADE STREET, LEXINGTON, KY 40511, United States',
        'consignee_name': 'AMASS GLOBAL NETWORK (US) Inc.',
        'consignee_address': 'Cargo Building 75 Suite 200 North Hangar Road, JFK Intl Airport, JAMAICA, NY 11430, USA',
        'carrier_name': 'AMAZON',
        'driver_name': 'Amazon Driver',
        'tracking_number': 'TBA322325434471',
        'total_pieces': 1,
        'total_weight_lb': '1.00',
        'total_volume_ft3': '0.17',
        'package_type': 'Package',
        'dimensions_length': '15.00',
        'dimensions_width': '10.00',
        'dimensions_height': '2.00',
        'warehouse_location_code': 'JFK',
        'status': 'received_on_hand',
    },
    {
        'receipt_number': 'WR23304',
        'received_date': '2025-06-26T10:30:00+00:00',
        'received_by': 'Carlos Rodriguez',
        'shipper_name': 'INTCOMEX',
        'shipper_address': '3505 NW 107th Ave, Miami, FL 33178, United States',
        'consignee_name': 'BEST BUY DISTRIBUTION CENTER',
        'consignee_address': '7601 Penn Ave S, Richfield, MN 55423, United States',
        'carrier_name': 'FEDEX',
        'driver_name': 'FedEx Driver',
        'tracking_number': 'FDX789456123789',
        'total_pieces': 5,
        'total_weight_lb': '45.50',
        'total_volume_ft3': '3.75',
        'package_type': 'Box',
        'warehouse_location_code': 'MIA',
        'status': 'released_by_air',
    },
    {
        'receipt_number': 'WR23305',
        'received_date': '2025-06-27T09:15:00+00:00',
        'shipper_name': 'GLASDON INC',
        'carrier_name': 'UPS',
        'tracking_number': 'UPS1Z456789123456',
        'total_pieces': 12,
        'total_weight_lb': '185.75',
        'total_volume_ft3': '15.50',
        'package_type': 'Crate',
        'warehouse_location_code': 'LAX',
        'status': 'released_by_ocean',
    },
    {
        'receipt_number': 'WR23306',
        'received_date': '2025-06-28T14:45:00+00:00',
        'shipper_name': 'APPLE INC',
        'carrier_name': 'DHL',
        'tracking_number': 'DHL123456789012',
        'total_pieces': 8,
        'total_weight_lb': '67.25',
        'total_volume_ft3': '4.85',
        'package_type': 'Box',
        'warehouse_location_code': 'JFK',
        'status': 'shipped',
    },
    {
        'receipt_number': 'WR23307',
        'received_date': '2025-06-29T11:20:00+00:00',
        'shipper_name': 'SAMSUNG ELECTRONICS',
        'carrier_name': 'AMAZON LOGISTICS',
        'tracking_number': 'AMZ987654321098',
        'total_pieces': 25,
        'total_weight_lb': '312.80',
        'total_volume_ft3': '28.75',
        'package_type': 'Pallet',
        'warehouse_location_code': 'ORD',
        'status': 'received_on_hand',
    },
)


class MemoryReceiptStore:
    def __init__(
        self,
        *,
        locations: tuple[WarehouseLocation, ...] = DEFAULT_WAREHOUSE_LOCATIONS,
        seed_user_id: str | None = None,
    ) -> None:
        self._lock = threading.Lock()
        self._locations = locations
        self._receipts: dict[str, WarehouseReceipt] = {}
        self._attachments: dict[str, Attachment] = {}
        if seed_user_id:
            self.seed_sample_data(seed_user_id)

    def seed_sample_data(self, user_id: str) -> list[WarehouseReceipt]:
        return [
            self.create(
                ReceiptInput(
                    user_id=user_id,
                    **{
                        **sample,
                        'received_date': parse_datetime(sample['received_date']),
                    },
                )
            )
            for sample in SAMPLE_RECEIPTS
        ]

    def _get_scoped(self, receipt_id: str, user_id: str | None) -> WarehouseReceipt:
        receipt = self._receipts.get(receipt_id)
        if receipt is None or (user_id is not None and receipt.user_id != user_id):
            raise NotFound(f'Warehouse receipt {receipt_id} not found')
        return receipt

    def create(self, receipt: ReceiptInput) -> WarehouseReceipt:
        now = now_utc()
        with self._lock:
            existing_numbers = {row.receipt_number for row in self._receipts.values()}
            receipt_number = clean_text(receipt.receipt_number)
            if receipt_number and receipt_number in existing_numbers:
                raise ValidationError(f'Receipt number {receipt_number} already exists')
            record = build_receipt(
                receipt,
                receipt_id=new_record_id(),
                receipt_number=receipt_number or next_receipt_number(existing_numbers, now=now),
                locations=self._locations,
                now=now,
            )
            self._receipts[record.id] = record
            return record

    def get_by_id(self, receipt_id: str, *, user_id: str | None = None) -> WarehouseReceipt:
        with self._lock:
            return self._get_scoped(receipt_id, user_id)

    def list_by_user(
        self,
        user_id: str,
        *,
        limit: int | None = None,
        location_id: str | None = None,
        status: str | None = None,
    ) -> list[WarehouseReceipt]:
        with self._lock:
            rows = [
                receipt
                for receipt in self._receipts.values()
                if receipt.user_id == user_id
                and (location_id is None or receipt.warehouse_location_id == location_id)
                and (status is None or receipt.status == status)
            ]
        rows = newest_first(rows)
        if limit is not None:
            rows = rows[:limit]
        return rows

    def search(self, user_id: str, term: str) -> list[WarehouseReceipt]:
        return [receipt for receipt in self.list_by_user(user_id) if matches_search(receipt, term)]

    def update(self, receipt_id: str, changes: dict, *, user_id: str) -> WarehouseReceipt:
        with self._lock:
            current = self._get_scoped(receipt_id, user_id)
            updated = apply_changes(current, changes, locations=self._locations, now=now_utc())
            self._receipts[receipt_id] = updated
            return updated

    def update_status(
        self, receipt_id: str, new_status: str, *, user_id: str, notes: str | None = None
    ) -> WarehouseReceipt:
        status = parse_status(new_status)
        now = now_utc()
        with self._lock:
            current = self._get_scoped(receipt_id, user_id)
            updated = replace(
                current,
                status=status.value,
                notes=append_note(current.notes, notes, now=now),
                updated_at=now,
            )
            self._receipts[receipt_id] = updated
            return updated

    def delete(self, receipt_id: str, *, user_id: str) -> None:
        with self._lock:
            receipt = self._receipts.get(receipt_id)
            if receipt is None or receipt.user_id != user_id:
                return
            del self._receipts[receipt_id]
            orphaned = [a.id for a in self._attachments.values() if a.warehouse_receipt_id == receipt_id]
            for attachment_id in orphaned:
                del self._attachments[attachment_id]

    def add_attachment(self, attachment: AttachmentInput) -> Attachment:
        with self._lock:
            self._get_scoped(attachment.warehouse_receipt_id, None)
            record = build_attachment(attachment, attachment_id=new_record_id(), now=now_utc())
            self._attachments[record.id] = record
            return record

    def list_attachments(self, receipt_id: str) -> list[Attachment]:
        with self._lock:
            rows = [a for a in self._attachments.values() if a.warehouse_receipt_id == receipt_id]
        return sorted(rows, key=lambda a: (a.created_at, a.id), reverse=True)

    def get_attachment(self, attachment_id: str) -> Attachment:
        with self._lock:
            attachment = self._attachments.get(attachment_id)
        if attachment is None:
            raise NotFound(f'Attachment {attachment_id} not found')
        return attachment

    def delete_attachment(self, attachment_id: str) -> None:
        with self._lock:
            self._attachments.pop(attachment_id, None)

    def list_locations(self) -> list[WarehouseLocation]:
        return sorted((loc for loc in self._locations if loc.is_active), key=lambda loc: loc.name)

    def try_aggregate_stats(self, user_id: str, *, now: datetime) -> DashboardStats | None:
        return compute_dashboard_stats(self.list_by_user(user_id), now=now)
