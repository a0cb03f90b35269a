from __future__ import annotations

import logging
from dataclasses import asdict
from datetime import datetime
from decimal import Decimal

from warehouse_portal.errors import NotFound, StoreUnavailable
from warehouse_portal.services.aggregation_service import DashboardStats, group_receipts_by_location
from warehouse_portal.services.receipt_status import status_appearance, to_simple_status, validate_transition
from warehouse_portal.services.receipt_store import (
    Attachment,
    AttachmentInput,
    ReceiptStore,
    WarehouseLocation,
    WarehouseReceipt,
    normalize_payload_keys,
    receipt_input_from_payload,
)
from warehouse_portal.services.unit_conversion import format_volume, format_weight, ft3_to_m3, lb_to_kg

logger = logging.getLogger(__name__)


def create_receipt(store: ReceiptStore, payload: dict, *, user_id: str) -> WarehouseReceipt:
    receipt = store.create(receipt_input_from_payload(payload, user_id=user_id))
    logger.info('Receipt %s created by %s', receipt.receipt_number, user_id)
    return receipt


def edit_receipt(store: ReceiptStore, receipt_id: str, payload: dict, *, user_id: str) -> WarehouseReceipt:
    return store.update(receipt_id, normalize_payload_keys(payload), user_id=user_id)


def change_status(
    store: ReceiptStore,
    receipt_id: str,
    new_status: str,
    *,
    user_id: str,
    notes: str | None = None,
) -> WarehouseReceipt:
    current = store.get_by_id(receipt_id, user_id=user_id)
    target = validate_transition(current.status, new_status)
    updated = store.update_status(receipt_id, target.value, user_id=user_id, notes=notes)
    logger.info('Receipt %s moved from %s to %s', current.receipt_number, current.status, updated.status)
    return updated


def delete_receipt(store: ReceiptStore, receipt_id: str, *, user_id: str) -> None:
    store.delete(receipt_id, user_id=user_id)
    logger.info('Receipt %s deleted by %s', receipt_id, user_id)


def list_receipts_or_empty(
    store: ReceiptStore,
    user_id: str,
    *,
    limit: int | None = None,
    location_id: str | None = None,
    status: str | None = None,
) -> list[WarehouseReceipt]:
    try:
        return store.list_by_user(user_id, limit=limit, location_id=location_id, status=status)
    except StoreUnavailable as exc:
        logger.warning('Listing receipts for %s failed, returning none: %s', user_id, exc)
        return []


def search_receipts_or_empty(store: ReceiptStore, user_id: str, term: str) -> list[WarehouseReceipt]:
    try:
        return store.search(user_id, term)
    except StoreUnavailable as exc:
        logger.warning('Searching receipts for %s failed, returning none: %s', user_id, exc)
        return []


def receipts_by_location(store: ReceiptStore, user_id: str) -> dict[str, list[WarehouseReceipt]]:
    return group_receipts_by_location(list_receipts_or_empty(store, user_id))


def add_receipt_attachment(store: ReceiptStore, receipt_id: str, payload: dict, *, user_id: str) -> Attachment:
    store.get_by_id(receipt_id, user_id=user_id)
    values = normalize_payload_keys(payload)
    return store.add_attachment(
        AttachmentInput(
            warehouse_receipt_id=receipt_id,
            file_name=values.get('file_name') or '',
            file_url=values.get('file_url') or '',
            attachment_type=values.get('attachment_type') or 'document',
            file_size=values.get('file_size'),
            file_type=values.get('file_type'),
            uploaded_by=user_id,
        )
    )


def list_receipt_attachments(store: ReceiptStore, receipt_id: str, *, user_id: str) -> list[Attachment]:
    store.get_by_id(receipt_id, user_id=user_id)
    return store.list_attachments(receipt_id)


def remove_attachment(store: ReceiptStore, attachment_id: str, *, user_id: str) -> None:
    attachment = store.get_attachment(attachment_id)
    try:
        store.get_by_id(attachment.warehouse_receipt_id, user_id=user_id)
    except NotFound as exc:
        raise NotFound(f'Attachment {attachment_id} not found') from exc
    store.delete_attachment(attachment_id)


def _json_value(value):
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, datetime):
        return value.isoformat()
    return value


def receipt_to_dict(receipt: WarehouseReceipt) -> dict:
    data = {name: _json_value(value) for name, value in asdict(receipt).items()}
    appearance = status_appearance(receipt.status)
    data.update(
        wr_number=receipt.receipt_number,
        simple_status=to_simple_status(receipt.status),
        status_label=appearance.label,
        status_color=appearance.color,
        status_icon=appearance.icon,
        total_weight_kg=float(lb_to_kg(receipt.total_weight_lb)),
        total_volume_m3=float(ft3_to_m3(receipt.total_volume_ft3)),
        weight_display=format_weight(receipt.total_weight_lb),
        volume_display=format_volume(receipt.total_volume_ft3),
    )
    return data


def attachment_to_dict(attachment: Attachment) -> dict:
    return {name: _json_value(value) for name, value in asdict(attachment).items()}


def location_to_dict(location: WarehouseLocation) -> dict:
    return asdict(location)


def stats_to_dict(stats: DashboardStats) -> dict:
    return {
        'total_receipts': stats.total_receipts,
        'by_status': dict(stats.by_status),
        'by_simple_status': _simple_status_counts(stats.by_status),
        'by_location': dict(stats.by_location),
        'total_pieces': stats.total_pieces,
        'total_weight': float(stats.total_weight),
        'total_volume': float(stats.total_volume),
        'total_weight_kg': float(lb_to_kg(stats.total_weight)),
        'total_volume_m3': float(ft3_to_m3(stats.total_volume)),
        'recent_activity': [receipt_to_dict(receipt) for receipt in stats.recent_activity],
    }


def _simple_status_counts(by_status: dict[str, int]) -> dict[str, int]:
    counts: dict[str, int] = {}
    for status, count in by_status.items():
        simple = to_simple_status(status)
        counts[simple] = counts.get(simple, 0) + count
    return counts
