from __future__ import annotations

import json
import logging
from dataclasses import asdict, fields
from datetime import datetime
from decimal import Decimal, InvalidOperation
from urllib.error import HTTPError, URLError
from urllib.parse import urlencode
from urllib.request import Request, urlopen

from warehouse_portal.config import settings
from warehouse_portal.errors import NotFound, StoreUnavailable, ValidationError
from warehouse_portal.services.aggregation_service import DashboardStats, finalize_totals
from warehouse_portal.services.receipt_status import parse_status
from warehouse_portal.services.receipt_store import (
    SEARCH_FIELDS,
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
    new_record_id,
    next_receipt_number,
    now_utc,
    parse_datetime,
    receipt_number_prefix,
)

logger = logging.getLogger(__name__)

RECEIPTS_TABLE = 'warehouse_receipts'
ATTACHMENTS_TABLE = 'warehouse_receipt_attachments'
LOCATIONS_TABLE = 'warehouse_locations'

_RECEIPT_FIELDS = {f.name for f in fields(WarehouseReceipt)}
_DECIMAL_FIELDS = {'total_weight_lb', 'total_volume_ft3', 'dimensions_length', 'dimensions_width', 'dimensions_height'}
_DATETIME_FIELDS = {'received_date', 'created_at', 'updated_at'}
_IMMUTABLE_FIELDS = {'id', 'user_id', 'receipt_number', 'created_at'}


def _to_json_value(value):
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    return value


def _decimal(value) -> Decimal | None:
    if value is None:
        return None
    try:
        return Decimal(str(value))
    except InvalidOperation as exc:
        raise StoreUnavailable(f'Hosted table returned a non-numeric value: {value!r}') from exc


def receipt_to_row(receipt: WarehouseReceipt) -> dict:
    return {name: _to_json_value(value) for name, value in asdict(receipt).items()}


def receipt_from_row(row: dict) -> WarehouseReceipt:
    values = {name: row.get(name) for name in _RECEIPT_FIELDS if name in row}
    for name in _DECIMAL_FIELDS & values.keys():
        values[name] = _decimal(values[name])
    for name in _DATETIME_FIELDS & values.keys():
        values[name] = parse_datetime(values[name])
    values['total_pieces'] = int(values.get('total_pieces') or 0)
    values['total_weight_lb'] = values.get('total_weight_lb') or Decimal('0')
    values['total_volume_ft3'] = values.get('total_volume_ft3') or Decimal('0')
    return WarehouseReceipt(**values)


def attachment_from_row(row: dict) -> Attachment:
    return Attachment(
        id=str(row['id']),
        warehouse_receipt_id=str(row['warehouse_receipt_id']),
        file_name=row.get('file_name') or '',
        file_url=row.get('file_url') or row.get('file_path') or '',
        attachment_type=row.get('attachment_type') or 'document',
        created_at=parse_datetime(row.get('created_at')) or now_utc(),
        file_size=row.get('file_size'),
        file_type=row.get('file_type'),
        uploaded_by=row.get('uploaded_by'),
    )


def _quoted(term: str) -> str:
    escaped = term.replace('\\', '\\\\').replace('"', '\\"')
    return f'"*{escaped}*"'


class HostedReceiptStore:
    """Receipt store backed by a hosted Postgres exposed through a PostgREST-style API."""

    def __init__(self) -> None:
        if not settings.hosted_api_base_url or not settings.hosted_api_key:
            raise ValueError('HOSTED_API_BASE_URL and HOSTED_API_KEY are required when RECEIPT_STORE=hosted')
        self.base_url = settings.hosted_api_base_url.rstrip('/') + '/rest/v1'
        self.headers = {
            'apikey': settings.hosted_api_key,
            'Authorization': f'Bearer {settings.hosted_api_key}',
            'Content-Type': 'application/json',
            'Accept': 'application/json',
            'Prefer': 'return=representation',
        }

    def _request(self, method: str, path: str, *, params: list[tuple[str, str]] | None = None, payload=None):
        url = f'{self.base_url}/{path}'
        if params:
            url = f'{url}?{urlencode(params)}'
        data = json.dumps(payload).encode('utf-8') if payload is not None else None
        req = Request(url=url, data=data, headers=self.headers, method=method)
        try:
            with urlopen(req, timeout=settings.hosted_timeout_seconds) as response:
                body = response.read().decode('utf-8')
        except HTTPError as exc:
            detail = exc.read().decode('utf-8', errors='ignore') if exc.fp else ''
            if exc.code == 409:
                raise ValidationError(f'Hosted table rejected a conflicting record on {path}: {detail}') from exc
            raise StoreUnavailable(f'Hosted API error {exc.code} on {path}: {detail}') from exc
        except URLError as exc:
            raise StoreUnavailable(f'Hosted API network error on {path}: {exc.reason}') from exc
        if not body:
            return None
        try:
            return json.loads(body)
        except ValueError as exc:
            raise StoreUnavailable(f'Hosted API returned invalid JSON on {path}') from exc

    def _select_receipts(self, params: list[tuple[str, str]]) -> list[WarehouseReceipt]:
        rows = self._request('GET', RECEIPTS_TABLE, params=[('select', '*'), *params]) or []
        return [receipt_from_row(row) for row in rows]

    def _ordered(self, params: list[tuple[str, str]]) -> list[tuple[str, str]]:
        return [*params, ('order', 'received_date.desc,created_at.desc,id.desc')]

    def create(self, receipt: ReceiptInput) -> WarehouseReceipt:
        now = now_utc()
        receipt_number = clean_text(receipt.receipt_number)
        if not receipt_number:
            taken = self._request(
                'GET',
                RECEIPTS_TABLE,
                params=[('select', 'receipt_number'), ('receipt_number', f'like.{receipt_number_prefix(now)}*')],
            ) or []
            receipt_number = next_receipt_number((row['receipt_number'] for row in taken), now=now)
        record = build_receipt(
            receipt,
            receipt_id=new_record_id(),
            receipt_number=receipt_number,
            locations=self.list_locations(),
            now=now,
        )
        rows = self._request('POST', RECEIPTS_TABLE, payload=receipt_to_row(record)) or []
        logger.info('Created warehouse receipt %s for user %s', record.receipt_number, record.user_id)
        return receipt_from_row(rows[0]) if rows else record

    def get_by_id(self, receipt_id: str, *, user_id: str | None = None) -> WarehouseReceipt:
        params = [('id', f'eq.{receipt_id}')]
        if user_id is not None:
            params.append(('user_id', f'eq.{user_id}'))
        rows = self._select_receipts(params)
        if not rows:
            raise NotFound(f'Warehouse receipt {receipt_id} not found')
        return rows[0]

    def list_by_user(
        self,
        user_id: str,
        *,
        limit: int | None = None,
        location_id: str | None = None,
        status: str | None = None,
    ) -> list[WarehouseReceipt]:
        params = [('user_id', f'eq.{user_id}')]
        if location_id is not None:
            params.append(('warehouse_location_id', f'eq.{location_id}'))
        if status is not None:
            params.append(('status', f'eq.{status}'))
        params = self._ordered(params)
        if limit is not None:
            params.append(('limit', str(limit)))
        return self._select_receipts(params)

    def search(self, user_id: str, term: str) -> list[WarehouseReceipt]:
        needle = term.strip()
        if not needle:
            return self.list_by_user(user_id)
        any_field = ','.join(f'{name}.ilike.{_quoted(needle)}' for name in SEARCH_FIELDS)
        return self._select_receipts(self._ordered([('user_id', f'eq.{user_id}'), ('or', f'({any_field})')]))

    def _patch_receipt(self, receipt_id: str, user_id: str, payload: dict) -> WarehouseReceipt:
        rows = self._request(
            'PATCH',
            RECEIPTS_TABLE,
            params=[('id', f'eq.{receipt_id}'), ('user_id', f'eq.{user_id}')],
            payload=payload,
        ) or []
        if not rows:
            raise NotFound(f'Warehouse receipt {receipt_id} not found')
        return receipt_from_row(rows[0])

    def update(self, receipt_id: str, changes: dict, *, user_id: str) -> WarehouseReceipt:
        current = self.get_by_id(receipt_id, user_id=user_id)
        updated = apply_changes(current, changes, locations=self.list_locations(), now=now_utc())
        payload = {k: v for k, v in receipt_to_row(updated).items() if k not in _IMMUTABLE_FIELDS}
        return self._patch_receipt(receipt_id, user_id, payload)

    def update_status(
        self, receipt_id: str, new_status: str, *, user_id: str, notes: str | None = None
    ) -> WarehouseReceipt:
        status = parse_status(new_status)
        now = now_utc()
        payload = {'status': status.value, 'updated_at': now.isoformat()}
        if clean_text(notes):
            current = self.get_by_id(receipt_id, user_id=user_id)
            payload['notes'] = append_note(current.notes, notes, now=now)
        return self._patch_receipt(receipt_id, user_id, payload)

    def delete(self, receipt_id: str, *, user_id: str) -> None:
        owned = self._request(
            'GET',
            RECEIPTS_TABLE,
            params=[('select', 'id'), ('id', f'eq.{receipt_id}'), ('user_id', f'eq.{user_id}')],
        )
        if not owned:
            return
        self._request('DELETE', ATTACHMENTS_TABLE, params=[('warehouse_receipt_id', f'eq.{receipt_id}')])
        self._request('DELETE', RECEIPTS_TABLE, params=[('id', f'eq.{receipt_id}'), ('user_id', f'eq.{user_id}')])
        logger.info('Deleted warehouse receipt %s for user %s', receipt_id, user_id)

    def add_attachment(self, attachment: AttachmentInput) -> Attachment:
        self.get_by_id(attachment.warehouse_receipt_id)
        record = build_attachment(attachment, attachment_id=new_record_id(), now=now_utc())
        rows = self._request(
            'POST',
            ATTACHMENTS_TABLE,
            payload={name: _to_json_value(value) for name, value in asdict(record).items()},
        ) or []
        return attachment_from_row(rows[0]) if rows else record

    def list_attachments(self, receipt_id: str) -> list[Attachment]:
        rows = self._request(
            'GET',
            ATTACHMENTS_TABLE,
            params=[
                ('select', '*'),
                ('warehouse_receipt_id', f'eq.{receipt_id}'),
                ('order', 'created_at.desc,id.desc'),
            ],
        ) or []
        return [attachment_from_row(row) for row in rows]

    def get_attachment(self, attachment_id: str) -> Attachment:
        rows = self._request('GET', ATTACHMENTS_TABLE, params=[('select', '*'), ('id', f'eq.{attachment_id}')]) or []
        if not rows:
            raise NotFound(f'Attachment {attachment_id} not found')
        return attachment_from_row(rows[0])

    def delete_attachment(self, attachment_id: str) -> None:
        self._request('DELETE', ATTACHMENTS_TABLE, params=[('id', f'eq.{attachment_id}')])

    def list_locations(self) -> list[WarehouseLocation]:
        rows = self._request(
            'GET',
            LOCATIONS_TABLE,
            params=[('select', 'id,code,name,is_active'), ('is_active', 'eq.true'), ('order', 'name.asc')],
        ) or []
        return [
            WarehouseLocation(id=str(row['id']), code=row['code'], name=row['name'], is_active=bool(row.get('is_active', True)))
            for row in rows
        ]

    def try_aggregate_stats(self, user_id: str, *, now: datetime) -> DashboardStats | None:
        try:
            payload = self._request(
                'POST',
                f'rpc/{settings.hosted_stats_function}',
                payload={
                    'p_user_id': user_id,
                    'p_recent_days': settings.recent_activity_days,
                    'p_recent_limit': settings.recent_activity_limit,
                    'p_now': now.isoformat(),
                },
            )
            if isinstance(payload, list):
                payload = payload[0] if payload else None
            if not isinstance(payload, dict):
                raise StoreUnavailable('Stats function returned no result')
            weight, volume = finalize_totals(
                total_weight=payload.get('total_weight'),
                total_volume=payload.get('total_volume'),
            )
            return DashboardStats(
                total_receipts=int(payload.get('total_receipts') or 0),
                by_status={str(k): int(v) for k, v in (payload.get('by_status') or {}).items() if v},
                by_location={str(k): int(v) for k, v in (payload.get('by_location') or {}).items() if v},
                total_pieces=int(payload.get('total_pieces') or 0),
                total_weight=weight,
                total_volume=volume,
                recent_activity=[receipt_from_row(row) for row in payload.get('recent_activity') or []],
            )
        except (StoreUnavailable, ValidationError, KeyError, TypeError, ValueError) as exc:
            logger.warning('Hosted stats function %s unavailable: %s', settings.hosted_stats_function, exc)
            return None
