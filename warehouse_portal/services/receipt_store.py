from __future__ import annotations

import uuid
from collections.abc import Iterable
from dataclasses import dataclass, fields, replace
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING, Protocol

from warehouse_portal.errors import ValidationError
from warehouse_portal.models import AttachmentType, ReceiptStatus
from warehouse_portal.services.receipt_status import parse_status
from warehouse_portal.services.unit_conversion import VOLUME_QUANT, WEIGHT_QUANT, volume_from_dimensions

if TYPE_CHECKING:
    from warehouse_portal.services.aggregation_service import DashboardStats

DEFAULT_CARGO_DESCRIPTION = 'GENERAL CARGO'
SEARCH_FIELDS = ('receipt_number', 'tracking_number', 'shipper_name', 'carrier_name')


@dataclass(frozen=True)
class WarehouseLocation:
    id: str
    code: str
    name: str
    is_active: bool = True


DEFAULT_WAREHOUSE_LOCATIONS: tuple[WarehouseLocation, ...] = (
    WarehouseLocation(id='JFK', code='JFK', name='JFK International Airport'),
    WarehouseLocation(id='MIA', code='MIA', name='Miami Warehouse'),
    WarehouseLocation(id='LAX', code='LAX', name='Los Angeles Warehouse'),
    WarehouseLocation(id='ORD', code='ORD', name='Chicago Warehouse'),
)


@dataclass(frozen=True)
class WarehouseReceipt:
    id: str
    receipt_number: str
    user_id: str
    status: str
    received_date: datetime
    created_at: datetime
    updated_at: datetime
    total_pieces: int = 0
    total_weight_lb: Decimal = Decimal('0')
    total_volume_ft3: Decimal = Decimal('0')
    description: str | None = None
    cargo_description: str | None = None
    category: str | None = None
    package_type: str | None = None
    dimensions_length: Decimal | None = None
    dimensions_width: Decimal | None = None
    dimensions_height: Decimal | None = None
    shipper_name: str | None = None
    shipper_address: str | None = None
    consignee_name: str | None = None
    consignee_address: str | None = None
    carrier_name: str | None = None
    driver_name: str | None = None
    tracking_number: str | None = None
    po_number: str | None = None
    booking_reference: str | None = None
    received_by: str | None = None
    warehouse_location_id: str | None = None
    warehouse_location_code: str | None = None
    warehouse_location_name: str | None = None
    notes: str | None = None

    @property
    def location_label(self) -> str | None:
        return self.warehouse_location_code or self.warehouse_location_name or None


@dataclass(frozen=True)
class ReceiptInput:
    user_id: str | None
    receipt_number: str | None = None
    status: str | None = None
    description: str | None = None
    cargo_description: str | None = None
    category: str | None = None
    package_type: str | None = None
    total_pieces: int | str | None = None
    total_weight_lb: Decimal | float | str | None = None
    total_volume_ft3: Decimal | float | str | None = None
    dimensions_length: Decimal | float | str | None = None
    dimensions_width: Decimal | float | str | None = None
    dimensions_height: Decimal | float | str | None = None
    shipper_name: str | None = None
    shipper_address: str | None = None
    consignee_name: str | None = None
    consignee_address: str | None = None
    carrier_name: str | None = None
    driver_name: str | None = None
    tracking_number: str | None = None
    po_number: str | None = None
    booking_reference: str | None = None
    received_by: str | None = None
    warehouse_location_id: str | None = None
    warehouse_location_code: str | None = None
    notes: str | None = None
    received_date: datetime | None = None


@dataclass(frozen=True)
class Attachment:
    id: str
    warehouse_receipt_id: str
    file_name: str
    file_url: str
    attachment_type: str
    created_at: datetime
    file_size: int | None = None
    file_type: str | None = None
    uploaded_by: str | None = None


@dataclass(frozen=True)
class AttachmentInput:
    warehouse_receipt_id: str
    file_name: str
    file_url: str
    attachment_type: str = AttachmentType.DOCUMENT.value
    file_size: int | None = None
    file_type: str | None = None
    uploaded_by: str | None = None


class ReceiptStore(Protocol):
    def create(self, receipt: ReceiptInput) -> WarehouseReceipt: ...

    def get_by_id(self, receipt_id: str, *, user_id: str | None = None) -> WarehouseReceipt: ...

    def list_by_user(
        self,
        user_id: str,
        *,
        limit: int | None = None,
        location_id: str | None = None,
        status: str | None = None,
    ) -> list[WarehouseReceipt]: ...

    def search(self, user_id: str, term: str) -> list[WarehouseReceipt]: ...

    def update(self, receipt_id: str, changes: dict, *, user_id: str) -> WarehouseReceipt: ...

    def update_status(
        self, receipt_id: str, new_status: str, *, user_id: str, notes: str | None = None
    ) -> WarehouseReceipt: ...

    def delete(self, receipt_id: str, *, user_id: str) -> None: ...

    def add_attachment(self, attachment: AttachmentInput) -> Attachment: ...

    def get_attachment(self, attachment_id: str) -> Attachment: ...

    def list_attachments(self, receipt_id: str) -> list[Attachment]: ...

    def delete_attachment(self, attachment_id: str) -> None: ...

    def list_locations(self) -> list[WarehouseLocation]: ...

    def try_aggregate_stats(self, user_id: str, *, now: datetime) -> DashboardStats | None: ...


RECEIPT_INPUT_FIELDS = tuple(f.name for f in fields(ReceiptInput))
EDITABLE_FIELDS = tuple(
    name for name in RECEIPT_INPUT_FIELDS if name not in {'user_id', 'receipt_number', 'status'}
)
_DIMENSION_FIELDS = {'dimensions_length', 'dimensions_width', 'dimensions_height'}
_QUANTITY_FIELDS = {'total_pieces', 'total_weight_lb', 'total_volume_ft3', *_DIMENSION_FIELDS}
_FIELD_ALIASES = {
    'wr_number': 'receipt_number',
    'warehouse_location': 'warehouse_location_code',
    'location_id': 'warehouse_location_id',
    'location_code': 'warehouse_location_code',
}


def now_utc() -> datetime:
    return datetime.now(tz=timezone.utc)


def as_utc(value: datetime) -> datetime:
    # SQLite and some REST payloads hand back naive timestamps.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def new_record_id() -> str:
    return uuid.uuid4().hex


def _snake_case(key: str) -> str:
    out: list[str] = []
    for char in key:
        if char.isupper():
            out.append('_')
            out.append(char.lower())
        else:
            out.append(char)
    return ''.join(out).lstrip('_')


def normalize_payload_keys(payload: dict) -> dict:
    normalized: dict = {}
    for key, value in payload.items():
        name = _snake_case(str(key))
        name = _FIELD_ALIASES.get(name, name)
        if name not in normalized or normalized[name] in (None, ''):
            normalized[name] = value
    return normalized


def parse_datetime(value) -> datetime | None:
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        return as_utc(value)
    raw = str(value).strip()
    if raw.endswith('Z'):
        raw = raw[:-1] + '+00:00'
    try:
        return as_utc(datetime.fromisoformat(raw))
    except ValueError as exc:
        raise ValidationError(f'Invalid date value: {value!r}') from exc


def receipt_input_from_payload(payload: dict, *, user_id: str | None) -> ReceiptInput:
    normalized = normalize_payload_keys(payload)
    values = {name: normalized.get(name) for name in RECEIPT_INPUT_FIELDS if name in normalized}
    values['user_id'] = user_id
    if 'received_date' in values:
        values['received_date'] = parse_datetime(values['received_date'])
    return ReceiptInput(**values)


def clean_text(value) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def non_negative_int(value, *, field_name: str) -> int:
    if value is None or value == '':
        return 0
    try:
        parsed = Decimal(str(value))
    except InvalidOperation as exc:
        raise ValidationError(f'{field_name} must be a number') from exc
    if not parsed.is_finite():
        raise ValidationError(f'{field_name} must be a number')
    if parsed != parsed.to_integral_value():
        raise ValidationError(f'{field_name} must be a whole number')
    if parsed < 0:
        raise ValidationError(f'{field_name} cannot be negative')
    return int(parsed)


def non_negative_decimal(value, *, field_name: str, quant: Decimal) -> Decimal:
    optional = optional_decimal(value, field_name=field_name)
    if optional is None:
        return Decimal('0').quantize(quant)
    return optional.quantize(quant)


def optional_decimal(value, *, field_name: str) -> Decimal | None:
    if value is None or value == '':
        return None
    try:
        parsed = value if isinstance(value, Decimal) else Decimal(str(value))
    except InvalidOperation as exc:
        raise ValidationError(f'{field_name} must be a number') from exc
    if not parsed.is_finite():
        raise ValidationError(f'{field_name} must be a number')
    if parsed < 0:
        raise ValidationError(f'{field_name} cannot be negative')
    return parsed


def resolve_location(
    locations: Iterable[WarehouseLocation],
    *,
    location_id: str | None,
    location_code: str | None,
) -> WarehouseLocation | None:
    location_id = clean_text(location_id)
    location_code = clean_text(location_code)
    if not location_id and not location_code:
        return None
    for location in locations:
        if location_id and location.id == location_id:
            return location
        if location_code and location.code.lower() == location_code.lower():
            return location
    raise ValidationError(f'Unknown warehouse location: {location_id or location_code}')


def receipt_number_prefix(now: datetime) -> str:
    return f'WR{now:%y}{now.timetuple().tm_yday:03d}'


def next_receipt_number(existing_numbers: Iterable[str], *, now: datetime) -> str:
    prefix = receipt_number_prefix(now)
    taken = {number for number in existing_numbers if number and number.startswith(prefix)}
    sequence = len(taken) + 1
    while f'{prefix}{sequence:03d}' in taken:
        sequence += 1
    return f'{prefix}{sequence:03d}'


def append_note(existing: str | None, notes: str | None, *, now: datetime) -> str | None:
    notes = clean_text(notes)
    if not notes:
        return existing
    line = f'[{now:%Y-%m-%d %H:%M}] {notes}'
    if existing:
        return f'{existing}\n{line}'
    return line


def _quantities(values: dict) -> dict:
    dims = {
        name: optional_decimal(values.get(name), field_name=name)
        for name in ('dimensions_length', 'dimensions_width', 'dimensions_height')
    }
    volume = optional_decimal(values.get('total_volume_ft3'), field_name='total_volume_ft3')
    if volume is None:
        volume = volume_from_dimensions(dims['dimensions_length'], dims['dimensions_width'], dims['dimensions_height'])
    return {
        **dims,
        'total_pieces': non_negative_int(values.get('total_pieces'), field_name='total_pieces'),
        'total_weight_lb': non_negative_decimal(
            values.get('total_weight_lb'), field_name='total_weight_lb', quant=WEIGHT_QUANT
        ),
        'total_volume_ft3': non_negative_decimal(volume, field_name='total_volume_ft3', quant=VOLUME_QUANT),
    }


def build_receipt(
    data: ReceiptInput,
    *,
    receipt_id: str,
    receipt_number: str,
    locations: Iterable[WarehouseLocation],
    now: datetime,
) -> WarehouseReceipt:
    user_id = clean_text(data.user_id)
    if not user_id:
        raise ValidationError('user_id is required')

    status = parse_status(data.status) if clean_text(data.status) else ReceiptStatus.RECEIVED_ON_HAND
    location = resolve_location(
        locations,
        location_id=data.warehouse_location_id,
        location_code=data.warehouse_location_code,
    )
    text_values = {
        name: clean_text(getattr(data, name))
        for name in (
            'description',
            'category',
            'package_type',
            'shipper_name',
            'shipper_address',
            'consignee_name',
            'consignee_address',
            'carrier_name',
            'driver_name',
            'tracking_number',
            'po_number',
            'booking_reference',
            'received_by',
            'notes',
        )
    }
    return WarehouseReceipt(
        id=receipt_id,
        receipt_number=receipt_number,
        user_id=user_id,
        status=status.value,
        received_date=as_utc(data.received_date) if data.received_date else now,
        created_at=now,
        updated_at=now,
        cargo_description=clean_text(data.cargo_description) or DEFAULT_CARGO_DESCRIPTION,
        warehouse_location_id=location.id if location else None,
        warehouse_location_code=location.code if location else None,
        warehouse_location_name=location.name if location else None,
        **text_values,
        **_quantities(
            {
                'total_pieces': data.total_pieces,
                'total_weight_lb': data.total_weight_lb,
                'total_volume_ft3': data.total_volume_ft3,
                'dimensions_length': data.dimensions_length,
                'dimensions_width': data.dimensions_width,
                'dimensions_height': data.dimensions_height,
            }
        ),
    )


def apply_changes(
    receipt: WarehouseReceipt,
    changes: dict,
    *,
    locations: Iterable[WarehouseLocation],
    now: datetime,
) -> WarehouseReceipt:
    normalized = normalize_payload_keys(changes)
    forbidden = sorted(name for name in normalized if name in {'id', 'user_id', 'receipt_number', 'created_at'})
    if forbidden:
        raise ValidationError(f'Fields cannot be edited: {", ".join(forbidden)}')
    if 'status' in normalized:
        raise ValidationError('Use the status endpoint to change a receipt status')
    unknown = sorted(name for name in normalized if name not in EDITABLE_FIELDS)
    if unknown:
        raise ValidationError(f'Unknown receipt fields: {", ".join(unknown)}')

    updates: dict = {}
    for name, value in normalized.items():
        if name in {'warehouse_location_id', 'warehouse_location_code'}:
            continue
        if name == 'received_date':
            parsed = parse_datetime(value)
            if parsed is None:
                raise ValidationError('received_date cannot be cleared')
            updates[name] = parsed
        elif name not in _QUANTITY_FIELDS:
            updates[name] = clean_text(value)
    if 'cargo_description' in updates and updates['cargo_description'] is None:
        updates['cargo_description'] = DEFAULT_CARGO_DESCRIPTION

    if _QUANTITY_FIELDS & normalized.keys():
        merged = {name: getattr(receipt, name) for name in _QUANTITY_FIELDS}
        merged.update({name: normalized[name] for name in _QUANTITY_FIELDS if name in normalized})
        if _DIMENSION_FIELDS & normalized.keys() and 'total_volume_ft3' not in normalized:
            if all(merged[name] for name in _DIMENSION_FIELDS):
                merged['total_volume_ft3'] = None
        updates.update(_quantities(merged))

    if 'warehouse_location_id' in normalized or 'warehouse_location_code' in normalized:
        location = resolve_location(
            locations,
            location_id=normalized.get('warehouse_location_id'),
            location_code=normalized.get('warehouse_location_code'),
        )
        updates['warehouse_location_id'] = location.id if location else None
        updates['warehouse_location_code'] = location.code if location else None
        updates['warehouse_location_name'] = location.name if location else None

    return replace(receipt, updated_at=now, **updates)


def matches_search(receipt: WarehouseReceipt, term: str) -> bool:
    needle = term.strip().lower()
    if not needle:
        return True
    return any(needle in (getattr(receipt, name) or '').lower() for name in SEARCH_FIELDS)


def newest_first(receipts: Iterable[WarehouseReceipt]) -> list[WarehouseReceipt]:
    return sorted(receipts, key=lambda r: (r.received_date, r.created_at, r.id), reverse=True)


def build_attachment(data: AttachmentInput, *, attachment_id: str, now: datetime) -> Attachment:
    file_name = clean_text(data.file_name)
    file_url = clean_text(data.file_url)
    if not clean_text(data.warehouse_receipt_id):
        raise ValidationError('warehouse_receipt_id is required')
    if not file_name or not file_url:
        raise ValidationError('file_name and file_url are required')
    try:
        attachment_type = AttachmentType((data.attachment_type or AttachmentType.DOCUMENT.value).strip().lower())
    except ValueError as exc:
        allowed = ', '.join(t.value for t in AttachmentType)
        raise ValidationError(f'Unknown attachment type; expected one of: {allowed}') from exc
    if data.file_size is not None and data.file_size < 0:
        raise ValidationError('file_size cannot be negative')
    return Attachment(
        id=attachment_id,
        warehouse_receipt_id=data.warehouse_receipt_id,
        file_name=file_name,
        file_url=file_url,
        attachment_type=attachment_type.value,
        created_at=now,
        file_size=data.file_size,
        file_type=clean_text(data.file_type),
        uploaded_by=clean_text(data.uploaded_by),
    )
