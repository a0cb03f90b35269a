from __future__ import annotations

from dataclasses import dataclass

from warehouse_portal.errors import ValidationError
from warehouse_portal.models import ReceiptStatus


@dataclass(frozen=True)
class StatusAppearance:
    color: str
    icon: str
    label: str


_APPEARANCE_BY_STATUS: dict[str, StatusAppearance] = {
    ReceiptStatus.RECEIVED_ON_HAND.value: StatusAppearance('bg-blue-100 text-blue-800', '📦', 'Received On Hand'),
    ReceiptStatus.RELEASED_BY_AIR.value: StatusAppearance('bg-purple-100 text-purple-800', '✈️', 'Released by Air'),
    ReceiptStatus.RELEASED_BY_OCEAN.value: StatusAppearance('bg-teal-100 text-teal-800', '🚢', 'Released by Ocean'),
    ReceiptStatus.SHIPPED.value: StatusAppearance('bg-green-100 text-green-800', '🚛', 'Shipped'),
}
DEFAULT_COLOR = 'bg-gray-100 text-gray-800'
DEFAULT_ICON = '📋'

# Older dashboard cards speak received/processing/stored/ready_for_release/delivered.
# They only ever see receipts through this mapping.
_SIMPLE_STATUS_BY_STATUS: dict[str, str] = {
    ReceiptStatus.RECEIVED_ON_HAND.value: 'stored',
    ReceiptStatus.RELEASED_BY_AIR.value: 'ready_for_release',
    ReceiptStatus.RELEASED_BY_OCEAN.value: 'ready_for_release',
    ReceiptStatus.SHIPPED.value: 'delivered',
}
SIMPLE_STATUSES = ('received', 'processing', 'stored', 'ready_for_release', 'delivered')


def parse_status(value: str | ReceiptStatus | None) -> ReceiptStatus:
    if isinstance(value, ReceiptStatus):
        return value
    normalized = (value or '').strip().lower()
    try:
        return ReceiptStatus(normalized)
    except ValueError as exc:
        allowed = ', '.join(status.value for status in ReceiptStatus)
        raise ValidationError(f'Unknown receipt status {value!r}; expected one of: {allowed}') from exc


def validate_transition(current: str | ReceiptStatus, new: str | ReceiptStatus) -> ReceiptStatus:
    # Any status may move to any other; only the target has to be a known value.
    return parse_status(new)


def status_appearance(status: str | ReceiptStatus | None) -> StatusAppearance:
    key = status.value if isinstance(status, ReceiptStatus) else (status or '')
    appearance = _APPEARANCE_BY_STATUS.get(key)
    if appearance:
        return appearance
    return StatusAppearance(DEFAULT_COLOR, DEFAULT_ICON, key or 'Unknown')


def to_simple_status(status: str | ReceiptStatus | None) -> str:
    key = status.value if isinstance(status, ReceiptStatus) else (status or '')
    if key in SIMPLE_STATUSES:
        return key
    return _SIMPLE_STATUS_BY_STATUS.get(key, 'received')
