from __future__ import annotations

import logging
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from datetime import datetime
from enum import Enum

from sqlalchemy import delete, func, or_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from warehouse_portal.config import settings
from warehouse_portal.errors import NotFound, StoreUnavailable, ValidationError
from warehouse_portal.models import (
    AttachmentType,
    ReceiptAttachmentRow,
    ReceiptStatus,
    WarehouseLocationRow,
    WarehouseReceiptRow,
)
from warehouse_portal.services.aggregation_service import DashboardStats, finalize_totals, recent_cutoff
from warehouse_portal.services.receipt_status import parse_status
from warehouse_portal.services.receipt_store import (
    DEFAULT_WAREHOUSE_LOCATIONS,
    SEARCH_FIELDS,
    Attachment,
    AttachmentInput,
    ReceiptInput,
    WarehouseLocation,
    WarehouseReceipt,
    append_note,
    apply_changes,
    as_utc,
    build_attachment,
    build_receipt,
    clean_text,
    new_record_id,
    next_receipt_number,
    now_utc,
    receipt_number_prefix,
)

logger = logging.getLogger(__name__)

_ROW_FIELDS = (
    'id',
    'receipt_number',
    'user_id',
    'received_date',
    'created_at',
    'updated_at',
    'total_pieces',
    'total_weight_lb',
    'total_volume_ft3',
    'description',
    'cargo_description',
    'category',
    'package_type',
    'dimensions_length',
    'dimensions_width',
    'dimensions_height',
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
    'warehouse_location_id',
    'notes',
)


def _escape_like(term: str) -> str:
    return term.replace('\\', '\\\\').replace('%', '\\%').replace('_', '\\_')


def _enum_value(value: Enum | str) -> str:
    return value.value if isinstance(value, Enum) else str(value)


def _to_location(row: WarehouseLocationRow) -> WarehouseLocation:
    return WarehouseLocation(id=row.id, code=row.code, name=row.name, is_active=row.is_active)


def _to_receipt(row: WarehouseReceiptRow) -> WarehouseReceipt:
    values = {name: getattr(row, name) for name in _ROW_FIELDS}
    for name in ('received_date', 'created_at', 'updated_at'):
        values[name] = as_utc(values[name])
    return WarehouseReceipt(
        **values,
        status=_enum_value(row.status),
        warehouse_location_code=row.location.code if row.location else None,
        warehouse_location_name=row.location.name if row.location else None,
    )


def _to_attachment(row: ReceiptAttachmentRow) -> Attachment:
    return Attachment(
        id=row.id,
        warehouse_receipt_id=row.warehouse_receipt_id,
        file_name=row.file_name,
        file_url=row.file_url,
        attachment_type=_enum_value(row.attachment_type),
        created_at=as_utc(row.created_at),
        file_size=row.file_size,
        file_type=row.file_type,
        uploaded_by=row.uploaded_by,
    )


class SqlReceiptStore:
    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self._session_factory = session_factory

    @contextmanager
    def _session(self) -> Iterator[Session]:
        try:
            with self._session_factory() as db:
                yield db
        except IntegrityError as exc:
            raise ValidationError(f'Warehouse receipt conflicts with an existing record: {exc.orig}') from exc
        except SQLAlchemyError as exc:
            raise StoreUnavailable(f'Warehouse database error: {exc}') from exc

    def ensure_default_locations(self) -> None:
        with self._session() as db:
            existing = set(db.execute(select(WarehouseLocationRow.code)).scalars().all())
            for location in DEFAULT_WAREHOUSE_LOCATIONS:
                if location.code in existing:
                    continue
                db.add(WarehouseLocationRow(id=location.id, code=location.code, name=location.name, is_active=True))
            db.commit()

    def _locations(self, db: Session) -> list[WarehouseLocation]:
        rows = db.execute(select(WarehouseLocationRow)).scalars().all()
        return [_to_location(row) for row in rows]

    def _get_row(self, db: Session, receipt_id: str, user_id: str | None) -> WarehouseReceiptRow:
        query = select(WarehouseReceiptRow).where(WarehouseReceiptRow.id == receipt_id)
        if user_id is not None:
            query = query.where(WarehouseReceiptRow.user_id == user_id)
        row = db.execute(query).scalar_one_or_none()
        if row is None:
            raise NotFound(f'Warehouse receipt {receipt_id} not found')
        return row

    def _next_receipt_number(self, db: Session, now: datetime) -> str:
        prefix = receipt_number_prefix(now)
        taken = db.execute(
            select(WarehouseReceiptRow.receipt_number).where(WarehouseReceiptRow.receipt_number.like(f'{prefix}%'))
        ).scalars().all()
        return next_receipt_number(taken, now=now)

    def create(self, receipt: ReceiptInput) -> WarehouseReceipt:
        now = now_utc()
        with self._session() as db:
            record = build_receipt(
                receipt,
                receipt_id=new_record_id(),
                receipt_number=clean_text(receipt.receipt_number) or self._next_receipt_number(db, now),
                locations=self._locations(db),
                now=now,
            )
            row = WarehouseReceiptRow(
                **{name: getattr(record, name) for name in _ROW_FIELDS},
                status=ReceiptStatus(record.status),
            )
            db.add(row)
            db.commit()
            logger.info('Created warehouse receipt %s for user %s', record.receipt_number, record.user_id)
            return record

    def get_by_id(self, receipt_id: str, *, user_id: str | None = None) -> WarehouseReceipt:
        with self._session() as db:
            return _to_receipt(self._get_row(db, receipt_id, user_id))

    def list_by_user(
        self,
        user_id: str,
        *,
        limit: int | None = None,
        location_id: str | None = None,
        status: str | None = None,
    ) -> list[WarehouseReceipt]:
        query = select(WarehouseReceiptRow).where(WarehouseReceiptRow.user_id == user_id)
        if location_id is not None:
            query = query.where(WarehouseReceiptRow.warehouse_location_id == location_id)
        if status is not None:
            try:
                query = query.where(WarehouseReceiptRow.status == ReceiptStatus(status))
            except ValueError:
                return []
        query = query.order_by(
            WarehouseReceiptRow.received_date.desc(),
            WarehouseReceiptRow.created_at.desc(),
            WarehouseReceiptRow.id.desc(),
        )
        if limit is not None:
            query = query.limit(limit)
        with self._session() as db:
            return [_to_receipt(row) for row in db.execute(query).scalars().all()]

    def search(self, user_id: str, term: str) -> list[WarehouseReceipt]:
        needle = term.strip()
        if not needle:
            return self.list_by_user(user_id)
        pattern = f'%{_escape_like(needle)}%'
        query = (
            select(WarehouseReceiptRow)
            .where(
                WarehouseReceiptRow.user_id == user_id,
                or_(*(getattr(WarehouseReceiptRow, name).ilike(pattern, escape='\\') for name in SEARCH_FIELDS)),
            )
            .order_by(
                WarehouseReceiptRow.received_date.desc(),
                WarehouseReceiptRow.created_at.desc(),
                WarehouseReceiptRow.id.desc(),
            )
        )
        with self._session() as db:
            return [_to_receipt(row) for row in db.execute(query).scalars().all()]

    def update(self, receipt_id: str, changes: dict, *, user_id: str) -> WarehouseReceipt:
        with self._session() as db:
            row = self._get_row(db, receipt_id, user_id)
            updated = apply_changes(_to_receipt(row), changes, locations=self._locations(db), now=now_utc())
            for name in _ROW_FIELDS:
                setattr(row, name, getattr(updated, name))
            db.commit()
            return updated

    def update_status(
        self, receipt_id: str, new_status: str, *, user_id: str, notes: str | None = None
    ) -> WarehouseReceipt:
        status = parse_status(new_status)
        now = now_utc()
        with self._session() as db:
            row = self._get_row(db, receipt_id, user_id)
            row.status = status
            row.notes = append_note(row.notes, notes, now=now)
            row.updated_at = now
            db.commit()
            return _to_receipt(row)

    def delete(self, receipt_id: str, *, user_id: str) -> None:
        with self._session() as db:
            owned = db.execute(
                select(WarehouseReceiptRow.id).where(
                    WarehouseReceiptRow.id == receipt_id,
                    WarehouseReceiptRow.user_id == user_id,
                )
            ).scalar_one_or_none()
            if owned is None:
                return
            db.execute(delete(ReceiptAttachmentRow).where(ReceiptAttachmentRow.warehouse_receipt_id == receipt_id))
            db.execute(delete(WarehouseReceiptRow).where(WarehouseReceiptRow.id == receipt_id))
            db.commit()
            logger.info('Deleted warehouse receipt %s for user %s', receipt_id, user_id)

    def add_attachment(self, attachment: AttachmentInput) -> Attachment:
        with self._session() as db:
            self._get_row(db, attachment.warehouse_receipt_id, None)
            record = build_attachment(attachment, attachment_id=new_record_id(), now=now_utc())
            db.add(
                ReceiptAttachmentRow(
                    id=record.id,
                    warehouse_receipt_id=record.warehouse_receipt_id,
                    file_name=record.file_name,
                    file_url=record.file_url,
                    file_size=record.file_size,
                    file_type=record.file_type,
                    attachment_type=AttachmentType(record.attachment_type),
                    uploaded_by=record.uploaded_by,
                    created_at=record.created_at,
                )
            )
            db.commit()
            return record

    def list_attachments(self, receipt_id: str) -> list[Attachment]:
        with self._session() as db:
            rows = db.execute(
                select(ReceiptAttachmentRow)
                .where(ReceiptAttachmentRow.warehouse_receipt_id == receipt_id)
                .order_by(ReceiptAttachmentRow.created_at.desc(), ReceiptAttachmentRow.id.desc())
            ).scalars().all()
            return [_to_attachment(row) for row in rows]

    def get_attachment(self, attachment_id: str) -> Attachment:
        with self._session() as db:
            row = db.get(ReceiptAttachmentRow, attachment_id)
            if row is None:
                raise NotFound(f'Attachment {attachment_id} not found')
            return _to_attachment(row)

    def delete_attachment(self, attachment_id: str) -> None:
        with self._session() as db:
            db.execute(delete(ReceiptAttachmentRow).where(ReceiptAttachmentRow.id == attachment_id))
            db.commit()

    def list_locations(self) -> list[WarehouseLocation]:
        with self._session() as db:
            rows = db.execute(
                select(WarehouseLocationRow)
                .where(WarehouseLocationRow.is_active.is_(True))
                .order_by(WarehouseLocationRow.name.asc())
            ).scalars().all()
            return [_to_location(row) for row in rows]

    def try_aggregate_stats(self, user_id: str, *, now: datetime) -> DashboardStats | None:
        owned = WarehouseReceiptRow.user_id == user_id
        location_label = func.coalesce(WarehouseLocationRow.code, WarehouseLocationRow.name)
        try:
            with self._session_factory() as db:
                total_receipts, total_pieces, total_weight, total_volume = db.execute(
                    select(
                        func.count(WarehouseReceiptRow.id),
                        func.coalesce(func.sum(WarehouseReceiptRow.total_pieces), 0),
                        func.coalesce(func.sum(WarehouseReceiptRow.total_weight_lb), 0),
                        func.coalesce(func.sum(WarehouseReceiptRow.total_volume_ft3), 0),
                    ).where(owned)
                ).one()
                status_rows = db.execute(
                    select(WarehouseReceiptRow.status, func.count(WarehouseReceiptRow.id))
                    .where(owned)
                    .group_by(WarehouseReceiptRow.status)
                ).all()
                location_rows = db.execute(
                    select(location_label, func.count(WarehouseReceiptRow.id))
                    .join(WarehouseLocationRow, WarehouseLocationRow.id == WarehouseReceiptRow.warehouse_location_id)
                    .where(owned)
                    .group_by(location_label)
                ).all()
                recent_rows = db.execute(
                    select(WarehouseReceiptRow)
                    .where(owned, WarehouseReceiptRow.created_at >= recent_cutoff(now, settings.recent_activity_days))
                    .order_by(WarehouseReceiptRow.created_at.desc(), WarehouseReceiptRow.id.desc())
                    .limit(settings.recent_activity_limit)
                ).scalars().all()
                recent_activity = [_to_receipt(row) for row in recent_rows]
        except SQLAlchemyError as exc:
            logger.warning('SQL stats aggregation failed for user %s: %s', user_id, exc)
            return None

        weight, volume = finalize_totals(total_weight=total_weight, total_volume=total_volume)
        return DashboardStats(
            total_receipts=int(total_receipts),
            by_status={_enum_value(status): int(count) for status, count in status_rows},
            by_location={label: int(count) for label, count in location_rows if label},
            total_pieces=int(total_pieces),
            total_weight=weight,
            total_volume=volume,
            recent_activity=recent_activity,
        )
