from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum

from sqlalchemy import (
    BigInteger,
    Boolean,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    pass


class ReceiptStatus(str, Enum):
    RECEIVED_ON_HAND = 'received_on_hand'
    RELEASED_BY_AIR = 'released_by_air'
    RELEASED_BY_OCEAN = 'released_by_ocean'
    SHIPPED = 'shipped'


class AttachmentType(str, Enum):
    DOCUMENT = 'document'
    INVOICE = 'invoice'
    PACKING_LIST = 'packing_list'
    PHOTO = 'photo'


def _enum_values(enum_cls: type[Enum]) -> list[str]:
    return [member.value for member in enum_cls]


class WarehouseLocationRow(Base):
    __tablename__ = 'warehouse_locations'
    __table_args__ = (UniqueConstraint('code', name='warehouse_locations_code_key'),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    code: Mapped[str] = mapped_column(String(16), nullable=False)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default='true')


class WarehouseReceiptRow(Base):
    __tablename__ = 'warehouse_receipts'
    __table_args__ = (UniqueConstraint('receipt_number', name='warehouse_receipts_receipt_number_key'),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    receipt_number: Mapped[str] = mapped_column(String(32), nullable=False)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    status: Mapped[ReceiptStatus] = mapped_column(
        SQLEnum(ReceiptStatus, name='receipt_status', values_callable=_enum_values),
        nullable=False,
        default=ReceiptStatus.RECEIVED_ON_HAND,
    )

    description: Mapped[str | None] = mapped_column(Text)
    cargo_description: Mapped[str | None] = mapped_column(Text)
    category: Mapped[str | None] = mapped_column(Text)
    package_type: Mapped[str | None] = mapped_column(Text)

    total_pieces: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default='0')
    total_weight_lb: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal('0'), server_default='0')
    total_volume_ft3: Mapped[Decimal] = mapped_column(Numeric(12, 3), nullable=False, default=Decimal('0'), server_default='0')
    dimensions_length: Mapped[Decimal | None] = mapped_column(Numeric(10, 2))
    dimensions_width: Mapped[Decimal | None] = mapped_column(Numeric(10, 2))
    dimensions_height: Mapped[Decimal | None] = mapped_column(Numeric(10, 2))

    shipper_name: Mapped[str | None] = mapped_column(Text)
    shipper_address: Mapped[str | None] = mapped_column(Text)
    consignee_name: Mapped[str | None] = mapped_column(Text)
    consignee_address: Mapped[str | None] = mapped_column(Text)
    carrier_name: Mapped[str | None] = mapped_column(Text)
    driver_name: Mapped[str | None] = mapped_column(Text)
    tracking_number: Mapped[str | None] = mapped_column(Text)
    po_number: Mapped[str | None] = mapped_column(Text)
    booking_reference: Mapped[str | None] = mapped_column(Text)
    received_by: Mapped[str | None] = mapped_column(Text)

    warehouse_location_id: Mapped[str | None] = mapped_column(String(36), ForeignKey('warehouse_locations.id'))
    notes: Mapped[str | None] = mapped_column(Text)

    received_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())

    location: Mapped[WarehouseLocationRow | None] = relationship(lazy='joined')


class ReceiptAttachmentRow(Base):
    __tablename__ = 'warehouse_receipt_attachments'

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    warehouse_receipt_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey('warehouse_receipts.id', ondelete='CASCADE'),
        nullable=False,
        index=True,
    )
    file_name: Mapped[str] = mapped_column(Text, nullable=False)
    file_url: Mapped[str] = mapped_column(Text, nullable=False)
    file_size: Mapped[int | None] = mapped_column(BigInteger)
    file_type: Mapped[str | None] = mapped_column(Text)
    attachment_type: Mapped[AttachmentType] = mapped_column(
        SQLEnum(AttachmentType, name='attachment_type', values_callable=_enum_values),
        nullable=False,
        default=AttachmentType.DOCUMENT,
    )
    uploaded_by: Mapped[str | None] = mapped_column(String(64))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
