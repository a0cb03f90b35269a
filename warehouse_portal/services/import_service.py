from __future__ import annotations

import logging
from dataclasses import dataclass

from warehouse_portal.config import settings
from warehouse_portal.errors import (
    ExtractionError,
    ExtractionIncomplete,
    NotFound,
    ReceiptNotSaved,
    StoreUnavailable,
    UnsupportedMediaType,
    ValidationError,
)
from warehouse_portal.services.extraction_client import ExtractionClient
from warehouse_portal.services.receipt_store import (
    Attachment,
    AttachmentInput,
    ReceiptStore,
    WarehouseReceipt,
    clean_text,
    normalize_payload_keys,
    receipt_input_from_payload,
)

logger = logging.getLogger(__name__)

PDF_CONTENT_TYPE = 'application/pdf'
PLACEHOLDER_VALUES = {'N/A', 'NA', 'NONE', 'NULL', 'UNKNOWN', 'TBD', '-'}


@dataclass(frozen=True)
class ImportResult:
    receipt: WarehouseReceipt
    extracted: dict
    attachment: Attachment | None = None


def is_pdf_upload(file_name: str | None, content_type: str | None) -> bool:
    media_type = (content_type or '').split(';', 1)[0].strip().lower()
    return media_type == PDF_CONTENT_TYPE or (file_name or '').lower().endswith('.pdf')


def is_placeholder(value) -> bool:
    text = clean_text(value)
    return text is None or text.upper() in PLACEHOLDER_VALUES


def _validate_upload(file_name: str, content_type: str | None, content: bytes, max_bytes: int) -> None:
    if not is_pdf_upload(file_name, content_type):
        raise UnsupportedMediaType(f'Only PDF files are accepted, got {content_type or "unknown"} ({file_name})')
    if not content:
        raise ValidationError('Uploaded PDF is empty')
    if len(content) > max_bytes:
        raise ValidationError(f'Uploaded PDF is larger than {max_bytes} bytes')


def _candidate_from_extraction(extracted: dict) -> dict:
    candidate = normalize_payload_keys(extracted)
    if is_placeholder(candidate.get('receipt_number')):
        raise ExtractionIncomplete('Extracted document has no warehouse receipt number')
    candidate['receipt_number'] = clean_text(candidate['receipt_number'])
    return candidate


def _drop_unknown_location(candidate: dict, known_codes: set[str]) -> dict:
    code = clean_text(candidate.get('warehouse_location_code'))
    if code is not None and code.upper() not in known_codes:
        logger.warning('Dropping unknown warehouse location %r from extracted receipt %s', code, candidate['receipt_number'])
        candidate.pop('warehouse_location_code')
    elif code is not None:
        candidate['warehouse_location_code'] = code.upper()
    # Extracted documents never pick a location by internal id.
    candidate.pop('warehouse_location_id', None)
    return candidate


def import_receipt_document(
    store: ReceiptStore,
    extractor: ExtractionClient,
    *,
    user_id: str,
    file_name: str,
    content_type: str | None,
    content: bytes,
    document_url: str | None = None,
    max_bytes: int | None = None,
) -> ImportResult:
    _validate_upload(file_name, content_type, content, max_bytes or settings.max_upload_bytes)

    try:
        extracted = extractor.extract(content, file_name=file_name)
    except ExtractionError:
        logger.warning('Extraction failed for %s', file_name)
        raise
    if not isinstance(extracted, dict):
        raise ExtractionError(f'Extraction returned no record for {file_name}')
    candidate = _candidate_from_extraction(extracted)

    try:
        candidate = _drop_unknown_location(
            candidate, {location.code.upper() for location in store.list_locations()}
        )
        receipt = store.create(receipt_input_from_payload(candidate, user_id=user_id))
    except (StoreUnavailable, ValidationError) as exc:
        logger.warning('Extracted receipt %s could not be saved: %s', candidate['receipt_number'], exc)
        raise ReceiptNotSaved(
            f'Extracted receipt could not be saved: {exc.message}',
            extracted=extracted,
            cause_kind=exc.kind,
        ) from exc

    attachment = None
    if clean_text(document_url):
        attachment = _attach_document(
            store, receipt, file_name=file_name, document_url=document_url, size=len(content), user_id=user_id
        )
    logger.info('Imported receipt %s from %s for %s', receipt.receipt_number, file_name, user_id)
    return ImportResult(receipt=receipt, extracted=extracted, attachment=attachment)


def _attach_document(
    store: ReceiptStore,
    receipt: WarehouseReceipt,
    *,
    file_name: str,
    document_url: str,
    size: int,
    user_id: str,
) -> Attachment | None:
    # The receipt is already saved; a missing attachment must not hide it from the caller.
    try:
        return store.add_attachment(
            AttachmentInput(
                warehouse_receipt_id=receipt.id,
                file_name=file_name,
                file_url=document_url,
                attachment_type='document',
                file_size=size,
                file_type=PDF_CONTENT_TYPE,
                uploaded_by=user_id,
            )
        )
    except (StoreUnavailable, ValidationError, NotFound) as exc:
        logger.warning('Receipt %s saved but its document could not be attached: %s', receipt.receipt_number, exc)
        return None
