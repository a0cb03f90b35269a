from __future__ import annotations

from fastapi import APIRouter, Body, Depends, File, Form, HTTPException, Query, UploadFile, status

from warehouse_portal.auth import Principal, get_current_principal
from warehouse_portal.errors import (
    ExtractionError,
    ExtractionIncomplete,
    NotFound,
    ReceiptNotSaved,
    StoreUnavailable,
    UnsupportedMediaType,
    ValidationError,
    WarehouseError,
)
from warehouse_portal.services.aggregation_service import get_dashboard_stats
from warehouse_portal.services.import_service import import_receipt_document
from warehouse_portal.services.provider_factory import get_extraction_client, get_receipt_store
from warehouse_portal.services.receipt_service import (
    add_receipt_attachment,
    attachment_to_dict,
    change_status,
    create_receipt,
    delete_receipt,
    edit_receipt,
    list_receipt_attachments,
    list_receipts_or_empty,
    location_to_dict,
    receipt_to_dict,
    receipts_by_location,
    remove_attachment,
    search_receipts_or_empty,
    stats_to_dict,
)

router = APIRouter(prefix='/warehouse', tags=['warehouse'])


@router.get('/receipts')
def list_receipts(
    limit: int | None = Query(None, ge=1),
    location: str | None = None,
    status_filter: str | None = Query(None, alias='status'),
    principal: Principal = Depends(get_current_principal),
    store=Depends(get_receipt_store),
):
    receipts = list_receipts_or_empty(
        store, principal.user_id, limit=limit, location_id=location, status=status_filter
    )
    return [receipt_to_dict(receipt) for receipt in receipts]


@router.get('/receipts/search')
def search_receipts(
    q: str = '',
    principal: Principal = Depends(get_current_principal),
    store=Depends(get_receipt_store),
):
    return [receipt_to_dict(receipt) for receipt in search_receipts_or_empty(store, principal.user_id, q)]


@router.get('/receipts/by-location')
def receipts_grouped_by_location(
    principal: Principal = Depends(get_current_principal),
    store=Depends(get_receipt_store),
):
    grouped = receipts_by_location(store, principal.user_id)
    return {label: [receipt_to_dict(receipt) for receipt in rows] for label, rows in grouped.items()}


@router.get('/stats')
def dashboard_stats(
    principal: Principal = Depends(get_current_principal),
    store=Depends(get_receipt_store),
):
    return stats_to_dict(get_dashboard_stats(store, principal.user_id))


@router.get('/locations')
def list_locations(
    principal: Principal = Depends(get_current_principal),
    store=Depends(get_receipt_store),
):
    try:
        locations = store.list_locations()
    except StoreUnavailable as exc:
        raise HTTPException(status_code=503, detail=exc.message) from exc
    return [location_to_dict(location) for location in locations]


@router.post('/receipts', status_code=status.HTTP_201_CREATED)
def create_receipt_route(
    payload: dict = Body(...),
    principal: Principal = Depends(get_current_principal),
    store=Depends(get_receipt_store),
):
    try:
        receipt = create_receipt(store, payload, user_id=principal.user_id)
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=exc.message) from exc
    except StoreUnavailable as exc:
        raise HTTPException(status_code=503, detail=exc.message) from exc
    return receipt_to_dict(receipt)


@router.get('/receipts/{receipt_id}')
def get_receipt(
    receipt_id: str,
    principal: Principal = Depends(get_current_principal),
    store=Depends(get_receipt_store),
):
    try:
        receipt = store.get_by_id(receipt_id, user_id=principal.user_id)
    except NotFound as exc:
        raise HTTPException(status_code=404, detail=exc.message) from exc
    except StoreUnavailable as exc:
        raise HTTPException(status_code=503, detail=exc.message) from exc
    return receipt_to_dict(receipt)


@router.patch('/receipts/{receipt_id}')
def edit_receipt_route(
    receipt_id: str,
    payload: dict = Body(...),
    principal: Principal = Depends(get_current_principal),
    store=Depends(get_receipt_store),
):
    try:
        receipt = edit_receipt(store, receipt_id, payload, user_id=principal.user_id)
    except NotFound as exc:
        raise HTTPException(status_code=404, detail=exc.message) from exc
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=exc.message) from exc
    except StoreUnavailable as exc:
        raise HTTPException(status_code=503, detail=exc.message) from exc
    return receipt_to_dict(receipt)


@router.delete('/receipts/{receipt_id}', status_code=status.HTTP_204_NO_CONTENT)
def delete_receipt_route(
    receipt_id: str,
    principal: Principal = Depends(get_current_principal),
    store=Depends(get_receipt_store),
):
    try:
        delete_receipt(store, receipt_id, user_id=principal.user_id)
    except StoreUnavailable as exc:
        raise HTTPException(status_code=503, detail=exc.message) from exc


@router.post('/receipts/{receipt_id}/status')
def change_status_route(
    receipt_id: str,
    payload: dict = Body(...),
    principal: Principal = Depends(get_current_principal),
    store=Depends(get_receipt_store),
):
    try:
        receipt = change_status(
            store,
            receipt_id,
            str(payload.get('status') or ''),
            user_id=principal.user_id,
            notes=payload.get('notes'),
        )
    except NotFound as exc:
        raise HTTPException(status_code=404, detail=exc.message) from exc
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=exc.message) from exc
    except StoreUnavailable as exc:
        raise HTTPException(status_code=503, detail=exc.message) from exc
    return receipt_to_dict(receipt)


@router.get('/receipts/{receipt_id}/attachments')
def list_attachments(
    receipt_id: str,
    principal: Principal = Depends(get_current_principal),
    store=Depends(get_receipt_store),
):
    try:
        attachments = list_receipt_attachments(store, receipt_id, user_id=principal.user_id)
    except NotFound as exc:
        raise HTTPException(status_code=404, detail=exc.message) from exc
    except StoreUnavailable as exc:
        raise HTTPException(status_code=503, detail=exc.message) from exc
    return [attachment_to_dict(attachment) for attachment in attachments]


@router.post('/receipts/{receipt_id}/attachments', status_code=status.HTTP_201_CREATED)
def add_attachment(
    receipt_id: str,
    payload: dict = Body(...),
    principal: Principal = Depends(get_current_principal),
    store=Depends(get_receipt_store),
):
    try:
        attachment = add_receipt_attachment(store, receipt_id, payload, user_id=principal.user_id)
    except NotFound as exc:
        raise HTTPException(status_code=404, detail=exc.message) from exc
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=exc.message) from exc
    except StoreUnavailable as exc:
        raise HTTPException(status_code=503, detail=exc.message) from exc
    return attachment_to_dict(attachment)


@router.delete('/attachments/{attachment_id}', status_code=status.HTTP_204_NO_CONTENT)
def delete_attachment(
    attachment_id: str,
    principal: Principal = Depends(get_current_principal),
    store=Depends(get_receipt_store),
):
    try:
        remove_attachment(store, attachment_id, user_id=principal.user_id)
    except NotFound as exc:
        raise HTTPException(status_code=404, detail=exc.message) from exc
    except StoreUnavailable as exc:
        raise HTTPException(status_code=503, detail=exc.message) from exc


def _import_error(status_code: int, exc: WarehouseError, **extra) -> HTTPException:
    return HTTPException(status_code=status_code, detail={'kind': exc.kind, 'message': exc.message, **extra})


@router.post('/process-pdf', status_code=status.HTTP_201_CREATED)
def process_pdf(
    pdf: UploadFile = File(...),
    document_url: str | None = Form(None),
    principal: Principal = Depends(get_current_principal),
    store=Depends(get_receipt_store),
    extractor=Depends(get_extraction_client),
):
    try:
        result = import_receipt_document(
            store,
            extractor,
            user_id=principal.user_id,
            file_name=pdf.filename or 'upload.pdf',
            content_type=pdf.content_type,
            content=pdf.file.read(),
            document_url=document_url,
        )
    except UnsupportedMediaType as exc:
        raise _import_error(415, exc) from exc
    except ExtractionIncomplete as exc:
        raise _import_error(422, exc) from exc
    except ValidationError as exc:
        raise _import_error(400, exc) from exc
    except ExtractionError as exc:
        raise _import_error(502, exc) from exc
    except ReceiptNotSaved as exc:
        raise _import_error(
            503 if exc.retryable else 422,
            exc,
            cause_kind=exc.cause_kind,
            retryable=exc.retryable,
            extracted_data=exc.extracted,
        ) from exc
    return {
        'receipt': receipt_to_dict(result.receipt),
        'extracted_data': result.extracted,
        'attachment': attachment_to_dict(result.attachment) if result.attachment else None,
    }
