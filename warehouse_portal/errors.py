from __future__ import annotations


class WarehouseError(Exception):
    kind = 'warehouse_error'

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(WarehouseError, ValueError):
    kind = 'validation_error'


class NotFound(WarehouseError, LookupError):
    kind = 'not_found'


class UnsupportedMediaType(WarehouseError):
    kind = 'unsupported_media_type'


class ExtractionError(WarehouseError):
    """The extraction service could not be reached or returned garbage. Retry the extraction."""

    kind = 'extraction_error'


class ExtractionIncomplete(WarehouseError):
    """Extraction succeeded but the record is not usable (no WR number)."""

    kind = 'extraction_incomplete'


class StoreUnavailable(WarehouseError):
    kind = 'store_unavailable'


class ReceiptNotSaved(StoreUnavailable):
    """Extracted data that could not be persisted. Retry the save with `extracted`, not the extraction.

    `cause_kind` is the kind of the underlying failure; only a store outage is worth retrying.
    """

    kind = 'receipt_not_saved'

    def __init__(self, message: str, *, extracted: dict, cause_kind: str = StoreUnavailable.kind) -> None:
        super().__init__(message)
        self.extracted = extracted
        self.cause_kind = cause_kind

    @property
    def retryable(self) -> bool:
        return self.cause_kind == StoreUnavailable.kind
