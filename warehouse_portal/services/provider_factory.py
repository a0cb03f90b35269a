from __future__ import annotations

from functools import lru_cache

from warehouse_portal.config import settings
from warehouse_portal.services.extraction_client import HttpExtractionClient, MockExtractionClient
from warehouse_portal.services.memory_receipt_store import MemoryReceiptStore


@lru_cache(maxsize=1)
def get_receipt_store():
    backend = settings.receipt_store.strip().lower()
    if backend == 'sql':
        from warehouse_portal.db import SessionLocal
        from warehouse_portal.services.sql_receipt_store import SqlReceiptStore

        return SqlReceiptStore(SessionLocal)
    if backend == 'hosted':
        from warehouse_portal.services.hosted_receipt_store import HostedReceiptStore

        return HostedReceiptStore()
    return MemoryReceiptStore(seed_user_id=settings.memory_seed_user_id)


@lru_cache(maxsize=1)
def get_extraction_client():
    provider = settings.extraction_provider.strip().lower()
    if provider == 'http':
        return HttpExtractionClient()
    return MockExtractionClient()
