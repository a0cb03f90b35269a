from __future__ import annotations

import hashlib
import json
import logging
from typing import Protocol
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

from warehouse_portal.config import settings
from warehouse_portal.errors import ExtractionError

logger = logging.getLogger(__name__)


class ExtractionClient(Protocol):
    def extract(self, content: bytes, *, file_name: str) -> dict: ...


class HttpExtractionClient:
    def __init__(self) -> None:
        if not settings.extraction_api_url:
            raise ValueError('EXTRACTION_API_URL is required when EXTRACTION_PROVIDER=http')
        self.url = settings.extraction_api_url
        self.headers = {'Content-Type': 'application/pdf', 'Accept': 'application/json'}
        if settings.extraction_api_key:
            self.headers['Authorization'] = f'Bearer {settings.extraction_api_key}'

    def extract(self, content: bytes, *, file_name: str) -> dict:
        req = Request(
            url=self.url,
            data=content,
            headers={**self.headers, 'X-File-Name': file_name},
            method='POST',
        )
        try:
            with urlopen(req, timeout=settings.extraction_timeout_seconds) as response:
                parsed = json.loads(response.read().decode('utf-8'))
        except HTTPError as exc:
            body = exc.read().decode('utf-8', errors='ignore') if exc.fp else ''
            raise ExtractionError(f'Extraction service error {exc.code} for {file_name}: {body}') from exc
        except URLError as exc:
            raise ExtractionError(f'Extraction service network error for {file_name}: {exc.reason}') from exc
        except ValueError as exc:
            raise ExtractionError(f'Extraction service returned invalid JSON for {file_name}') from exc

        if not isinstance(parsed, dict):
            raise ExtractionError(f'Extraction service returned {type(parsed).__name__} for {file_name}')
        if parsed.get('error'):
            raise ExtractionError(f'Extraction service failed for {file_name}: {parsed["error"]}')
        extracted = parsed.get('extractedData', parsed)
        if not isinstance(extracted, dict):
            raise ExtractionError(f'Extraction service returned no record for {file_name}')
        return extracted


class MockExtractionClient:
    """Returns a fixed sample record; the WR number is derived from the document bytes."""

    def extract(self, content: bytes, *, file_name: str) -> dict:
        digest = int(hashlib.sha1(content).hexdigest()[:8], 16)
        logger.info('Mock extraction for %s', file_name)
        return {
            'wr_number': f'WR{digest % 100_000_000:08d}',
            'shipper_name': 'AMAZON',
            'shipper_address': '172 TRADE STREET, LEXINGTON, KY 40511, United States',
            'consignee_name': 'AMASS GLOBAL NETWORK (US) Inc.',
            'carrier_name': 'AMAZON',
            'driver_name': 'Amazon Driver',
            'tracking_number': 'TBA322325434471',
            'total_pieces': 1,
            'total_weight_lb': '1.00',
            'package_type': 'Package',
            'dimensions_length': '15',
            'dimensions_width': '10',
            'dimensions_height': '2',
            'warehouse_location_code': 'JFK',
            'received_by': 'Manuel Acosta',
        }
