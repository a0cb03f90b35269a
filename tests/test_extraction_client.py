from __future__ import annotations

import io
import json
import unittest
from unittest.mock import MagicMock, patch
from urllib.error import HTTPError, URLError

from warehouse_portal.config import settings
from warehouse_portal.errors import ExtractionError
from warehouse_portal.services.extraction_client import HttpExtractionClient


def _response(body: bytes) -> MagicMock:
    response = MagicMock()
    response.read.return_value = body
    response.__enter__.return_value = response
    return response


class HttpExtractionClientTests(unittest.TestCase):
    def setUp(self) -> None:
        for name, value in (('extraction_api_url', 'https://extract.test/pdf'), ('extraction_api_key', 'k')):
            patcher = patch.object(settings, name, value)
            patcher.start()
            self.addCleanup(patcher.stop)
        self.client = HttpExtractionClient()

    def test_requires_url(self) -> None:
        with patch.object(settings, 'extraction_api_url', None):
            with self.assertRaises(ValueError):
                HttpExtractionClient()

    @patch('warehouse_portal.services.extraction_client.urlopen')
    def test_unwraps_extracted_data(self, urlopen_mock) -> None:
        urlopen_mock.return_value = _response(json.dumps({'extractedData': {'wr_number': 'WR1'}}).encode())

        self.assertEqual(self.client.extract(b'%PDF', file_name='a.pdf'), {'wr_number': 'WR1'})

        req = urlopen_mock.call_args.args[0]
        self.assertEqual(req.data, b'%PDF')
        self.assertEqual(req.get_header('Content-type'), 'application/pdf')
        self.assertEqual(req.get_header('Authorization'), 'Bearer k')

    @patch('warehouse_portal.services.extraction_client.urlopen')
    def test_accepts_bare_object(self, urlopen_mock) -> None:
        urlopen_mock.return_value = _response(b'{"wr_number": "WR2"}')
        self.assertEqual(self.client.extract(b'%PDF', file_name='a.pdf'), {'wr_number': 'WR2'})

    @patch('warehouse_portal.services.extraction_client.urlopen')
    def test_failures_become_extraction_errors(self, urlopen_mock) -> None:
        for failure in (
            URLError('timed out'),
            HTTPError('https://extract.test/pdf', 500, 'error', {}, io.BytesIO(b'boom')),
        ):
            urlopen_mock.side_effect = failure
            with self.assertRaises(ExtractionError):
                self.client.extract(b'%PDF', file_name='a.pdf')

        urlopen_mock.side_effect = None
        for body in (b'not json', b'[1, 2]', b'{"error": "unreadable"}'):
            urlopen_mock.return_value = _response(body)
            with self.assertRaises(ExtractionError):
                self.client.extract(b'%PDF', file_name='a.pdf')


if __name__ == '__main__':
    unittest.main()
