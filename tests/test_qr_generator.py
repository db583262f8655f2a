"""
Tests for reservation QR codes
"""
import json
from urllib.parse import parse_qs, urlparse

from unittest.mock import MagicMock

from models import RequestedBook
from qr_generator import (
    build_reservation_qr_data,
    encode_qr_payload,
    fetch_qr_code_svg,
    generate_qr_code_url,
    reservation_status,
)


class TestQRUrl:

    def test_query_parameters(self):
        url = generate_qr_code_url('{"a": 1}', size=250)

        parsed = urlparse(url)
        assert f'{parsed.scheme}://{parsed.netloc}{parsed.path}' == 'https://api.qrserver.com/v1/create-qr-code/'
        assert parse_qs(parsed.query) == {
            'size': ['250x250'],
            'data': ['{"a": 1}'],
            'format': ['svg'],
            'margin': ['10'],
            'color': ['1e3a8a'],
            'bgcolor': ['ffffff'],
        }

    def test_fetch_uses_raw_text(self):
        client = MagicMock()
        client.get.return_value = '<svg>qr</svg>'

        assert fetch_qr_code_svg(client, 'payload', 100) == '<svg>qr</svg>'
        args, kwargs = client.get.call_args
        assert 'size=100x100' in args[0]
        assert kwargs['raw'] is True


class TestReservationPayload:

    def test_status(self):
        assert reservation_status(RequestedBook('1', 'Dune', returned_on='2025-01-05')) == 'returned'
        assert reservation_status(RequestedBook('1', 'Dune', issued_on='2025-01-01')) == 'issued'
        assert reservation_status(RequestedBook('1', 'Dune', issued_on='Not issued yet')) == 'pending'
        assert reservation_status(RequestedBook('1', 'Dune', returned_on='   ')) == 'pending'

    def test_payload(self):
        book = RequestedBook('17', 'Dune', requested_on='2025-01-01', issued_on='')

        payload = build_reservation_qr_data(book, {'uid': '28', 'name': 'alana'})

        assert payload == {
            'type': 'library_reservation',
            'reservation_id': '17',
            'book_title': 'Dune',
            'user_name': 'alana',
            'user_id': '28',
            'requested_date': '2025-01-01',
            'issued_date': '',
            'status': 'pending',
            'library': 'University Library System',
        }
        assert json.loads(encode_qr_payload(payload)) == payload
        assert '\n  "type"' in encode_qr_payload(payload)

    def test_payload_without_user(self):
        payload = build_reservation_qr_data(RequestedBook('17', ''), None)

        assert payload['book_title'] == 'Unknown Book'
        assert payload['user_name'] == 'Unknown User'
        assert payload['user_id'] == 'Unknown'
