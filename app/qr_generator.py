"""
QR Code Generator
Reservation pickup codes rendered by the public qrserver.com API
"""

import json
from typing import Any, Dict, Optional
from urllib.parse import urlencode

from api_client import ApiClient
from models import RequestedBook

QR_API_URL = "https://api.qrserver.com/v1/create-qr-code/"
QR_FOREGROUND = "1e3a8a"
QR_BACKGROUND = "ffffff"
LIBRARY_NAME = "University Library System"
NOT_ISSUED = "Not issued yet"


def generate_qr_code_url(data: str, size: int = 200) -> str:
    params = {
        "size": f"{size}x{size}",
        "data": data,
        "format": "svg",
        "margin": "10",
        "color": QR_FOREGROUND,
        "bgcolor": QR_BACKGROUND,
    }
    return f"{QR_API_URL}?{urlencode(params)}"


def reservation_status(book: RequestedBook) -> str:
    if book.returned_on and book.returned_on.strip():
        return "returned"
    if book.issued_on and book.issued_on != NOT_ISSUED:
        return "issued"
    return "pending"


def build_reservation_qr_data(book: RequestedBook, user: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    user = user or {}
    return {
        "type": "library_reservation",
        "reservation_id": book.id,
        "book_title": book.bookname or "Unknown Book",
        "user_name": user.get("name") or "Unknown User",
        "user_id": user.get("uid") or "Unknown",
        "requested_date": book.requested_on,
        "issued_date": book.issued_on,
        "status": reservation_status(book),
        "library": LIBRARY_NAME,
    }


def encode_qr_payload(payload: Dict[str, Any]) -> str:
    return json.dumps(payload, indent=2)


def fetch_qr_code_svg(client: ApiClient, data: str, size: int = 200) -> str:
    """
    Download the rendered SVG.

    Raises:
        ApiError: the QR service failed after retries
    """
    return client.get(generate_qr_code_url(data, size), raw=True, headers={"Accept": "image/svg+xml"})
