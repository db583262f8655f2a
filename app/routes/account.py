"""
Account Routes - profile, circulation lists, calendar reminders and reservation QR codes
"""

from flask import Blueprint, Response, current_app, request

from api_responses import handle_api_errors, not_found_response, success_response, validation_error_response
from auth import current_client, session_required
from models import UNKNOWN_AUTHOR
from qr_generator import build_reservation_qr_data, encode_qr_payload, fetch_qr_code_svg, generate_qr_code_url
import logging

logger = logging.getLogger("main")

account_bp = Blueprint("account", __name__, url_prefix="/api/account")


@account_bp.route("/profile")
@session_required
@handle_api_errors
def profile():
    return success_response(current_client().get_user_profile().to_dict())


@account_bp.route("/borrowed")
@session_required
@handle_api_errors
def borrowed_books():
    return success_response([book.to_dict() for book in current_client().get_user_borrowed_books()])


@account_bp.route("/requested")
@session_required
@handle_api_errors
def requested_books():
    return success_response([book.to_dict() for book in current_client().get_user_requested_books()])


@account_bp.route("/borrowed/<borrow_id>/reminder")
@session_required
@handle_api_errors
def download_reminder(borrow_id):
    """text/calendar attachment; ?mode=multiple gives the 7/3/1 day series"""
    mode = request.args.get("mode", "single")
    if mode not in ("single", "multiple"):
        return validation_error_response("mode", "must be 'single' or 'multiple'")

    book = next((b for b in current_client().get_user_borrowed_books() if b.id == borrow_id), None)
    if book is None:
        return not_found_response("Borrowed book", borrow_id)
    if book.due_date is None:
        return validation_error_response("due_date", "Book has not been issued")

    generator = current_app.extensions["ics_generator"]
    author = request.args.get("author") or UNKNOWN_AUTHOR
    if mode == "multiple":
        filename, content = generator.generate_multiple_reminders(book.bookname, author, book.due_date)
    else:
        filename, content = generator.generate_book_reminder(book.bookname, author, book.due_date)

    return Response(
        content,
        mimetype="text/calendar",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@account_bp.route("/requested/<request_id>/qr")
@session_required
@handle_api_errors
def reservation_qr(request_id):
    """QR payload and image URL for a reservation; ?format=svg returns the image itself"""
    client = current_client()
    book = next((b for b in client.get_user_requested_books() if b.id == request_id), None)
    if book is None:
        return not_found_response("Reservation", request_id)

    size = request.args.get("size", 200, type=int)
    if not 50 <= size <= 1000:
        return validation_error_response("size", "must be between 50 and 1000")

    payload = build_reservation_qr_data(book, client.user)
    data = encode_qr_payload(payload)

    if request.args.get("format") == "svg":
        svg = fetch_qr_code_svg(current_app.extensions["qr_client"], data, size)
        return Response(svg, mimetype="image/svg+xml")

    return success_response({"payload": payload, "data": data, "qr_url": generate_qr_code_url(data, size)})
