"""
Book Routes - search, details, catalogue lookups and reservations
"""

from flask import Blueprint, current_app, jsonify, request

from api_responses import conflict_response, handle_api_errors, success_response
from auth import current_client, session_required
import logging

logger = logging.getLogger("main")

books_bp = Blueprint("books", __name__, url_prefix="/api")


def _page_params():
    """limit / offset from either ?offset= or ?page=, clamped to the configured maximum"""
    pagination = current_app.config["PAGINATION"]
    limit = request.args.get("limit", type=int) or pagination["default_limit"]
    if limit < 1:
        raise ValueError("limit must be positive")
    limit = min(limit, pagination["max_limit"])

    offset = request.args.get("offset", type=int)
    if offset is not None and offset < 0:
        raise ValueError("offset must not be negative")
    page = request.args.get("page", 1, type=int)
    if offset is None:
        if page < 1:
            raise ValueError("page must be positive")
        offset = (page - 1) * limit
    return limit, offset, page


@books_bp.route("/books")
@session_required
@handle_api_errors
def search_books():
    limit, offset, page = _page_params()
    books = current_client().get_books(
        search=request.args.get("search") or None,
        search_field=request.args.get("search_field", "all"),
        category=request.args.get("category") or None,
        author=request.args.get("author") or None,
        limit=limit,
        offset=offset,
    )
    return success_response({
        "books": [book.to_dict() for book in books],
        "count": len(books),
        "page": page,
        "limit": limit,
        "offset": offset,
    })


@books_bp.route("/books/<book_id>")
@session_required
@handle_api_errors
def book_details(book_id):
    return success_response(current_client().get_book_details(book_id).to_dict())


@books_bp.route("/books/<book_id>/publication")
@session_required
@handle_api_errors
def book_publication(book_id):
    return success_response(current_client().get_publication(book_id).to_dict())


@books_bp.route("/books/<book_id>/reserve", methods=["POST"])
@session_required
@handle_api_errors
def reserve_book(book_id):
    client = current_client()
    eligibility = client.check_borrowing_eligibility()
    if not eligibility.can_borrow:
        return conflict_response(f"Cannot reserve book: {eligibility.message}", details=eligibility.to_dict())

    result = client.reserve_book(book_id)
    return jsonify(result), 200 if result["success"] else 400


@books_bp.route("/eligibility")
@session_required
@handle_api_errors
def borrowing_eligibility():
    return success_response(current_client().check_borrowing_eligibility().to_dict())


@books_bp.route("/categories")
@session_required
@handle_api_errors
def categories_list():
    return success_response({"categories": current_client().get_categories_list()})


@books_bp.route("/categories/cached")
@session_required
@handle_api_errors
def cached_categories():
    return success_response([category.to_dict() for category in current_client().get_categories()])


@books_bp.route("/publications")
@session_required
@handle_api_errors
def cached_publications():
    return success_response([publication.to_dict() for publication in current_client().get_publications()])


@books_bp.route("/authors")
@session_required
@handle_api_errors
def authors():
    return success_response([author.to_dict() for author in current_client().get_authors()])


@books_bp.route("/authors/<author_id>")
@session_required
@handle_api_errors
def author_details(author_id):
    return success_response(current_client().get_author(author_id).to_dict())
