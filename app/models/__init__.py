"""
Models package

View models handed to the JSON views:
- book.py: books and catalogue entities
- circulation.py: borrowed/requested books, reservations, eligibility
- user.py: the logged-in patron and their profile
"""

from .book import Author, Book, BookStatus, Category, Publication, UNKNOWN_AUTHOR, UNKNOWN_PUBLISHER
from .circulation import (
    BorrowedBook,
    CirculationStatus,
    Eligibility,
    RequestedBook,
    Reservation,
    ReservationStatus,
    circulation_status,
)
from .user import LibraryUser, UserProfile

__all__ = [
    "Author",
    "Book",
    "BookStatus",
    "Category",
    "Publication",
    "UNKNOWN_AUTHOR",
    "UNKNOWN_PUBLISHER",
    "BorrowedBook",
    "CirculationStatus",
    "Eligibility",
    "RequestedBook",
    "Reservation",
    "ReservationStatus",
    "circulation_status",
    "LibraryUser",
    "UserProfile",
]
