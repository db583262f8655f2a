"""
Model: Circulation records
Borrowed and requested books, reservations and the borrowing eligibility verdict
"""

import math
from dataclasses import dataclass, asdict
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from constants import LOAN_DURATION_DAYS, RESERVATION_HOLD_DAYS

NOT_RETURNED = "Not returned yet."


class CirculationStatus:
    REQUESTED = "requested"
    ISSUED = "issued"
    RETURNED = "returned"


class ReservationStatus:
    ACTIVE = "active"
    EXPIRED = "expired"
    COLLECTED = "collected"


def circulation_status(issued_on: str, returned_on: str) -> str:
    """returned > issued > requested, judged on which dates are filled in"""
    if returned_on and returned_on != NOT_RETURNED:
        return CirculationStatus.RETURNED
    if issued_on:
        return CirculationStatus.ISSUED
    return CirculationStatus.REQUESTED


@dataclass
class RequestedBook:
    id: str
    bookname: str
    requested_on: str = ""
    issued_on: str = ""
    returned_on: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class BorrowedBook:
    id: str
    bookname: str
    requested_on: str = ""
    issued_on: str = ""
    returned_on: str = ""
    due_date: Optional[datetime] = None
    days_remaining: Optional[int] = None
    is_overdue: bool = False
    status: str = CirculationStatus.REQUESTED

    @classmethod
    def from_dates(cls, id, bookname, requested_on, issued_on, returned_on, issued_at: Optional[datetime],
                   now: datetime) -> "BorrowedBook":
        status = circulation_status(issued_on, returned_on)
        due_date = None
        days_remaining = None
        is_overdue = False
        if status == CirculationStatus.ISSUED and issued_at is not None:
            due_date = issued_at + timedelta(days=LOAN_DURATION_DAYS)
            days_remaining = math.ceil((due_date - now).total_seconds() / 86400)
            is_overdue = days_remaining < 0
        return cls(
            id=id,
            bookname=bookname,
            requested_on=requested_on,
            issued_on=issued_on,
            returned_on=returned_on,
            due_date=due_date,
            days_remaining=days_remaining,
            is_overdue=is_overdue,
            status=status,
        )

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["due_date"] = self.due_date.isoformat() if self.due_date else None
        return data


@dataclass
class Reservation:
    id: str
    book_id: str
    book_title: str
    book_author: str
    reserved_at: datetime
    expires_at: datetime
    status: str = ReservationStatus.ACTIVE

    @classmethod
    def create(cls, id: str, book_id: str, book_title: str, book_author: str, now: datetime) -> "Reservation":
        return cls(
            id=id,
            book_id=book_id,
            book_title=book_title,
            book_author=book_author,
            reserved_at=now,
            expires_at=now + timedelta(days=RESERVATION_HOLD_DAYS),
        )

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["reserved_at"] = self.reserved_at.isoformat()
        data["expires_at"] = self.expires_at.isoformat()
        return data


@dataclass
class Eligibility:
    can_borrow: bool
    current_books: int
    max_books: int
    message: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
