"""
Model: User
The logged-in library patron and their upstream profile
"""

from dataclasses import dataclass, asdict
from typing import Any, Dict

from flask_login import UserMixin

from constants import MAX_BOOKS_ALLOWED, MAX_CREDITS


class LibraryUser(UserMixin):
    """Flask-Login user backed by a live gateway session"""

    def __init__(self, session_id: str, user_id: str, name: str):
        self.session_id = session_id
        self.user_id = user_id
        self.name = name

    def get_id(self):
        return self.session_id

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.user_id, "name": self.name}


@dataclass
class UserProfile:
    uid: str
    uuid: str = ""
    name: str = ""
    email: str = ""
    timezone: str = ""
    created: str = ""
    changed: str = ""
    borrowed_books_count: int = 0
    requested_books_count: int = 0
    credits: int = 0
    max_credits: int = MAX_CREDITS
    max_books_allowed: int = MAX_BOOKS_ALLOWED

    @property
    def can_borrow_more(self) -> bool:
        return self.borrowed_books_count < self.max_books_allowed

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["can_borrow_more"] = self.can_borrow_more
        return data
