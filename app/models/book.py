"""
Model: Book and catalogue entities
Denormalized views produced by the book aggregator
"""

from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List

UNKNOWN_AUTHOR = "Unknown Author"
UNKNOWN_PUBLISHER = "Unknown Publisher"


class BookStatus:
    AVAILABLE = "available"
    BORROWED = "borrowed"
    RESERVED = "reserved"


@dataclass
class Author:
    id: str
    uuid: str = ""
    title: str = ""
    description: str = ""
    created: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class Publication:
    id: str
    title: str = ""
    description: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class Category:
    id: str
    title: str = ""
    description: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class Book:
    id: str
    title: str
    author: str = UNKNOWN_AUTHOR
    isbn: str = ""
    category: str = ""
    status: str = BookStatus.AVAILABLE
    copies: int = 1
    books_available: int = 1
    books_issued: int = 0
    publisher: str = UNKNOWN_PUBLISHER
    price: str = ""
    cover_image: str = ""
    description: str = ""
    author_ids: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
