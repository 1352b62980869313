"""Records returned by the library service and the payloads sent to it.

The service speaks camelCase JSON (``libraryId``, ``isReturned``); the models
expose snake_case attributes and serialize back to the wire names.
"""
from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class ApiModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        coerce_numbers_to_str=True,
        extra="ignore",
    )

    def to_payload(self) -> Dict[str, Any]:
        """Wire representation without unset optional fields."""
        return self.model_dump(by_alias=True, exclude_none=True)


# ------------------------- Records ------------------------- #
class Book(ApiModel):
    id: str
    title: str
    author: str
    isbn: Optional[str] = None
    available: bool = True
    library_id: Optional[str] = None
    library: Optional[Library] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class Library(ApiModel):
    id: str
    name: str
    description: Optional[str] = None
    location: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    books: Optional[List[Book]] = None


class Member(ApiModel):
    id: str
    name: str
    email: str
    phone: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class Loan(ApiModel):
    id: str
    book_id: str
    member_id: str
    loan_date: Optional[str] = None
    return_date: Optional[str] = None
    is_returned: bool = False
    book: Optional[Book] = None
    member: Optional[Member] = None
    library: Optional[Library] = None


Book.model_rebuild()


# ------------------------- Payloads ------------------------- #
class BookCreate(ApiModel):
    title: str
    author: str
    isbn: Optional[str] = None
    library_id: str


class BookUpdate(ApiModel):
    title: Optional[str] = None
    author: Optional[str] = None
    isbn: Optional[str] = None
    library_id: Optional[str] = None


class LibraryCreate(ApiModel):
    name: str
    description: Optional[str] = None
    location: Optional[str] = None


class LibraryUpdate(ApiModel):
    name: Optional[str] = None
    description: Optional[str] = None
    location: Optional[str] = None


class MemberCreate(ApiModel):
    name: str
    email: str
    phone: Optional[str] = None
    password: Optional[str] = None


class MemberUpdate(ApiModel):
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    password: Optional[str] = None


class LoanCreate(ApiModel):
    book_id: str
    member_id: str


# ------------------------- Queries ------------------------- #
class BookQuery(ApiModel):
    title: Optional[str] = None
    author: Optional[str] = None
    library_id: Optional[str] = None


class LoanQuery(ApiModel):
    book_id: Optional[str] = None
    member_id: Optional[str] = None
    active_only: Optional[bool] = None


Payload = Union[ApiModel, Mapping[str, Any]]


def to_payload(data: Optional[Payload]) -> Dict[str, Any]:
    """Accept either a model or a plain mapping and return a JSON-ready dict."""
    if data is None:
        return {}
    if isinstance(data, ApiModel):
        return data.to_payload()
    return dict(data)
