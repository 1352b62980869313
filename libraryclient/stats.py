"""Display statistics and local joins over data fetched from the service.

Nothing here talks to the network: callers fetch the lists (usually in
parallel) and hand them over.
"""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from libraryclient.models import Book, Library, Loan, Member

RETURN_HISTORY_SIZE = 5


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp; anything unparseable counts as missing."""
    if not value:
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def percentage(part: int, total: int) -> int:
    """Whole-number percentage rounded half up; 0 when there is nothing to count."""
    if total <= 0:
        return 0
    return int(math.floor(part * 100 / total + 0.5))


# ------------------------- Books ------------------------- #
def book_statistics(books: List[Book]) -> Dict[str, Any]:
    total = len(books)
    available = sum(1 for b in books if b.available)
    return {
        "total_books": total,
        "available_books": available,
        "loaned_books": total - available,
        "availability_percentage": percentage(available, total),
    }


def attach_libraries(books: List[Book], libraries: List[Library]) -> List[Book]:
    """Fill in ``book.library`` from the library list when the service did not embed it."""
    by_id = {library.id: library for library in libraries}
    return [
        book if book.library is not None
        else book.model_copy(update={"library": by_id.get(book.library_id)})
        for book in books
    ]


# ------------------------- Libraries ------------------------- #
def library_statistics(libraries: List[Library]) -> Dict[str, Any]:
    return {
        "total_libraries": len(libraries),
        "total_books": sum(len(library.books or []) for library in libraries),
        "libraries_with_books": sum(1 for library in libraries if library.books),
    }


# ------------------------- Members ------------------------- #
def member_statistics(members: List[Member]) -> Dict[str, Any]:
    joined = [ts for ts in (parse_timestamp(m.created_at) for m in members) if ts is not None]
    return {
        "total_members": len(members),
        "members_with_phone": sum(1 for m in members if m.phone),
        "earliest_member_year": min(joined).year if joined else None,
    }


# ------------------------- Loans ------------------------- #
def enrich_loans(loans: List[Loan], books: List[Book], members: List[Member],
                 libraries: List[Library]) -> List[Loan]:
    """Join each loan with its book, member and the book's library."""
    books_by_id = {b.id: b for b in books}
    members_by_id = {m.id: m for m in members}
    libraries_by_id = {lib.id: lib for lib in libraries}

    enriched = []
    for loan in loans:
        book = books_by_id.get(loan.book_id) or loan.book
        member = members_by_id.get(loan.member_id) or loan.member
        library = libraries_by_id.get(book.library_id) if book and book.library_id else None
        enriched.append(loan.model_copy(update={
            "book": book,
            "member": member,
            "library": library or loan.library,
        }))
    return enriched


def is_overdue(loan: Loan, now: Optional[datetime] = None) -> bool:
    """An open loan whose target return date already passed."""
    if loan.is_returned:
        return False
    due = parse_timestamp(loan.return_date)
    if due is None:
        return False
    return due < (now or datetime.now(timezone.utc))


def library_label(loan: Loan) -> Optional[str]:
    if loan.library is not None:
        return loan.library.name
    if loan.book is not None and loan.book.library is not None:
        return loan.book.library.name
    return None


@dataclass
class LoanDashboard:
    active_loans: List[Loan] = field(default_factory=list)
    returned_loans: List[Loan] = field(default_factory=list)
    available_books: List[Book] = field(default_factory=list)
    available_books_by_library: Dict[str, List[Book]] = field(default_factory=dict)
    libraries_with_stock: int = 0
    overdue_loans: Optional[int] = None

    @property
    def return_history(self) -> List[Loan]:
        return self.returned_loans[:RETURN_HISTORY_SIZE]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "active_loans": len(self.active_loans),
            "returned_loans": len(self.returned_loans),
            "available_books": len(self.available_books),
            "libraries_with_stock": self.libraries_with_stock,
            "overdue_loans": self.overdue_loans,
        }


def loan_dashboard(loans: List[Loan], books: List[Book], members: List[Member],
                   libraries: List[Library], now: Optional[datetime] = None) -> LoanDashboard:
    """Summary shown on the loans screen.

    ``overdue_loans`` is None when no active loan has a usable return date,
    so the caller can show "N/A" rather than a misleading zero.
    """
    now = now or datetime.now(timezone.utc)
    enriched = enrich_loans(loans, books, members, libraries)

    active = [loan for loan in enriched if not loan.is_returned]
    returned = [loan for loan in enriched if loan.is_returned]

    available = [b for b in books if b.available]
    by_library: Dict[str, List[Book]] = {}
    for book in available:
        if book.library_id:
            by_library.setdefault(book.library_id, []).append(book)

    with_due_date = [loan for loan in active if parse_timestamp(loan.return_date) is not None]
    overdue = sum(1 for loan in with_due_date if is_overdue(loan, now))

    return LoanDashboard(
        active_loans=active,
        returned_loans=returned,
        available_books=available,
        available_books_by_library=by_library,
        libraries_with_stock=sum(1 for lib in libraries if by_library.get(lib.id)),
        overdue_loans=overdue if with_due_date else None,
    )
