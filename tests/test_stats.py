from datetime import datetime, timezone

from libraryclient.models import Book, Library, Loan, Member
from libraryclient.stats import (
    attach_libraries,
    book_statistics,
    enrich_loans,
    is_overdue,
    library_label,
    library_statistics,
    loan_dashboard,
    member_statistics,
    parse_timestamp,
    percentage,
)

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)

CENTRAL = Library(id="lib1", name="Central")
ANNEX = Library(id="lib2", name="Annex")
EMPTY = Library(id="lib3", name="Empty Shelf")


def _book(book_id, available=True, library_id="lib1", **kwargs):
    return Book(id=book_id, title=f"Title {book_id}", author="Author", available=available,
                library_id=library_id, **kwargs)


def _loan(loan_id, book_id, member_id="m1", returned=False, return_date=None):
    return Loan(id=loan_id, book_id=book_id, member_id=member_id, is_returned=returned,
                return_date=return_date, loan_date="2024-05-01")


def test_parse_timestamp_variants():
    assert parse_timestamp("2024-05-01T10:00:00Z") == datetime(2024, 5, 1, 10, tzinfo=timezone.utc)
    assert parse_timestamp("2024-05-01") == datetime(2024, 5, 1, tzinfo=timezone.utc)
    assert parse_timestamp("not a date") is None
    assert parse_timestamp("") is None
    assert parse_timestamp(None) is None


def test_percentage_rounds_half_up():
    assert percentage(1, 8) == 13  # 12.5
    assert percentage(2, 3) == 67
    assert percentage(0, 0) == 0


def test_book_statistics():
    books = [_book("1"), _book("2", available=False), _book("3")]
    assert book_statistics(books) == {
        "total_books": 3,
        "available_books": 2,
        "loaned_books": 1,
        "availability_percentage": 67,
    }


def test_book_statistics_empty():
    assert book_statistics([])["availability_percentage"] == 0


def test_attach_libraries_fills_missing_only():
    embedded = Library(id="lib2", name="Embedded copy")
    books = [_book("1"), _book("2", library=embedded, library_id="lib2"), _book("3", library_id="gone")]

    attached = attach_libraries(books, [CENTRAL, ANNEX])

    assert attached[0].library.name == "Central"
    assert attached[1].library.name == "Embedded copy"
    assert attached[2].library is None
    assert books[0].library is None


def test_library_statistics():
    libraries = [
        Library(id="a", name="A", books=[_book("1"), _book("2")]),
        Library(id="b", name="B", books=[]),
        Library(id="c", name="C"),
    ]
    assert library_statistics(libraries) == {
        "total_libraries": 3,
        "total_books": 2,
        "libraries_with_books": 1,
    }


def test_member_statistics():
    members = [
        Member(id="1", name="Ada", email="a@x.io", phone="555", created_at="2021-03-01T00:00:00Z"),
        Member(id="2", name="Bob", email="b@x.io", created_at="2019-11-20"),
        Member(id="3", name="Cy", email="c@x.io", created_at="garbage"),
    ]
    assert member_statistics(members) == {
        "total_members": 3,
        "members_with_phone": 1,
        "earliest_member_year": 2019,
    }
    assert member_statistics([])["earliest_member_year"] is None


def test_enrich_loans_joins_book_member_and_library():
    books = [_book("b1"), _book("b2", library_id="lib2")]
    members = [Member(id="m1", name="Ada", email="a@x.io")]
    loans = [_loan("l1", "b1"), _loan("l2", "b2", member_id="ghost"), _loan("l3", "missing")]

    enriched = enrich_loans(loans, books, members, [CENTRAL, ANNEX])

    assert enriched[0].book.id == "b1"
    assert enriched[0].member.name == "Ada"
    assert library_label(enriched[0]) == "Central"
    assert enriched[1].member is None
    assert library_label(enriched[1]) == "Annex"
    assert enriched[2].book is None
    assert library_label(enriched[2]) is None


def test_library_label_falls_back_to_embedded_book_library():
    loan = Loan(id="l1", book_id="b1", member_id="m1", book=_book("b1", library=ANNEX))
    assert library_label(loan) == "Annex"


def test_is_overdue():
    assert is_overdue(_loan("l1", "b1", return_date="2024-05-20"), NOW)
    assert not is_overdue(_loan("l2", "b1", return_date="2024-07-01"), NOW)
    assert not is_overdue(_loan("l3", "b1", returned=True, return_date="2024-05-20"), NOW)
    assert not is_overdue(_loan("l4", "b1", return_date="n/a"), NOW)
    assert not is_overdue(_loan("l5", "b1"), NOW)


def test_loan_dashboard_counts():
    books = [
        _book("b1", available=False),
        _book("b2"),
        _book("b3", library_id="lib2"),
        _book("b4", available=False, library_id="lib2"),
    ]
    loans = [
        _loan("l1", "b1", return_date="2024-05-20"),
        _loan("l2", "b4", return_date="2024-08-01"),
    ] + [_loan(f"r{i}", "b2", returned=True) for i in range(7)]

    dashboard = loan_dashboard(loans, books, [], [CENTRAL, ANNEX, EMPTY], now=NOW)

    assert dashboard.to_dict() == {
        "active_loans": 2,
        "returned_loans": 7,
        "available_books": 2,
        "libraries_with_stock": 2,
        "overdue_loans": 1,
    }
    assert sorted(dashboard.available_books_by_library) == ["lib1", "lib2"]
    assert len(dashboard.return_history) == 5
    assert dashboard.active_loans[0].book.id == "b1"


def test_loan_dashboard_overdue_unknown_without_due_dates():
    dashboard = loan_dashboard([_loan("l1", "b1")], [_book("b1", available=False)], [], [CENTRAL], now=NOW)

    assert dashboard.overdue_loans is None
    assert dashboard.libraries_with_stock == 0


def test_loan_dashboard_empty():
    dashboard = loan_dashboard([], [], [], [])
    assert dashboard.to_dict()["active_loans"] == 0
    assert dashboard.return_history == []
