import os
import json
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple
from rich.console import Console
from rich.table import Table
from rich.panel import Panel
from rich.markup import escape

from libraryclient.models import ApiModel, Book, Library, Loan, Member
from libraryclient.stats import LoanDashboard, is_overdue, library_label

# Environment variable to control CLI output mode
# Allowed values: 'plain' (default), 'json', 'rich'
OUTPUT_MODE_ENV = "LIB_CLI_OUTPUT"
OUTPUT_MODES = ("plain", "json", "rich")

_console = Console()

Column = Tuple[str, Callable[[Any], Any]]


def set_output_mode(mode: str) -> None:
    mode = (mode or "").lower().strip()
    if mode in OUTPUT_MODES:
        os.environ[OUTPUT_MODE_ENV] = mode


def get_output_mode() -> str:
    mode = os.environ.get(OUTPUT_MODE_ENV, "plain").lower()
    return mode if mode in OUTPUT_MODES else "plain"


def _text(value: Any, default: str = "-") -> str:
    if value is None or value == "":
        return default
    return str(value)


def _dump(record: ApiModel) -> Dict[str, Any]:
    return record.model_dump(by_alias=True, mode="json", exclude_none=True)


def _print_records(records: Sequence[ApiModel], title: str, columns: List[Column],
                   plain_line: Callable[[Any], str], empty_message: str) -> None:
    mode = get_output_mode()

    if mode == "json":
        print(json.dumps([_dump(r) for r in records], ensure_ascii=False))
        return

    if not records:
        print(empty_message)
        return

    if mode == "rich":
        table = Table(title=title, show_lines=True, header_style="bold cyan")
        for header, _ in columns:
            table.add_column(header)
        for record in records:
            table.add_row(*(escape(_text(getter(record))) for _, getter in columns))
        _console.print(table)
    else:
        for record in records:
            print(plain_line(record))


def _print_record(record: Optional[ApiModel], title: str, fields: List[Column], not_found: str) -> None:
    mode = get_output_mode()

    if record is None:
        print(not_found)
        return

    if mode == "json":
        print(json.dumps(_dump(record), ensure_ascii=False))
    elif mode == "rich":
        content = "\n".join(f"[bold]{label}:[/] {escape(_text(getter(record)))}" for label, getter in fields)
        _console.print(Panel.fit(content, title=title, border_style="blue"))
    else:
        for label, getter in fields:
            print(f"{label}: {_text(getter(record))}")


def print_stats_result(stats: Dict[str, Any], labels: Dict[str, str], title: str = "Stats") -> None:
    """Print a statistics dict; ``labels`` maps keys to display names and fixes the order.
    - plain: one 'Label: value' line per key
    - json: the dict itself
    - rich: Panel with the key metrics
    """
    mode = get_output_mode()

    if mode == "json":
        print(json.dumps(stats, ensure_ascii=False))
        return

    lines = [(label, _text(stats.get(key), "N/A")) for key, label in labels.items()]
    if mode == "rich":
        content = "\n".join(f"[bold]{label}:[/] {value}" for label, value in lines)
        _console.print(Panel.fit(content, title=title, border_style="blue"))
    else:
        for label, value in lines:
            print(f"{label}: {value}")


# ------------------------- Books ------------------------- #
def _availability(book: Book) -> str:
    return "Available" if book.available else "On loan"


def _book_library(book: Book) -> Optional[str]:
    return book.library.name if book.library else book.library_id


BOOK_COLUMNS: List[Column] = [
    ("ID", lambda b: b.id),
    ("Title", lambda b: b.title),
    ("Author", lambda b: b.author),
    ("ISBN", lambda b: b.isbn),
    ("Library", _book_library),
    ("Status", _availability),
]


def print_books(books: List[Book]) -> None:
    _print_records(
        books, "Books", BOOK_COLUMNS,
        lambda b: f"{b.id} - {b.title} by {b.author} [{_availability(b)}] ({_text(_book_library(b), 'no library')})",
        "No books found.",
    )


def print_book(book: Optional[Book]) -> None:
    fields = BOOK_COLUMNS + [("Added", lambda b: b.created_at)]
    _print_record(book, "Book", fields, "Book not found.")


# ------------------------- Libraries ------------------------- #
LIBRARY_COLUMNS: List[Column] = [
    ("ID", lambda lib: lib.id),
    ("Name", lambda lib: lib.name),
    ("Location", lambda lib: lib.location),
    ("Books", lambda lib: len(lib.books or [])),
]


def print_libraries(libraries: List[Library]) -> None:
    _print_records(
        libraries, "Libraries", LIBRARY_COLUMNS,
        lambda lib: f"{lib.id} - {lib.name} ({len(lib.books or [])} books)",
        "No libraries registered.",
    )


def print_library(library: Optional[Library]) -> None:
    fields = LIBRARY_COLUMNS + [("Description", lambda lib: lib.description)]
    _print_record(library, "Library", fields, "Library not found.")


# ------------------------- Members ------------------------- #
MEMBER_COLUMNS: List[Column] = [
    ("ID", lambda m: m.id),
    ("Name", lambda m: m.name),
    ("Email", lambda m: m.email),
    ("Phone", lambda m: m.phone),
]


def print_members(members: List[Member]) -> None:
    _print_records(
        members, "Members", MEMBER_COLUMNS,
        lambda m: f"{m.id} - {m.name} <{m.email}>",
        "No members registered.",
    )


def print_member(member: Optional[Member]) -> None:
    fields = MEMBER_COLUMNS + [("Joined", lambda m: m.created_at)]
    _print_record(member, "Member", fields, "Member not found.")


# ------------------------- Loans ------------------------- #
def _loan_status(loan: Loan) -> str:
    if loan.is_returned:
        return "Returned"
    return "Overdue" if is_overdue(loan) else "Active"


LOAN_COLUMNS: List[Column] = [
    ("ID", lambda loan: loan.id),
    ("Book", lambda loan: loan.book.title if loan.book else loan.book_id),
    ("Member", lambda loan: loan.member.name if loan.member else loan.member_id),
    ("Library", library_label),
    ("Loaned", lambda loan: loan.loan_date),
    ("Return", lambda loan: loan.return_date),
    ("Status", _loan_status),
]


def _loan_line(loan: Loan) -> str:
    book = loan.book.title if loan.book else f"book {loan.book_id}"
    member = loan.member.name if loan.member else f"member {loan.member_id}"
    return f"{loan.id} - {book} -> {member} [{_loan_status(loan)}]"


def print_loans(loans: List[Loan], title: str = "Loans", empty_message: str = "No loans found.") -> None:
    _print_records(loans, title, LOAN_COLUMNS, _loan_line, empty_message)


def print_loan(loan: Optional[Loan]) -> None:
    _print_record(loan, "Loan", LOAN_COLUMNS, "Loan not found.")


DASHBOARD_LABELS = {
    "active_loans": "Active Loans",
    "returned_loans": "Returned",
    "available_books": "Available Books",
    "libraries_with_stock": "Libraries With Available Books",
    "overdue_loans": "Overdue",
}


def print_loan_dashboard(dashboard: LoanDashboard) -> None:
    """Summary counters followed by the active loans and the latest returns."""
    mode = get_output_mode()

    if mode == "json":
        payload = dashboard.to_dict()
        payload["active"] = [_dump(loan) for loan in dashboard.active_loans]
        payload["history"] = [_dump(loan) for loan in dashboard.return_history]
        print(json.dumps(payload, ensure_ascii=False))
        return

    print_stats_result(dashboard.to_dict(), DASHBOARD_LABELS, title="Loans")
    print()
    print_loans(dashboard.active_loans, "Active Loans", "No active loans.")
    if dashboard.return_history:
        print()
        print_loans(dashboard.return_history, "Return History")
