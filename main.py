import asyncio
import logging
from functools import wraps
from typing import Awaitable, Callable, Optional, TypeVar

import httpx
import typer
from pydantic import ValidationError

from libraryclient.config import settings
from libraryclient.models import (
    BookCreate,
    BookQuery,
    BookUpdate,
    LibraryCreate,
    LibraryUpdate,
    LoanCreate,
    LoanQuery,
    MemberCreate,
    MemberUpdate,
)
from libraryclient.services import (
    ApiClient,
    ApiError,
    LibraryService,
    TokenExtractionError,
    get_token_manager,
)
from libraryclient.stats import (
    attach_libraries,
    book_statistics,
    enrich_loans,
    library_statistics,
    loan_dashboard,
    member_statistics,
)
from utils.ui_helpers import (
    print_book,
    print_books,
    print_libraries,
    print_library,
    print_loan,
    print_loan_dashboard,
    print_loans,
    print_member,
    print_members,
    print_stats_result,
    set_output_mode,
)
from utils.validators import MissingFieldError, TextValidator

SESSION_EXPIRED_MESSAGE = "Your session has expired. Run 'login' to sign in again."

logger = logging.getLogger(__name__)

T = TypeVar("T")


def build_service() -> LibraryService:
    """Service bound to the configured backend and the shared token manager."""
    return LibraryService(ApiClient(token_manager=get_token_manager()))


def run_with_service(action: Callable[[LibraryService], Awaitable[T]]) -> T:
    """Run one command's calls on a fresh event loop and client."""
    async def _main() -> T:
        async with build_service() as service:
            return await action(service)

    return asyncio.run(_main())


def session_guard(func):
    """Turn service failures into messages; a 401 also ends the local session."""
    @wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except ApiError as e:
            if e.is_unauthorized:
                get_token_manager().clear_token()
                print(SESSION_EXPIRED_MESSAGE)
            else:
                print(f"Error: {e.message}")
            raise typer.Exit(code=1)
        except (MissingFieldError, TokenExtractionError) as e:
            print(f"Error: {e}")
            raise typer.Exit(code=1)
        except ValidationError as e:
            logger.debug(f"Unexpected response shape: {e}")
            print("Error: the library service sent a response this client cannot read.")
            raise typer.Exit(code=1)
        except httpx.RequestError as e:
            print(f"Could not reach the library service at {settings.api_base_url}: {e}")
            raise typer.Exit(code=1)
    return wrapper


def _require_changes(changes: dict) -> dict:
    if not changes:
        print("Nothing to update. Provide at least one field.")
        raise typer.Exit(code=1)
    return changes


# --- Typer CLI Application ---
app = typer.Typer(help=settings.app_name)
books_app = typer.Typer(help="Browse and manage the book catalogue.")
libraries_app = typer.Typer(help="Browse and manage libraries.")
members_app = typer.Typer(help="Browse and manage members.")
loans_app = typer.Typer(help="Lend and return books.")
app.add_typer(books_app, name="books")
app.add_typer(libraries_app, name="libraries")
app.add_typer(members_app, name="members")
app.add_typer(loans_app, name="loans")


@app.callback()
def _global_options(
    output: Optional[str] = typer.Option(
        None,
        "--output",
        "-o",
        help="Output format: plain | json | rich (default: plain)",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log every request"),
):
    """Global CLI options (output mode, logging)."""
    if output:
        set_output_mode(output)
    logging.basicConfig(
        level=logging.DEBUG if verbose else settings.log_level,
        format="%(levelname)s %(name)s: %(message)s",
        force=True,
    )


# ------------------------- Session ------------------------- #
@app.command("login")
@session_guard
def cli_login(
    email: Optional[str] = typer.Option(None, "--email", "-e", help="Account email"),
    password: Optional[str] = typer.Option(None, "--password", "-p", help="Account password"),
):
    """Sign in and remember the access token."""
    if email is None:
        email = typer.prompt("Email")
    if password is None:
        password = typer.prompt("Password", hide_input=True)
    fields = TextValidator.require(email=email, password=password)

    try:
        run_with_service(lambda service: service.auth.login(fields["email"], password))
    except ApiError as e:
        # Rejected credentials are not an expired session
        print(f"Login failed: {e.message}")
        raise typer.Exit(code=1)
    print(f"Logged in as {fields['email']}.")


@app.command("logout")
def cli_logout():
    """Forget the stored access token."""
    get_token_manager().clear_token()
    print("Logged out.")


@app.command("status")
def cli_status():
    """Show the backend address and whether a token is stored."""
    print(f"Service: {settings.api_base_url}")
    if get_token_manager().has_token:
        print("Logged in.")
    else:
        print("Not logged in. Run 'login' to sign in.")


# ------------------------- Books ------------------------- #
BOOK_STATS_LABELS = {
    "total_books": "Total Books",
    "available_books": "Available",
    "loaned_books": "On Loan",
    "availability_percentage": "Availability %",
}


@books_app.command("list")
@session_guard
def cli_books_list(
    title: Optional[str] = typer.Option(None, "--title", help="Filter by title"),
    author: Optional[str] = typer.Option(None, "--author", help="Filter by author"),
    library_id: Optional[str] = typer.Option(None, "--library-id", help="Filter by library"),
):
    """List books together with the library that holds them."""
    query = BookQuery(title=title, author=author, library_id=library_id)

    async def _load(service: LibraryService):
        books, libraries = await asyncio.gather(
            service.books.get_all(query),
            service.libraries.get_all(),
        )
        return attach_libraries(books, libraries)

    print_books(run_with_service(_load))


@books_app.command("show")
@session_guard
def cli_books_show(book_id: str):
    """Show a single book."""
    async def _load(service: LibraryService):
        book, libraries = await asyncio.gather(
            service.books.get_by_id(book_id),
            service.libraries.get_all(),
        )
        return attach_libraries([book], libraries)[0] if book else None

    print_book(run_with_service(_load))


@books_app.command("add")
@session_guard
def cli_books_add(
    title: str = typer.Option(..., "--title", help="Book title"),
    author: str = typer.Option(..., "--author", help="Book author"),
    isbn: Optional[str] = typer.Option(None, "--isbn", help="ISBN (optional)"),
    library_id: Optional[str] = typer.Option(None, "--library-id", help="Owning library (default: first one)"),
):
    """Add a book to one of the libraries."""
    fields = TextValidator.require(title=title, author=author)
    extra = TextValidator.optional(isbn=isbn, library_id=library_id)

    async def _create(service: LibraryService):
        target = extra.get("library_id")
        if target is None:
            libraries = await service.libraries.get_all()
            if not libraries:
                return None
            target = libraries[0].id
        await service.books.create(BookCreate(library_id=target, isbn=extra.get("isbn"), **fields))
        return target

    target = run_with_service(_create)
    if target is None:
        print("No libraries registered. Create a library before adding books.")
        raise typer.Exit(code=1)
    print(f"Successfully added: {fields['title']} by {fields['author']}")


@books_app.command("update")
@session_guard
def cli_books_update(
    book_id: str,
    title: Optional[str] = typer.Option(None, "--title"),
    author: Optional[str] = typer.Option(None, "--author"),
    isbn: Optional[str] = typer.Option(None, "--isbn"),
    library_id: Optional[str] = typer.Option(None, "--library-id"),
):
    """Change some fields of a book."""
    changes = _require_changes(
        TextValidator.optional(title=title, author=author, isbn=isbn, library_id=library_id)
    )
    run_with_service(lambda service: service.books.update(book_id, BookUpdate(**changes)))
    print(f"Book {book_id} updated.")


@books_app.command("delete")
@session_guard
def cli_books_delete(book_id: str, yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation")):
    """Delete a book."""
    if not yes:
        typer.confirm(f"Are you sure you want to delete book {book_id}?", abort=True)
    run_with_service(lambda service: service.books.delete(book_id))
    print(f"Book {book_id} has been removed.")


@books_app.command("stats")
@session_guard
def cli_books_stats():
    """Catalogue totals and availability."""
    books = run_with_service(lambda service: service.books.get_all())
    print_stats_result(book_statistics(books), BOOK_STATS_LABELS, title="Books")


# ------------------------- Libraries ------------------------- #
LIBRARY_STATS_LABELS = {
    "total_libraries": "Total Libraries",
    "total_books": "Total Books",
    "libraries_with_books": "Libraries With Books",
}


@libraries_app.command("list")
@session_guard
def cli_libraries_list():
    """List libraries."""
    print_libraries(run_with_service(lambda service: service.libraries.get_all()))


@libraries_app.command("show")
@session_guard
def cli_libraries_show(library_id: str):
    """Show a single library."""
    print_library(run_with_service(lambda service: service.libraries.get_by_id(library_id)))


@libraries_app.command("add")
@session_guard
def cli_libraries_add(
    name: str = typer.Option(..., "--name", help="Library name"),
    description: Optional[str] = typer.Option(None, "--description"),
    location: Optional[str] = typer.Option(None, "--location"),
):
    """Register a library."""
    fields = TextValidator.require(name=name)
    fields.update(TextValidator.optional(description=description, location=location))
    run_with_service(lambda service: service.libraries.create(LibraryCreate(**fields)))
    print(f"Library created: {fields['name']}")


@libraries_app.command("update")
@session_guard
def cli_libraries_update(
    library_id: str,
    name: Optional[str] = typer.Option(None, "--name"),
    description: Optional[str] = typer.Option(None, "--description"),
    location: Optional[str] = typer.Option(None, "--location"),
):
    """Change some fields of a library."""
    changes = _require_changes(
        TextValidator.optional(name=name, description=description, location=location)
    )
    run_with_service(lambda service: service.libraries.update(library_id, LibraryUpdate(**changes)))
    print(f"Library {library_id} updated.")


@libraries_app.command("delete")
@session_guard
def cli_libraries_delete(library_id: str, yes: bool = typer.Option(False, "--yes", "-y")):
    """Delete a library."""
    if not yes:
        typer.confirm(f"Are you sure you want to delete library {library_id}?", abort=True)
    run_with_service(lambda service: service.libraries.delete(library_id))
    print(f"Library {library_id} has been removed.")


@libraries_app.command("stats")
@session_guard
def cli_libraries_stats():
    """Library totals."""
    libraries = run_with_service(lambda service: service.libraries.get_all())
    print_stats_result(library_statistics(libraries), LIBRARY_STATS_LABELS, title="Libraries")


# ------------------------- Members ------------------------- #
MEMBER_STATS_LABELS = {
    "total_members": "Total Members",
    "members_with_phone": "With Phone",
    "earliest_member_year": "Member Since",
}


@members_app.command("list")
@session_guard
def cli_members_list():
    """List members."""
    print_members(run_with_service(lambda service: service.members.get_all()))


@members_app.command("show")
@session_guard
def cli_members_show(member_id: str):
    """Show a single member."""
    print_member(run_with_service(lambda service: service.members.get_by_id(member_id)))


@members_app.command("add")
@session_guard
def cli_members_add(
    name: str = typer.Option(..., "--name", help="Full name"),
    email: str = typer.Option(..., "--email", help="Email address"),
    phone: Optional[str] = typer.Option(None, "--phone"),
    password: Optional[str] = typer.Option(None, "--password", help="Initial password (optional)"),
):
    """Register a member."""
    fields = TextValidator.require(name=name, email=email)
    fields.update(TextValidator.optional(phone=phone))
    run_with_service(lambda service: service.members.create(MemberCreate(password=password, **fields)))
    print(f"Member created: {fields['name']}")


@members_app.command("update")
@session_guard
def cli_members_update(
    member_id: str,
    name: Optional[str] = typer.Option(None, "--name"),
    email: Optional[str] = typer.Option(None, "--email"),
    phone: Optional[str] = typer.Option(None, "--phone"),
    password: Optional[str] = typer.Option(None, "--password"),
):
    """Change a member; the full record is sent back with PUT."""
    changes = TextValidator.optional(name=name, email=email, phone=phone)
    if not password:
        _require_changes(changes)

    async def _replace(service: LibraryService):
        current = await service.members.get_by_id(member_id)
        record = {"name": current.name, "email": current.email, "phone": current.phone} if current else {}
        record.update(changes)
        fields = TextValidator.require(name=record.get("name"), email=record.get("email"))
        update = MemberUpdate(phone=record.get("phone"), password=password, **fields)
        return await service.members.update(member_id, update)

    run_with_service(_replace)
    print(f"Member {member_id} updated.")


@members_app.command("delete")
@session_guard
def cli_members_delete(member_id: str, yes: bool = typer.Option(False, "--yes", "-y")):
    """Delete a member."""
    if not yes:
        typer.confirm(f"Are you sure you want to delete member {member_id}?", abort=True)
    run_with_service(lambda service: service.members.delete(member_id))
    print(f"Member {member_id} has been removed.")


@members_app.command("stats")
@session_guard
def cli_members_stats():
    """Member totals."""
    members = run_with_service(lambda service: service.members.get_all())
    print_stats_result(member_statistics(members), MEMBER_STATS_LABELS, title="Members")


# ------------------------- Loans ------------------------- #
async def _load_loan_context(service: LibraryService, query: Optional[LoanQuery] = None):
    return await asyncio.gather(
        service.loans.get_all(query),
        service.books.get_all(),
        service.members.get_all(),
        service.libraries.get_all(),
    )


@loans_app.command("list")
@session_guard
def cli_loans_list(
    book_id: Optional[str] = typer.Option(None, "--book-id"),
    member_id: Optional[str] = typer.Option(None, "--member-id"),
    active_only: bool = typer.Option(False, "--active-only", help="Only loans not yet returned"),
):
    """List loans with their book, member and library."""
    query = LoanQuery(book_id=book_id, member_id=member_id, active_only=True if active_only else None)
    loans, books, members, libraries = run_with_service(lambda service: _load_loan_context(service, query))
    print_loans(enrich_loans(loans, books, members, libraries))


@loans_app.command("show")
@session_guard
def cli_loans_show(loan_id: str):
    """Show a single loan with its book, member and library."""
    async def _load(service: LibraryService):
        loan, books, members, libraries = await asyncio.gather(
            service.loans.get_by_id(loan_id),
            service.books.get_all(),
            service.members.get_all(),
            service.libraries.get_all(),
        )
        return enrich_loans([loan], books, members, libraries)[0] if loan else None

    print_loan(run_with_service(_load))


@loans_app.command("create")
@session_guard
def cli_loans_create(book_id: str, member_id: str):
    """Lend a book to a member."""
    fields = TextValidator.require(book_id=book_id, member_id=member_id)
    run_with_service(lambda service: service.loans.create(LoanCreate(**fields)))
    print(f"Loan created: book {fields['book_id']} -> member {fields['member_id']}")


@loans_app.command("return")
@session_guard
def cli_loans_return(loan_id: str):
    """Mark a loan as returned."""
    run_with_service(lambda service: service.loans.return_loan(loan_id))
    print(f"Loan {loan_id} returned.")


@loans_app.command("dashboard")
@session_guard
def cli_loans_dashboard():
    """Loan counters, active loans and the latest returns."""
    loans, books, members, libraries = run_with_service(_load_loan_context)
    print_loan_dashboard(loan_dashboard(loans, books, members, libraries))


if __name__ == "__main__":
    app()
