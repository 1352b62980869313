import logging
from typing import Any, Dict, List, Optional, Type, TypeVar

from pydantic import ValidationError

from libraryclient.models import (
    ApiModel,
    Book,
    BookQuery,
    Library,
    Loan,
    LoanQuery,
    Member,
    Payload,
    to_payload,
)
from libraryclient.services.auth import TokenExtractionError, extract_auth_token
from libraryclient.services.http_client import ApiClient

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=ApiModel)


def _parse_one(model: Type[ModelT], data: Any) -> Optional[ModelT]:
    """Validate a record body; text or an acknowledgement object yields None."""
    if not isinstance(data, dict):
        return None
    try:
        return model.model_validate(data)
    except ValidationError:
        logger.debug(f"Response is not a {model.__name__} record: {data!r}")
        return None


def _parse_many(model: Type[ModelT], data: Any) -> List[ModelT]:
    if not isinstance(data, list):
        return []
    return [model.model_validate(item) for item in data]


def _without_blank_password(data: Optional[Payload]) -> Dict[str, Any]:
    payload = to_payload(data)
    if not payload.get("password"):
        payload.pop("password", None)
    return payload


class AuthApi:
    """Login/logout against /auth and the token lifecycle that goes with it."""

    def __init__(self, client: ApiClient):
        self.client = client
        self.tokens = client.token_manager

    async def login(self, email: str, password: str) -> str:
        response = await self.client.post("/auth/login", {"email": email, "password": password})
        token = extract_auth_token(response)
        if not token:
            raise TokenExtractionError("Authentication token not found in the server response")

        self.tokens.set_token(token)
        logger.info(f"Logged in as {email}")
        return token

    def logout(self) -> None:
        self.tokens.clear_token()

    def get_token(self) -> Optional[str]:
        return self.tokens.get_token()


class BooksApi:
    def __init__(self, client: ApiClient):
        self.client = client

    async def get_all(self, query: Optional[Payload] = None) -> List[Book]:
        data = await self.client.get("/books", to_payload(query or BookQuery()))
        return _parse_many(Book, data)

    async def get_by_id(self, book_id: str) -> Optional[Book]:
        return _parse_one(Book, await self.client.get(f"/books/{book_id}"))

    async def create(self, data: Payload) -> Optional[Book]:
        return _parse_one(Book, await self.client.post("/books", to_payload(data)))

    async def update(self, book_id: str, data: Payload) -> Optional[Book]:
        """Partial update; only the fields present in ``data`` are sent."""
        return _parse_one(Book, await self.client.patch(f"/books/{book_id}", to_payload(data)))

    async def delete(self, book_id: str) -> None:
        await self.client.delete(f"/books/{book_id}")


class LibrariesApi:
    def __init__(self, client: ApiClient):
        self.client = client

    async def get_all(self) -> List[Library]:
        return _parse_many(Library, await self.client.get("/libraries"))

    async def get_by_id(self, library_id: str) -> Optional[Library]:
        return _parse_one(Library, await self.client.get(f"/libraries/{library_id}"))

    async def create(self, data: Payload) -> Optional[Library]:
        return _parse_one(Library, await self.client.post("/libraries", to_payload(data)))

    async def update(self, library_id: str, data: Payload) -> Optional[Library]:
        return _parse_one(Library, await self.client.patch(f"/libraries/{library_id}", to_payload(data)))

    async def delete(self, library_id: str) -> None:
        await self.client.delete(f"/libraries/{library_id}")


class MembersApi:
    """Members use PUT for updates and never send an empty password."""

    def __init__(self, client: ApiClient):
        self.client = client

    async def get_all(self) -> List[Member]:
        return _parse_many(Member, await self.client.get("/members"))

    async def get_by_id(self, member_id: str) -> Optional[Member]:
        return _parse_one(Member, await self.client.get(f"/members/{member_id}"))

    async def create(self, data: Payload) -> Optional[Member]:
        return _parse_one(Member, await self.client.post("/members", _without_blank_password(data)))

    async def update(self, member_id: str, data: Payload) -> Optional[Member]:
        return _parse_one(Member, await self.client.put(f"/members/{member_id}", _without_blank_password(data)))

    async def delete(self, member_id: str) -> None:
        await self.client.delete(f"/members/{member_id}")


class LoansApi:
    def __init__(self, client: ApiClient):
        self.client = client

    async def get_all(self, query: Optional[Payload] = None) -> List[Loan]:
        data = await self.client.get("/loans", to_payload(query or LoanQuery()))
        return _parse_many(Loan, data)

    async def get_by_id(self, loan_id: str) -> Optional[Loan]:
        return _parse_one(Loan, await self.client.get(f"/loans/{loan_id}"))

    async def create(self, data: Payload) -> Optional[Loan]:
        return _parse_one(Loan, await self.client.post("/loans", to_payload(data)))

    async def return_loan(self, loan_id: str) -> Optional[Loan]:
        return _parse_one(Loan, await self.client.post(f"/loans/{loan_id}/return"))


class LibraryService:
    """All resource endpoints bound to one ApiClient."""

    def __init__(self, client: ApiClient):
        self.client = client
        self.auth = AuthApi(client)
        self.books = BooksApi(client)
        self.libraries = LibrariesApi(client)
        self.members = MembersApi(client)
        self.loans = LoansApi(client)

    async def aclose(self) -> None:
        await self.client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()
