"""Library Client - Services Package

This package contains the modules that talk to the remote library service:
- HTTP client abstraction and error normalization
- Authentication token state and persistent token store
- Resource endpoints (books, libraries, members, loans, auth)
"""

from libraryclient.services.auth import (
    AUTH_TOKEN_STORAGE_KEY,
    AuthTokenManager,
    TokenCell,
    TokenExtractionError,
    TokenStore,
    extract_auth_token,
    get_token_manager,
)
from libraryclient.services.endpoints import (
    AuthApi,
    BooksApi,
    LibrariesApi,
    LibraryService,
    LoansApi,
    MembersApi,
)
from libraryclient.services.http_client import ApiClient, ApiError, build_url

__all__ = [
    "AUTH_TOKEN_STORAGE_KEY",
    "ApiClient",
    "ApiError",
    "AuthApi",
    "AuthTokenManager",
    "BooksApi",
    "LibrariesApi",
    "LibraryService",
    "LoansApi",
    "MembersApi",
    "TokenCell",
    "TokenExtractionError",
    "TokenStore",
    "build_url",
    "extract_auth_token",
    "get_token_manager",
]
