import json
import logging
import os
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from libraryclient.config import settings

logger = logging.getLogger(__name__)

AUTH_TOKEN_STORAGE_KEY = "library-auth-token"

# Backends disagree on the field name; the first non-blank match wins
TOKEN_RESPONSE_KEYS = ("token", "accessToken", "access_token")

AuthTokenProvider = Callable[[], Optional[str]]


class TokenExtractionError(Exception):
    """Raised when a login response carries no recognizable token field"""
    pass


def extract_auth_token(payload: Any) -> Optional[str]:
    """Return the first non-blank token found in a login response, or None."""
    if not isinstance(payload, dict):
        return None

    for key in TOKEN_RESPONSE_KEYS:
        value = payload.get(key)
        if isinstance(value, str) and value.strip():
            return value

    return None


class TokenCell:
    """Single in-memory slot holding the current bearer token."""

    def __init__(self, token: Optional[str] = None):
        self._token = token

    def get(self) -> Optional[str]:
        return self._token

    def set(self, token: Optional[str]) -> None:
        self._token = token

    def clear(self) -> None:
        self._token = None


class TokenStore:
    """Small JSON key/value file that keeps the token between CLI runs.

    Read and write failures are logged and otherwise ignored so that a broken
    store never turns into a failed request.
    """

    def __init__(self, path: Optional[Path] = None):
        self.path = Path(path) if path else settings.auth_token_file

    def _load(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        with open(self.path, "r", encoding="utf-8") as f:
            data = json.load(f)
        return data if isinstance(data, dict) else {}

    def _save(self, data: Dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
        os.chmod(self.path, 0o600)

    def get_item(self, key: str) -> Optional[str]:
        try:
            value = self._load().get(key)
        except (OSError, ValueError) as e:
            logger.warning(f"Could not read token store {self.path}: {e}")
            return None
        return value if isinstance(value, str) and value else None

    def set_item(self, key: str, value: str) -> None:
        try:
            data = self._load()
            data[key] = value
            self._save(data)
        except (OSError, ValueError) as e:
            logger.warning(f"Could not update token store {self.path}: {e}")

    def remove_item(self, key: str) -> None:
        try:
            data = self._load()
            if key not in data:
                return
            del data[key]
            self._save(data)
        except (OSError, ValueError) as e:
            logger.warning(f"Could not update token store {self.path}: {e}")


class AuthTokenManager:
    """Owns the bearer token: in-memory cell, persistent mirror and provider override."""

    def __init__(self, cell: Optional[TokenCell] = None, store: Optional[TokenStore] = None,
                 storage_key: str = AUTH_TOKEN_STORAGE_KEY):
        self.cell = cell or TokenCell()
        self.store = store
        self.storage_key = storage_key
        self._provider: Optional[AuthTokenProvider] = None

    def configure_provider(self, provider: Optional[AuthTokenProvider]) -> None:
        """Install (or remove with None) a callable consulted before the stored token."""
        self._provider = provider

    def get_token(self) -> Optional[str]:
        if self._provider is not None:
            try:
                provided = self._provider()
            except Exception as e:
                logger.warning(f"Token provider failed, falling back to stored token: {e}")
                provided = None
            # Provider values are per-call substitutes, never written back
            if isinstance(provided, str) and provided:
                return provided

        token = self.cell.get()
        if token:
            return token

        if self.store is None:
            return None

        stored = self.store.get_item(self.storage_key)
        self.cell.set(stored)
        return stored

    def set_token(self, token: str) -> None:
        self.cell.set(token)
        if self.store is not None:
            self.store.set_item(self.storage_key, token)

    def clear_token(self) -> None:
        self.cell.clear()
        if self.store is not None:
            self.store.remove_item(self.storage_key)

    @property
    def has_token(self) -> bool:
        return bool(self.get_token())


# Process-wide token manager
_token_manager: Optional[AuthTokenManager] = None


def get_token_manager() -> AuthTokenManager:
    """Return the shared token manager, creating it on first use."""
    global _token_manager
    if _token_manager is None:
        _token_manager = AuthTokenManager(store=TokenStore())
    return _token_manager


def reset_token_manager() -> None:
    global _token_manager
    _token_manager = None
