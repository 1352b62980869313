import json
import logging

import httpx
import pytest
import pytest_asyncio

from libraryclient.config import settings
from libraryclient.services import ApiClient, AuthTokenManager, LibraryService, TokenStore
from libraryclient.services.auth import reset_token_manager
from utils.ui_helpers import OUTPUT_MODE_ENV

BASE_URL = "https://library.test"


class FakeBackend:
    """Canned answers keyed by (method, path); every request is recorded."""

    def __init__(self):
        self.requests = []
        self.routes = {}

    def add(self, method, path, status=200, json_body=None, text=None, content_type=None):
        self.routes[(method.upper(), path)] = (status, json_body, text, content_type)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        route = self.routes.get((request.method, request.url.path))
        if route is None:
            return httpx.Response(404, json={"message": f"No route for {request.method} {request.url.path}"})

        status, json_body, text, content_type = route
        if json_body is not None:
            return httpx.Response(status, json=json_body)
        if text is not None:
            headers = {"content-type": content_type or "text/plain; charset=utf-8"}
            return httpx.Response(status, content=text.encode("utf-8"), headers=headers)
        return httpx.Response(status)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)

    @property
    def last(self) -> httpx.Request:
        return self.requests[-1]

    def last_json(self):
        return json.loads(self.last.content) if self.last.content else None


@pytest.fixture(autouse=True)
def isolated_environment(tmp_path, monkeypatch):
    # Never touch the real ~/.library-cli or leak the output mode between tests
    monkeypatch.setattr(settings, "auth_token_file", tmp_path / "auth.json")
    monkeypatch.setenv(OUTPUT_MODE_ENV, "plain")
    handlers, level = logging.root.handlers[:], logging.root.level
    reset_token_manager()
    yield
    reset_token_manager()
    # The CLI callback reconfigures the root logger on every invocation
    logging.root.handlers[:] = handlers
    logging.root.setLevel(level)


@pytest.fixture
def token_store(tmp_path):
    return TokenStore(tmp_path / "token-store.json")


@pytest.fixture
def token_manager(token_store):
    return AuthTokenManager(store=token_store)


@pytest.fixture
def backend():
    return FakeBackend()


@pytest_asyncio.fixture
async def api_client(backend, token_manager):
    client = ApiClient(base_url=BASE_URL, token_manager=token_manager, transport=backend.transport)
    yield client
    await client.aclose()


@pytest_asyncio.fixture
async def service(api_client):
    return LibraryService(api_client)
