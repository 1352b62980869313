import json
import logging
from typing import Any, Dict, Mapping, Optional, Union
from urllib.parse import quote, urlencode

import httpx

from libraryclient.config import settings
from libraryclient.services.auth import AuthTokenManager, get_token_manager

logger = logging.getLogger(__name__)

QueryValue = Union[str, int, float, bool, None]

DEFAULT_HEADERS = {
    "Accept": "application/json",
    "Content-Type": "application/json",
    # Every call must reach the service; nothing is served from a cache
    "Cache-Control": "no-store",
}


class ApiError(Exception):
    """Non-2xx answer from the library service"""

    def __init__(self, status_code: int, message: str):
        super().__init__(message)
        self.status_code = status_code
        self.message = message

    @property
    def is_unauthorized(self) -> bool:
        return self.status_code == 401

    def __repr__(self) -> str:
        return f"ApiError(status_code={self.status_code}, message={self.message!r})"


def _query_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def build_url(base_url: str, path: str, query: Optional[Mapping[str, QueryValue]] = None) -> str:
    """Join base address and path and append the non-blank query parameters."""
    base = base_url.rstrip("/")
    normalized_path = path if path.startswith("/") else f"/{path}"
    url = f"{base}{normalized_path}"

    if not query:
        return url

    params = []
    for key, value in query.items():
        if value is None:
            continue
        text = _query_value(value)
        if text.strip():
            params.append((key, text))

    if not params:
        return url
    return f"{url}?{urlencode(params, quote_via=quote)}"


def parse_response(response: httpx.Response) -> Any:
    """Turn a response into parsed JSON, raw text or None; raise ApiError on failure."""
    content_type = response.headers.get("content-type", "")
    is_json = "application/json" in content_type

    raw_text = response.text
    data: Any = None
    if raw_text:
        if is_json:
            try:
                data = json.loads(raw_text)
            except ValueError:
                data = raw_text
        else:
            data = raw_text

    if not response.is_success:
        message = f"HTTP {response.status_code}"
        if isinstance(data, dict) and data.get("message"):
            detail = data["message"]
            # Validation failures list one message per field
            message = ",".join(str(item) for item in detail) if isinstance(detail, list) else str(detail)
        elif isinstance(data, str) and data.strip():
            message = data.strip()
        elif raw_text and raw_text.strip():
            message = raw_text.strip()
        raise ApiError(response.status_code, message)

    return data


class ApiClient:
    """Single choke point for every call to the library service."""

    def __init__(self, base_url: Optional[str] = None,
                 token_manager: Optional[AuthTokenManager] = None,
                 transport: Optional[httpx.AsyncBaseTransport] = None,
                 timeout: Optional[float] = None):
        self.base_url = (base_url or settings.api_base_url).strip()
        self.token_manager = token_manager or get_token_manager()
        self._client = httpx.AsyncClient(
            transport=transport,
            timeout=timeout if timeout is not None else settings.request_timeout,
        )

    def build_url(self, path: str, query: Optional[Mapping[str, QueryValue]] = None) -> str:
        return build_url(self.base_url, path, query)

    def _headers(self) -> Dict[str, str]:
        headers = dict(DEFAULT_HEADERS)
        token = self.token_manager.get_token()
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    async def request(self, method: str, path: str,
                      query: Optional[Mapping[str, QueryValue]] = None,
                      body: Any = None) -> Any:
        url = self.build_url(path, query)
        content = json.dumps(body) if body is not None else None

        logger.debug(f"{method} {url}")
        try:
            response = await self._client.request(method, url, headers=self._headers(), content=content)
        except httpx.RequestError as e:
            logger.warning(f"{method} {url} failed: {e!r}")
            raise

        try:
            return parse_response(response)
        except ApiError as e:
            logger.info(f"{method} {url} -> {e.status_code}: {e.message}")
            raise

    async def get(self, path: str, query: Optional[Mapping[str, QueryValue]] = None) -> Any:
        return await self.request("GET", path, query=query)

    async def post(self, path: str, body: Any = None) -> Any:
        return await self.request("POST", path, body=body)

    async def put(self, path: str, body: Any = None) -> Any:
        return await self.request("PUT", path, body=body)

    async def patch(self, path: str, body: Any = None) -> Any:
        return await self.request("PATCH", path, body=body)

    async def delete(self, path: str) -> Any:
        return await self.request("DELETE", path)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()
