import logging
from typing import Any, Dict, List, Optional

import httpx
from pydantic_core import to_jsonable_python

from client.app.credentials import CredentialProvider

logger = logging.getLogger(__name__)


class ApiError(Exception):
    """A failed API call. `status_code` is None when the server was never reached."""

    def __init__(self, message: str, status_code: Optional[int] = None, errors: Optional[Dict[str, List[str]]] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.errors = errors or {}


class ApiClient:
    def __init__(
            self,
            base_url: str,
            credentials: CredentialProvider,
            timeout: float = 10.0,
            transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.credentials = credentials
        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            transport=transport,
            headers={"Accept": "application/json"},
        )

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        await self.aclose()

    async def aclose(self):
        await self._client.aclose()

    async def request(self, method: str, endpoint: str, params=None, json: Any = None) -> Any:
        headers = {}
        token = self.credentials.get_token()
        if token:
            headers["Authorization"] = f"Bearer {token}"

        try:
            response = await self._client.request(
                method,
                endpoint,
                params=params,
                json=to_jsonable_python(json) if json is not None else None,
                headers=headers,
            )
        except httpx.HTTPError as exc:
            logger.warning(f"{method} {endpoint} failed: {exc}")
            raise ApiError(f"Network error: {exc}") from exc

        if response.is_error:
            message, errors = self._error_details(response)
            raise ApiError(message, response.status_code, errors)

        if not response.content:
            return None
        return response.json()

    @staticmethod
    def _error_details(response: httpx.Response):
        try:
            body = response.json()
        except ValueError:
            body = None

        if isinstance(body, dict) and body.get("message"):
            return body["message"], body.get("errors") or {}
        return f"Request failed with status {response.status_code}", {}

    async def get(self, endpoint: str, params=None) -> Any:
        return await self.request("GET", endpoint, params=params)

    async def post(self, endpoint: str, json: Any = None) -> Any:
        return await self.request("POST", endpoint, json=json)

    async def put(self, endpoint: str, json: Any = None) -> Any:
        return await self.request("PUT", endpoint, json=json)

    async def delete(self, endpoint: str) -> Any:
        return await self.request("DELETE", endpoint)
