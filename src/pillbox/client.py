"""HTTP client for resources behind stored L402 credentials.

Sends ``Authorization: L402 <macaroon>:<preimage>`` with every request and
knows the two ways a credential is used: downloading a file and running
GraphQL queries.

Usage:
    async with AsyncL402Client() as client:
        path = await client.download_file(store.get(1))
        result = await client.graphql(store.get(2), "{ viewer { id } }")
"""

from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from typing import Any
from urllib.parse import unquote, urlparse

import httpx

from pillbox.config import Settings, load_settings
from pillbox.credentials import CredentialRecord, CredentialType, RequestMethod
from pillbox.exceptions import InvalidCredentialError, NetworkError, UnexpectedStatusError

logger = logging.getLogger(__name__)

_FILENAME_RE = re.compile(
    r"""filename\*?\s*=\s*(?:[\w-]+'[^']*')?["']?([^"';]+)["']?""",
    re.IGNORECASE,
)


def _require_type(record: CredentialRecord, expected: CredentialType, action: str) -> None:
    if record.type is not expected:
        raise InvalidCredentialError(
            f"cannot {action} with a {record.type.value} credential ({record.label or record.id})"
        )


def filename_for(location: str, content_disposition: str | None = None) -> str:
    """Pick a local filename for a download.

    Content-Disposition wins, then the last URL path segment, then
    ``download``. Directory components are dropped.
    """
    name = ""
    if content_disposition:
        match = _FILENAME_RE.search(content_disposition)
        if match:
            name = unquote(match.group(1)).strip()
    if not name:
        name = unquote(urlparse(location).path.rsplit("/", 1)[-1])
    name = Path(name.replace("\\", "/")).name
    if name in ("", ".", ".."):
        return "download"
    return name


class AsyncL402Client:
    """Async HTTP client that authenticates with stored L402 credentials."""

    def __init__(self, settings: Settings | None = None, **httpx_kwargs: Any):
        """
        Args:
            settings: Timeout and downloads directory. Loaded from the
                environment when omitted.
            **httpx_kwargs: Additional kwargs passed to httpx.AsyncClient.
        """
        self._settings = settings or load_settings()
        httpx_kwargs.setdefault("timeout", self._settings.timeout)
        self._httpx_kwargs = httpx_kwargs
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> AsyncL402Client:
        self._client = httpx.AsyncClient(**self._httpx_kwargs)
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.aclose()

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(**self._httpx_kwargs)
        return self._client

    async def request(self, record: CredentialRecord, **kwargs: Any) -> httpx.Response:
        """Send ``record.method`` to ``record.location`` with L402 authorization.

        Raises:
            NetworkError: The request failed.
            UnexpectedStatusError: The response was not 2xx (402 means the
                server no longer accepts the credential).
        """
        headers = dict(kwargs.pop("headers", {}) or {})
        headers["Authorization"] = record.authorization_header
        client = self._ensure_client()

        try:
            response = await client.request(
                record.method.value, record.location, headers=headers, **kwargs
            )
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise NetworkError(record.location, str(e) or type(e).__name__) from e

        if not response.is_success:
            if response.status_code == 402:
                logger.warning(
                    "Credential %d rejected by %s (402)", record.id, record.location
                )
            raise UnexpectedStatusError(record.location, response.status_code)
        return response

    async def download_file(
        self, record: CredentialRecord, dest_dir: str | Path | None = None
    ) -> Path:
        """Download the resource behind a ``file`` credential.

        Returns:
            Path of the written file inside ``dest_dir`` (defaults to the
            configured downloads directory).
        """
        _require_type(record, CredentialType.FILE, "download a file")
        response = await self.request(record)

        target_dir = Path(dest_dir) if dest_dir is not None else self._settings.downloads_dir
        target_dir.mkdir(parents=True, exist_ok=True)
        path = target_dir / filename_for(
            record.location, response.headers.get("content-disposition")
        )
        path.write_bytes(response.content)
        logger.info("Saved %d bytes from %s to %s", len(response.content), record.location, path)
        return path

    async def graphql(
        self,
        record: CredentialRecord,
        query: str,
        variables: dict[str, Any] | None = None,
        operation_name: str | None = None,
    ) -> dict[str, Any]:
        """Run a GraphQL operation against a ``graphql`` credential's endpoint.

        POST credentials send a JSON body; GET credentials send the
        operation as query parameters.

        Returns:
            The decoded GraphQL response (``data`` and possibly ``errors``).

        Raises:
            ValueError: The response body is not JSON.
        """
        _require_type(record, CredentialType.GRAPHQL, "run a GraphQL query")

        if record.method is RequestMethod.POST:
            payload: dict[str, Any] = {"query": query}
            if variables:
                payload["variables"] = variables
            if operation_name:
                payload["operationName"] = operation_name
            response = await self.request(record, json=payload)
        elif record.method is RequestMethod.GET:
            params: dict[str, str] = {"query": query}
            if variables:
                params["variables"] = json.dumps(variables)
            if operation_name:
                params["operationName"] = operation_name
            response = await self.request(
                record, params=params, headers={"Accept": "application/json"}
            )
        else:
            raise InvalidCredentialError(f"unsupported method {record.method!r}")

        result = response.json()
        if isinstance(result, dict) and result.get("errors"):
            logger.warning("GraphQL errors from %s: %s", record.location, result["errors"])
        return result

    async def aclose(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None
