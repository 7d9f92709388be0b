"""HTTP client for the upstream directory API.

Every list endpoint of the directory answers with the same envelope::

    {"entries": [...], "has_more": true, "next_cursor": "..."}

The client only knows about that envelope; what an entry contains is the
parser's business.
"""
import logging
from dataclasses import dataclass, field
from typing import Any

import httpx

from app.core.config import Settings, settings

logger = logging.getLogger(__name__)


class DirectoryApiError(Exception):
    """Base exception for upstream API errors."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class TransientApiError(DirectoryApiError):
    """Network failure, timeout, rate limit or upstream 5xx. Worth retrying."""


class MalformedResponseError(DirectoryApiError):
    """Response does not follow the list envelope contract."""


@dataclass
class ListPage:
    """One page of a list endpoint."""
    entries: list[dict[str, Any]] = field(default_factory=list)
    has_more: bool = False
    next_cursor: str | None = None


class DirectoryClient:
    """Thin synchronous wrapper around the directory's list endpoints."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        *,
        api_key_header: str = "x-luma-api-key",
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ):
        self._client = httpx.Client(
            base_url=base_url.rstrip("/") + "/",
            headers={api_key_header: api_key, "Accept": "application/json"},
            timeout=timeout,
            transport=transport,
        )

    @classmethod
    def from_settings(cls, config: Settings = settings) -> "DirectoryClient":
        if not config.directory_api_key:
            logger.warning("No DIRECTORY_API_KEY configured, upstream requests will be rejected")
        return cls(
            config.directory_api_base_url,
            config.directory_api_key,
            api_key_header=config.directory_api_key_header,
            timeout=config.request_timeout_seconds,
        )

    def list_page(self, endpoint: str, params: dict[str, str] | None = None) -> ListPage:
        """
        Fetch a single page from a list endpoint.

        Raises:
            TransientApiError: connection problems, timeouts, 429 and 5xx.
            DirectoryApiError: any other non-2xx answer (bad key, bad params).
            MalformedResponseError: the body is not a list envelope.
        """
        try:
            response = self._client.get(endpoint.lstrip("/"), params=params)
        except httpx.TimeoutException as e:
            raise TransientApiError(f"Timed out calling {endpoint}: {e}") from e
        except httpx.TransportError as e:
            raise TransientApiError(f"Could not reach {endpoint}: {e}") from e

        if response.status_code == 429 or response.status_code >= 500:
            raise TransientApiError(
                f"Directory API error on {endpoint}: {response.status_code} {response.reason_phrase}",
                status_code=response.status_code,
            )
        if response.status_code >= 400:
            logger.error(f"Directory API rejected {endpoint}: {response.status_code} {response.text}")
            raise DirectoryApiError(
                f"Directory API error on {endpoint}: {response.status_code} {response.reason_phrase}",
                status_code=response.status_code,
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise MalformedResponseError(f"Response from {endpoint} is not JSON") from e

        return parse_list_payload(endpoint, payload)

    def close(self) -> None:
        self._client.close()


def parse_list_payload(endpoint: str, payload: Any) -> ListPage:
    """Validate a list envelope and turn it into a ListPage."""
    if not isinstance(payload, dict) or not isinstance(payload.get("entries"), list):
        raise MalformedResponseError(f"Response from {endpoint} has no 'entries' array")

    return ListPage(
        entries=payload["entries"],
        has_more=payload.get("has_more") is True,
        next_cursor=payload.get("next_cursor") or None,
    )
