"""Walk paginated list endpoints and collapse duplicate entries."""
import logging
import time
from collections.abc import Callable, Iterable, Iterator
from datetime import UTC, datetime
from typing import Any

from app.directory.client import DirectoryApiError, DirectoryClient, TransientApiError
from app.directory.retry import RetryExhaustedError, retry_with_backoff

logger = logging.getLogger(__name__)


class FetchError(Exception):
    """A page could not be fetched. The fetch pass is aborted."""

    def __init__(self, message: str, endpoint: str, page: int):
        super().__init__(message)
        self.endpoint = endpoint
        self.page = page


def format_timestamp(value: datetime) -> str:
    """ISO-8601 in UTC with a ``Z`` suffix, as the upstream filter expects."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).isoformat().replace("+00:00", "Z")


def fetch_all_pages(
    client: DirectoryClient,
    endpoint: str,
    since: datetime | None = None,
    *,
    page_size: int = 50,
    params: dict[str, str] | None = None,
    max_pages: int | None = None,
    max_attempts: int = 3,
    base_delay: float = 1.0,
    page_delay: float = 0.5,
    sleep: Callable[[float], None] = time.sleep,
    on_page: Callable[[int, int], None] | None = None,
) -> Iterator[dict[str, Any]]:
    """
    Yield every entry of a list endpoint, page by page.

    Only records created after ``since`` are requested when it is given.
    Paging stops when upstream reports no more pages, returns an empty page
    or omits the cursor, or when ``max_pages`` pages have been read.

    Each page gets ``max_attempts`` tries with linear backoff. A page that
    cannot be fetched aborts the whole walk with FetchError; pages are never
    skipped. The generator is lazy and cannot be restarted.
    """
    base_params = {"pagination_limit": str(page_size)}
    if since is not None:
        base_params["created_after"] = format_timestamp(since)
    if params:
        base_params.update(params)

    cursor: str | None = None
    page_number = 0

    while True:
        page_number += 1
        request_params = dict(base_params)
        if cursor:
            request_params["pagination_cursor"] = cursor

        try:
            page = retry_with_backoff(
                lambda: client.list_page(endpoint, request_params),
                max_attempts=max_attempts,
                base_delay=base_delay,
                retry_on=(TransientApiError,),
                sleep=sleep,
                description=f"{endpoint} page {page_number}",
            )
        except RetryExhaustedError as e:
            raise FetchError(str(e.__cause__ or e), endpoint, page_number) from e
        except DirectoryApiError as e:
            raise FetchError(str(e), endpoint, page_number) from e

        logger.debug(
            f"Fetched {endpoint} page {page_number}: {len(page.entries)} entries, "
            f"has_more={page.has_more}"
        )
        if on_page:
            on_page(page_number, len(page.entries))

        yield from page.entries

        if not page.entries or not page.has_more or not page.next_cursor:
            return
        if max_pages is not None and page_number >= max_pages:
            logger.warning(
                f"Stopped paging {endpoint} after {page_number} pages, upstream still reports more"
            )
            return

        cursor = page.next_cursor
        sleep(page_delay)


def deduplicate(
    entries: Iterable[dict[str, Any]],
    key: Callable[[dict[str, Any]], str | None],
) -> Iterator[dict[str, Any]]:
    """Yield entries whose external id was not seen earlier. First one wins."""
    seen: set[str] = set()
    for entry in entries:
        external_id = key(entry)
        if not external_id:
            logger.warning(f"Skipping entry without an external id: {entry!r}")
            continue
        if external_id in seen:
            logger.debug(f"Dropping duplicate entry {external_id}")
            continue
        seen.add(external_id)
        yield entry
