"""Upstream fakes and entry factories shared by the tests."""

from datetime import UTC, datetime, timedelta

import httpx

BASE_URL = "https://api.directory.test/public/v1"
NOW = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


def iso(value: datetime) -> str:
    return value.isoformat().replace("+00:00", "Z")


def make_event_entry(api_id: str, name: str | None = None, *, days_ahead: int = 7, **extra) -> dict:
    """A ``calendar/list-events`` entry."""
    start = NOW + timedelta(days=days_ahead)
    event = {
        "api_id": api_id,
        "name": name or f"Event {api_id}",
        "description": f"About {api_id}",
        "start_at": iso(start),
        "end_at": iso(start + timedelta(hours=2)),
        "url": f"https://lu.ma/{api_id}",
        "visibility": "public",
        "timezone": "Europe/Paris",
        "created_at": iso(NOW - timedelta(days=1)),
    }
    event.update(extra)
    return {"api_id": f"entry-{api_id}", "event": event}


def make_person_entry(api_id: str, email: str, **extra) -> dict:
    """A ``calendar/list-people`` entry."""
    person = {
        "api_id": api_id,
        "email": email,
        "created_at": iso(NOW - timedelta(days=30)),
        "user": {"name": f"user-{api_id}", "full_name": f"Person {api_id}"},
    }
    person.update(extra)
    return person


def make_guest_entry(api_id: str, email: str, status: str = "approved", **ticket) -> dict:
    """An ``event/get-guests`` entry."""
    return {
        "api_id": api_id,
        "guest": {
            "api_id": api_id,
            "email": email,
            "approval_status": status,
            "registered_at": iso(NOW - timedelta(days=2)),
            "event_ticket": ticket or None,
        },
    }


class FakeDirectory:
    """In-process stand-in for the upstream directory API.

    Pages are registered per endpoint (and per event for guest lists).
    A page is either a list of entries or an int HTTP status to answer with.
    Cursors are ``page-<index>``.
    """

    def __init__(self):
        self.pages: dict[tuple[str, str | None], list] = {}
        self.endless: set[tuple[str, str | None]] = set()
        self.requests: list[tuple[str, dict[str, str]]] = []
        self.before_response = None

    def add_pages(self, endpoint: str, *pages, event_api_id: str | None = None):
        self.pages[(endpoint, event_api_id)] = list(pages)

    def always_more(self, endpoint: str, entries: list, event_api_id: str | None = None):
        """Every page reports ``has_more`` and returns the same entries."""
        self.pages[(endpoint, event_api_id)] = [entries]
        self.endless.add((endpoint, event_api_id))

    def requests_for(self, endpoint: str) -> list[dict[str, str]]:
        return [params for name, params in self.requests if name == endpoint]

    def handler(self, request: httpx.Request) -> httpx.Response:
        endpoint = request.url.path.removeprefix("/public/v1/")
        params = dict(request.url.params)
        self.requests.append((endpoint, params))
        if self.before_response:
            self.before_response(endpoint, params)

        key = (endpoint, params.get("event_api_id"))
        pages = self.pages.get(key, [])
        cursor = params.get("pagination_cursor")
        index = int(cursor.split("-")[1]) if cursor else 0

        if key in self.endless:
            return httpx.Response(
                200,
                json={"entries": pages[0], "has_more": True, "next_cursor": f"page-{index + 1}"},
            )
        if index >= len(pages):
            return httpx.Response(200, json={"entries": [], "has_more": False, "next_cursor": None})

        page = pages[index]
        if isinstance(page, int):
            return httpx.Response(page, json={"message": "upstream unavailable"})

        has_more = index + 1 < len(pages)
        return httpx.Response(
            200,
            json={
                "entries": page,
                "has_more": has_more,
                "next_cursor": f"page-{index + 1}" if has_more else None,
            },
        )

