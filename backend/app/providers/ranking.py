from __future__ import annotations

import asyncio
import json
import logging
import socket
from http.client import HTTPException, IncompleteRead
from typing import Any
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

from pydantic import ValidationError

from app.config.settings import RankingSettings
from app.engine.cancel import race_cancel
from app.engine.rate_limiter import TokenBucket
from app.errors import ErrorKind, FetchError
from app.schemas.ranking import RankingPage
from app.schemas.snapshot import Node, normalize_node
from app.store import SnapshotStore

logger = logging.getLogger(__name__)

NAME = "ranking"

_LISTING_FIELD = "nodeRanking"
_AUTH_MARKERS = ("unauthorized", "unauthenticated", "forbidden", "jwt", "invalid token")

RANKING_QUERY = """
query NodeRanking($first: Int!, $after: String) {
  nodeRanking(first: $first, after: $after) {
    edges {
      node {
        pubKey
        alias
        capacity
        channelCount
        rank
        rankChange { day week month }
        uptimePercentage
        successRate
        feeRates
      }
    }
    pageInfo { endCursor hasNextPage }
  }
}
"""


def _post_graphql(url: str, token: str, body: dict[str, Any], timeout: float) -> Any:
    request = Request(
        url,
        data=json.dumps(body).encode("utf-8"),
        headers={
            "Content-Type": "application/json",
            "Authorization": f"Bearer {token}",
        },
        method="POST",
    )
    try:
        with urlopen(request, timeout=timeout) as response:
            raw = response.read()
    except HTTPError as exc:
        if exc.code in (401, 403):
            raise FetchError(ErrorKind.CREDENTIAL_INVALID, f"HTTP {exc.code}", source=NAME) from exc
        if exc.code == 429:
            raise FetchError(ErrorKind.ADMISSION_DENIED, "HTTP 429", source=NAME) from exc
        raise FetchError(ErrorKind.TRANSPORT, f"HTTP {exc.code}", source=NAME) from exc
    except IncompleteRead as exc:
        raise FetchError(
            ErrorKind.PARSE_FAILURE, "truncated response body", source=NAME, transient=True
        ) from exc
    except (URLError, TimeoutError, socket.timeout, HTTPException, OSError) as exc:
        raise FetchError(ErrorKind.TRANSPORT, str(exc), source=NAME) from exc

    try:
        return json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise FetchError(ErrorKind.PARSE_FAILURE, f"invalid JSON: {exc}", source=NAME) from exc


def _parse_page(payload: Any) -> RankingPage:
    if not isinstance(payload, dict):
        raise FetchError(ErrorKind.PARSE_FAILURE, "response is not an object", source=NAME)

    errors = payload.get("errors")
    if errors:
        messages = [
            str(item.get("message", item)) if isinstance(item, dict) else str(item)
            for item in errors
        ]
        joined = "; ".join(messages)
        if any(marker in joined.lower() for marker in _AUTH_MARKERS):
            raise FetchError(ErrorKind.CREDENTIAL_INVALID, joined, source=NAME)
        raise FetchError(ErrorKind.PARSE_FAILURE, joined, source=NAME)

    data = payload.get("data")
    listing = data.get(_LISTING_FIELD) if isinstance(data, dict) else None
    if not isinstance(listing, dict):
        raise FetchError(ErrorKind.PARSE_FAILURE, f"missing {_LISTING_FIELD}", source=NAME)

    edges = listing.get("edges") or []
    page_info = listing.get("pageInfo") or {}
    if not isinstance(edges, list) or not isinstance(page_info, dict):
        raise FetchError(ErrorKind.PARSE_FAILURE, "malformed page", source=NAME)

    records: list[dict[str, Any]] = []
    for edge in edges:
        record = edge.get("node") if isinstance(edge, dict) else None
        if not isinstance(record, dict):
            raise FetchError(ErrorKind.PARSE_FAILURE, "edge without node", source=NAME)
        records.append(record)

    return RankingPage(
        records=records,
        end_cursor=page_info.get("endCursor"),
        has_next_page=bool(page_info.get("hasNextPage")),
    )


class RankingFetcher:
    def __init__(
        self, config: RankingSettings, store: SnapshotStore, limiter: TokenBucket
    ) -> None:
        self._config = config
        self._store = store
        self._limiter = limiter

    async def fetch(self, cancel: asyncio.Event) -> list[Node]:
        records: list[dict[str, Any]] = []
        cursor: str | None = None
        pages = 0
        while True:
            await self._limiter.acquire(cancel)
            body = {
                "query": RANKING_QUERY,
                "variables": {"first": self._config.page_size, "after": cursor},
            }
            payload = await race_cancel(
                asyncio.to_thread(
                    _post_graphql,
                    self._config.api_url,
                    self._config.api_token or "",
                    body,
                    self._config.request_timeout_seconds,
                ),
                cancel,
                source=NAME,
            )
            page = _parse_page(payload)
            pages += 1
            records.extend(page.records)
            if not page.has_next_page:
                break
            if not page.end_cursor or page.end_cursor == cursor:
                raise FetchError(
                    ErrorKind.PARSE_FAILURE, "next page announced without a new cursor", source=NAME
                )
            cursor = page.end_cursor

        try:
            nodes = [normalize_node(record) for record in records]
        except ValidationError as exc:
            raise FetchError(
                ErrorKind.PARSE_FAILURE, f"invalid node record: {exc}", source=NAME
            ) from exc

        self._store.replace_nodes(nodes)
        logger.info("ranking refreshed: %d nodes from %d page(s)", len(nodes), pages)
        return nodes
