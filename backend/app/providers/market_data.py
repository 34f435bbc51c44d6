from __future__ import annotations

import asyncio
import logging
import os
from typing import Any

from pydantic import ValidationError

from app.cache import TTLCache
from app.config.settings import MarketDataSettings
from app.errors import ErrorKind, FetchError
from app.providers.process import run_json_command
from app.schemas.snapshot import MarketQuote
from app.store import SnapshotStore

logger = logging.getLogger(__name__)

NAME = "market_data"
API_KEY_ENV = "MARKET_DATA_API_KEY"


class MarketDataFetcher:
    def __init__(
        self, config: MarketDataSettings, store: SnapshotStore, cache: TTLCache
    ) -> None:
        self._config = config
        self._store = store
        self._cache = cache

    def _child_env(self) -> dict[str, str]:
        env = dict(os.environ)
        if self._config.api_key:
            env[API_KEY_ENV] = self._config.api_key
        return env

    async def fetch(self, cancel: asyncio.Event) -> dict[str, Any]:
        cached = self._cache.get()
        if cached:
            self._store.replace_market_data(cached)
            logger.debug("market data served from cache")
            return cached

        payload = await run_json_command(
            self._config.command,
            kind=ErrorKind.PROCESS_FAILURE,
            source=NAME,
            cancel=cancel,
            timeout=self._config.timeout_seconds,
            env=self._child_env(),
        )
        if not payload:
            raise FetchError(ErrorKind.PARSE_FAILURE, "market data script returned {}", source=NAME)
        try:
            quote = MarketQuote.model_validate(payload)
        except ValidationError as exc:
            raise FetchError(
                ErrorKind.PARSE_FAILURE, f"invalid market data: {exc}", source=NAME
            ) from exc

        market_data = quote.model_dump()
        self._cache.put(market_data)
        self._store.replace_market_data(market_data)
        logger.info("market data refreshed: price=%s", quote.price)
        return market_data
