from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from typing import Any

from app.config.settings import NodeQuery, NodeStatsSettings
from app.errors import AggregateFetchError, Canceled, ErrorKind, FetchError
from app.providers.process import run_json_command
from app.store import SnapshotStore

logger = logging.getLogger(__name__)

NAME = "node_stats"


class NodeStatsFetcher:
    """Queries the local node with one CLI call per configured sub-query.

    Sub-queries run concurrently. Whatever succeeded is published even when
    siblings failed; the failures are then raised together.
    """

    def __init__(
        self,
        config: NodeStatsSettings,
        store: SnapshotStore,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._config = config
        self._store = store
        self._clock = clock

    def _argv(self, query: NodeQuery) -> list[str]:
        argv = [
            self._config.cli_path,
            f"--rpcserver={self._config.rpc_host}",
            f"--tlscertpath={self._config.tls_cert_path}",
            f"--macaroonpath={self._config.macaroon_path}",
            query.command,
            *query.args,
        ]
        if query.window_hours is not None:
            end = int(self._clock())
            start = end - int(query.window_hours * 3600)
            argv += ["--start_time", str(start), "--end_time", str(end)]
        return argv

    async def _fetch_one(self, query: NodeQuery, cancel: asyncio.Event) -> Any:
        source = f"{NAME}:{query.name}"
        if cancel.is_set():
            raise Canceled(source=source)
        result = await run_json_command(
            self._argv(query),
            kind=ErrorKind.COMMAND_FAILURE,
            source=source,
            cancel=cancel,
            timeout=self._config.timeout_seconds,
        )
        if query.result_key is None:
            return result
        if query.result_key not in result:
            raise FetchError(
                ErrorKind.PARSE_FAILURE, f"output has no {query.result_key!r} field", source=source
            )
        return result[query.result_key]

    async def fetch(self, cancel: asyncio.Event) -> dict[str, Any]:
        if not self._config.enabled:
            logger.debug("node stats disabled: connection parameters not configured")
            return {}

        queries = list(self._config.queries)
        results = await asyncio.gather(
            *(self._fetch_one(query, cancel) for query in queries),
            return_exceptions=True,
        )

        stats: dict[str, Any] = {}
        errors: dict[str, FetchError] = {}
        unexpected: BaseException | None = None
        for query, result in zip(queries, results):
            if isinstance(result, FetchError):
                errors[query.name] = result
            elif isinstance(result, BaseException):
                unexpected = unexpected or result
            else:
                stats[query.name] = result

        if stats:
            self._store.replace_local_stats(stats)
            logger.info("node stats refreshed: %s", ", ".join(sorted(stats)))
        if unexpected is not None:
            raise unexpected
        if errors:
            if all(error.kind is ErrorKind.CANCELED for error in errors.values()):
                raise Canceled(source=NAME)
            raise AggregateFetchError(errors, source=NAME)
        return stats
