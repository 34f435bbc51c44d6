from __future__ import annotations

import asyncio
import contextlib
import json
from collections.abc import Mapping, Sequence
from typing import Any

from app.engine.cancel import race_cancel
from app.errors import Canceled, ErrorKind, FetchError


def _kill(proc: asyncio.subprocess.Process) -> None:
    if proc.returncode is None:
        with contextlib.suppress(ProcessLookupError):
            proc.kill()


async def run_json_command(
    argv: Sequence[str],
    *,
    kind: ErrorKind,
    source: str,
    cancel: asyncio.Event,
    timeout: float,
    env: Mapping[str, str] | None = None,
) -> dict[str, Any]:
    """Run an external command that prints exactly one JSON object."""
    try:
        proc = await asyncio.create_subprocess_exec(
            *argv,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            env=dict(env) if env is not None else None,
        )
    except OSError as exc:
        raise FetchError(kind, f"could not start {argv[0]}: {exc}", source=source) from exc

    try:
        stdout, stderr = await race_cancel(
            asyncio.wait_for(proc.communicate(), timeout=timeout), cancel, source=source
        )
    except TimeoutError as exc:
        _kill(proc)
        raise FetchError(kind, f"{argv[0]} timed out after {timeout:.0f}s", source=source) from exc
    except (Canceled, asyncio.CancelledError):
        _kill(proc)
        raise

    if proc.returncode != 0:
        detail = stderr.decode("utf-8", errors="replace").strip()[:200]
        raise FetchError(
            kind, f"{argv[0]} exited with {proc.returncode}: {detail}", source=source
        )

    text = stdout.decode("utf-8", errors="replace").strip()
    if not text:
        raise FetchError(ErrorKind.PARSE_FAILURE, f"{argv[0]} printed nothing", source=source)
    try:
        payload = json.loads(text)
    except json.JSONDecodeError as exc:
        raise FetchError(
            ErrorKind.PARSE_FAILURE, f"{argv[0]} printed invalid JSON: {exc}", source=source
        ) from exc
    if not isinstance(payload, dict):
        raise FetchError(
            ErrorKind.PARSE_FAILURE, f"{argv[0]} did not print a JSON object", source=source
        )
    return payload
