from __future__ import annotations

import datetime
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request, status

from app.engine.scheduler import RefreshEngine
from app.errors import FetchError
from app.schemas.snapshot import Node, Snapshot

router = APIRouter()


def get_engine(request: Request) -> RefreshEngine:
    engine = getattr(request.app.state, "engine", None)
    if engine is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Refresh engine is not running.",
        )
    return engine


def _age_seconds(updated: datetime.datetime | None, now: datetime.datetime) -> float | None:
    if updated is None:
        return None
    return round((now - updated).total_seconds(), 1)


def _list_size(value: Any) -> int:
    return len(value) if isinstance(value, list) else 0


@router.get("/health")
def health(engine: RefreshEngine = Depends(get_engine)) -> dict:
    snapshot = engine.snapshot()
    now = datetime.datetime.now(datetime.UTC)
    return {
        "status": "ok" if engine.running else "stopped",
        "started_at": engine.started_at.isoformat() if engine.started_at else None,
        "uptime_seconds": round(engine.uptime_seconds(), 1),
        "last_updated": snapshot.last_updated.isoformat() if snapshot.last_updated else None,
        "node_count": len(snapshot.nodes),
        "market_data_age_seconds": _age_seconds(snapshot.market_data_updated, now),
        "local_stats_age_seconds": _age_seconds(snapshot.local_stats_updated, now),
        "channel_count": _list_size(snapshot.local_stats.get("channels")),
        "peer_count": _list_size(snapshot.local_stats.get("peers")),
    }


@router.get("/key-status")
def key_status(engine: RefreshEngine = Depends(get_engine)) -> dict:
    try:
        return engine.monitor.status()
    except FetchError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"message": "Ranking API token could not be read.", "error": exc.message},
        ) from exc


@router.get("/snapshot", response_model=Snapshot)
def get_snapshot(engine: RefreshEngine = Depends(get_engine)) -> Snapshot:
    return engine.snapshot()


@router.get("/nodes", response_model=list[Node])
def get_nodes(engine: RefreshEngine = Depends(get_engine)) -> list[Node]:
    return engine.snapshot().nodes


@router.get("/market")
def get_market_data(engine: RefreshEngine = Depends(get_engine)) -> dict[str, Any]:
    snapshot = engine.snapshot()
    return {"data": snapshot.market_data, "updated_at": snapshot.market_data_updated}


@router.get("/stats")
def get_local_stats(engine: RefreshEngine = Depends(get_engine)) -> dict[str, Any]:
    snapshot = engine.snapshot()
    return {"data": snapshot.local_stats, "updated_at": snapshot.local_stats_updated}


@router.post("/refresh/{task_name}", status_code=status.HTTP_202_ACCEPTED)
async def trigger_refresh(task_name: str, engine: RefreshEngine = Depends(get_engine)) -> dict:
    if task_name not in engine.task_names:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"message": "Unknown task.", "tasks": engine.task_names},
        )
    try:
        engine.refresh(task_name)
    except RuntimeError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)
        ) from exc
    return {"task": task_name, "status": "scheduled"}
