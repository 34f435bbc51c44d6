from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from app.api.routes import router
from app.config.settings import settings
from app.engine.scheduler import RefreshEngine


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    configure_logging(settings.log_level)
    engine = RefreshEngine(settings)
    engine.start()
    app.state.engine = engine
    try:
        yield
    finally:
        await engine.stop()
        app.state.engine = None


app = FastAPI(title="noderank", lifespan=lifespan)
app.include_router(router, prefix="/api")
