"""
kudos.api.main — FastAPI application entry point
=================================================

Run with::

    uvicorn kudos.api.main:app --reload --port 8000
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

load_dotenv()

from kudos import __version__  # noqa: E402
from kudos.api.deps import get_engine  # noqa: E402
from kudos.api.routes.admin import router as admin_router  # noqa: E402
from kudos.api.routes.awards import router as awards_router  # noqa: E402
from kudos.api.routes.students import router as students_router  # noqa: E402
from kudos.api.routes.unlocks import router as unlocks_router  # noqa: E402
from kudos.errors import KudosError  # noqa: E402

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle — warm the DB engine."""
    engine = get_engine()
    logger.info("Kudos API started — engine ready (%s)", engine.url.database)
    yield
    logger.info("Kudos API shutting down")


app = FastAPI(
    title="Kudos Points API",
    version=__version__,
    lifespan=lifespan,
)


@app.exception_handler(KudosError)
async def kudos_error_handler(request: Request, exc: KudosError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


app.include_router(students_router, prefix="/api")
app.include_router(awards_router, prefix="/api")
app.include_router(unlocks_router, prefix="/api")
app.include_router(admin_router, prefix="/api")


@app.get("/api/health")
def health():
    return {"status": "ok"}
