"""FastAPI application serving the sync endpoints."""

import logging
import sqlite3
from datetime import datetime

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from replisync import db
from replisync.config import config
from replisync.errors import CursorConflictError
from replisync.mutators import applier
from replisync.sync import router as sync_router

logger = logging.getLogger("replisync.api")

app = FastAPI(title="replisync", version="0.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.cors_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
async def startup():
    await db.init_db()
    logger.info(f"Registered mutators: {', '.join(applier.names())}")


# Temporary failures answer 503 so clients retry the batch with backoff.
# Already applied mutations are skipped on the retry.

@app.exception_handler(sqlite3.OperationalError)
async def storage_unavailable(request: Request, exc: sqlite3.OperationalError):
    logger.error(f"Storage error on {request.url.path}: {exc}")
    return JSONResponse(
        status_code=503,
        content={"detail": {"code": "storage_unavailable", "message": "Storage temporarily unavailable, retry later"}},
    )


@app.exception_handler(CursorConflictError)
async def cursor_conflict(request: Request, exc: CursorConflictError):
    logger.error(f"Gave up on {request.url.path}: {exc}")
    return JSONResponse(
        status_code=503,
        content={"detail": {"code": "cursor_conflict", "message": "Concurrent batch for this client, retry later"}},
    )


@app.get("/api/status")
async def status():
    """Health check and daemon status."""
    return {
        "status": "running",
        "timestamp": datetime.now().isoformat(),
        "db_path": str(config.db_path),
    }


app.include_router(sync_router)
