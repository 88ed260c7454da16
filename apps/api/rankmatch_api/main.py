"""FastAPI entrypoint for the Rankmatch API."""

from __future__ import annotations

import logging
import os
import sys
from datetime import datetime

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .routers.rank import router as rank_router
from .storage import rank as rank_store

from packages.rankmatch_core.matching.candidates import CandidateValidationError

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)
logger = logging.getLogger("rankmatch_api")

app = FastAPI(title="Rankmatch API", version="0.1.0")

_cors_origins = [o.strip() for o in os.environ.get("RANKMATCH_CORS_ORIGINS", "*").split(",")]
_cors_allow_credentials = "*" not in _cors_origins
app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins,
    allow_credentials=_cors_allow_credentials,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.include_router(rank_router)


@app.exception_handler(CandidateValidationError)
async def _candidate_validation_handler(request: Request, exc: CandidateValidationError):
    logger.warning("[VALIDATION] %s on %s: %s", exc.error_code, request.url.path, exc)
    return JSONResponse(
        status_code=422,
        content={"detail": str(exc), "error_code": exc.error_code, "row_index": exc.row_index},
    )


@app.on_event("startup")
def startup() -> None:
    logger.info("[STARTUP] Rankmatch API starting up at %s", datetime.utcnow().isoformat())
    try:
        logger.info("[STARTUP] Initializing rank database...")
        rank_store.init_db()
        logger.info("[STARTUP] Rank database initialized successfully")
    except Exception as e:
        logger.error("[STARTUP] Failed to initialize rank database: %s", e)
        raise
    logger.info("[STARTUP] Rankmatch API startup complete")


@app.get("/healthz")
def healthz() -> dict[str, str]:
    logger.debug("[HEALTH] Health check requested")
    try:
        rank_store.ping()
    except Exception as exc:
        logger.warning("[HEALTH] DB ping failed: %s", exc)
        return JSONResponse(status_code=503, content={"status": "error", "detail": str(exc)})
    return {"status": "ok"}
