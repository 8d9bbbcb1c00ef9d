"""
Family Accounts API server.

Magic-link sign-in, player profiles and family codes over FastAPI.
Run with `python -m backend.api.main` or `uvicorn backend.api.main:app`.
"""

from contextlib import asynccontextmanager
import logging
import os

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import uvicorn

from backend.api.routes import router
from backend.database import db

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
ALLOWED_ORIGINS = [
    origin.strip()
    for origin in os.getenv("ALLOWED_ORIGINS", "http://localhost:5173").split(",")
    if origin.strip()
]
PORT = int(os.getenv("PORT", "8787"))

logging.basicConfig(
    level=getattr(logging, LOG_LEVEL, logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create missing tables on startup; release pooled connections on shutdown."""
    logger.info("Family Accounts API starting")
    try:
        await db.init_database()
    except Exception as e:
        # Serve anyway so /api/health answers while the database is down
        logger.error(f"Could not initialize database: {e}", exc_info=True)
    else:
        logger.info("Database ready")

    yield

    await db.engine.dispose()
    logger.info("Family Accounts API stopped")


app = FastAPI(
    title="Family Accounts API",
    description="Passwordless sign-in and family linking for players and parents",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)

app.include_router(router)


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=PORT)
