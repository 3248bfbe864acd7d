"""
ASGI entry point for the PPOB ledger API.

    uvicorn ppob_ledger.main:app --reload

Startup configures JSON logging and creates any missing tables (including
the ./data directory for the default SQLite file). Shutdown closes the
connection pool.
"""

import logging
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from ppob_ledger.config import settings
from ppob_ledger.database import engine, Base
from ppob_ledger.exceptions import register_exception_handlers
from ppob_ledger.logging_config import setup_logging
from ppob_ledger.routers import auth, balance, transactions

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    if engine.url.get_backend_name() == "sqlite" and engine.url.database:
        Path(engine.url.database).parent.mkdir(parents=True, exist_ok=True)
    # create_all only adds missing tables; schema changes need a migration
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info(
        "Service started",
        extra={"version": settings.APP_VERSION, "database": engine.url.get_backend_name()},
    )
    yield
    await engine.dispose()
    logger.info("Service stopped")


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="PPOB back-office ledger: cashier balances, sales, and operator corrections",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

app.include_router(auth.router, prefix="/auth", tags=["Auth"])
app.include_router(transactions.router, prefix="/transactions", tags=["Transactions"])
app.include_router(balance.router, prefix="/balance", tags=["Balance"])


@app.get("/health", tags=["Health"])
async def health_check():
    return {"status": "ok", "version": settings.APP_VERSION}
