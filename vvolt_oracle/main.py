from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from .core.config import settings
from .core.log import configure_logging

from .api.routes import router as api_router
import vvolt_oracle.api.routes as routes_module

from .services.ledger import LedgerService
from .storage.sqlite_repo import SQLiteRepository


logger = logging.getLogger(__name__)


# --- Singletons ---
repo = SQLiteRepository(settings.sqlite_path)
ledger = LedgerService(repo=repo, deployer=settings.deployer)


def get_ledger() -> LedgerService:
    return ledger


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    logger.info("Starting %s (db=%s)", settings.app_name, settings.sqlite_path)

    await ledger.start()
    st = ledger.state
    logger.info(
        "Ledger ready: admin=%s operator=%s paused=%s events=%d",
        st.get_admin(), st.get_oracle_operator(), st.is_paused(), st.get_event_count(),
    )

    try:
        yield
    finally:
        logger.info("Shutdown complete")


app = FastAPI(title=settings.app_name, lifespan=lifespan)

# Make the dependency functions in routes resolve to the real ones
app.dependency_overrides[routes_module.get_ledger] = get_ledger

app.include_router(api_router, prefix="/api")
