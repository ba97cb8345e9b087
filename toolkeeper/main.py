import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from sqlmodel import Session

from toolkeeper.config import APP_VERSION, configure_logging, get_settings
from toolkeeper.db import create_db_and_tables, engine
from toolkeeper.errors import install_error_handlers
from toolkeeper.routers import auth, locations, operations, tools, users
from toolkeeper.seed import seed_demo_data

logger = logging.getLogger(__name__)

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging(settings.log_level)
    create_db_and_tables()  # ✅ 启动阶段建表
    if settings.seed_demo_data:
        with Session(engine) as session:
            seed_demo_data(session)
    logger.info("toolkeeper %s started", APP_VERSION)
    yield
    logger.info("toolkeeper stopped")


app = FastAPI(title="Toolkeeper - Tool Issue Ledger", version=APP_VERSION, lifespan=lifespan)

install_error_handlers(app)

app.include_router(auth.router)
app.include_router(users.router)
app.include_router(locations.router)
app.include_router(tools.router)
app.include_router(operations.router)


@app.get("/health")
def health():
    return {"ok": True, "version": APP_VERSION}
