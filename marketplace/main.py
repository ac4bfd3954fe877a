# marketplace/main.py
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from marketplace.api import routers
from marketplace.data.database import Base, engine
from marketplace.utils.logging import RequestLoggingMiddleware, get_logger

# rejestracja wszystkich modeli w Base.metadata przed create_all
import marketplace.data.models  # noqa: F401

logger = get_logger(__name__)


def init_db(bind=engine) -> None:
    logger.info(f"Models registered in Base.metadata: {list(Base.metadata.tables.keys())}")
    try:
        Base.metadata.create_all(bind=bind)
    except Exception as e:
        logger.error(f"Failed to create tables: {e}")
        raise
    logger.info("Database tables ready")


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    yield


def create_app(with_lifespan: bool = True) -> FastAPI:
    app = FastAPI(
        title="Marketplace Checkout Service",
        version="1.0.0",
        lifespan=lifespan if with_lifespan else None,
    )
    app.add_middleware(RequestLoggingMiddleware)

    for router in routers:
        app.include_router(router)

    return app


app = create_app()

if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8000)
