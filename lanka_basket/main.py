# lanka_basket/main.py
from contextlib import asynccontextmanager

from fastapi import FastAPI
from lanka_basket.data.database import Base, engine
from lanka_basket.api.errors import register_exception_handlers
from lanka_basket.api.routers import orders, health
from lanka_basket.utils.logging import get_logger
import uvicorn

# import wszystkich modeli przed create_all
import lanka_basket.data.models  # noqa: F401

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"Initializing database, tables: {list(Base.metadata.tables.keys())}")
    try:
        Base.metadata.create_all(bind=engine)
    except Exception as e:
        logger.error(f"Failed to create tables: {e}")
        raise
    logger.info("Database tables ready")
    yield


def create_app(init_db: bool = True) -> FastAPI:
    app = FastAPI(
        title="Lanka Basket Order Service",
        version="1.0.0",
        lifespan=lifespan if init_db else None,
    )

    register_exception_handlers(app)

    app.include_router(health.router)
    app.include_router(orders.router)

    return app


app = create_app()

if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8080)
