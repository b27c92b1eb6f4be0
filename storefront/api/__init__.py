# storefront/api/__init__.py
from contextlib import asynccontextmanager

from fastapi import FastAPI

from storefront.api.routers import carts, health, orders, products
from storefront.data.database import init_db
from storefront.utils.logging import configure_logging, get_logger

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    if app.state.create_tables:
        init_db()
        logger.info("Database tables ready")
    yield
    logger.info("Shutting down")


def create_app(create_tables: bool = True) -> FastAPI:
    app = FastAPI(title="Storefront Service", version="1.0.0", lifespan=lifespan)
    app.state.create_tables = create_tables

    app.include_router(health.router)
    app.include_router(products.router)
    app.include_router(carts.router)
    app.include_router(orders.router)

    return app
