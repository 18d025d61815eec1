# storefront/main.py
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
import uvicorn

from storefront.api.deps import close_clients
from storefront.api.routers import carts, health, orders, payments, products, users
from storefront.data.database import create_tables
from storefront.utils.logging import add_context, clear_context, configure_logging, get_logger

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    logger.info("Creating database tables")
    await create_tables()
    yield
    await close_clients()


async def database_error_handler(request: Request, exc: SQLAlchemyError):
    logger.error(f"Database error on {request.method} {request.url.path}: {exc}")
    return JSONResponse(
        status_code=503,
        content={"error": "database_unavailable", "message": "The store is temporarily unavailable. Please try again."},
    )


def create_app(create_schema: bool = True) -> FastAPI:
    app = FastAPI(
        title="Storefront Service",
        version="1.0.0",
        lifespan=lifespan if create_schema else None,
    )

    @app.middleware("http")
    async def bind_request_context(request: Request, call_next):
        clear_context()
        add_context(path=request.url.path, user_id=request.query_params.get("user_id"))
        return await call_next(request)

    app.add_exception_handler(SQLAlchemyError, database_error_handler)

    # Include routers
    app.include_router(health.router)
    app.include_router(users.router)
    app.include_router(products.router)
    app.include_router(carts.router)
    app.include_router(orders.router)
    app.include_router(payments.router)

    return app


app = create_app()

if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8000)
