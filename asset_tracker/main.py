import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

import uvicorn

from asset_tracker.config import Settings, get_settings
from asset_tracker.core.storage import create_blob_store
from asset_tracker.database import Database
from asset_tracker.routers import assets, scan, uploads

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Open the database and the blob store for the lifetime of the process."""
    settings: Settings = app.state.settings
    database = Database(settings.database_url).open()
    blob_store = create_blob_store(settings)
    app.state.database = database
    app.state.blob_store = blob_store

    logger.info(f"{settings.app_name} started ({settings.app_env}, blob backend: {settings.blob_backend})")
    try:
        yield
    finally:
        await blob_store.aclose()
        database.close()


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Invalid request bodies are client errors (400)."""
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": jsonable_encoder(exc.errors())},
    )


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or get_settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    app = FastAPI(title=settings.app_name, lifespan=lifespan)
    app.state.settings = settings

    # Configure CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(RequestValidationError, request_validation_handler)

    # Include routers
    app.include_router(assets.router)
    app.include_router(scan.router)
    app.include_router(uploads.router)

    # Uploaded photos are served directly when they live on local disk
    if settings.blob_backend == "local" and settings.blob_public_base_url.startswith("/"):
        app.mount(
            settings.blob_public_base_url,
            StaticFiles(directory=settings.resolved_storage_path, check_dir=False),
            name="uploads",
        )

    @app.get("/health")
    async def health_check() -> dict[str, str]:
        return {"status": "healthy", "service": "asset_tracker_backend"}

    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run(
        "asset_tracker.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        loop="asyncio",  # Explicitly use asyncio instead of auto (which tries uvloop)
    )
