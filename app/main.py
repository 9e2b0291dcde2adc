from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
from datetime import datetime, timezone
import uvicorn
import logging

from app.storage.dynamodb import DynamoDBService
from app.storage.s3 import S3Service
from app.image_service.background_removal import BackgroundRemovalClient
from app.image_service.service import ImagePipeline
from app.settings import Settings, settings
from app.routers.image_service import router as image_router
from app.exceptions import add_exception_handlers

logging.basicConfig(level=logging.INFO)
log = logging.getLogger("image-flip-service")

def create_app(app_settings: Settings = settings) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
            Async context manager for FastAPI application lifecycle events.
            Validates configuration once, then initializes and closes the
            pipeline and its collaborators (S3, DynamoDB, remove.bg).
        """
        app_settings.validate_required()
        app.state.settings = app_settings

        # Initialize resources
        s3 = S3Service(app_settings)
        db = DynamoDBService(app_settings)
        remover = BackgroundRemovalClient(app_settings)
        app.state.pipeline = ImagePipeline(db=db, s3=s3, remover=remover)
        log.info("Image pipeline ready")
        yield
        # Cleanup resources
        remover.close()
        s3.close()
        db.close()

    # Initialize App
    app = FastAPI(
        title=app_settings.app_title,
        lifespan=lifespan,
        description="Background removal and flip service",
        root_path="/api/v1"
    )

    # Add exception handlers
    add_exception_handlers(app)

    # CORS - Middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=['*'],
        allow_methods=["GET", "POST", "DELETE"],
        allow_headers=["*"],
    )

    # Add the routers
    app.include_router(image_router)

    @app.get("/health")
    def health():
        """Liveness check."""
        return {"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()}

    return app

app = create_app()

if __name__ == "__main__":
    uvicorn.run("app.main:app", host="0.0.0.0", port=8000, reload=True)
