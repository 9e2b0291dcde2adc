from fastapi import Request
from app.image_service.service import ImagePipeline
from app.settings import Settings

def get_image_pipeline(request: Request) -> ImagePipeline:
    """Dependency provider for ImagePipeline"""
    return request.app.state.pipeline

def get_app_settings(request: Request) -> Settings:
    """Dependency provider for the validated, read-only Settings"""
    return request.app.state.settings
