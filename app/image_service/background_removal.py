import logging
from typing import Optional

import httpx

from app.settings import Settings, settings as default_settings
from app.exceptions import ConfigurationError, ExternalServiceError

log = logging.getLogger(__name__)


class BackgroundRemovalClient:
    """Thin client for the remove.bg matting API. Never retries."""

    def __init__(self, settings: Settings = default_settings, client: Optional[httpx.Client] = None):
        if not settings.remove_bg_api_key:
            raise ConfigurationError("REMOVE_BG_API_KEY is not configured")
        self.api_key = settings.remove_bg_api_key
        self.endpoint = settings.remove_bg_api_url
        self.client = client or httpx.Client(timeout=settings.remove_bg_timeout_seconds)
        log.info("Initialized background removal client for %s", self.endpoint)

    def remove_background(self, image_bytes: bytes, content_type: str = "image/png") -> bytes:
        log.info("Removing background from image (%d bytes)", len(image_bytes))
        try:
            response = self.client.post(
                self.endpoint,
                data={"size": "auto"},
                files={"image_file": ("input", image_bytes, content_type)},
                headers={"X-Api-Key": self.api_key},
            )
        except httpx.HTTPError as e:
            log.error("Background removal network error: %s", e)
            raise ExternalServiceError(f"Background removal failed: {e}")

        if response.status_code != 200:
            message = response.content.decode("utf-8", errors="replace")
            log.error("Background removal API error (%d): %s", response.status_code, message)
            raise ExternalServiceError(
                f"Background removal failed: {message}",
                upstream_status=response.status_code,
            )

        received = response.headers.get("content-type", "")
        if not received.startswith("image/"):
            log.error("Background removal returned %r instead of an image", received)
            raise ExternalServiceError(
                f"Background removal failed: expected image response, got: {received}",
                upstream_status=response.status_code,
            )

        log.info("Background removed successfully")
        return response.content

    def close(self):
        self.client.close()
