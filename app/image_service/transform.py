from io import BytesIO
import logging
from PIL import Image, ImageOps, UnidentifiedImageError

from app.exceptions import TransformError

log = logging.getLogger(__name__)

PROCESSED_FORMAT = "PNG"
PROCESSED_CONTENT_TYPE = "image/png"
PNG_MODES = {"1", "L", "LA", "I", "I;16", "P", "RGB", "RGBA"}

def flip_horizontal(image_bytes: bytes) -> bytes:
    """Mirrors the image left to right and re-encodes it as PNG."""
    try:
        img = Image.open(BytesIO(image_bytes))
        img.load()
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as e:
        log.error("Failed to decode image for flipping: %s", e)
        raise TransformError(f"Image flipping failed: {e}")

    if img.mode not in PNG_MODES:
        img = img.convert("RGBA")

    buf = BytesIO()
    ImageOps.mirror(img).save(buf, format=PROCESSED_FORMAT)
    log.debug("Flipped %dx%d %s image", img.width, img.height, img.mode)
    return buf.getvalue()
