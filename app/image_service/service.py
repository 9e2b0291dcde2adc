import base64
import json
import logging
import threading
import time
import uuid
from binascii import Error as BinasciiError
from typing import Optional, Tuple

from app.storage.dynamodb import DynamoDBService
from app.storage.s3 import S3Service
from app.image_service.background_removal import BackgroundRemovalClient
from app.image_service.transform import flip_horizontal, PROCESSED_CONTENT_TYPE
from app.image_service.models import ImageRecord, ImageView, ListImagesResponse
from app.exceptions import InvalidCursorException, ProcessingCancelledException

log = logging.getLogger(__name__)

EXTENSIONS = {
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/png": "png",
    "image/gif": "gif",
    "image/webp": "webp",
}

def upload_id_key() -> str:
    """Generates a new unique upload ID used to name both blobs."""
    return str(uuid.uuid4())

def extension_for(mime_type: str) -> str:
    if mime_type in EXTENSIONS:
        return EXTENSIONS[mime_type]
    return mime_type.split("/")[-1].split("+")[0] or "bin"

def blob_key(kind: str, upload_id: str, ext: str, scope: Optional[str] = None) -> str:
    """`{kind}/{scope}/{id}.{ext}`, the scope segment dropped when absent."""
    folder = f"{kind}/{scope}" if scope else kind
    return f"{folder}/{upload_id}.{ext}"

def encode_cursor(record: ImageRecord) -> str:
    raw = json.dumps([record.created_at, record.image_id]).encode()
    return base64.urlsafe_b64encode(raw).decode()

def decode_cursor(cursor: str) -> Tuple[str, str]:
    try:
        created_at, image_id = json.loads(base64.urlsafe_b64decode(cursor.encode()))
    except (BinasciiError, ValueError, TypeError):
        raise InvalidCursorException(cursor)
    return str(created_at), str(image_id)


class ImagePipeline:
    """
        Runs uploads through background removal, flip, storage and metadata,
        and serves read/delete queries over the same collaborators.

        Steps run strictly in order and every failure propagates unchanged.
        Nothing is rolled back: blobs uploaded before a failing step stay in
        the bucket with no metadata record pointing at them.
    """

    def __init__(
        self,
        db: DynamoDBService,
        s3: S3Service,
        remover: BackgroundRemovalClient,
        flipper=flip_horizontal,
    ):
        self.db = db
        self.s3 = s3
        self.remover = remover
        self.flipper = flipper

    def process_image(
        self,
        data: bytes,
        mime_type: str,
        scope: Optional[str] = None,
        cancel_event: Optional[threading.Event] = None,
        deadline: Optional[float] = None,
    ) -> ImageView:
        scope = scope or None

        def checkpoint(step: str):
            if cancel_event is not None and cancel_event.is_set():
                raise ProcessingCancelledException(step)
            if deadline is not None and time.monotonic() >= deadline:
                raise ProcessingCancelledException(step)

        upload_id = upload_id_key()
        log.info("Processing image %s (%s)%s", upload_id, mime_type, f" for scope {scope}" if scope else "")

        checkpoint("upload_original")
        original_key = blob_key("original", upload_id, extension_for(mime_type), scope)
        self.s3.upload(data, original_key, mime_type)

        checkpoint("remove_background")
        log.info("Step 2: Removing background for %s", upload_id)
        no_bg = self.remover.remove_background(data, mime_type)

        checkpoint("flip")
        log.info("Step 3: Flipping image %s horizontally", upload_id)
        flipped = self.flipper(no_bg)

        checkpoint("upload_processed")
        processed_key = blob_key("processed", upload_id, "png", scope)
        self.s3.upload(flipped, processed_key, PROCESSED_CONTENT_TYPE)

        checkpoint("save_metadata")
        record = self.db.create(original_key, processed_key, scope)

        log.info("Image %s processed as record %s", upload_id, record.image_id)
        return ImageView(
            id=record.image_id,
            url=self.s3.get_public_url(processed_key),
            original_url=self.s3.get_public_url(original_key),
            created_at=record.created_at_dt,
        )

    def _view(self, record: ImageRecord) -> ImageView:
        return ImageView(
            id=record.image_id,
            url=self.s3.get_public_url(record.processed_path),
            original_url=self.s3.get_public_url(record.original_path),
            created_at=record.created_at_dt,
        )

    def get_all_images(
        self,
        scope: Optional[str] = None,
        limit: Optional[int] = None,
        cursor: Optional[str] = None,
    ) -> ListImagesResponse:
        """Metadata-derived listing, newest first, paginated on (created_at, id)."""
        after = decode_cursor(cursor) if cursor else None
        records, has_more = self.db.list_page(scope or None, limit=limit, after=after)
        next_cursor = encode_cursor(records[-1]) if has_more else None

        return ListImagesResponse(images=[self._view(r) for r in records], next_cursor=next_cursor)

    def get_image_by_id(self, image_id: str) -> ImageView:
        return self._view(self.db.get_by_id(image_id))

    def delete_image(self, image_id: str):
        """Deletes the record, then both of its blobs."""
        record = self.db.get_by_id(image_id)
        self.db.delete(image_id)
        self.s3.delete(record.processed_path)
        self.s3.delete(record.original_path)
        log.info("Deleted image %s", image_id)

    def retire_scope(self, scope: str) -> int:
        records = self.db.delete_by_scope(scope)
        for record in records:
            self.s3.delete(record.processed_path)
            self.s3.delete(record.original_path)
        log.info("Retired scope %s (%d images)", scope, len(records))
        return len(records)
