from typing import List, Optional
from datetime import datetime, timezone
from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel
from uuid import uuid4

TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"

def new_image_id() -> str:
    """Generates a new unique image ID."""
    return str(uuid4())

def utc_timestamp() -> str:
    """Current UTC time as a fixed-width string, so lexical order is chronological."""
    return datetime.now(timezone.utc).strftime(TIMESTAMP_FORMAT)

class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

class ImageRecord(BaseModel):
    """Metadata row. Immutable once written."""
    model_config = ConfigDict(frozen=True)

    image_id: str = Field(default_factory=new_image_id)
    original_path: str
    processed_path: str
    scope_id: Optional[str] = None
    created_at: str = Field(default_factory=utc_timestamp)
    updated_at: str = Field(default_factory=utc_timestamp)

    @model_validator(mode="before")
    @classmethod
    def stamp_once(cls, data):
        """A new record is written once, so both timestamps share one instant."""
        if isinstance(data, dict) and not data.get("updated_at"):
            data = dict(data)
            data["created_at"] = data.get("created_at") or utc_timestamp()
            data["updated_at"] = data["created_at"]
        return data

    def to_item(self) -> dict:
        item = self.model_dump()
        # ScopeIndex is sparse; unscoped rows must not carry the attribute
        if item["scope_id"] is None:
            del item["scope_id"]
        return item

    @classmethod
    def from_item(cls, item: dict) -> "ImageRecord":
        return cls(
            image_id=item["image_id"],
            original_path=item["original_path"],
            processed_path=item["processed_path"],
            scope_id=item.get("scope_id"),
            created_at=item["created_at"],
            updated_at=item.get("updated_at", item["created_at"]),
        )

    @property
    def created_at_dt(self) -> datetime:
        return datetime.strptime(self.created_at, TIMESTAMP_FORMAT).replace(tzinfo=timezone.utc)

class UploadResult(CamelModel):
    id: str
    public_url: str

class BlobDescriptor(CamelModel):
    name: str
    created_at: datetime
    public_url: str

class ImageView(CamelModel):
    """A processed image with the public URLs of both variants."""
    id: str
    url: str
    original_url: str
    created_at: datetime

class ListImagesResponse(CamelModel):
    images: List[ImageView]
    next_cursor: Optional[str] = None

class DeleteScopeResponse(CamelModel):
    scope: str
    deleted: int
