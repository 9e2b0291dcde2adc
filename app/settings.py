from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from typing import Optional

from app.exceptions import ConfigurationError

class Settings(BaseSettings):
    aws_region: str = Field("us-east-1")
    aws_endpoint_url: Optional[str] = Field(None)
    aws_access_key_id: str = Field("test")
    aws_secret_access_key: str = Field("test")

    s3_bucket: str = Field("image-service-bucket")
    # Public host used to build object URLs, e.g. a CDN in front of the bucket
    s3_public_base_url: Optional[str] = Field(None)
    s3_list_limit: int = Field(100)

    dynamodb_table: str = Field("Images")

    remove_bg_api_key: Optional[str] = Field(None)
    remove_bg_api_url: str = Field("https://api.remove.bg/v1.0/removebg")
    remove_bg_timeout_seconds: float = Field(60.0)

    # When set, uploads must carry exactly this scope
    allowed_scope: Optional[str] = Field(None)
    max_upload_bytes: int = Field(10 * 1024 * 1024)
    process_timeout_seconds: float = Field(120.0)

    app_title: str = Field("Image Flip Service")

    model_config = SettingsConfigDict(env_file=".env", extra="ignore", frozen=True)

    def validate_required(self):
        """Raises ConfigurationError naming every missing required value."""
        required = {
            "REMOVE_BG_API_KEY": self.remove_bg_api_key,
            "S3_BUCKET": self.s3_bucket,
            "DYNAMODB_TABLE": self.dynamodb_table,
        }
        missing = [name for name, value in required.items() if not value]
        if missing:
            raise ConfigurationError(
                f"Missing required environment variables: {', '.join(missing)}"
            )

settings = Settings()
