import io
import os
import pytest
import httpx
from moto import mock_aws
from fastapi.testclient import TestClient
from PIL import Image

# Dummy AWS credentials for moto
os.environ["AWS_ACCESS_KEY_ID"] = "testing"
os.environ["AWS_SECRET_ACCESS_KEY"] = "testing"
os.environ["AWS_SECURITY_TOKEN"] = "testing"
os.environ["AWS_SESSION_TOKEN"] = "testing"
os.environ["AWS_REGION"] = "us-east-1"
os.environ["S3_BUCKET"] = "image-service-bucket"
os.environ["DYNAMODB_TABLE"] = "Images"
# Clear the AWS_ENDPOINT_URL so moto mocks are used instead of localstack
os.environ.pop("AWS_ENDPOINT_URL", None)

from app.main import create_app
from app.settings import Settings
from app.storage.s3 import S3Service
from app.storage.dynamodb import DynamoDBService
from app.image_service.background_removal import BackgroundRemovalClient
from app.image_service.service import ImagePipeline
from app.dependencies.dependencies import get_image_pipeline


def make_png_bytes(color="red", size=(10, 10), mode="RGB"):
    """Generate a simple valid PNG in-memory."""
    img = Image.new(mode, size, color=color)
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


def make_cutout_bytes(size=(10, 10)):
    """What remove.bg sends back: the subject on a transparent background.

    The left-most column stays red, everything else is transparent.
    """
    img = Image.new("RGBA", size, color=(0, 0, 0, 0))
    for y in range(size[1]):
        img.putpixel((0, y), (255, 0, 0, 255))
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


def cutout_handler(request: httpx.Request) -> httpx.Response:
    return httpx.Response(200, content=make_cutout_bytes(), headers={"content-type": "image/png"})


def make_remover(settings, handler=cutout_handler):
    client = httpx.Client(transport=httpx.MockTransport(handler))
    return BackgroundRemovalClient(settings, client=client)


@pytest.fixture
def test_settings():
    return Settings(
        _env_file=None,
        remove_bg_api_key="test-key",
        remove_bg_api_url="https://bg.example.test/v1.0/removebg",
        s3_bucket="image-service-bucket",
        dynamodb_table="Images",
        aws_endpoint_url=None,
        allowed_scope=None,
    )


@pytest.fixture(scope="function")
def aws(test_settings):
    with mock_aws():
        yield


@pytest.fixture
def s3_service(aws, test_settings):
    return S3Service(test_settings)


@pytest.fixture
def db_service(aws, test_settings):
    return DynamoDBService(test_settings)


@pytest.fixture
def remover(test_settings):
    return make_remover(test_settings)


@pytest.fixture
def pipeline(db_service, s3_service, remover):
    return ImagePipeline(db=db_service, s3=s3_service, remover=remover)


@pytest.fixture
def app_factory(aws):
    """Builds an app whose routes use the moto-backed pipeline."""
    def build(settings, pipeline):
        app = create_app(settings)
        app.dependency_overrides[get_image_pipeline] = lambda: pipeline
        return app
    return build


@pytest.fixture(scope="function")
def test_client(app_factory, test_settings, pipeline):
    app = app_factory(test_settings, pipeline)
    with TestClient(app) as client:
        yield client
