import httpx
from fastapi.testclient import TestClient

from app.image_service.service import ImagePipeline

from conftest import make_png_bytes, make_remover


# ------------------------------
# /images [POST]
# ------------------------------

def test_upload_image_success(test_client):
    files = {"file": ("f.png", make_png_bytes(), "image/png")}
    resp = test_client.post("/images", data={"scope": "abc"}, files=files)

    assert resp.status_code == 201
    assert resp.headers["X-Content-Type-Options"] == "nosniff"
    body = resp.json()
    assert set(body) == {"id", "url", "originalUrl", "createdAt"}
    assert "/processed/abc/" in body["url"]
    assert "/original/abc/" in body["originalUrl"]


def test_upload_invalid_file_type(test_client):
    files = {"file": ("f.txt", b"notimg", "text/plain")}
    resp = test_client.post("/images", files=files)
    assert resp.status_code == 400


def test_upload_bytes_that_are_not_an_image(test_client):
    files = {"file": ("f.png", b"notimg", "image/png")}
    resp = test_client.post("/images", files=files)
    assert resp.status_code == 400


def test_upload_too_large(app_factory, test_settings, pipeline):
    settings = test_settings.model_copy(update={"max_upload_bytes": 16})
    with TestClient(app_factory(settings, pipeline)) as client:
        files = {"file": ("f.png", make_png_bytes(), "image/png")}
        resp = client.post("/images", files=files)
    assert resp.status_code == 413


def test_upload_scope_not_allowed(app_factory, test_settings, pipeline):
    settings = test_settings.model_copy(update={"allowed_scope": "page-1"})
    with TestClient(app_factory(settings, pipeline)) as client:
        files = {"file": ("f.png", make_png_bytes(), "image/png")}
        assert client.post("/images", data={"scope": "page-2"}, files=files).status_code == 403
        assert client.post("/images", files=files).status_code == 403
        assert client.post("/images", data={"scope": "page-1"}, files=files).status_code == 201


def test_upload_remote_failure_is_bad_gateway(app_factory, test_settings, db_service, s3_service):
    def forbidden(request):
        return httpx.Response(403, content=b"Forbidden")

    pipeline = ImagePipeline(db=db_service, s3=s3_service, remover=make_remover(test_settings, forbidden))
    with TestClient(app_factory(test_settings, pipeline)) as client:
        files = {"file": ("f.png", make_png_bytes(), "image/png")}
        resp = client.post("/images", files=files)

    assert resp.status_code == 502
    assert "Forbidden" in resp.json()["detail"]


# ------------------------------
# /images/{id} [GET + DELETE]
# ------------------------------

def test_get_and_delete_image(test_client):
    files = {"file": ("g.png", make_png_bytes(), "image/png")}
    upload = test_client.post("/images", data={"scope": "u2"}, files=files)
    img_id = upload.json()["id"]

    resp = test_client.get(f"/images/{img_id}")
    assert resp.status_code == 200
    assert resp.json()["id"] == img_id
    assert resp.json()["url"] == upload.json()["url"]

    delete = test_client.delete(f"/images/{img_id}")
    assert delete.status_code == 204

    assert test_client.get(f"/images/{img_id}").status_code == 404


def test_get_nonexistent_image(test_client):
    resp = test_client.get("/images/nope")
    assert resp.status_code == 404


def test_delete_nonexistent_image(test_client):
    resp = test_client.delete("/images/unknown-id")
    assert resp.status_code == 404
    assert resp.json() == {"detail": "Image with ID 'unknown-id' not found."}


# ------------------------------
# /images [GET list + DELETE scope]
# ------------------------------

def test_list_images(test_client):
    files = {"file": ("a.png", make_png_bytes(), "image/png")}
    test_client.post("/images", data={"scope": "list1"}, files=files)
    test_client.post("/images", data={"scope": "list1"}, files=files)
    test_client.post("/images", data={"scope": "list2"}, files=files)

    resp = test_client.get("/images", params={"scope": "list1"})
    assert resp.status_code == 200
    body = resp.json()
    assert len(body["images"]) == 2
    assert set(body["images"][0]) == {"id", "url", "originalUrl", "createdAt"}
    assert body["nextCursor"] is None

    first_page = test_client.get("/images", params={"limit": 2}).json()
    assert len(first_page["images"]) == 2
    rest = test_client.get("/images", params={"limit": 2, "cursor": first_page["nextCursor"]}).json()
    assert len(rest["images"]) == 1


def test_list_images_bad_cursor(test_client):
    resp = test_client.get("/images", params={"cursor": "%%%"})
    assert resp.status_code == 400


def test_delete_scope(test_client):
    files = {"file": ("a.png", make_png_bytes(), "image/png")}
    test_client.post("/images", data={"scope": "gone"}, files=files)
    test_client.post("/images", data={"scope": "stays"}, files=files)

    resp = test_client.delete("/images", params={"scope": "gone"})
    assert resp.status_code == 200
    assert resp.json() == {"scope": "gone", "deleted": 1}
    assert len(test_client.get("/images").json()["images"]) == 1


def test_health(test_client):
    resp = test_client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"


def test_delete_scope_not_allowed(app_factory, test_settings, pipeline):
    settings = test_settings.model_copy(update={"allowed_scope": "page-1"})
    with TestClient(app_factory(settings, pipeline)) as client:
        files = {"file": ("f.png", make_png_bytes(), "image/png")}
        client.post("/images", data={"scope": "page-1"}, files=files)

        assert client.delete("/images", params={"scope": "page-2"}).status_code == 403
        assert len(client.get("/images").json()["images"]) == 1
        assert client.delete("/images", params={"scope": "page-1"}).json() == {"scope": "page-1", "deleted": 1}
