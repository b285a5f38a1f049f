import pytest
from fastapi.testclient import TestClient

from app import create_app
from constants import MAX_UPLOAD_BYTES

PNG = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32


@pytest.fixture
def upload_dir(tmp_path):
    return tmp_path / "uploads"


@pytest.fixture
def client(upload_dir):
    with TestClient(create_app(["http://localhost:3000"], upload_dir=upload_dir)) as client:
        yield client


def test_upload_directory_is_created(client, upload_dir):
    assert upload_dir.is_dir()


def test_upload_and_fetch_image(client, upload_dir):
    response = client.post("/upload", files={"image": ("cat.png", PNG, "image/png")})

    assert response.status_code == 200
    image_url = response.json()["imageUrl"]
    assert image_url.startswith("/uploads/") and image_url.endswith(".png")
    assert (upload_dir / image_url.rsplit("/", 1)[1]).read_bytes() == PNG

    fetched = client.get(image_url)
    assert fetched.status_code == 200
    assert fetched.content == PNG


@pytest.mark.parametrize("content_type", ["image/jpeg", "image/gif", "image/webp"])
def test_other_image_types_are_accepted(client, content_type):
    response = client.post("/upload", files={"image": ("pic.bin", b"data", content_type)})

    assert response.status_code == 200


def test_non_image_is_rejected(client, upload_dir):
    response = client.post("/upload", files={"image": ("notes.txt", b"hello", "text/plain")})

    assert response.status_code == 400
    assert response.json() == {"detail": "Only PNG, JPEG, GIF, and WebP files are allowed!"}
    assert list(upload_dir.iterdir()) == []


def test_missing_file_is_rejected(client):
    response = client.post("/upload")

    assert response.status_code == 400
    assert response.json() == {"detail": "No file uploaded."}


def test_oversized_file_is_rejected(client, upload_dir):
    response = client.post("/upload", files={"image": ("big.png", b"\x00" * (MAX_UPLOAD_BYTES + 1), "image/png")})

    assert response.status_code == 400
    assert response.json() == {"detail": "File too large"}
    assert list(upload_dir.iterdir()) == []


def test_cors_preflight_for_allowed_origin(client):
    response = client.options(
        "/upload",
        headers={"Origin": "http://localhost:3000", "Access-Control-Request-Method": "POST"},
    )

    assert response.status_code == 200
    assert response.headers["access-control-allow-origin"] == "http://localhost:3000"
