"""Pytest configuration and fixtures for FaceGallery tests."""
import asyncio

import cv2
import numpy as np
import pytest
from fastapi.testclient import TestClient

from facegallery.detector import DetectedFace
from facegallery.face_engine import FaceEngine
from facegallery.settings import Settings

# Synthetic images are solid colours; the fake detector keys faces on the colour value.
ONE_FACE_A = 10
ONE_FACE_B = 20
SELFIE_NEAR = 30
SELFIE_FAR = 40
NO_FACE = 50
TWO_FACES = 60

DESCRIPTOR_A = [1.0, 0.0, 0.0, 0.0]
DESCRIPTOR_B = [0.0, 0.0, 1.0, 0.0]

FACES = {
    ONE_FACE_A: [DESCRIPTOR_A],
    ONE_FACE_B: [DESCRIPTOR_B],
    SELFIE_NEAR: [[1.0, 0.3, 0.0, 0.0]],  # 0.3 from A
    SELFIE_FAR: [[1.0, 0.9, 0.0, 0.0]],  # 0.9 from A
    NO_FACE: [],
    TWO_FACES: [DESCRIPTOR_A, DESCRIPTOR_B],
}


def make_png(value: int, size: int = 16) -> bytes:
    arr = np.full((size, size, 3), value, dtype=np.uint8)
    ok, buf = cv2.imencode(".png", arr)
    assert ok
    return buf.tobytes()


class FakeDetector:
    def __init__(self, faces=None, fail_prepare: bool = False):
        self.faces = FACES if faces is None else faces
        self.fail_prepare = fail_prepare
        self.prepared = 0

    def prepare(self):
        self.prepared += 1
        if self.fail_prepare:
            raise RuntimeError("weights not found")

    def detect(self, bgr):
        value = int(bgr[0, 0, 0])
        return [
            DetectedFace(bbox=(0, 0, 8, 8), score=0.99, embedding=np.asarray(d, dtype=np.float32))
            for d in self.faces.get(value, [])
        ]

    def info(self):
        return {"name": "fake"}


@pytest.fixture
def settings(tmp_path):
    return Settings(
        database_url="sqlite://",
        upload_dir=str(tmp_path / "uploads"),
        jwt_secret="test-secret",
        extraction_workers=1,
        extraction_queue=2,
        extraction_timeout=5.0,
        log_level="DEBUG",
    )


@pytest.fixture
def face_engine():
    return FaceEngine(FakeDetector())


@pytest.fixture
def app(settings, face_engine):
    from facegallery.app import create_app
    return create_app(settings=settings, face_engine=face_engine)


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c


def _register_and_login(client, name, role, password="secret123"):
    r = client.post("/api/register", json={"name": name, "password": password, "role": role})
    assert r.status_code == 201, r.text
    r = client.post("/api/login", json={"name": name, "password": password})
    assert r.status_code == 200, r.text
    return {"Authorization": f"Bearer {r.json()['token']}"}


@pytest.fixture
def admin_headers(client):
    return _register_and_login(client, "admin", "admin")


@pytest.fixture
def student_headers(client):
    return _register_and_login(client, "student", "student")


@pytest.fixture
def upload(client, admin_headers):
    """Upload a synthetic image as admin; returns the response."""

    def _upload(value: int, filename: str = "photo.png", headers=None):
        return client.post(
            "/api/images/upload",
            files={"image": (filename, make_png(value), "image/png")},
            headers=headers or admin_headers,
        )

    return _upload


@pytest.fixture
def verify(client, student_headers):
    def _verify(value: int, headers=None):
        return client.post(
            "/api/verify-face",
            files={"image": ("selfie.png", make_png(value), "image/png")},
            headers=headers or student_headers,
        )

    return _verify


def running_on_event_loop() -> bool:
    try:
        asyncio.get_running_loop()
        return True
    except RuntimeError:
        return False
