"""End-to-end verification scenarios: admin uploads, student verifies, gallery access follows."""
import dataclasses
import os

import pytest
from fastapi.testclient import TestClient

from conftest import (
    NO_FACE,
    ONE_FACE_A,
    ONE_FACE_B,
    SELFIE_FAR,
    SELFIE_NEAR,
    TWO_FACES,
    FakeDetector,
    make_png,
    running_on_event_loop,
)

from facegallery.app import create_app
from facegallery.face_engine import FaceEngine
from facegallery.models import User
from facegallery.routers import verification


def test_student_matches_within_threshold(client, upload, verify, student_headers):
    image_a = upload(ONE_FACE_A).json()["image"]["_id"]
    upload(ONE_FACE_B)

    r = verify(SELFIE_NEAR)
    assert r.status_code == 200, r.text
    assert r.json() == {"message": "Face verification successful", "isVerified": True, "matchingImages": 1}

    r = client.get("/api/images", headers=student_headers)
    assert r.status_code == 200
    assert [i["_id"] for i in r.json()] == [image_a]

    status = client.get("/api/verify-status", headers=student_headers).json()
    assert status["isVerified"] is True


def test_student_verified_without_matches(client, upload, verify, student_headers):
    upload(ONE_FACE_A)

    r = verify(SELFIE_FAR)
    assert r.status_code == 200
    assert r.json()["isVerified"] is True
    assert r.json()["matchingImages"] == 0

    r = client.get("/api/images", headers=student_headers)
    assert r.status_code == 200
    assert r.json() == []


def test_reverification_overwrites_descriptor(client, app, upload, verify, student_headers):
    upload(ONE_FACE_A)
    assert verify(SELFIE_NEAR).json()["matchingImages"] == 1
    assert verify(SELFIE_FAR).json()["matchingImages"] == 0

    with app.state.session_factory() as db:
        student = db.query(User).filter(User.name == "student").one()
        assert student.is_verified is True
        assert student.face_descriptor == pytest.approx([1.0, 0.9, 0.0, 0.0])


def test_selfie_without_face_keeps_student_unverified(client, app, verify, student_headers, settings):
    r = verify(NO_FACE)
    assert r.status_code == 500
    assert client.get("/api/verify-status", headers=student_headers).json()["isVerified"] is False
    # selfies are never written to disk
    assert [n for n in os.listdir(settings.upload_dir) if n != ".incoming"] == []


def test_selfie_with_two_faces(verify):
    assert verify(TWO_FACES).status_code == 400


def test_admin_cannot_verify(verify, admin_headers):
    r = verify(SELFIE_NEAR, headers=admin_headers)
    assert r.status_code == 403
    assert r.json()["message"] == "Only students can verify their face"


def test_verified_student_can_download_any_image_by_default(client, upload, verify, student_headers):
    image_b = upload(ONE_FACE_B).json()["image"]["_id"]
    verify(SELFIE_NEAR)
    r = client.get(f"/api/images/{image_b}/download", headers=student_headers)
    assert r.status_code == 200


def test_download_restricted_to_matches(settings, face_engine):
    restricted = dataclasses.replace(settings, restrict_downloads_to_matches=True)
    app = create_app(settings=restricted, face_engine=face_engine)
    with TestClient(app) as client:
        for name, role in (("admin", "admin"), ("student", "student")):
            client.post("/api/register", json={"name": name, "password": "secret123", "role": role})
        admin = {"Authorization": "Bearer " + client.post("/api/login", json={"name": "admin", "password": "secret123"}).json()["token"]}
        student = {"Authorization": "Bearer " + client.post("/api/login", json={"name": "student", "password": "secret123"}).json()["token"]}

        def up(value):
            return client.post("/api/images/upload", files={"image": ("p.png", make_png(value), "image/png")}, headers=admin).json()["image"]["_id"]

        image_a, image_b = up(ONE_FACE_A), up(ONE_FACE_B)
        client.post("/api/verify-face", files={"image": ("s.png", make_png(SELFIE_NEAR), "image/png")}, headers=student)

        assert client.get(f"/api/images/{image_a}/download", headers=student).status_code == 200
        assert client.get(f"/api/images/{image_b}/download", headers=student).status_code == 403


def test_models_not_ready_is_retryable(settings):
    app = create_app(settings=settings, face_engine=FaceEngine(FakeDetector(fail_prepare=True)))
    with TestClient(app) as client:
        client.post("/api/register", json={"name": "s", "password": "secret123"})
        token = client.post("/api/login", json={"name": "s", "password": "secret123"}).json()["token"]

        r = client.post(
            "/api/verify-face",
            files={"image": ("s.png", make_png(SELFIE_NEAR), "image/png")},
            headers={"Authorization": f"Bearer {token}"},
        )
        assert r.status_code == 503
        assert r.headers["Retry-After"]
        assert "weights not found" in r.json()["message"]

        ready = client.get("/api/readyz")
        assert ready.status_code == 503
        assert ready.json()["models"] == "failed"


def test_verification_bookkeeping_runs_off_event_loop(upload, verify, monkeypatch):
    seen = []
    original = verification.student_matches

    def student_matches(*args, **kwargs):
        seen.append(running_on_event_loop())
        return original(*args, **kwargs)

    upload(ONE_FACE_A)
    monkeypatch.setattr(verification, "student_matches", student_matches)
    assert verify(SELFIE_NEAR).json()["matchingImages"] == 1
    assert seen == [False]
