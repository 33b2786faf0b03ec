"""Accessors for the per-application singletons kept on ``app.state``."""
import os
from typing import Optional

from fastapi import HTTPException, Request, UploadFile, status

from .extraction_pool import ExtractionPool
from .face_engine import FaceEngine
from .settings import ALLOWED_IMG_EXTENSIONS, Settings
from .storage import UploadStore


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_face_engine(request: Request) -> FaceEngine:
    return request.app.state.face_engine


def get_extraction_pool(request: Request) -> ExtractionPool:
    return request.app.state.extraction_pool


def get_upload_store(request: Request) -> UploadStore:
    return request.app.state.upload_store


async def read_image_upload(file: Optional[UploadFile], settings: Settings,
                            missing_message: str = "No file uploaded") -> bytes:
    if file is None or not file.filename:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, missing_message)
    ext = os.path.splitext(file.filename)[1].lower()
    if ext not in ALLOWED_IMG_EXTENSIONS:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, "Only image files are allowed!")
    raw = await file.read()
    if len(raw) > settings.img_max_mb * 1024 * 1024:
        raise HTTPException(status.HTTP_413_REQUEST_ENTITY_TOO_LARGE, f"Image exceeds {settings.img_max_mb}MB")
    if not raw:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, "Uploaded file is empty")
    return raw
