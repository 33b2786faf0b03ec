"""Gallery endpoints: upload, listing, download and deletion."""
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile, status
from fastapi.responses import FileResponse
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from ..auth import get_current_user, get_optional_user, require_role
from ..database import get_db
from ..dependencies import (
    get_extraction_pool,
    get_face_engine,
    get_settings,
    get_upload_store,
    read_image_upload,
)
from ..errors import StorageError
from ..extraction_pool import ExtractionPool
from ..face_engine import FaceEngine
from ..matching import find_matches, is_match
from ..models import Image, User
from ..schemas import ImageOut, MessageResponse, UploadResponse
from ..settings import Settings
from ..storage import URL_PREFIX, UploadStore

logger = logging.getLogger(__name__)

router = APIRouter()

# Mounted at /uploads, outside the API prefix
files_router = APIRouter()


def _all_images(db: Session) -> List[Image]:
    return db.query(Image).order_by(Image.upload_date).all()


def student_matches(db: Session, student: User, settings: Settings) -> List[Image]:
    candidates = db.query(Image).filter(Image.face_descriptor.isnot(None)).order_by(Image.upload_date).all()
    return find_matches(student.face_descriptor, candidates, settings.match_threshold)


def check_download_access(user: User, image: Image, settings: Settings):
    """Admins may fetch any image, students only once verified (and matching, if restricted)."""
    if user.role == "admin":
        return
    if not user.is_verified:
        raise HTTPException(status.HTTP_403_FORBIDDEN, "Access denied")
    if settings.restrict_downloads_to_matches and not (
        user.face_descriptor is not None
        and is_match(user.face_descriptor, image.face_descriptor, settings.match_threshold)
    ):
        raise HTTPException(status.HTTP_403_FORBIDDEN, "Access denied")


def _stored_file(image: Image, store: UploadStore):
    path = store.resolve(image.path)
    if path is None or not path.is_file():
        # deleted concurrently, or the file vanished from disk
        raise HTTPException(status.HTTP_404_NOT_FOUND, "Image file not found")
    return path


def _store_upload(db: Session, store: UploadStore, user: User, filename: str,
                  raw: bytes, descriptor) -> ImageOut:
    # blocking file and database work; runs in the threadpool
    with store.stage(raw, filename) as staged:
        record = Image(
            name=filename,
            path=staged.stored_path,
            uploaded_by=user.id,
            face_descriptor=[float(x) for x in descriptor],
        )
        db.add(record)
        db.commit()
        try:
            staged.commit()
        except OSError as e:
            logger.error(f"Could not store upload {staged.filename}, dropping record {record.id}", exc_info=True)
            db.delete(record)
            db.commit()
            raise StorageError() from e

    db.refresh(record)
    return ImageOut.model_validate(record)


@router.post("/upload", response_model=UploadResponse, status_code=status.HTTP_201_CREATED)
async def upload_image(
    image: Optional[UploadFile] = File(None),
    user: User = Depends(require_role("admin")),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    engine: FaceEngine = Depends(get_face_engine),
    pool: ExtractionPool = Depends(get_extraction_pool),
    store: UploadStore = Depends(get_upload_store),
):
    """
    Upload a gallery image (admin only).

    The image must contain exactly one face. Nothing is persisted unless the
    descriptor was extracted, the record was written, and the file was moved
    into the upload directory.
    """
    raw = await read_image_upload(image, settings)
    engine.ensure_ready()
    descriptor = await pool.run(engine.extract_descriptor, raw)

    stored = await run_in_threadpool(_store_upload, db, store, user, image.filename, raw, descriptor)
    logger.info(f"Admin {user.name} uploaded {stored.name} as {stored.path} ({stored.id})")
    return UploadResponse(message="Image uploaded successfully", image=stored)


@router.get("", response_model=List[ImageOut])
def list_images(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """
    List gallery images.

    Admins see every image. Students see only the images matching their
    verified face descriptor.
    """
    if user.role == "admin":
        return _all_images(db)
    if not user.is_verified or user.face_descriptor is None:
        raise HTTPException(status.HTTP_403_FORBIDDEN, "Face verification required")
    return student_matches(db, user, settings)


@router.get("/{image_id}/download")
def download_image(
    image_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    store: UploadStore = Depends(get_upload_store),
):
    image = db.get(Image, image_id)
    if image is None:
        raise HTTPException(status.HTTP_404_NOT_FOUND, "Image not found")
    check_download_access(user, image, settings)
    return FileResponse(_stored_file(image, store), filename=image.name)


@files_router.get("/{filename}", include_in_schema=False)
def serve_upload(
    filename: str,
    user: Optional[User] = Depends(get_optional_user),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    store: UploadStore = Depends(get_upload_store),
):
    """Serve a stored image at its ``path`` URL, e.g. for gallery thumbnails."""
    image = db.query(Image).filter(Image.path == f"{URL_PREFIX}/{filename}").first()
    if image is None:
        raise HTTPException(status.HTTP_404_NOT_FOUND, "Image not found")
    if not settings.public_uploads:
        if user is None:
            raise HTTPException(
                status.HTTP_401_UNAUTHORIZED, "Please authenticate", headers={"WWW-Authenticate": "Bearer"}
            )
        check_download_access(user, image, settings)
    return FileResponse(_stored_file(image, store))


@router.delete("/{image_id}", response_model=MessageResponse)
def delete_image(
    image_id: str,
    user: User = Depends(require_role("admin", "Only admins can delete images")),
    db: Session = Depends(get_db),
    store: UploadStore = Depends(get_upload_store),
):
    image = db.get(Image, image_id)
    if image is None:
        raise HTTPException(status.HTTP_404_NOT_FOUND, "Image not found")
    path = image.path

    deleted = db.query(Image).filter(Image.id == image_id).delete(synchronize_session=False)
    db.commit()
    if not deleted:
        raise HTTPException(status.HTTP_404_NOT_FOUND, "Image not found")

    if not store.remove(path):
        logger.warning(f"Image {image_id} deleted but its file {path} was already gone")
    logger.info(f"Admin {user.name} deleted image {image_id}")
    return {"message": "Image deleted successfully"}
