"""Student face verification."""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, UploadFile
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from ..auth import get_current_user, require_role
from ..database import get_db
from ..dependencies import get_extraction_pool, get_face_engine, get_settings, read_image_upload
from ..extraction_pool import ExtractionPool
from ..face_engine import FaceEngine
from ..models import User
from ..schemas import UserSummary, VerifyFaceResponse, VerifyStatusResponse
from ..settings import Settings
from .images import student_matches

logger = logging.getLogger(__name__)

router = APIRouter()


def _record_verification(db: Session, user: User, descriptor, settings: Settings) -> int:
    user.face_descriptor = [float(x) for x in descriptor]
    user.is_verified = True
    db.commit()
    return len(student_matches(db, user, settings))


@router.post("/verify-face", response_model=VerifyFaceResponse)
async def verify_face(
    image: Optional[UploadFile] = File(None),
    user: User = Depends(require_role("student", "Only students can verify their face")),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    engine: FaceEngine = Depends(get_face_engine),
    pool: ExtractionPool = Depends(get_extraction_pool),
):
    """
    Verify a student from a selfie.

    The selfie is analysed in memory and never written to disk. On success
    the descriptor replaces any previous one and the student is marked
    verified, even if no gallery image matches.
    """
    raw = await read_image_upload(image, settings, missing_message="No image uploaded")
    engine.ensure_ready()
    descriptor = await pool.run(engine.extract_descriptor, raw)

    matching = await run_in_threadpool(_record_verification, db, user, descriptor, settings)
    logger.info(f"Student {user.name} verified, {matching} matching image(s)")
    return VerifyFaceResponse(
        message="Face verification successful",
        is_verified=True,
        matching_images=matching,
    )


@router.get("/verify-status", response_model=VerifyStatusResponse)
def verify_status(user: User = Depends(get_current_user)):
    logger.debug(f"Checking verification status: {user.id} isVerified={user.is_verified}")
    return VerifyStatusResponse(is_verified=bool(user.is_verified), user=UserSummary.model_validate(user))
