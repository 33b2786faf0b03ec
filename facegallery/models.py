from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import JSON, Boolean, Column, DateTime, ForeignKey, String
from sqlalchemy.orm import relationship

from .database import Base


def _new_id() -> str:
    return uuid4().hex


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class User(Base):
    __tablename__ = "users"

    id = Column(String(32), primary_key=True, default=_new_id)
    name = Column(String(100), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)
    role = Column(String(20), nullable=False, default="student")

    face_descriptor = Column(JSON(none_as_null=True), nullable=True)
    is_verified = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime, nullable=False, default=_utcnow)

    images = relationship("Image", back_populates="uploader")

    @property
    def has_face_descriptor(self) -> bool:
        return self.face_descriptor is not None


class Image(Base):
    __tablename__ = "images"

    id = Column(String(32), primary_key=True, default=_new_id)
    name = Column(String(255), nullable=False)
    path = Column(String(255), nullable=False)
    uploaded_by = Column(String(32), ForeignKey("users.id"), nullable=False, index=True)

    face_descriptor = Column(JSON(none_as_null=True), nullable=True)

    upload_date = Column(DateTime, nullable=False, default=_utcnow, index=True)

    uploader = relationship("User", back_populates="images", lazy="joined")

    @property
    def has_face_descriptor(self) -> bool:
        return self.face_descriptor is not None
