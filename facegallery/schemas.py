"""Request and response schemas.

Response field names follow the JSON the gallery front end consumes
(``_id``, ``uploadedBy``, ``isVerified`` ...).
"""
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class RegisterRequest(BaseModel):
    name: Optional[str] = None
    password: Optional[str] = None
    role: Optional[str] = None


class LoginRequest(BaseModel):
    name: Optional[str] = None
    password: Optional[str] = None


class MessageResponse(BaseModel):
    message: str


class UserSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    role: str


class LoginResponse(BaseModel):
    token: str
    user: UserSummary


class VerifyStatusResponse(BaseModel):
    is_verified: bool = Field(serialization_alias="isVerified")
    user: UserSummary


class VerifyFaceResponse(BaseModel):
    message: str
    is_verified: bool = Field(serialization_alias="isVerified")
    matching_images: int = Field(serialization_alias="matchingImages")


class UploaderOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str = Field(serialization_alias="_id")
    name: str


class ImageOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str = Field(serialization_alias="_id")
    name: str
    path: str
    uploader: Optional[UploaderOut] = Field(default=None, serialization_alias="uploadedBy")
    upload_date: datetime = Field(serialization_alias="uploadDate")
    has_face_descriptor: bool = Field(serialization_alias="hasFaceDescriptor")


class UploadResponse(BaseModel):
    message: str
    image: ImageOut


class StudentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str = Field(serialization_alias="_id")
    name: str
    role: str
    is_verified: bool = Field(serialization_alias="isVerified")
    has_face_descriptor: bool = Field(serialization_alias="hasFaceDescriptor")
    created_at: datetime = Field(serialization_alias="createdAt")
