import os
from dataclasses import dataclass, field
from typing import List

from dotenv import load_dotenv

load_dotenv(os.path.join(os.path.dirname(__file__), ".env"))
load_dotenv()


# ====== Core Config ======
API_PREFIX = "/api"
ALLOWED_ROLES = ("admin", "student")

# Upload validation
ALLOWED_IMG_EXTENSIONS = {".jpg", ".jpeg", ".png", ".gif"}

DEFAULT_JWT_SECRET = "change-me"


def _bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


def _list(name: str) -> List[str]:
    raw = os.getenv(name, "")
    return [item.strip() for item in raw.split(",") if item.strip()]


@dataclass(frozen=True)
class Settings:
    # Storage
    database_url: str = "sqlite:///./data/facegallery.db"
    upload_dir: str = "./uploads"
    static_dir: str = ""  # path to built frontend (optional)

    # Auth
    jwt_secret: str = DEFAULT_JWT_SECRET
    jwt_algorithm: str = "HS256"
    token_ttl_seconds: int = 3600

    # Matching. 0.6 suits 128-d dlib-style descriptors; recalibrate for other embedders.
    match_threshold: float = 0.6
    restrict_downloads_to_matches: bool = False

    # Serve /uploads/<file> without a token (thumbnails in the web UI)
    public_uploads: bool = True

    # Upload limits
    img_max_mb: int = 8

    # Face models
    face_backend: str = "insightface"  # insightface | torch
    insightface_name: str = "buffalo_l"
    insightface_det_w: int = 640
    insightface_det_h: int = 640
    device: str = "cuda:0"
    embedder_torchscript: str = ""
    embedder_state_dict: str = ""
    embedder_arch: str = "r100"

    # Extraction executor
    extraction_workers: int = 2
    extraction_queue: int = 8
    extraction_timeout: float = 30.0

    # CORS (front and API on same origin -> keep empty; otherwise add your domain)
    cors_allow_origins: List[str] = field(default_factory=list)

    log_level: str = "INFO"


def load_settings() -> Settings:
    return Settings(
        database_url=os.getenv("DATABASE_URL", "sqlite:///./data/facegallery.db"),
        upload_dir=os.getenv("UPLOAD_DIR", "./uploads"),
        static_dir=os.getenv("STATIC_DIR", ""),
        jwt_secret=os.getenv("JWT_SECRET", DEFAULT_JWT_SECRET),
        jwt_algorithm=os.getenv("JWT_ALGORITHM", "HS256"),
        token_ttl_seconds=int(os.getenv("TOKEN_TTL_SECONDS", "3600")),
        match_threshold=float(os.getenv("MATCH_THRESHOLD", "0.6")),
        restrict_downloads_to_matches=_bool("RESTRICT_DOWNLOADS_TO_MATCHES"),
        public_uploads=_bool("PUBLIC_UPLOADS", "true"),
        img_max_mb=int(os.getenv("IMG_MAX_MB", "8")),
        face_backend=os.getenv("FACE_BACKEND", "insightface").lower(),
        insightface_name=os.getenv("INSIGHTFACE_NAME", "buffalo_l"),
        insightface_det_w=int(os.getenv("INSIGHTFACE_DET_W", "640")),
        insightface_det_h=int(os.getenv("INSIGHTFACE_DET_H", "640")),
        device=os.getenv("DEVICE", "cuda:0"),
        embedder_torchscript=os.getenv("EMBEDDER_TORCHSCRIPT", ""),
        embedder_state_dict=os.getenv("EMBEDDER_STATE_DICT", ""),
        embedder_arch=os.getenv("EMBEDDER_ARCH", "r100"),
        extraction_workers=int(os.getenv("EXTRACTION_WORKERS", "2")),
        extraction_queue=int(os.getenv("EXTRACTION_QUEUE", "8")),
        extraction_timeout=float(os.getenv("EXTRACTION_TIMEOUT", "30")),
        cors_allow_origins=_list("CORS_ALLOW_ORIGINS"),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
    )
