"""
FaceGallery API

Admins upload gallery images; students verify with a selfie and get access
to the images whose face matches theirs.
"""
import logging
import os
import sys
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse
from starlette.concurrency import run_in_threadpool
from starlette.staticfiles import StaticFiles

from . import __version__
from .database import init_db, make_engine, make_session_factory
from .errors import install_exception_handlers
from .extraction_pool import ExtractionPool
from .face_engine import FaceEngine, build_engine
from .middleware import RequestLoggingMiddleware
from .routers import auth, images, users, verification
from .settings import API_PREFIX, DEFAULT_JWT_SECRET, Settings, load_settings
from .storage import URL_PREFIX, UploadStore

logger = logging.getLogger(__name__)


def _configure_logging(level: str):
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )


def _resolve_static_dir(static_dir: str) -> str:
    # Resolve STATIC_DIR to absolute path if needed (relative to repo root)
    resolved = static_dir
    if resolved and not os.path.isabs(resolved):
        resolved = os.path.normpath(os.path.join(os.path.dirname(__file__), "..", resolved))
    # Fallback: use repo's frontend/build if available
    if not resolved or not os.path.isdir(resolved):
        fallback = os.path.normpath(os.path.join(os.path.dirname(__file__), "..", "frontend", "build"))
        if os.path.isdir(fallback):
            resolved = fallback
    return resolved if resolved and os.path.isdir(resolved) else ""


def _mount_static_ui(app: FastAPI, static_dir: str):
    logger.info(f"Serving static UI from: {static_dir}")
    for sub in ("assets", "static"):
        sub_dir = os.path.join(static_dir, sub)
        if os.path.isdir(sub_dir):
            app.mount(f"/{sub}", StaticFiles(directory=sub_dir), name=sub)
    index_path = os.path.join(static_dir, "index.html")
    if os.path.isfile(index_path):
        @app.get("/", include_in_schema=False)
        def root_index():
            return FileResponse(index_path)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings: Settings = app.state.settings
    logger.info(f"Starting FaceGallery v{__version__}")
    if settings.jwt_secret == DEFAULT_JWT_SECRET:
        logger.warning("JWT_SECRET is not set, tokens are signed with the default secret")

    init_db(app.state.db_engine)
    store: UploadStore = app.state.upload_store
    store.ensure_dirs()
    store.purge_incoming()

    # Models load once here; extraction endpoints answer 503 until READY.
    await run_in_threadpool(app.state.face_engine.load)

    yield

    logger.info("Shutting down FaceGallery")
    app.state.extraction_pool.shutdown()
    app.state.db_engine.dispose()


def create_app(settings: Optional[Settings] = None, face_engine: Optional[FaceEngine] = None) -> FastAPI:
    settings = settings or load_settings()
    _configure_logging(settings.log_level)

    app = FastAPI(title="FaceGallery", version=__version__, lifespan=lifespan)

    app.state.settings = settings
    app.state.db_engine = make_engine(settings.database_url)
    app.state.session_factory = make_session_factory(app.state.db_engine)
    app.state.upload_store = UploadStore(settings.upload_dir)
    app.state.face_engine = face_engine or build_engine(settings)
    app.state.extraction_pool = ExtractionPool(
        max_workers=settings.extraction_workers,
        max_pending=settings.extraction_queue,
        timeout=settings.extraction_timeout,
    )

    if settings.cors_allow_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.cors_allow_origins,
            allow_methods=["*"],
            allow_headers=["*"],
            allow_credentials=True,
            expose_headers=["X-Process-Time", "X-Request-ID"],
        )
    app.add_middleware(RequestLoggingMiddleware)
    install_exception_handlers(app)

    app.include_router(auth.router, prefix=API_PREFIX, tags=["Auth"])
    app.include_router(images.router, prefix=f"{API_PREFIX}/images", tags=["Images"])
    app.include_router(images.files_router, prefix=f"/{URL_PREFIX}", tags=["Images"])
    app.include_router(verification.router, prefix=API_PREFIX, tags=["Verification"])
    app.include_router(users.router, prefix=f"{API_PREFIX}/users", tags=["Users"])

    # ===== Health =====
    @app.get(f"{API_PREFIX}/healthz", tags=["Health"])
    def healthz():
        return {"ok": True}

    @app.get(f"{API_PREFIX}/readyz", tags=["Health"])
    def readyz():
        engine: FaceEngine = app.state.face_engine
        body = {"ok": engine.ready, "models": engine.state.value}
        if engine.error:
            body["error"] = engine.error
        return JSONResponse(status_code=200 if engine.ready else 503, content=body)

    @app.get(f"{API_PREFIX}/info", tags=["Health"])
    def api_info():
        return {
            "api": {
                "version": __version__,
                "match_threshold": settings.match_threshold,
                "face_backend": settings.face_backend,
                "restrict_downloads_to_matches": settings.restrict_downloads_to_matches,
            },
            "model": app.state.face_engine.info(),
            "extraction": app.state.extraction_pool.info(),
        }

    static_dir = _resolve_static_dir(settings.static_dir)
    if static_dir:
        _mount_static_ui(app, static_dir)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=int(os.getenv("PORT", "3001")))
