"""Face descriptor extraction with an explicit model lifecycle.

State moves UNINITIALIZED -> LOADING -> READY, or to FAILED when loading
raises. Models are loaded once and only read afterwards, so a READY engine is
shared by every extraction worker.
"""
import logging
import threading
from enum import Enum
from typing import List, Optional

import numpy as np

from .detector import DetectedFace, FaceDetector, decode_image
from .errors import (
    ExtractionError,
    InvalidImageError,
    ModelNotReadyError,
    MultipleFacesError,
    NoFaceDetectedError,
)
from .settings import Settings

logger = logging.getLogger(__name__)


class EngineState(str, Enum):
    UNINITIALIZED = "uninitialized"
    LOADING = "loading"
    READY = "ready"
    FAILED = "failed"


class FaceEngine:
    def __init__(self, detector, embedder=None):
        # embedder=None means the detector's own recognition head supplies embeddings
        self.detector = detector
        self.embedder = embedder
        self._state = EngineState.UNINITIALIZED
        self._lock = threading.Lock()
        self.error: Optional[str] = None

    @property
    def state(self) -> EngineState:
        return self._state

    @property
    def ready(self) -> bool:
        return self._state is EngineState.READY

    def load(self) -> bool:
        with self._lock:
            if self._state in (EngineState.LOADING, EngineState.READY):
                return self.ready
            self._state = EngineState.LOADING
            self.error = None
        logger.info("Loading face models...")
        try:
            self.detector.prepare()
            if self.embedder is not None:
                self.embedder.load()
        except Exception as e:
            logger.error(f"Error loading face models: {e}", exc_info=True)
            with self._lock:
                self._state = EngineState.FAILED
                self.error = str(e)
            return False
        with self._lock:
            self._state = EngineState.READY
        logger.info("Face models loaded successfully")
        return True

    def ensure_ready(self):
        if not self.ready:
            detail = f" ({self.error})" if self.error else ""
            raise ModelNotReadyError(f"Face models are not ready: {self._state.value}{detail}")

    def _embed(self, face: DetectedFace) -> np.ndarray:
        if self.embedder is not None:
            return self.embedder.embed(face)
        if face.embedding is None:
            raise ExtractionError("Detector returned a face without an embedding")
        return face.embedding

    def extract_all(self, image_bytes: bytes) -> List[np.ndarray]:
        """Return one descriptor per detected face (possibly none)."""
        self.ensure_ready()
        bgr = decode_image(image_bytes)
        if bgr is None:
            raise InvalidImageError()
        try:
            faces = self.detector.detect(bgr)
            descriptors = [np.asarray(self._embed(f), dtype=np.float32) for f in faces]
        except ExtractionError:
            raise
        except Exception as e:
            logger.error(f"Face detection error: {e}", exc_info=True)
            raise ExtractionError(f"Face detection failed: {e}") from e
        logger.debug(f"Face detection complete. Found faces: {len(descriptors)}")
        return descriptors

    def extract_descriptor(self, image_bytes: bytes) -> np.ndarray:
        """Return the descriptor of the single face in the image."""
        descriptors = self.extract_all(image_bytes)
        if not descriptors:
            raise NoFaceDetectedError()
        if len(descriptors) > 1:
            raise MultipleFacesError(len(descriptors))
        return descriptors[0]

    def info(self) -> dict:
        info = {"state": self._state.value, "error": self.error}
        if hasattr(self.detector, "info"):
            info["detector"] = self.detector.info()
        if self.embedder is not None and hasattr(self.embedder, "info"):
            info["embedder"] = self.embedder.info()
        return info


def build_engine(settings: Settings) -> FaceEngine:
    det_size = (settings.insightface_det_w, settings.insightface_det_h)
    if settings.face_backend == "torch":
        from .embedder import TorchEmbedder

        detector = FaceDetector(settings.insightface_name, det_size, with_recognition=False)
        embedder = TorchEmbedder(
            torchscript=settings.embedder_torchscript,
            state_dict=settings.embedder_state_dict,
            arch=settings.embedder_arch,
            device=settings.device,
        )
        return FaceEngine(detector, embedder)
    if settings.face_backend != "insightface":
        raise ValueError(f"Unknown FACE_BACKEND: {settings.face_backend}")
    return FaceEngine(FaceDetector(settings.insightface_name, det_size, with_recognition=True))
