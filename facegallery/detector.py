"""RetinaFace detection + 5-pt landmark alignment via insightface."""
import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple

import cv2
import numpy as np
from skimage import transform as trans

logger = logging.getLogger(__name__)

# Reference template for 5-point alignment (ArcFace)
# (x, y) for left-eye, right-eye, nose, left-mouth, right-mouth in 112x112 space
_ARCFACE_5PTS = np.array([
    [38.2946, 51.6963],
    [73.5318, 51.5014],
    [56.0252, 71.7366],
    [41.5493, 92.3655],
    [70.7299, 92.2041],
], dtype=np.float32)


@dataclass
class DetectedFace:
    bbox: Tuple[int, int, int, int]
    score: float
    aligned: Optional[np.ndarray] = None  # CHW float32 in [0, 1]
    embedding: Optional[np.ndarray] = None  # set when the recognition head ran


def estimate_norm(lmk: np.ndarray, image_size: int = 112) -> np.ndarray:
    """Similarity transform (2x3) mapping five landmarks onto the ArcFace template."""
    lmk = np.asarray(lmk, dtype=np.float32)
    if lmk.shape != (5, 2):
        raise ValueError(f"Expected 5x2 landmarks, got shape {lmk.shape}")
    dst = _ARCFACE_5PTS.copy()
    if image_size != 112:
        dst *= (image_size / 112.0)
    tform = trans.SimilarityTransform()
    tform.estimate(lmk, dst)
    M = tform.params[0:2, :]
    return M.astype(np.float32)


def align_face(bgr: np.ndarray, landmarks, image_size: int = 112) -> Optional[np.ndarray]:
    """Warp the face onto the ArcFace template. Returns CHW float32 in [0, 1] or None."""
    if landmarks is None:
        return None
    lmk = np.array(landmarks, dtype=np.float32).reshape(-1, 2)
    if lmk.shape[0] < 5:
        return None
    M = estimate_norm(lmk[:5], image_size=image_size)
    aligned = cv2.warpAffine(bgr, M, (image_size, image_size))
    rgb = cv2.cvtColor(aligned, cv2.COLOR_BGR2RGB)
    return np.transpose(rgb, (2, 0, 1)).astype(np.float32) / 255.0


def decode_image(raw: bytes) -> Optional[np.ndarray]:
    """Decode encoded image bytes to a BGR array, or None if OpenCV cannot read them."""
    if not raw:
        return None
    return cv2.imdecode(np.frombuffer(raw, np.uint8), cv2.IMREAD_COLOR)


class FaceDetector:
    """insightface ``FaceAnalysis`` wrapper returning every face found in an image.

    With ``with_recognition`` the bundled ArcFace head also runs and each face
    carries its normalized embedding; otherwise only detection and landmarks
    are loaded and faces are embedded elsewhere from their aligned crops.
    """

    def __init__(self, name: str = "buffalo_l", det_size: Tuple[int, int] = (640, 640),
                 with_recognition: bool = True, image_size: int = 112):
        self.name = name
        self.det_size = det_size
        self.with_recognition = with_recognition
        self.image_size = image_size
        self._app = None
        self.providers: Optional[List[str]] = None

    def prepare(self):
        if self._app is not None:
            return self._app
        import insightface

        try:
            import onnxruntime as ort
        except ImportError:
            ort = None

        ctx_id = 0
        if ort is not None:
            avail = ort.get_available_providers()
            logger.info(f"InsightFace/ONNX providers available: {avail}")
            if "CUDAExecutionProvider" in avail:
                self.providers = ["CUDAExecutionProvider", "CPUExecutionProvider"]
            else:
                self.providers = ["CPUExecutionProvider"]
                ctx_id = -1

        kwargs = {"name": self.name, "providers": self.providers}
        if not self.with_recognition:
            kwargs["allowed_modules"] = ["detection"]
        app = insightface.app.FaceAnalysis(**kwargs)
        app.prepare(ctx_id=ctx_id, det_size=self.det_size)
        logger.info(f"FaceAnalysis '{self.name}' ready (det_size={self.det_size}, recognition={self.with_recognition})")
        self._app = app
        return app

    def detect(self, bgr: np.ndarray) -> List[DetectedFace]:
        if self._app is None:
            raise RuntimeError("Detector not prepared. Call prepare() at startup.")
        faces = []
        for face in self._app.get(bgr):
            bbox = getattr(face, "bbox", None)
            bbox = tuple(np.array(bbox, dtype=np.int32).tolist()) if bbox is not None else (0, 0, 0, 0)
            # InsightFace may expose 5-point landmarks as 'kps' or 'landmark'
            lmk = getattr(face, "kps", None)
            if lmk is None:
                lmk = getattr(face, "landmark", None)
            embedding = getattr(face, "normed_embedding", None) if self.with_recognition else None
            faces.append(DetectedFace(
                bbox=bbox,
                score=float(getattr(face, "det_score", 0.0)),
                # the recognition head embeds on its own; only the torch path needs the crop
                aligned=None if self.with_recognition else align_face(bgr, lmk, self.image_size),
                embedding=None if embedding is None else np.asarray(embedding, dtype=np.float32),
            ))
        return faces

    def info(self) -> dict:
        return {
            "name": self.name,
            "det_size": list(self.det_size),
            "recognition": self.with_recognition,
            "providers": self.providers,
        }
