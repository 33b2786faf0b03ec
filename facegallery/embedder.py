"""
TorchScript / state-dict embedder.

Used when FACE_BACKEND=torch. Two ways to provide weights:
- TorchScript via EMBEDDER_TORCHSCRIPT (recommended for deploy)
- state_dict via EMBEDDER_STATE_DICT + EMBEDDER_ARCH (needs a `backbones` module)

Model contract: input is CHW float32 [0..1], aligned face (e.g., 112x112),
output is 1D embedding vector. We L2-normalize the output.
"""
import logging
import os
from typing import Optional

import numpy as np
import torch

from .detector import DetectedFace

logger = logging.getLogger(__name__)

try:
    from backbones import get_model  # r100/r50 etc.
except ImportError:
    get_model = None  # will error later if needed


class TorchEmbedder:
    def __init__(self, torchscript: str = "", state_dict: str = "", arch: str = "r100",
                 device: str = "cuda:0", image_size: int = 112):
        self.torchscript = torchscript
        self.state_dict = state_dict
        self.arch = arch
        self.requested_device = device
        self.image_size = image_size
        self.device: Optional[torch.device] = None
        self.model = None

    def _load_from_torchscript(self) -> bool:
        if not self.torchscript:
            return False
        if not os.path.isfile(self.torchscript):
            logger.warning(f"Embedder: file not found: {self.torchscript}")
            return False
        logger.info(f"Embedder: loading TorchScript from {self.torchscript}")
        m = torch.jit.load(self.torchscript, map_location=self.device)
        m.eval()
        self.model = m
        return True

    def _load_from_state_dict(self) -> bool:
        if not self.state_dict:
            return False
        if not os.path.isfile(self.state_dict):
            logger.warning(f"Embedder: state_dict file not found: {self.state_dict}")
            return False
        if get_model is None:
            raise RuntimeError("backbones.get_model not available. Install your backbone module or export TorchScript.")
        logger.info(f"Embedder: loading backbone {self.arch} from state_dict {self.state_dict}")
        net = get_model(self.arch, fp16=False)
        sd = torch.load(self.state_dict, map_location=self.device)
        if isinstance(sd, dict) and "state_dict" in sd:
            sd = sd["state_dict"]
        missing, unexpected = net.load_state_dict(sd, strict=False)
        if missing:
            logger.warning(f"Embedder: missing {len(missing)} keys, first 10: {missing[:10]}")
        if unexpected:
            logger.warning(f"Embedder: unexpected {len(unexpected)} keys, first 10: {unexpected[:10]}")
        self.model = net.to(self.device).eval()
        return True

    def load(self):
        cuda = torch.cuda.is_available()
        self.device = torch.device(self.requested_device if cuda else "cpu")
        logger.info(f"Embedder: cuda available: {cuda}, requested device: {self.requested_device}, using device: {self.device}")

        # Try state_dict first if provided, else TorchScript
        loaded = self._load_from_state_dict() or self._load_from_torchscript()
        if not loaded:
            raise RuntimeError("No embedder configured. Set EMBEDDER_STATE_DICT + EMBEDDER_ARCH or EMBEDDER_TORCHSCRIPT.")

        # Warmup
        with torch.inference_mode():
            dummy = torch.randn(1, 3, self.image_size, self.image_size, device=self.device)
            self.model(dummy)
        return self.model

    def embed(self, face: DetectedFace) -> np.ndarray:
        """Run inference on the aligned crop. Returns an L2-normalized embedding (np.float32)."""
        if self.model is None:
            raise RuntimeError("Embedder not loaded. Call load() at startup.")
        if face.aligned is None:
            raise ValueError("Face has no aligned crop (landmarks missing)")
        x = torch.from_numpy(np.ascontiguousarray(face.aligned)).unsqueeze(0).to(self.device)
        with torch.inference_mode():
            emb = self.model(x).detach().float().cpu().numpy()[0]
        n = np.linalg.norm(emb) + 1e-9
        return (emb / n).astype(np.float32)

    def info(self) -> dict:
        info = {
            "arch": self.arch,
            "torchscript": bool(self.torchscript),
            "state_dict": bool(self.state_dict),
            "device": str(self.device) if self.device is not None else ("cuda" if torch.cuda.is_available() else "cpu"),
            "torch": torch.__version__,
        }
        if self.model is not None:
            info["model_class"] = self.model.__class__.__name__
        return info
