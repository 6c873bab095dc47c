"""
ArcFace Face Embedder

Turns a face crop into an L2-normalized identity descriptor. This is the
descriptor half of the production FaceSignatureExtractor.

Supports two backends:
  - insightface (preferred): FaceAnalysis bundle (SCRFD + ArcFace)
  - facenet-pytorch: MTCNN alignment + InceptionResnetV1 (VGGFace2)

Usage:
    from facematch.face_embedder import FaceEmbedder

    embedder = FaceEmbedder({"backend": "auto", "device": "cpu"})
    embedder.load_model()
    vec = embedder.extract_embedding(face_crop_bgr)   # (512,) or None
"""

import logging
from typing import Optional

import cv2
import numpy as np

logger = logging.getLogger(__name__)

# Backend availability flags
_INSIGHTFACE_AVAILABLE = False
_FACENET_AVAILABLE = False

try:
    from insightface.app import FaceAnalysis
    _INSIGHTFACE_AVAILABLE = True
except ImportError:
    pass

try:
    import torch
    from facenet_pytorch import MTCNN, InceptionResnetV1
    _FACENET_AVAILABLE = True
except ImportError:
    pass


def _unit(vec: np.ndarray) -> np.ndarray:
    vec = np.asarray(vec, dtype=np.float32).ravel()
    norm = np.linalg.norm(vec)
    if norm > 1e-8:
        vec = vec / norm
    return vec.astype(np.float32)


class FaceEmbedder:
    """
    Extract identity embeddings from face crops.

    Args:
        config: Dictionary with optional keys:
            - backend: "auto", "insightface" or "facenet"
            - model: insightface bundle name (default "buffalo_l")
            - embedding_dim: Expected dimension (default 512)
            - device: "cuda" or "cpu"
    """

    def __init__(self, config: Optional[dict] = None):
        if config is None:
            config = {}

        self.model_name = config.get("model", "buffalo_l")
        self.embedding_dim = config.get("embedding_dim", 512)
        self.device = config.get("device", "cpu")

        backend = config.get("backend", "auto")
        if backend == "auto":
            if _INSIGHTFACE_AVAILABLE:
                backend = "insightface"
            elif _FACENET_AVAILABLE:
                backend = "facenet"
            else:
                raise ImportError(
                    "No face embedding backend available. "
                    "Install insightface + onnxruntime, or facenet-pytorch."
                )
        if backend not in ("insightface", "facenet"):
            raise ValueError(f"Unknown embedding backend: {backend}")
        self.backend = backend

        self._model = None
        self._aligner = None  # MTCNN, facenet backend only
        self.is_loaded = False

    def load_model(self) -> None:
        """Load backend weights. Safe to call more than once."""
        if self.is_loaded:
            return

        if self.backend == "insightface":
            if not _INSIGHTFACE_AVAILABLE:
                raise ImportError("insightface is not installed")
            providers = ["CPUExecutionProvider"]
            if self.device == "cuda":
                providers.insert(0, "CUDAExecutionProvider")
            self._model = FaceAnalysis(name=self.model_name, providers=providers)
            self._model.prepare(ctx_id=0 if self.device == "cuda" else -1, det_size=(640, 640))
        else:
            if not _FACENET_AVAILABLE:
                raise ImportError("facenet-pytorch is not installed")
            device = torch.device(self.device if torch.cuda.is_available() else "cpu")
            self._aligner = MTCNN(image_size=160, margin=20, device=device, select_largest=True)
            self._model = InceptionResnetV1(pretrained="vggface2").eval().to(device)

        self.is_loaded = True
        logger.info(f"FaceEmbedder loaded (backend={self.backend}, model={self.model_name})")

    def extract_embedding(self, face_image: np.ndarray) -> Optional[np.ndarray]:
        """
        Embed a BGR face crop.

        Returns:
            L2-normalized float32 vector, or None if the backend finds no face.
        """
        if not self.is_loaded:
            self.load_model()

        if self.backend == "insightface":
            faces = self._model.get(face_image)
            if not faces:
                return None
            best = max(faces, key=lambda f: f.det_score)
            return _unit(best.normed_embedding)

        rgb = cv2.cvtColor(face_image, cv2.COLOR_BGR2RGB)
        aligned = self._aligner(rgb)
        if aligned is None:
            return None
        if aligned.dim() == 3:
            aligned = aligned.unsqueeze(0)

        device = next(self._model.parameters()).device
        with torch.no_grad():
            embedding = self._model(aligned.to(device)).cpu().numpy()
        return _unit(embedding)
