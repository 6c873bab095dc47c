"""
Tests for the Signature Extractor implementations

The stub is checked for determinism and for reporting "no face" on
featureless frames; the production extractor is checked with mocked
detector/embedder objects so no model weights are needed.
"""

import threading
from types import SimpleNamespace
from unittest.mock import MagicMock

import numpy as np
import pytest

from facematch.extractor import (
    FaceSignatureExtractor,
    SerializedExtractor,
    SignatureExtractor,
    StubSignatureExtractor,
)
from facematch.types import FaceSignature

from fakes import ConcurrencyTrackingExtractor


class TestSignatureExtractorInterface:

    def test_cannot_instantiate_abstract(self):
        with pytest.raises(TypeError):
            SignatureExtractor()


# ============================================================
# StubSignatureExtractor Tests
# ============================================================

class TestStubSignatureExtractor:
    """Tests for the deterministic stub extractor."""

    def test_deterministic(self, stub_extractor, face_frame):
        a = stub_extractor.extract(face_frame)
        b = stub_extractor.extract(face_frame.copy())
        np.testing.assert_array_equal(a.descriptor, b.descriptor)

    def test_descriptor_shape_and_norm(self, face_frame):
        extractor = StubSignatureExtractor(thumbnail_size=4)
        sig = extractor.extract(face_frame)

        assert isinstance(sig, FaceSignature)
        assert sig.dim == 16
        assert np.linalg.norm(sig.descriptor) == pytest.approx(1.0, abs=1e-5)

    def test_region_covers_image(self, stub_extractor, face_frame):
        sig = stub_extractor.extract(face_frame)
        assert sig.region == (0, 0, 64, 48)

    def test_blank_frame_has_no_face(self, stub_extractor, blank_wall_frame):
        assert stub_extractor.extract(blank_wall_frame) is None

    def test_empty_image_has_no_face(self, stub_extractor):
        assert stub_extractor.extract(np.zeros((0, 0, 3), dtype=np.uint8)) is None
        assert stub_extractor.extract(None) is None

    def test_grayscale_input(self, stub_extractor, face_frame):
        gray = face_frame[:, :, 0].copy()
        assert stub_extractor.extract(gray) is not None


# ============================================================
# SerializedExtractor Tests
# ============================================================

class TestSerializedExtractor:
    """Tests for the lock-guarded extractor wrapper."""

    def test_delegates(self, stub_extractor, face_frame):
        serialized = SerializedExtractor(stub_extractor)
        np.testing.assert_array_equal(
            serialized.extract(face_frame).descriptor,
            stub_extractor.extract(face_frame).descriptor,
        )

    def test_calls_never_overlap(self, face_frame):
        inner = ConcurrencyTrackingExtractor()
        serialized = SerializedExtractor(inner)

        threads = [
            threading.Thread(target=serialized.extract, args=(face_frame,))
            for _ in range(4)
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert inner.calls == 4
        assert inner.max_active == 1

    def test_close_delegates(self):
        inner = MagicMock()
        SerializedExtractor(inner).close()
        inner.close.assert_called_once()


# ============================================================
# FaceSignatureExtractor Tests
# ============================================================

class TestFaceSignatureExtractor:
    """Tests for the detector + embedder composition."""

    @pytest.fixture
    def detector(self):
        detector = MagicMock()
        detector.detect.return_value = SimpleNamespace(bbox=(10, 20, 110, 140), confidence=0.9)
        detector.crop_face_region.return_value = np.ones((120, 100, 3), dtype=np.uint8)
        return detector

    @pytest.fixture
    def embedder(self):
        embedder = MagicMock()
        vec = np.zeros(512, dtype=np.float32)
        vec[0] = 1.0
        embedder.extract_embedding.return_value = vec
        return embedder

    def test_signature_from_detection(self, detector, embedder, face_frame):
        extractor = FaceSignatureExtractor(detector, embedder)
        sig = extractor.extract(face_frame)

        assert sig.dim == 512
        assert sig.region == (10, 20, 110, 140)
        assert sig.confidence == 0.9
        detector.crop_face_region.assert_called_once()
        embedder.extract_embedding.assert_called_once()

    def test_no_detection(self, detector, embedder, face_frame):
        detector.detect.return_value = None
        extractor = FaceSignatureExtractor(detector, embedder)

        assert extractor.extract(face_frame) is None
        embedder.extract_embedding.assert_not_called()

    def test_embedder_finds_no_face(self, detector, embedder, face_frame):
        embedder.extract_embedding.return_value = None
        extractor = FaceSignatureExtractor(detector, embedder)

        assert extractor.extract(face_frame) is None

    def test_empty_crop(self, detector, embedder, face_frame):
        detector.crop_face_region.return_value = np.zeros((0, 0, 3), dtype=np.uint8)
        extractor = FaceSignatureExtractor(detector, embedder)

        assert extractor.extract(face_frame) is None

    def test_close_releases_detector(self, detector, embedder):
        FaceSignatureExtractor(detector, embedder).close()
        detector.close.assert_called_once()
