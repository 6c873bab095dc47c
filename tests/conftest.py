"""
Shared fixtures for the test suite.

Frames are synthetic: textured noise stands in for a face (the stub
extractor accepts it) and a flat frame stands in for a blank wall.
"""

import sys
from pathlib import Path

import numpy as np
import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from facematch.extractor import StubSignatureExtractor


@pytest.fixture
def face_frame():
    """A textured frame the stub extractor accepts as a face."""
    rng = np.random.default_rng(42)
    return rng.integers(0, 256, size=(48, 64, 3), dtype=np.uint8)


@pytest.fixture
def other_face_frame():
    """A different textured frame."""
    rng = np.random.default_rng(7)
    return rng.integers(0, 256, size=(48, 64, 3), dtype=np.uint8)


@pytest.fixture
def blank_wall_frame():
    """A featureless frame: no face."""
    return np.full((48, 64, 3), 180, dtype=np.uint8)


@pytest.fixture
def stub_extractor():
    return StubSignatureExtractor()
