"""
Conftest: shared fixtures for all VOIDFX test modules.

1. Synthetic rasters (gradients, flats) -- no image files needed
2. A numpy-backed accelerator double so dispatcher routing can be tested
   without PyTorch
3. Host-only processor sessions (no accelerator probe)
"""

import os
import sys

import numpy as np
import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core.config import load_config
from core.processor import Processor


def _make_test_frame(width=48, height=32):
    """Generate a synthetic RGBA test frame (gradient, not blank)."""
    frame = np.zeros((height, width, 4), dtype=np.uint8)
    frame[:, :, 0] = np.linspace(0, 255, width, dtype=np.uint8)[np.newaxis, :]  # R gradient
    frame[:, :, 1] = np.linspace(0, 255, height, dtype=np.uint8)[:, np.newaxis]  # G gradient
    frame[:, :, 2] = 128  # constant B
    frame[:, :, 3] = 255
    return frame


def _make_flat(color, width=16, height=16):
    frame = np.empty((height, width, 4), dtype=np.uint8)
    frame[:, :, :3] = color
    frame[:, :, 3] = 255
    return frame


class NumpyAccelerator:
    """Runs accelerator programs with numpy, counting each execution."""

    def __init__(self):
        self.programs_run = 0

    def execute(self, program, *arrays):
        outputs = program(np, *[np.asarray(a, dtype=np.float64) for a in arrays])
        if not isinstance(outputs, (tuple, list)):
            outputs = (outputs,)
        self.programs_run += 1
        return tuple(np.asarray(o) for o in outputs)


@pytest.fixture
def gradient_frame():
    return _make_test_frame()


@pytest.fixture
def make_flat():
    return _make_flat


@pytest.fixture
def numpy_accelerator():
    return NumpyAccelerator()


@pytest.fixture
def host_config():
    return load_config(env={}, accel_device="off", preview_max=64, debounce_ms=20)


@pytest.fixture
def processor(host_config):
    """Host-only session with a 64px preview limit."""
    return Processor(host_config, accelerator=None)
