"""
VOIDFX -- Accelerated Backend
Runs data-parallel per-pixel programs through PyTorch when it is installed.

Programs are plain functions ``program(xp, *arrays)`` written against an
array namespace. The host path calls them with ``numpy``; the accelerator
calls them with ``torch`` on its device. float64 devices (CUDA, CPU) give
results identical to the host path; MPS runs in float32.
"""

import logging

import numpy as np

logger = logging.getLogger(__name__)

DEVICE_MODES = ("auto", "cpu", "off")


class Accelerator:
    """A probed torch device plus the upload/run/download cycle."""

    def __init__(self, torch_module, device):
        self.torch = torch_module
        self.device = device
        self.dtype = torch_module.float32 if device.type == "mps" else torch_module.float64
        self.programs_run = 0

    @property
    def xp(self):
        return self.torch

    @property
    def exact(self) -> bool:
        """Whether results match the host path bit for bit."""
        return self.dtype == self.torch.float64

    def upload(self, array: np.ndarray):
        return self.torch.as_tensor(np.ascontiguousarray(array, dtype=np.float64),
                                    dtype=self.dtype, device=self.device)

    def download(self, tensor) -> np.ndarray:
        return tensor.detach().to("cpu").numpy()

    def execute(self, program, *arrays):
        """Upload ``arrays``, run ``program`` once, copy every output back.

        Returns a tuple of numpy arrays (bool outputs stay bool, float
        outputs come back as float64).
        """
        with self.torch.no_grad():
            tensors = [self.upload(a) for a in arrays]
            outputs = program(self.torch, *tensors)
            if not isinstance(outputs, (tuple, list)):
                outputs = (outputs,)
            host = tuple(self._to_host(t) for t in outputs)
        self.programs_run += 1
        return host

    def _to_host(self, tensor) -> np.ndarray:
        out = self.download(tensor)
        if out.dtype == np.bool_:
            return out
        return out.astype(np.float64, copy=False)

    def smoke_test(self) -> None:
        """Tiny program checked against numpy. Raises RuntimeError on mismatch."""
        data = np.arange(16, dtype=np.float64).reshape(4, 4)

        def program(xp, a):
            return xp.floor(a / 3 + 0.5) * 3, a > 7

        expected = program(np, data)
        got = self.execute(program, data)
        if not np.array_equal(got[0], expected[0]) or not np.array_equal(got[1], expected[1]):
            raise RuntimeError(f"Smoke program mismatch on {self.device}")

    def describe(self) -> dict:
        return {
            "available": True,
            "device": str(self.device),
            "dtype": str(self.dtype).replace("torch.", ""),
            "exact": self.exact,
            "programs_run": self.programs_run,
        }

    def __repr__(self):
        return f"<Accelerator {self.device} {self.dtype}>"


def _select_device(torch, mode: str):
    if mode == "cpu":
        return torch.device("cpu")
    if torch.cuda.is_available():
        return torch.device("cuda")
    if hasattr(torch.backends, "mps") and torch.backends.mps.is_available():
        return torch.device("mps")
    return None


def probe(mode: str = "auto"):
    """Detect and verify the accelerator once per session.

    Returns an :class:`Accelerator`, or None when acceleration is off,
    PyTorch is missing, no device is present or the smoke program fails.
    A failed probe is not retried.
    """
    if mode not in DEVICE_MODES:
        raise ValueError(f"Unknown accelerator mode: {mode}. Use one of {', '.join(DEVICE_MODES)}")
    if mode == "off":
        logger.info("Accelerated path disabled by configuration")
        return None

    try:
        import torch
    except ImportError:
        logger.info("PyTorch not installed, using host path only")
        return None

    device = _select_device(torch, mode)
    if device is None:
        logger.info("No CUDA or MPS device found, using host path only")
        return None

    accelerator = Accelerator(torch, device)
    try:
        accelerator.smoke_test()
    except Exception:
        logger.warning("Accelerator probe failed on %s, host path for this session",
                       device, exc_info=True)
        return None

    accelerator.programs_run = 0
    logger.info("Accelerated path ready on %s (%s)", device, accelerator.dtype)
    return accelerator


def describe(accelerator) -> dict:
    """Capability summary for CLIs and logs."""
    if accelerator is None:
        return {"available": False, "device": None, "dtype": None, "exact": False,
                "programs_run": 0}
    return accelerator.describe()
