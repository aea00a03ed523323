import io

import numpy as np
import pytest
from PIL import Image


class StubHandle:
    """Model handle double: records feeds, returns canned outputs."""

    def __init__(self, outputs=None, input_names=("input",), output_names=None, error=None, thread_safe=False):
        if outputs is None:
            outputs = [
                np.zeros((1, 50, 768), dtype=np.float32),
                np.arange(512, dtype=np.float32).reshape(1, 512),
            ]
        self.outputs = outputs
        self.input_names = list(input_names) if input_names is not None else None
        self.output_names = list(output_names) if output_names is not None else None
        self.error = error
        self.thread_safe = thread_safe
        self.calls = []
        self.closed = False

    def run(self, feeds):
        self.calls.append(feeds)
        if self.error is not None:
            raise self.error
        return list(self.outputs)

    def close(self):
        self.closed = True


@pytest.fixture
def make_handle():
    return StubHandle


def _encode(img: Image.Image, fmt: str) -> bytes:
    buf = io.BytesIO()
    img.save(buf, format=fmt)
    return buf.getvalue()


@pytest.fixture
def image_bytes():
    """Factory: solid-color image of (width, height) encoded as PNG/JPEG bytes."""

    def _make(width=100, height=50, color=(255, 0, 0), fmt="PNG", mode="RGB"):
        return _encode(Image.new(mode, (width, height), color), fmt)

    return _make


@pytest.fixture
def noise_image():
    """Factory: 64x64 random-noise image, large enough that cutting it in half lands in pixel data."""
    rng = np.random.default_rng(0)
    arr = rng.integers(0, 256, size=(64, 64, 3), dtype=np.uint8)

    def _make(fmt="PNG"):
        return _encode(Image.fromarray(arr, "RGB"), fmt)

    return _make
