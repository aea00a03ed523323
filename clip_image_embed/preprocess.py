import io
import struct
import logging

import numpy as np
from PIL import Image, UnidentifiedImageError

from .errors import DecodeError, ShapeMismatch
from .profiles import DEFAULT_BINDING, OPENAI_CLIP, InputBinding, NormalizationProfile

logger = logging.getLogger(__name__)


def _to_8bit_gray(img: Image.Image) -> Image.Image:
    # 16-bit samples keep their high byte; convert() would clip them at 255
    arr = np.clip(np.asarray(img).astype(np.int64), 0, 65535) >> 8
    return Image.fromarray(arr.astype(np.uint8))


def decode_image(raw: bytes) -> Image.Image:
    if not raw:
        raise DecodeError("Empty image payload")
    try:
        img = Image.open(io.BytesIO(raw))
        # Image.open is lazy; load now so truncated data fails here
        img.load()
        if img.mode == "I" or img.mode.startswith("I;16"):
            img = _to_8bit_gray(img)
        return img.convert("RGBA")
    except (
        UnidentifiedImageError,
        Image.DecompressionBombError,
        OSError,
        EOFError,
        SyntaxError,
        ValueError,
        struct.error,
    ) as e:
        raise DecodeError(f"Cannot decode image ({len(raw)} bytes): {e}") from e


def center_crop_square(img: Image.Image) -> Image.Image:
    w, h = img.size
    side = min(w, h)
    left = (w - side) // 2
    top = (h - side) // 2
    return img.crop((left, top, left + side, top + side))


def resize_square(img: Image.Image, size: int = 224) -> Image.Image:
    return img.resize((size, size), Image.Resampling.BICUBIC)


def image_to_tensor(img: Image.Image, profile: NormalizationProfile = OPENAI_CLIP) -> np.ndarray:
    arr = np.asarray(img, dtype=np.float64)[:, :, :3]  # HWC, alpha dropped
    mean = np.asarray(profile.mean, dtype=np.float64)
    std = np.asarray(profile.std, dtype=np.float64)
    arr = (arr / 255.0 - mean) / std
    arr = np.transpose(arr, (2, 0, 1))               # CHW
    arr = np.expand_dims(arr, 0)                     # NCHW
    return np.ascontiguousarray(arr, dtype=np.float32)


def preprocess(
    raw: bytes,
    profile: NormalizationProfile = OPENAI_CLIP,
    binding: InputBinding = DEFAULT_BINDING,
) -> np.ndarray:
    """
    Raw image bytes -> float32 tensor [1, 3, size, size].

    decode (RGBA) -> center crop to square -> bicubic resize -> per-channel normalize
    """
    img = decode_image(raw)
    src_size = img.size
    img = resize_square(center_crop_square(img), binding.image_size)
    tensor = image_to_tensor(img, profile)
    if tensor.shape != binding.shape:
        raise ShapeMismatch(binding.shape, tensor.shape)
    logger.debug(f"Preprocessed {src_size[0]}x{src_size[1]} image -> {tensor.shape} ({profile.name})")
    return tensor
