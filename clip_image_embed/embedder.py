import os
import logging
import threading
from typing import Optional

import numpy as np

from .errors import EmbeddingError
from .inference import ModelHandle, invoke
from .preprocess import preprocess
from .profiles import (
    DEFAULT_BINDING,
    LAST_OUTPUT,
    OPENAI_CLIP,
    InputBinding,
    NormalizationProfile,
    OutputSelector,
    get_profile,
)
from .session import OrtSession, find_onnx

logger = logging.getLogger(__name__)


def l2_normalize(x: np.ndarray, axis: int = -1, eps: float = 1e-12) -> np.ndarray:
    n = np.linalg.norm(x, axis=axis, keepdims=True)
    return x / np.maximum(n, eps)


class ClipImageEmbedder:
    def __init__(
        self,
        model_id: str,
        session: ModelHandle,
        provider: str = "cpu",
        profile: NormalizationProfile = OPENAI_CLIP,
        binding: InputBinding = DEFAULT_BINDING,
        selector: OutputSelector = LAST_OUTPUT,
        norm: bool = False,
    ):
        self.model_id = model_id
        self.session = session
        self.provider = provider
        self.profile = profile
        self.binding = binding
        self.selector = selector
        self.norm = norm

        # Serialize runs unless the handle says it can take concurrent calls
        self._lock = None if getattr(session, "thread_safe", False) else threading.Lock()

    @classmethod
    def from_env(cls) -> "ClipImageEmbedder":
        model_dir = os.getenv("MODEL_DIR", "/models/clip-vit-b32")
        onnx_path = os.getenv("ONNX_PATH", "").strip() or find_onnx(model_dir)

        provider = os.getenv("PROVIDER", "cpu").lower()
        profile = get_profile(os.getenv("PROFILE", OPENAI_CLIP.name))
        binding = InputBinding(
            name=os.getenv("INPUT_NAME", "input"),
            image_size=int(os.getenv("IMAGE_SIZE", "224")),
        )
        selector = OutputSelector.parse(os.getenv("OUTPUT_SELECTOR", "position:-1"))
        norm = os.getenv("NORM", "0") == "1"

        session = OrtSession.open(onnx_path, provider)
        model_id = os.path.splitext(os.path.basename(onnx_path))[0]
        return cls(
            model_id=model_id,
            session=session,
            provider=provider,
            profile=profile,
            binding=binding,
            selector=selector,
            norm=norm,
        )

    def _invoke(self, tensor: np.ndarray) -> np.ndarray:
        if self._lock is None:
            return invoke(self.session, tensor, self.binding, self.selector)
        with self._lock:
            return invoke(self.session, tensor, self.binding, self.selector)

    def embed(self, raw: bytes, norm: Optional[bool] = None) -> np.ndarray:
        norm = self.norm if norm is None else bool(norm)
        try:
            tensor = preprocess(raw, self.profile, self.binding)
            vec = self._invoke(tensor)
        except EmbeddingError as e:
            logger.warning(f"Embedding failed at stage '{e.stage}': {e}")
            raise
        if norm:
            vec = l2_normalize(vec).astype(np.float32)
        logger.debug(f"Embedded {len(raw)} bytes -> dim={vec.shape[0]} norm={norm}")
        return vec

    def close(self) -> None:
        close = getattr(self.session, "close", None)
        if close is not None:
            close()

    def __enter__(self) -> "ClipImageEmbedder":
        return self

    def __exit__(self, *exc) -> None:
        self.close()
