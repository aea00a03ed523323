import os
import glob
import logging
from typing import Dict, List

import numpy as np
import onnxruntime as ort

from .errors import InferenceError

logger = logging.getLogger(__name__)


def find_onnx(model_dir: str) -> str:
    cands = sorted(glob.glob(os.path.join(model_dir, "*.onnx")))
    if not cands:
        raise FileNotFoundError(f"No .onnx found under {model_dir}")
    return cands[0]


def make_session(onnx_path: str, provider: str) -> ort.InferenceSession:
    if not os.path.isfile(onnx_path):
        raise FileNotFoundError(f"ONNX model not found: {onnx_path}")

    so = ort.SessionOptions()
    so.graph_optimization_level = ort.GraphOptimizationLevel.ORT_ENABLE_ALL

    provider = provider.lower()
    if provider == "tensorrt":
        trt_fp16 = os.getenv("TRT_FP16", "1") == "1"
        trt_engine_cache = os.getenv("TRT_ENGINE_CACHE", "/cache/trt_engines")
        trt_timing_cache = os.getenv("TRT_TIMING_CACHE", "/cache/trt_timing.cache")
        os.makedirs(trt_engine_cache, exist_ok=True)
        os.makedirs(os.path.dirname(trt_timing_cache), exist_ok=True)

        providers = ["TensorrtExecutionProvider", "CUDAExecutionProvider", "CPUExecutionProvider"]
        provider_options = [
            {
                "trt_fp16_enable": int(trt_fp16),
                "trt_engine_cache_enable": 1,
                "trt_engine_cache_path": trt_engine_cache,
                "trt_timing_cache_enable": 1,
                "trt_timing_cache_path": trt_timing_cache,
            },
            {},
            {},
        ]
    elif provider == "cuda":
        providers = ["CUDAExecutionProvider", "CPUExecutionProvider"]
        provider_options = [{}, {}]
    else:
        providers = ["CPUExecutionProvider"]
        provider_options = [{}]

    return ort.InferenceSession(onnx_path, sess_options=so, providers=providers, provider_options=provider_options)


class OrtSession:
    """ONNX Runtime session behind the run(feeds) -> [outputs] handle contract."""

    # InferenceSession.run may be called concurrently
    thread_safe = True

    def __init__(self, sess: ort.InferenceSession, path: str = ""):
        self._sess = sess
        self.path = path
        self.input_names = [i.name for i in sess.get_inputs()]
        self.output_names = [o.name for o in sess.get_outputs()]
        self.providers = list(sess.get_providers())

    @classmethod
    def open(cls, onnx_path: str, provider: str = "cpu") -> "OrtSession":
        sess = make_session(onnx_path, provider)
        handle = cls(sess, path=onnx_path)
        logger.info(
            f"Loaded {onnx_path} providers={handle.providers} "
            f"inputs={handle.input_names} outputs={handle.output_names}"
        )
        return handle

    @property
    def closed(self) -> bool:
        return self._sess is None

    def run(self, feeds: Dict[str, np.ndarray]) -> List[np.ndarray]:
        if self._sess is None:
            raise InferenceError("Session is closed")
        return self._sess.run(None, feeds)

    def close(self) -> None:
        if self._sess is not None:
            logger.info(f"Releasing ONNX session {self.path}")
            self._sess = None

    def __enter__(self) -> "OrtSession":
        return self

    def __exit__(self, *exc) -> None:
        self.close()
