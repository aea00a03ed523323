import os
import logging
import tempfile

import requests

logger = logging.getLogger(__name__)

# Model sourced from: https://huggingface.co/rocca/openai-clip-js/tree/main
DEFAULT_MODEL_URL = "https://huggingface.co/rocca/openai-clip-js/resolve/main/clip-image-vit-32-float32.onnx"
DEFAULT_MODEL_PATH = "clip-image-vit-32-float32.onnx"


def fetch_model(dest: str = DEFAULT_MODEL_PATH, url: str = DEFAULT_MODEL_URL, timeout: float = 300) -> str:
    """Download the ONNX weights to `dest` unless a file is already there."""
    if os.path.exists(dest):
        return dest

    parent = os.path.dirname(os.path.abspath(dest))
    os.makedirs(parent, exist_ok=True)

    logger.info(f"Downloading {url} -> {dest}")
    fd, tmp_path = tempfile.mkstemp(dir=parent, suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as f:
            with requests.get(url, stream=True, timeout=timeout) as resp:
                resp.raise_for_status()
                for chunk in resp.iter_content(chunk_size=1 << 20):
                    if chunk:
                        f.write(chunk)
        os.replace(tmp_path, dest)
    except BaseException:
        if os.path.exists(tmp_path):
            os.remove(tmp_path)
        raise
    return dest
