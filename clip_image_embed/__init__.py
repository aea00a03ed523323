from .errors import DecodeError, EmbeddingError, InferenceError, ShapeMismatch
from .profiles import (
    DEFAULT_BINDING,
    IMAGENET,
    LAST_OUTPUT,
    OPENAI_CLIP,
    InputBinding,
    NormalizationProfile,
    OutputSelector,
    get_profile,
)
from .preprocess import preprocess
from .inference import invoke
from .embedder import ClipImageEmbedder

__all__ = [
    "DecodeError",
    "EmbeddingError",
    "InferenceError",
    "ShapeMismatch",
    "DEFAULT_BINDING",
    "IMAGENET",
    "LAST_OUTPUT",
    "OPENAI_CLIP",
    "InputBinding",
    "NormalizationProfile",
    "OutputSelector",
    "get_profile",
    "preprocess",
    "invoke",
    "ClipImageEmbedder",
]
