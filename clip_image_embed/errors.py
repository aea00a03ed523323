from typing import Optional, Tuple


class EmbeddingError(Exception):
    """Base class for failures in the image -> embedding path."""

    stage = "unknown"

    def __init__(self, message: str, stage: Optional[str] = None):
        super().__init__(message)
        if stage is not None:
            self.stage = stage


class DecodeError(EmbeddingError, ValueError):
    stage = "decode"


class InferenceError(EmbeddingError, RuntimeError):
    stage = "inference"


class ShapeMismatch(EmbeddingError, AssertionError):
    """Preprocessed tensor does not match the bound input shape. Programming error."""

    stage = "validate"

    def __init__(self, expected: Tuple[int, ...], actual: Tuple[int, ...]):
        super().__init__(f"Expected input tensor of shape {expected}, got {actual}")
        self.expected = tuple(expected)
        self.actual = tuple(actual)
