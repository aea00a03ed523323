import logging
from typing import Any, Dict, List, Protocol

import numpy as np

from .errors import InferenceError, ShapeMismatch
from .profiles import DEFAULT_BINDING, LAST_OUTPUT, InputBinding, OutputSelector

logger = logging.getLogger(__name__)


class ModelHandle(Protocol):
    """What the invoker needs from an inference engine session.

    Optional attributes: input_names, output_names (declared graph order),
    thread_safe.
    """

    def run(self, feeds: Dict[str, np.ndarray]) -> List[Any]:
        ...


def invoke(
    session: ModelHandle,
    tensor: np.ndarray,
    binding: InputBinding = DEFAULT_BINDING,
    selector: OutputSelector = LAST_OUTPUT,
) -> np.ndarray:
    """Run one image tensor through the model and return the selected output, flattened."""
    if tuple(tensor.shape) != binding.shape:
        raise ShapeMismatch(binding.shape, tuple(tensor.shape))

    input_names = getattr(session, "input_names", None)
    if input_names is not None and binding.name not in input_names:
        raise InferenceError(f"Model has no input named '{binding.name}' (inputs: {list(input_names)})")

    feeds = {binding.name: np.ascontiguousarray(tensor, dtype=np.float32)}
    try:
        outs = session.run(feeds)
    except InferenceError:
        raise
    except Exception as e:
        raise InferenceError(f"Inference failed: {e}") from e

    outs = list(outs or [])
    if not outs:
        raise InferenceError("Model returned no outputs")

    try:
        idx = selector.index_in(getattr(session, "output_names", None), len(outs))
    except LookupError as e:
        raise InferenceError(str(e)) from e

    x = np.asarray(outs[idx], dtype=np.float32)
    logger.debug(f"Selected output {idx} ({selector.describe()}) with shape {x.shape}")
    return x.reshape(-1)
