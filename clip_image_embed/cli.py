import sys
import json
import logging
import argparse

from .embedder import ClipImageEmbedder
from .errors import EmbeddingError
from .fetch import DEFAULT_MODEL_PATH, DEFAULT_MODEL_URL, fetch_model
from .profiles import PROFILES, InputBinding, OutputSelector, get_profile
from .session import OrtSession

logger = logging.getLogger(__name__)


def parse_args(argv=None):
    p = argparse.ArgumentParser(description="Embed one image with an ONNX CLIP image encoder and print it as JSON.")
    p.add_argument("image", help="Path to the image file (png/jpg/...).")
    p.add_argument("--model", default=DEFAULT_MODEL_PATH, help="Path to the .onnx image encoder.")
    p.add_argument("--download", action="store_true", help="Download the model to --model if it is missing.")
    p.add_argument("--url", default=DEFAULT_MODEL_URL, help="Where --download fetches the model from.")
    p.add_argument("--provider", default="cpu", choices=["cpu", "cuda", "tensorrt"])
    p.add_argument("--profile", default="openai-clip", choices=sorted(PROFILES))
    p.add_argument("--input-name", default="input")
    p.add_argument("--image-size", type=int, default=224)
    p.add_argument("--output", default="position:-1", type=OutputSelector.parse,
                   help="Output selector: 'position:N' or 'name:NAME' (default: last output).")
    p.add_argument("--norm", action="store_true", help="L2-normalize the embedding.")
    p.add_argument("--log-level", default="WARNING")
    return p.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    logging.basicConfig(level=args.log_level.upper(), format="%(levelname)s %(name)s: %(message)s")

    try:
        binding = InputBinding(name=args.input_name, image_size=args.image_size)
        with open(args.image, "rb") as f:
            raw = f.read()
        if args.download:
            fetch_model(args.model, url=args.url)
        session = OrtSession.open(args.model, args.provider)
    except (OSError, ValueError) as e:
        print(f"[ERROR] {e}", file=sys.stderr)
        return 1

    embedder = ClipImageEmbedder(
        model_id=args.model,
        session=session,
        provider=args.provider,
        profile=get_profile(args.profile),
        binding=binding,
        selector=args.output,
        norm=args.norm,
    )
    with embedder:
        try:
            vec = embedder.embed(raw)
        except EmbeddingError as e:
            print(f"[ERROR] {e.stage}: {e}", file=sys.stderr)
            return 1

    print(json.dumps(vec.astype(float).tolist()))
    return 0


if __name__ == "__main__":
    sys.exit(main())
