#!/usr/bin/env python3
import argparse
import os
from typing import Any, Tuple

import torch
import torch.nn as nn
from transformers import CLIPVisionModelWithProjection

INPUT_NAME = "input"
# Embedding must be the last output: the service selects position -1 by default
OUTPUT_NAMES = ["last_hidden_state", "image_embeds"]


def parse_args(argv=None):
    p = argparse.ArgumentParser(description="Export a CLIP vision tower (HF layout) to ONNX.")
    p.add_argument("--model-dir", required=True, help="Local HF model directory (downloaded files).")
    p.add_argument("--out-dir", required=True, help="Output directory for ONNX.")
    p.add_argument("--opset", type=int, default=17)
    p.add_argument("--image-size", type=int, default=224, help="Square input size traced into the graph (the model's vision_config.image_size).")
    p.add_argument("--device", default="cpu", choices=["cpu", "cuda"])
    return p.parse_args(argv)


def make_dummy_input(image_size: int, device: torch.device) -> torch.Tensor:
    # normalized black image, [1, 3, S, S]
    return torch.zeros(1, 3, image_size, image_size, device=device)


def split_outputs(output: Any) -> Tuple[torch.Tensor, torch.Tensor]:
    """
    CLIPVisionModelWithProjection returns a ModelOutput with image_embeds [B, D]
    and last_hidden_state [B, L, H]; tuple outputs are (image_embeds, last_hidden_state, ...).
    """
    embeds = getattr(output, "image_embeds", None)
    hidden = getattr(output, "last_hidden_state", None)
    if isinstance(output, (tuple, list)) and (embeds is None or hidden is None):
        embeds, hidden = output[0], output[1]
    if not isinstance(embeds, torch.Tensor) or embeds.ndim != 2:
        raise RuntimeError(f"Unable to find [B, D] image_embeds in model output of type {type(output)}")
    if not isinstance(hidden, torch.Tensor) or hidden.ndim != 3:
        raise RuntimeError(f"Unable to find [B, L, H] last_hidden_state in model output of type {type(output)}")
    return hidden, embeds


class ExportWrapper(nn.Module):
    def __init__(self, model: nn.Module):
        super().__init__()
        self.model = model

    def forward(self, input: torch.Tensor):
        outputs = self.model(pixel_values=input)
        return split_outputs(outputs)


def main(argv=None):
    args = parse_args(argv)
    os.makedirs(args.out_dir, exist_ok=True)

    device = torch.device(args.device)

    print("[INFO] Loading model...")
    model = CLIPVisionModelWithProjection.from_pretrained(args.model_dir)
    model.eval()
    if device.type == "cuda":
        model.to(device)

    pixel_values = make_dummy_input(args.image_size, device)

    print("[INFO] Sanity forward...")
    wrapper = ExportWrapper(model)
    wrapper.eval()
    with torch.no_grad():
        hidden, embeds = wrapper(pixel_values)
    print("[INFO] Output shapes:", tuple(hidden.shape), tuple(embeds.shape))

    onnx_path = os.path.join(args.out_dir, "model.onnx")
    print("[INFO] Exporting to:", onnx_path)

    dynamic_axes = {
        INPUT_NAME: {0: "batch"},
        "last_hidden_state": {0: "batch"},
        "image_embeds": {0: "batch"},
    }

    torch.onnx.export(
        wrapper,
        (pixel_values,),
        onnx_path,
        input_names=[INPUT_NAME],
        output_names=OUTPUT_NAMES,
        dynamic_axes=dynamic_axes,
        opset_version=args.opset,
        do_constant_folding=True,
    )

    print("[OK] Exported:", onnx_path)
    print(f"[INFO] Next: ONNX_PATH={onnx_path} uvicorn clip_image_embed.main:app")


if __name__ == "__main__":
    main()
