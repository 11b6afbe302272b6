"""
Download Models Script
=======================
One-time setup: export the embedding model and its tokenizer into
``models/`` so the CLI defaults work.

This script is idempotent -- an existing models/model.onnx is kept.

Produces:
    models/model.onnx       ONNX graph (output: last_hidden_state)
    models/tokenizer.json   matching fast-tokenizer definition
    models/ov/model.xml     OpenVINO IR (only with --to-ir)

Usage:
    python scripts/download_models.py
    python scripts/download_models.py --to-ir --fp16
"""

import argparse
import logging
import sys
from pathlib import Path

from textembed.inference.converter import (
    DEFAULT_HF_MODEL,
    convert_onnx_to_ir,
    export_to_onnx,
    save_tokenizer,
)

logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")
logger = logging.getLogger(__name__)


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Export the embedding model required by textembed"
    )
    parser.add_argument(
        "--model-name",
        default=DEFAULT_HF_MODEL,
        help="HuggingFace model name to export",
    )
    parser.add_argument(
        "--output-dir",
        default="models",
        help="Directory for model.onnx and tokenizer.json (default: models)",
    )
    parser.add_argument(
        "--to-ir",
        action="store_true",
        help="Also convert the ONNX model to OpenVINO IR under <output-dir>/ov",
    )
    parser.add_argument(
        "--fp16",
        action="store_true",
        help="Compress IR weights to FP16 (with --to-ir)",
    )
    args = parser.parse_args()

    out_dir = Path(args.output_dir)
    onnx_model = out_dir / "model.onnx"

    if onnx_model.exists():
        logger.info("ONNX model already exists at %s, skipping export", onnx_model)
    else:
        try:
            export_to_onnx(args.model_name, str(out_dir))
        except RuntimeError as exc:
            logger.error("%s", exc)
            sys.exit(1)

    try:
        save_tokenizer(args.model_name, str(out_dir))
    except RuntimeError as exc:
        logger.error("%s", exc)
        sys.exit(1)

    if args.to_ir:
        xml_path = convert_onnx_to_ir(
            onnx_path=str(onnx_model),
            output_dir=str(out_dir / "ov"),
            model_name="model",
            compress_to_fp16=args.fp16,
        )
        logger.info("OpenVINO IR ready: %s", xml_path)

    logger.info(
        "Model export complete.  Set output_name: last_hidden_state in "
        "configs/settings.yaml for optimum exports."
    )


if __name__ == "__main__":
    main()
