"""
Model Converter
================
Produces the model files the runtime loaders read.

    1. export_to_onnx()      -- HuggingFace model -> model.onnx +
                                tokenizer.json (via optimum-cli)
    2. convert_onnx_to_ir()  -- model.onnx -> OpenVINO IR (.xml + .bin)
    3. save_tokenizer()      -- fetch tokenizer.json when the export
                                did not write one

optimum's ONNX export names the token-level output ``last_hidden_state``;
set ``output_name`` in configs/settings.yaml accordingly, or keep the
default ``token_embeddings`` for sentence-transformers exports.

FP16 compression (``compress_to_fp16=True``) halves the IR weight file.
On CPU the computation still runs in FP32.
"""

import logging
import subprocess
from pathlib import Path
from typing import Optional

from tokenizers import Tokenizer

logger = logging.getLogger(__name__)

DEFAULT_HF_MODEL = "sentence-transformers/all-MiniLM-L6-v2"


def export_to_onnx(
    model_name: str = DEFAULT_HF_MODEL,
    output_dir: str = "models",
) -> Path:
    """
    Export a HuggingFace model to ONNX with ``optimum-cli``.

    The output directory receives ``model.onnx`` and ``tokenizer.json``.

    Prerequisites:
        pip install optimum[exporters]

    Raises:
        RuntimeError : optimum-cli is missing or exited non-zero
    """
    out = Path(output_dir)
    out.mkdir(parents=True, exist_ok=True)

    cmd = [
        "optimum-cli", "export", "onnx",
        "--model", model_name,
        "--task", "feature-extraction",
        str(out),
    ]
    logger.info("Exporting to ONNX: %s", " ".join(cmd))
    try:
        result = subprocess.run(cmd, capture_output=True, text=True)
    except FileNotFoundError as exc:
        raise RuntimeError(
            "optimum-cli not found.  Install: pip install optimum[exporters]"
        ) from exc

    if result.returncode != 0:
        logger.error("ONNX export failed:\n%s", result.stderr)
        raise RuntimeError(f"ONNX export failed: {result.stderr[:500]}")

    logger.info("ONNX model exported to %s", out)
    return out / "model.onnx"


def convert_onnx_to_ir(
    onnx_path: str,
    output_dir: str,
    model_name: Optional[str] = None,
    compress_to_fp16: bool = False,
) -> Path:
    """
    Convert an ONNX model to OpenVINO IR (xml + bin).

    Args:
        onnx_path        : path to the .onnx model file
        output_dir       : directory for the .xml and .bin files
        model_name       : base name for the output files (default: ONNX stem)
        compress_to_fp16 : store weights as FP16

    Returns:
        Path to the generated .xml file.

    Raises:
        FileNotFoundError : the ONNX file does not exist
    """
    onnx_file = Path(onnx_path)
    if not onnx_file.exists():
        raise FileNotFoundError(f"ONNX model not found: {onnx_file}")

    import openvino as ov

    out_dir = Path(output_dir)
    out_dir.mkdir(parents=True, exist_ok=True)
    xml_path = out_dir / ((model_name or onnx_file.stem) + ".xml")

    logger.info("Converting %s -> OpenVINO IR", onnx_file)
    ov_model = ov.convert_model(str(onnx_file))
    ov.save_model(ov_model, str(xml_path), compress_to_fp16=compress_to_fp16)
    logger.info("IR saved to %s (FP16=%s)", xml_path, compress_to_fp16)
    return xml_path


def save_tokenizer(model_name: str, output_dir: str) -> Path:
    """
    Write the model's ``tokenizer.json`` into ``output_dir``.

    Older optimum releases only write the slow tokenizer files, so the fast
    definition is fetched from the HuggingFace Hub and saved next to the
    model.  An existing ``tokenizer.json`` is left untouched.

    Raises:
        RuntimeError : the tokenizer could not be fetched
    """
    out = Path(output_dir)
    target = out / "tokenizer.json"
    if target.exists():
        logger.info("tokenizer.json already present at %s", target)
        return target

    try:
        tokenizer = Tokenizer.from_pretrained(model_name)
    except Exception as exc:
        raise RuntimeError(
            f"Could not fetch tokenizer for '{model_name}': {exc}"
        ) from exc

    out.mkdir(parents=True, exist_ok=True)
    tokenizer.save(str(target))
    logger.info("Tokenizer saved to %s", target)
    return target
