"""
textembed -- Command Line Interface
=====================================
Embeds one piece of text and prints a summary of the vector.

Steps, in order:
    1. initialise the inference runtime
    2. load the model into a session
    3. tokenize the text (a batch of one)
    4. embed it
    5. print the dimensionality and the first 10 components

Usage examples:
  textembed "hello world"
  textembed "hello world" --model models/model.onnx --tokenizer models/tokenizer.json
  textembed "hello world" --max-len 128 --normalize --output hello.npy
  textembed "hello world" --config configs/settings.yaml -v

Design notes:
  - Defaults come from configs/settings.yaml (and TEXTEMBED_* environment
    variables); flags given here win.
  - Any pipeline error aborts with exit code 1 before anything is printed
    to stdout.
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from textembed.config import DEFAULT_SETTINGS_PATH, load_settings
from textembed.embeddings.encoder import TextEmbedder, embed
from textembed.errors import EmbeddingError
from textembed.inference.runtime import init_runtime
from textembed.inference.session import SessionManager
from textembed.tokenization.tokenizer import tokenize

PREVIEW_DIMS = 10


def setup_logging(verbose: bool = False) -> None:
    """Configure root logger."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def run_embed(args: argparse.Namespace) -> int:
    """Embed ``args.text`` and print the result summary."""
    settings = load_settings(Path(args.config)).override(
        tokenizer_path=args.tokenizer,
        model_path=args.model,
        max_length=args.max_len,
        normalize=True if args.normalize else None,
    )

    init_runtime(verbose=args.verbose)

    session = SessionManager()
    session.init_session(settings.model_path)

    batch = tokenize([args.text], settings.tokenizer_path, settings.max_length)
    embeddings = embed(
        batch,
        session,
        output_name=settings.output_name,
        normalize=settings.normalize,
    )

    if args.output:
        TextEmbedder.save_embeddings(embeddings, args.output)

    vector = embeddings[0]
    print(f"Embedding dim = {len(vector)}")
    print(f"first {PREVIEW_DIMS} dims = {vector[:PREVIEW_DIMS].tolist()}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="textembed",
        description="Compute a mean-pooled sentence embedding for a text.",
    )
    parser.add_argument(
        "text",
        nargs="?",
        default="",
        help="Text to be encoded (default: empty string)",
    )
    parser.add_argument(
        "--tokenizer",
        type=str,
        default=None,
        help="Path to tokenizer.json (default: models/tokenizer.json)",
    )
    parser.add_argument(
        "--model",
        type=str,
        default=None,
        help="Path to the ONNX model or OpenVINO IR .xml (default: models/model.onnx)",
    )
    parser.add_argument(
        "--max-len",
        type=int,
        default=None,
        dest="max_len",
        help="Maximum sequence length, a multiple of 8 (default: 256)",
    )
    parser.add_argument(
        "--config",
        type=str,
        default=str(DEFAULT_SETTINGS_PATH),
        help="Settings file (default: configs/settings.yaml)",
    )
    parser.add_argument(
        "--normalize",
        action="store_true",
        help="L2-normalise the embedding",
    )
    parser.add_argument(
        "--output",
        type=str,
        default=None,
        help="Also save the embedding matrix to this .npy file",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging",
    )
    return parser


def main(argv: Optional[List[str]] = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    setup_logging(verbose=args.verbose)

    try:
        code = run_embed(args)
    except KeyboardInterrupt:
        print("\nInterrupted by user.", file=sys.stderr)
        sys.exit(130)
    except (EmbeddingError, ValueError) as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        sys.exit(1)
    except Exception as exc:
        logging.error("Command failed: %s", exc, exc_info=True)
        sys.exit(1)
    sys.exit(code)


if __name__ == "__main__":
    main()
