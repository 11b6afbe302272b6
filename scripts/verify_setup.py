"""
Setup Verification Script
==========================
Quick smoke-test that checks whether every required dependency is
importable and the model files named in the settings exist.

Run after setting up the virtual environment:
    python scripts/verify_setup.py

Exit codes:
    0  -- all checks passed
    1  -- one or more checks failed
"""

import importlib
import logging
import sys
from pathlib import Path

from textembed.config import EmbedderSettings, load_settings

logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")
logger = logging.getLogger(__name__)

# (module_name, display_name, required, what textembed uses it for)
REQUIRED_PACKAGES = [
    ("numpy", "NumPy", True, "tensors and pooling"),
    ("onnxruntime", "ONNX Runtime", True, ".onnx models"),
    ("tokenizers", "HuggingFace tokenizers", True, "tokenizer.json"),
    ("yaml", "PyYAML", True, "configs/settings.yaml"),
    ("tqdm", "tqdm", True, "progress bars"),
    ("openvino", "OpenVINO", False, ".xml IR models"),
]

MIN_PYTHON = (3, 9)


def _onnxruntime_detail(mod) -> str:
    return "providers: " + ", ".join(mod.get_available_providers())


def _openvino_detail(mod) -> str:
    return "devices: " + ", ".join(mod.Core().available_devices)


# Extra runtime facts worth printing next to the version
PACKAGE_DETAILS = {
    "onnxruntime": _onnxruntime_detail,
    "openvino": _openvino_detail,
}


def check_python_version(version_info=None) -> bool:
    """Verify the interpreter satisfies ``requires-python``."""
    v = version_info or sys.version_info
    ok = tuple(v[:2]) >= MIN_PYTHON
    logger.info(
        "Python %d.%d.%d %s",
        v[0], v[1], v[2],
        "(OK)" if ok else "(FAIL: textembed needs >= %d.%d)" % MIN_PYTHON,
    )
    return ok


def check_package(
    module: str, display: str, required: bool, purpose: str = ""
) -> bool:
    """Import a package and report its version plus backend details."""
    try:
        mod = importlib.import_module(module)
    except ImportError:
        tag = "required" if required else "optional"
        if purpose:
            tag = f"{tag}, for {purpose}"
        logger.warning("  %-30s  MISSING (%s)", display, tag)
        return not required

    detail = str(getattr(mod, "__version__", "unknown"))
    describe = PACKAGE_DETAILS.get(module)
    if describe is not None:
        detail = f"{detail}  {describe(mod)}"
    logger.info("  %-30s  %s", display, detail)
    return True


def check_onnx_providers() -> bool:
    """Verify ONNX Runtime offers every provider the .onnx loader asks for."""
    try:
        import onnxruntime as ort
        from textembed.inference.runtime import ONNX_PROVIDERS
    except ImportError:
        logger.warning("  %-30s  skipped (onnxruntime missing)", "Providers")
        return False

    available = set(ort.get_available_providers())
    missing = [p for p in ONNX_PROVIDERS if p not in available]
    if missing:
        logger.warning("  %-30s  MISSING: %s", "Providers", ", ".join(missing))
        return False
    logger.info("  %-30s  %s", "Providers", ", ".join(ONNX_PROVIDERS))
    return True


def check_model_files(settings: EmbedderSettings) -> bool:
    """Verify the tokenizer and model files from the settings exist."""
    ok = True
    for label, path in (
        ("Tokenizer", settings.tokenizer_path),
        ("Model", settings.model_path),
    ):
        if Path(path).is_file():
            logger.info("  %-30s  %s", label, path)
        else:
            logger.warning(
                "  %-30s  NOT FOUND: %s (run scripts/download_models.py)",
                label, path,
            )
            ok = False
    return ok


def main() -> None:
    logger.info("=" * 60)
    logger.info("textembed -- Setup Verification")
    logger.info("=" * 60)

    all_ok = True

    logger.info("\n[1/4] Python version")
    all_ok &= check_python_version()

    logger.info("\n[2/4] Python packages")
    for module, display, required, purpose in REQUIRED_PACKAGES:
        all_ok &= check_package(module, display, required, purpose)

    logger.info("\n[3/4] Inference runtime")
    all_ok &= check_onnx_providers()

    logger.info("\n[4/4] Model files")
    all_ok &= check_model_files(load_settings())

    logger.info("\n" + "=" * 60)
    if all_ok:
        logger.info("All required checks PASSED.")
    else:
        logger.error("Some checks FAILED.  Fix the issues above and re-run.")
    logger.info("=" * 60)

    sys.exit(0 if all_ok else 1)


if __name__ == "__main__":
    main()
