"""
Model Runtime Loaders
======================
Turn a model file on disk into a runnable session.

Two formats are understood, chosen by file suffix:
    .onnx -- ONNX graph, run with ONNX Runtime (CPU execution provider)
    .xml  -- OpenVINO IR (.xml graph + .bin weights), run with OpenVINO
             Runtime on CPU; produce one with
             ``textembed.inference.converter.convert_onnx_to_ir``

Both backends present the same small interface to the session manager::

    session.input_names   -> ["input_ids", "attention_mask", ...]
    session.output_names  -> ["token_embeddings", ...]
    session.run(feed)     -> {"token_embeddings": ndarray, ...}
    session.close()

Device selection is intentionally absent: everything runs on CPU.
"""

import logging
from pathlib import Path
from typing import Dict, List

import numpy as np
import onnxruntime as ort

from textembed.errors import ModelLoadError

logger = logging.getLogger(__name__)

ONNX_PROVIDERS = ["CPUExecutionProvider"]
OPENVINO_DEVICE = "CPU"


def init_runtime(verbose: bool = False) -> None:
    """
    Process-wide inference engine setup.

    ONNX Runtime logs every graph optimisation warning by default; keep it
    at ERROR unless the user asked for verbose output.
    """
    severity = 1 if verbose else 3
    ort.set_default_logger_severity(severity)
    logger.debug(
        "ONNX Runtime %s initialised (log severity %d)", ort.__version__, severity
    )


class OnnxRuntimeSession:
    """ONNX Runtime ``InferenceSession`` behind the common session interface."""

    def __init__(self, model_path: str):
        self.model_path = str(model_path)
        self._session = ort.InferenceSession(
            self.model_path, providers=ONNX_PROVIDERS
        )
        self.input_names: List[str] = [i.name for i in self._session.get_inputs()]
        self.output_names: List[str] = [o.name for o in self._session.get_outputs()]

    def run(self, feed: Dict[str, np.ndarray]) -> Dict[str, np.ndarray]:
        # None -> every output, in declaration order.
        outputs = self._session.run(None, feed)
        return dict(zip(self.output_names, outputs))

    def close(self) -> None:
        self._session = None


class OpenVINOSession:
    """
    OpenVINO compiled model behind the common session interface.

    Compilation steps:
        1. Core.read_model()    -- parse the .xml graph, load .bin weights
        2. Core.compile_model() -- optimise the graph for the CPU plugin
    """

    def __init__(self, model_path: str):
        import openvino as ov

        self.model_path = str(model_path)
        core = ov.Core()
        model = core.read_model(model=self.model_path)
        self._compiled = core.compile_model(model=model, device_name=OPENVINO_DEVICE)
        self.input_names: List[str] = [
            inp.get_any_name() for inp in self._compiled.inputs
        ]
        self.output_names: List[str] = [
            out.get_any_name() for out in self._compiled.outputs
        ]

    def run(self, feed: Dict[str, np.ndarray]) -> Dict[str, np.ndarray]:
        results = self._compiled(feed)
        return {
            out.get_any_name(): np.asarray(results[out])
            for out in self._compiled.outputs
        }

    def close(self) -> None:
        self._compiled = None


_BACKENDS = {
    ".onnx": OnnxRuntimeSession,
    ".xml": OpenVINOSession,
}


def load_session(model_path: str):
    """
    Build a session for ``model_path``.

    Raises:
        ModelLoadError : missing file, unknown format, or backend failure
    """
    path = Path(model_path)
    if not path.is_file():
        raise ModelLoadError(
            str(model_path), FileNotFoundError(f"No such file: {path}")
        )
    backend = _BACKENDS.get(path.suffix.lower())
    if backend is None:
        raise ModelLoadError(
            str(model_path),
            ValueError(
                f"Unsupported model format '{path.suffix}' "
                f"(expected one of {sorted(_BACKENDS)})"
            ),
        )
    try:
        session = backend(str(path))
    except Exception as exc:
        raise ModelLoadError(str(model_path), exc) from exc

    logger.info(
        "Loaded %s model: %s  inputs=%s  outputs=%s",
        backend.__name__, model_path, session.input_names, session.output_names,
    )
    return session
