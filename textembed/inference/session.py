"""
Inference Session Manager
==========================
Owns at most one loaded inference session and serialises every use of it.

One ``threading.Lock`` covers both operations:
    init_session(model_path) -- drop the current session (if any), build a
                                new one; a failed build leaves no session
    run(inputs)              -- feed the named tensors, return raw outputs

Holding the lock for the whole inference call means calls through one
manager never run in parallel, and initialisation (including the model
file I/O) blocks every waiting caller.  In exchange the "no session" /
"session present" transition is atomic: no caller ever sees a
half-replaced session.  There are no timeouts; a hung load or run blocks
its waiters.

Nothing here is global: create one manager per model and pass it to
``textembed.embeddings.embed``.
"""

import logging
import threading
from typing import Callable, Dict, Mapping, Optional

import numpy as np

from textembed.errors import (
    InferenceError,
    MissingOutputError,
    ModelLoadError,
    SessionNotInitialized,
    UnsupportedOutputShapeError,
)
from textembed.inference.runtime import load_session
from textembed.inference.tensors import ModelInputs

logger = logging.getLogger(__name__)

DEFAULT_OUTPUT_NAME = "token_embeddings"


class SessionManager:
    """
    Exclusive, lazily (re)initialisable holder of one inference session.

    Usage::

        manager = SessionManager()
        manager.init_session("models/model.onnx")
        outputs = manager.run(assemble_inputs(batch))
        hidden = extract_hidden_states(outputs)

    ``loader`` builds a session from a path; anything with
    ``run(feed) -> {name: ndarray}`` works, which is how tests plug in stubs.
    """

    def __init__(self, loader: Callable[[str], object] = load_session):
        self._loader = loader
        self._lock = threading.Lock()
        self._session = None
        self._model_path: Optional[str] = None

    @property
    def is_initialized(self) -> bool:
        return self._session is not None

    @property
    def model_path(self) -> Optional[str]:
        return self._model_path

    def _release(self) -> None:
        # Caller holds the lock.
        session, self._session = self._session, None
        self._model_path = None
        if session is not None:
            close = getattr(session, "close", None)
            if close is not None:
                close()

    def init_session(self, model_path: str) -> None:
        """
        Load ``model_path``, replacing any current session.

        The previous session is released before the new one is built, so
        peak memory holds one model.  If the build fails the manager is left
        with no session.

        Raises:
            ModelLoadError : the loader failed
        """
        with self._lock:
            if self._session is not None:
                logger.info(
                    "Releasing session for %s before loading %s",
                    self._model_path, model_path,
                )
                self._release()
            try:
                session = self._loader(model_path)
            except ModelLoadError:
                raise
            except Exception as exc:
                raise ModelLoadError(str(model_path), exc) from exc
            self._session = session
            self._model_path = str(model_path)
        logger.info("Inference session loaded: %s", model_path)

    def run(self, inputs: ModelInputs) -> Dict[str, np.ndarray]:
        """
        Run the model on ``inputs`` and return every named output.

        Tensors the model does not declare (e.g. ``token_type_ids`` on
        DistilBERT-style exports) are left out of the feed when the session
        reports its input names.

        Raises:
            SessionNotInitialized : no session loaded
            InferenceError        : the backend raised
        """
        feed = inputs.as_feed()
        with self._lock:
            session = self._session
            if session is None:
                raise SessionNotInitialized()

            declared = getattr(session, "input_names", None)
            if declared:
                dropped = [name for name in feed if name not in declared]
                if dropped:
                    logger.warning("Model does not declare inputs %s; skipping", dropped)
                feed = {k: v for k, v in feed.items() if k in declared}

            try:
                outputs = session.run(feed)
            except Exception as exc:
                raise InferenceError(exc) from exc
        return dict(outputs)

    def close(self) -> None:
        """Release the current session, if any."""
        with self._lock:
            self._release()


def extract_hidden_states(
    outputs: Mapping[str, np.ndarray],
    name: str = DEFAULT_OUTPUT_NAME,
) -> np.ndarray:
    """
    Pull the token-level hidden states out of a model's outputs.

    Returns:
        float32 array of shape (batch, sequence_length, hidden_size)

    Raises:
        MissingOutputError          : ``name`` is not among the outputs
        UnsupportedOutputShapeError : the output is not rank 3
    """
    if name not in outputs:
        raise MissingOutputError(name, list(outputs))
    hidden = np.asarray(outputs[name], dtype=np.float32)
    if hidden.ndim != 3:
        raise UnsupportedOutputShapeError(hidden.shape)
    return hidden
