"""
Pipeline Errors
================
Every failure the embedding pipeline can report, as one class hierarchy.

All errors derive from ``EmbeddingError`` so callers (and the CLI) can
catch the whole family in one place.  Each subclass keeps the context
that produced it (path, shape, underlying cause) as attributes, so tests
and callers can inspect the failure without parsing the message.

None of these are retried anywhere in the pipeline.
"""

from typing import Any, Optional, Sequence, Tuple


class EmbeddingError(Exception):
    """Base class for all pipeline failures."""


class TokenizerLoadError(EmbeddingError):
    """The tokenizer definition could not be read or parsed."""

    def __init__(self, path: str, cause: Optional[BaseException] = None):
        self.path = path
        self.cause = cause
        super().__init__(f"Failed to load tokenizer from '{path}': {cause}")


class EncodingError(EmbeddingError):
    """Batch encoding of the input texts failed."""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        self.cause = cause
        super().__init__(message)


class ShapeError(EmbeddingError):
    """Rows or tensors disagree on their (batch, sequence_length) shape."""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        row: Optional[int] = None,
        expected: Any = None,
        actual: Any = None,
    ):
        self.field = field
        self.row = row
        self.expected = expected
        self.actual = actual
        super().__init__(message)


class ModelLoadError(EmbeddingError):
    """The model definition could not be turned into an inference session."""

    def __init__(self, path: str, cause: Optional[BaseException] = None):
        self.path = path
        self.cause = cause
        super().__init__(f"Failed to load model from '{path}': {cause}")


class SessionNotInitialized(EmbeddingError):
    """``run`` was called before any session was installed."""

    def __init__(self):
        super().__init__(
            "Inference session is not initialized; call init_session() first"
        )


class UnsupportedOutputShapeError(EmbeddingError):
    """The hidden-state output is not a rank-3 (batch, seq, hidden) array."""

    def __init__(self, shape: Tuple[int, ...]):
        self.shape = tuple(shape)
        super().__init__(
            f"Unsupported output shape {self.shape}: expected "
            "(batch, sequence_length, hidden_size)"
        )


class TensorConstructionError(EmbeddingError):
    """A model input could not be built as an int64 tensor."""

    def __init__(self, name: str, cause: Optional[BaseException] = None):
        self.name = name
        self.cause = cause
        super().__init__(f"Failed to build tensor '{name}': {cause}")


class MissingOutputError(EmbeddingError):
    """The model did not return the requested output."""

    def __init__(self, name: str, available: Sequence[str] = ()):
        self.name = name
        self.available = list(available)
        super().__init__(
            f"Model output '{name}' not found (available: {self.available})"
        )


class InferenceError(EmbeddingError):
    """The inference backend raised while running the model."""

    def __init__(self, cause: BaseException):
        self.cause = cause
        super().__init__(f"Inference failed: {cause}")
