"""
Tensor Assembly Stage
======================
Turns a TokenizedBatch into the three named int64 tensors the model
consumes.

Every field is promoted to signed 64-bit integers regardless of the
narrower unsigned ids the tokenizer produces: BERT-style ONNX exports
declare ``tensor(int64)`` for all three inputs.  The arrays are
C-contiguous (row-major), shape (batch, sequence_length).

Rows are checked against each other before anything is built.  The
tokenizer's padding should make them equal already, but a TokenizedBatch
can also be built by hand.
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Tuple

import numpy as np

from textembed.errors import ShapeError, TensorConstructionError
from textembed.tokenization.tokenizer import TokenizedBatch

logger = logging.getLogger(__name__)

# Input names are fixed by the model export.
INPUT_NAMES = ("input_ids", "attention_mask", "token_type_ids")


@dataclass
class ModelInputs:
    """Named int64 tensors of shape (batch, sequence_length)."""
    input_ids: np.ndarray
    attention_mask: np.ndarray
    token_type_ids: np.ndarray

    @property
    def shape(self) -> Tuple[int, int]:
        return tuple(self.input_ids.shape)

    @property
    def batch_size(self) -> int:
        return self.input_ids.shape[0]

    @property
    def sequence_length(self) -> int:
        return self.input_ids.shape[1]

    def as_feed(self) -> Dict[str, np.ndarray]:
        return {
            "input_ids": self.input_ids,
            "attention_mask": self.attention_mask,
            "token_type_ids": self.token_type_ids,
        }


def check_row_lengths(batch: TokenizedBatch) -> Tuple[int, int]:
    """
    Verify all rows of all three fields have one common length.

    Returns:
        (batch_size, sequence_length)

    Raises:
        ShapeError : row counts or row lengths disagree
    """
    rows = {name: getattr(batch, name) for name in INPUT_NAMES}
    batch_size = len(rows["input_ids"])

    for name, field_rows in rows.items():
        if len(field_rows) != batch_size:
            raise ShapeError(
                f"'{name}' has {len(field_rows)} rows, expected {batch_size}",
                field=name, expected=batch_size, actual=len(field_rows),
            )
    if batch_size == 0:
        return 0, 0

    seq_len = len(rows["input_ids"][0])
    for name, field_rows in rows.items():
        for i, row in enumerate(field_rows):
            if len(row) != seq_len:
                raise ShapeError(
                    f"Row {i} of '{name}' has length {len(row)}, "
                    f"expected {seq_len}",
                    field=name, row=i, expected=seq_len, actual=len(row),
                )
    return batch_size, seq_len


def _to_int64(name: str, rows: List[List[int]], shape: Tuple[int, int]) -> np.ndarray:
    try:
        arr = np.asarray(rows)
        if arr.size and arr.dtype.kind not in "iub":
            raise TypeError(f"non-integer values (dtype {arr.dtype})")
        if arr.size and arr.dtype.kind == "u" and arr.max() > np.iinfo(np.int64).max:
            raise OverflowError("value exceeds int64 range")
        flat = arr.astype(np.int64).reshape(-1)
        return np.ascontiguousarray(flat.reshape(shape))
    except (TypeError, ValueError, OverflowError) as exc:
        raise TensorConstructionError(name, exc) from exc


def assemble_inputs(batch: TokenizedBatch) -> ModelInputs:
    """
    Flatten a TokenizedBatch into contiguous int64 model inputs.

    An empty batch yields (0, 0) tensors; callers check ``batch_size``
    and skip inference.

    Raises:
        ShapeError              : inconsistent row counts / lengths
        TensorConstructionError : a field is not representable as int64
    """
    shape = check_row_lengths(batch)
    tensors = {
        name: _to_int64(name, getattr(batch, name), shape)
        for name in INPUT_NAMES
    }
    logger.debug("Assembled model inputs: shape=%s", shape)
    return ModelInputs(**tensors)
