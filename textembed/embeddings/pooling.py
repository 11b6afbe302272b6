"""
Pooling Stage
==============
Reduces token-level hidden states to one vector per input text.

The model returns a (batch, seq_len, hidden) tensor: one vector per token,
padding positions included.  Mean pooling averages the token vectors of
each row, but only over real tokens:

    pooled[b] = sum_t(mask[b, t] * hidden[b, t, :]) / sum_t(mask[b, t])

Padding positions hold arbitrary values (whatever the model computed for
[PAD], possibly non-finite); they are selected out, never multiplied in.  A row whose mask
is all zeros has nothing to average and stays a zero vector.

Because the sum runs over the sequence axis of a (batch, seq, hidden)
array, element [b, t, h] is always paired with mask[b, t]: no manual index
arithmetic over the flattened buffer.
"""

import logging

import numpy as np

from textembed.errors import ShapeError, UnsupportedOutputShapeError

logger = logging.getLogger(__name__)


def mean_pool(hidden_states: np.ndarray, attention_mask: np.ndarray) -> np.ndarray:
    """
    Attention-masked mean pooling.

    Args:
        hidden_states  : (batch, seq_len, hidden) token vectors
        attention_mask : (batch, seq_len), 1 for real tokens, 0 for padding

    Returns:
        float32 array of shape (batch, hidden).

    Raises:
        UnsupportedOutputShapeError : hidden_states is not rank 3
        ShapeError                  : the mask does not match (batch, seq_len)
    """
    hidden_states = np.asarray(hidden_states)
    attention_mask = np.asarray(attention_mask)
    if hidden_states.ndim != 3:
        raise UnsupportedOutputShapeError(hidden_states.shape)
    if attention_mask.shape != hidden_states.shape[:2]:
        raise ShapeError(
            f"attention_mask shape {attention_mask.shape} does not match "
            f"hidden states {hidden_states.shape[:2]}",
            field="attention_mask",
            expected=tuple(hidden_states.shape[:2]),
            actual=tuple(attention_mask.shape),
        )

    # Only positions with mask == 1 count as tokens.
    mask = (attention_mask == 1)[:, :, np.newaxis]

    # Accumulate in float64, hand back float32.
    summed = np.where(mask, hidden_states.astype(np.float64), 0.0).sum(axis=1)
    counts = mask.sum(axis=1).astype(np.float64)
    pooled = np.divide(
        summed, counts, out=np.zeros_like(summed), where=counts > 0
    )
    return pooled.astype(np.float32)


def l2_normalize(embeddings: np.ndarray) -> np.ndarray:
    """
    Scale each row to unit length so dot product equals cosine similarity.

    Zero rows (e.g. from fully-masked inputs) are returned unchanged.
    """
    embeddings = np.asarray(embeddings, dtype=np.float32)
    norms = np.linalg.norm(embeddings, axis=1, keepdims=True)
    return np.divide(
        embeddings, norms, out=np.zeros_like(embeddings), where=norms > 0
    )
