"""
Embedding Encoder
==================
The batch embedding API: tokenized rows in, one pooled vector per row out.

Pipeline (per call):
    1. **Assemble**: TokenizedBatch -> named int64 tensors
    2. **Infer**: run the shared session, take the token-level output
       (batch x seq_len x hidden)
    3. **Mean pool**: average token vectors over real tokens only
    4. **Normalise** (optional): L2-scale each row

Two entry points:
    embed(batch, session)  -- one tokenized batch through one session
    TextEmbedder           -- settings-driven facade that also tokenizes,
                              splits large inputs into mini-batches and
                              saves / loads results

Either the whole batch is embedded or the call raises; partial results
are never returned.
"""

import logging
import time
from pathlib import Path
from typing import Dict, List, Optional

import numpy as np
from tqdm import tqdm

from textembed.config import EmbedderSettings
from textembed.embeddings.pooling import l2_normalize, mean_pool
from textembed.inference.session import (
    DEFAULT_OUTPUT_NAME,
    SessionManager,
    extract_hidden_states,
)
from textembed.inference.tensors import assemble_inputs
from textembed.tokenization.tokenizer import TokenizedBatch, TokenizerCache, tokenize

logger = logging.getLogger(__name__)


def embed(
    batch: TokenizedBatch,
    session: SessionManager,
    output_name: str = DEFAULT_OUTPUT_NAME,
    normalize: bool = False,
) -> np.ndarray:
    """
    Embed one tokenized batch.

    Args:
        batch       : rows from ``tokenize``
        session     : an initialised SessionManager
        output_name : model output holding token-level hidden states
        normalize   : L2-normalise the pooled vectors

    Returns:
        np.ndarray of shape (batch_size, hidden_size), dtype float32.  An
        empty batch returns an empty array without touching the session.
    """
    inputs = assemble_inputs(batch)
    if inputs.batch_size == 0:
        return np.empty((0, 0), dtype=np.float32)

    outputs = session.run(inputs)
    hidden = extract_hidden_states(outputs, output_name)
    logger.debug("Hidden states %s for inputs %s", hidden.shape, inputs.shape)
    embeddings = mean_pool(hidden, inputs.attention_mask)
    if normalize:
        embeddings = l2_normalize(embeddings)
    return embeddings


class TextEmbedder:
    """
    Tokenizer + shared inference session + pooling, driven by settings.

    Usage:
        embedder = TextEmbedder(EmbedderSettings(model_path="models/model.onnx"))
        embedder.load()
        vectors = embedder.encode(["Hello world", "Another sentence"])
        # vectors.shape == (2, hidden_size)

    Several embedders may share one SessionManager; pass it in as
    ``session``.
    """

    def __init__(
        self,
        settings: Optional[EmbedderSettings] = None,
        session: Optional[SessionManager] = None,
    ):
        self.settings = settings or EmbedderSettings()
        self.session = session or SessionManager()
        self._tokenizer_cache = (
            TokenizerCache() if self.settings.cache_tokenizer else None
        )
        self._dim: Optional[int] = None

    def load(self) -> None:
        """(Re)load the model named in the settings into the session."""
        self.session.init_session(self.settings.model_path)

    @property
    def dimension(self) -> Optional[int]:
        """Hidden size reported by the model, known after the first encode."""
        return self._dim

    def _batch_size(self, batch_size: Optional[int]) -> int:
        if batch_size is None:
            return self.settings.batch_size
        if batch_size <= 0:
            raise ValueError(f"batch_size must be positive, got {batch_size}")
        return batch_size

    def tokenize(self, texts: List[str]) -> TokenizedBatch:
        return tokenize(
            texts,
            self.settings.tokenizer_path,
            self.settings.max_length,
            cache=self._tokenizer_cache,
        )

    def encode(
        self,
        texts: List[str],
        batch_size: Optional[int] = None,
        show_progress: bool = False,
        normalize: Optional[bool] = None,
    ) -> np.ndarray:
        """
        Encode texts into embedding vectors.

        Texts are processed ``batch_size`` at a time; each mini-batch is
        padded independently, so short texts are not padded to the length
        of a long text in another mini-batch.

        Args:
            texts         : strings to encode
            batch_size    : texts per inference call (default: settings)
            show_progress : display a tqdm progress bar
            normalize     : L2-normalise (default: settings)

        Returns:
            np.ndarray of shape (len(texts), hidden_size), dtype float32.
        """
        batch_size = self._batch_size(batch_size)
        if normalize is None:
            normalize = self.settings.normalize

        if not texts:
            return np.empty((0, self._dim or 0), dtype=np.float32)

        starts = range(0, len(texts), batch_size)
        if show_progress:
            starts = tqdm(
                starts,
                desc="Encoding",
                unit="batch",
                total=(len(texts) + batch_size - 1) // batch_size,
            )

        chunks = []
        for start in starts:
            batch = self.tokenize(texts[start:start + batch_size])
            chunks.append(
                embed(
                    batch,
                    self.session,
                    output_name=self.settings.output_name,
                    normalize=normalize,
                )
            )

        embeddings = np.concatenate(chunks, axis=0)
        self._dim = embeddings.shape[1]
        logger.info("Encoded %d texts -> shape %s", len(texts), embeddings.shape)
        return embeddings

    def encode_single(self, text: str, normalize: Optional[bool] = None) -> np.ndarray:
        """Convenience method: encode one string, return 1-D vector."""
        return self.encode([text], normalize=normalize)[0]

    @staticmethod
    def save_embeddings(embeddings: np.ndarray, output_path: str) -> Path:
        """Save embeddings to a .npy file."""
        out = Path(output_path)
        out.parent.mkdir(parents=True, exist_ok=True)
        np.save(str(out), embeddings)
        logger.info("Saved embeddings (%s) to %s", embeddings.shape, out)
        return out

    @staticmethod
    def load_embeddings(path: str) -> np.ndarray:
        """Load a previously saved embedding array."""
        arr = np.load(path)
        logger.info("Loaded embeddings from %s: shape %s", path, arr.shape)
        return arr

    def benchmark(
        self,
        texts: List[str],
        batch_size: Optional[int] = None,
        n_runs: int = 5,
    ) -> Dict[str, float]:
        """
        Time ``encode`` over ``n_runs`` runs after one warmup run.

        Returns:
            Dict with timing stats in milliseconds and throughput.
        """
        self.encode(texts, batch_size=batch_size)

        times = []
        for _ in range(n_runs):
            start = time.perf_counter()
            self.encode(texts, batch_size=batch_size)
            times.append(time.perf_counter() - start)

        times_arr = np.array(times)
        return {
            "n_texts": len(texts),
            "batch_size": self._batch_size(batch_size),
            "n_runs": n_runs,
            "mean_ms": float(times_arr.mean() * 1000),
            "std_ms": float(times_arr.std() * 1000),
            "min_ms": float(times_arr.min() * 1000),
            "max_ms": float(times_arr.max() * 1000),
            "texts_per_sec": float(len(texts) / times_arr.mean()),
        }
