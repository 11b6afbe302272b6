"""
Tokenization Stage
===================
Converts raw text into padded / truncated integer rows ready for tensor
assembly.

The tokenizer is a HuggingFace ``tokenizer.json`` definition loaded with
the ``tokenizers`` library, i.e. the same fast tokenizer the model was
exported with.  Using the exact definition guarantees the ids, special
tokens ([CLS], [SEP], ...) and padding conventions match what the model
expects.

Padding and truncation policy:
    - pad every row to the longest row of *this* batch, then round that
      length up to a multiple of 8 (tensor-engine friendly shapes)
    - truncate anything longer than ``max_length`` from the tail; special
      tokens count towards the limit
    - segment (token type) ids are always 0: only single-segment text is
      supported

Because the padded length is rounded up, ``max_length`` itself must be a
multiple of 8, otherwise a truncated row could be padded past the limit.
"""

import logging
import threading
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

from tokenizers import Tokenizer

from textembed.errors import EncodingError, TokenizerLoadError

logger = logging.getLogger(__name__)

PAD_TO_MULTIPLE_OF = 8
DEFAULT_PAD_ID = 0
DEFAULT_PAD_TOKEN = "[PAD]"


@dataclass
class TokenizedBatch:
    """
    Equal-length token rows for one batch of texts.

    Attributes:
        input_ids      : token ids per row
        attention_mask : 1 for real tokens, 0 for padding
        token_type_ids : segment ids, all 0
    """
    input_ids: List[List[int]] = field(default_factory=list)
    attention_mask: List[List[int]] = field(default_factory=list)
    token_type_ids: List[List[int]] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.input_ids)

    @property
    def batch_size(self) -> int:
        return len(self.input_ids)

    @property
    def sequence_length(self) -> int:
        return len(self.input_ids[0]) if self.input_ids else 0

    def to_dict(self) -> Dict:
        return asdict(self)


def validate_max_length(max_length: int) -> None:
    if max_length <= 0 or max_length % PAD_TO_MULTIPLE_OF != 0:
        raise ValueError(
            f"max_length must be a positive multiple of {PAD_TO_MULTIPLE_OF}, "
            f"got {max_length}"
        )


def load_tokenizer(tokenizer_path: str, max_length: int) -> Tokenizer:
    """
    Read a ``tokenizer.json`` file and configure batch padding/truncation.

    Raises:
        TokenizerLoadError : the file is missing or cannot be parsed
    """
    path = Path(tokenizer_path)
    if not path.is_file():
        raise TokenizerLoadError(
            str(tokenizer_path), FileNotFoundError(f"No such file: {path}")
        )
    try:
        tokenizer = Tokenizer.from_file(str(path))
    except Exception as exc:
        raise TokenizerLoadError(str(tokenizer_path), exc) from exc

    # Keep the pad token the file declares, if any.
    existing = tokenizer.padding or {}
    pad_id = existing.get("pad_id", DEFAULT_PAD_ID)
    pad_token = existing.get("pad_token", DEFAULT_PAD_TOKEN)

    tokenizer.enable_padding(
        direction="right",
        pad_id=pad_id,
        pad_type_id=0,
        pad_token=pad_token,
        length=None,
        pad_to_multiple_of=PAD_TO_MULTIPLE_OF,
    )
    tokenizer.enable_truncation(
        max_length=max_length,
        strategy="longest_first",
        direction="right",
    )
    logger.info(
        "Loaded tokenizer: %s (max_length=%d, pad_id=%d)",
        tokenizer_path, max_length, pad_id,
    )
    return tokenizer


class TokenizerCache:
    """
    Thread-safe cache of configured tokenizers keyed by (path, max_length).

    The default pipeline re-reads the tokenizer file on every call; pass a
    cache to ``tokenize`` to load each definition once per process.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._tokenizers: Dict[Tuple[str, int], Tokenizer] = {}

    def get(self, tokenizer_path: str, max_length: int) -> Tokenizer:
        key = (str(tokenizer_path), max_length)
        with self._lock:
            tokenizer = self._tokenizers.get(key)
            if tokenizer is None:
                tokenizer = load_tokenizer(tokenizer_path, max_length)
                self._tokenizers[key] = tokenizer
            return tokenizer

    def clear(self) -> None:
        with self._lock:
            self._tokenizers.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._tokenizers)


def tokenize(
    texts: Sequence[str],
    tokenizer_path: str,
    max_length: int,
    cache: Optional[TokenizerCache] = None,
) -> TokenizedBatch:
    """
    Encode a batch of texts into equal-length id / mask / segment rows.

    Args:
        texts          : raw strings, one row each
        tokenizer_path : path to ``tokenizer.json``
        max_length     : truncation length in tokens, multiple of 8
        cache          : optional TokenizerCache to reuse a loaded tokenizer

    Returns:
        TokenizedBatch with ``len(texts)`` rows.

    Raises:
        ValueError         : ``max_length`` is not a positive multiple of 8
        TokenizerLoadError : the tokenizer file cannot be loaded
        EncodingError      : an input is not a string or encoding failed
    """
    validate_max_length(max_length)
    texts = list(texts)
    for i, text in enumerate(texts):
        if not isinstance(text, str):
            raise EncodingError(
                f"Input {i} is {type(text).__name__}, expected str"
            )

    if cache is not None:
        tokenizer = cache.get(tokenizer_path, max_length)
    else:
        tokenizer = load_tokenizer(tokenizer_path, max_length)

    try:
        encodings = tokenizer.encode_batch(texts, add_special_tokens=True)
    except Exception as exc:
        raise EncodingError(
            f"Failed to encode batch of {len(texts)} texts: {exc}", exc
        ) from exc

    input_ids = [list(e.ids) for e in encodings]
    attention_mask = [list(e.attention_mask) for e in encodings]
    # Single-segment input: every position is segment 0.
    token_type_ids = [[0] * len(ids) for ids in input_ids]

    batch = TokenizedBatch(
        input_ids=input_ids,
        attention_mask=attention_mask,
        token_type_ids=token_type_ids,
    )
    logger.debug(
        "Tokenized %d texts -> sequence_length=%d",
        batch.batch_size, batch.sequence_length,
    )
    return batch
