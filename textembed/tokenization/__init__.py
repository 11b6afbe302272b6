"""
Tokenization subpackage -- text to padded integer rows.
"""

from textembed.tokenization.tokenizer import (
    PAD_TO_MULTIPLE_OF,
    TokenizedBatch,
    TokenizerCache,
    load_tokenizer,
    tokenize,
)
