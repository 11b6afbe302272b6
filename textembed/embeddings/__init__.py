"""
Embeddings subpackage -- hidden states to pooled text vectors.

    embed          -- one tokenized batch through a SessionManager
    TextEmbedder   -- settings-driven facade (tokenize + embed + batching)
"""

from textembed.embeddings.encoder import TextEmbedder, embed
from textembed.embeddings.pooling import l2_normalize, mean_pool
