"""
textembed -- root package.

Turns text into fixed-length vectors with a tokenizer plus a local
inference session, mean-pooling token states into one vector per input:
    tokenization -> text to padded id / mask / segment rows
    inference    -> int64 tensor assembly, model loading, shared session
    embeddings   -> masked mean pooling and the batch embedding API
"""

__version__ = "0.1.0"
