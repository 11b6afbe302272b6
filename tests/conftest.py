"""Shared fixtures: a tiny tokenizer, stub sessions and a tiny ONNX model."""

import threading

import numpy as np
import pytest
from tokenizers import Tokenizer, models, pre_tokenizers, processors

VOCAB = {
    "[UNK]": 0,
    "[PAD]": 1,
    "[CLS]": 2,
    "[SEP]": 3,
    "hello": 4,
    "world": 5,
    "the": 6,
    "quick": 7,
    "brown": 8,
    "fox": 9,
    "jumps": 10,
    "over": 11,
    "lazy": 12,
    "dog": 13,
}
PAD_ID = VOCAB["[PAD]"]
CLS_ID = VOCAB["[CLS]"]
SEP_ID = VOCAB["[SEP]"]


@pytest.fixture
def tokenizer_file(tmp_path):
    """Word-level tokenizer.json with [CLS] ... [SEP] and [PAD] = 1."""
    tok = Tokenizer(models.WordLevel(vocab=VOCAB, unk_token="[UNK]"))
    tok.pre_tokenizer = pre_tokenizers.Whitespace()
    tok.post_processor = processors.TemplateProcessing(
        single="[CLS] $A [SEP]",
        special_tokens=[("[CLS]", CLS_ID), ("[SEP]", SEP_ID)],
    )
    tok.enable_padding(pad_id=PAD_ID, pad_token="[PAD]")
    path = tmp_path / "tokenizer.json"
    tok.save(str(path))
    return str(path)


class StubSession:
    """
    Backend stand-in: ``run(feed)`` returns ``{"token_embeddings": ...}``.

    By default token vector (b, t) is ``[id, 2 * id]`` so pooled values are
    easy to compute by hand.
    """

    def __init__(self, hidden=None, input_names=None, output_name="token_embeddings"):
        self.hidden = hidden
        self.output_name = output_name
        self.input_names = input_names
        self.feeds = []
        self.closed = False

    def run(self, feed):
        self.feeds.append(feed)
        if self.hidden is not None:
            return {self.output_name: self.hidden}
        ids = feed["input_ids"].astype(np.float32)
        return {self.output_name: np.stack([ids, 2 * ids], axis=-1)}

    def close(self):
        self.closed = True


@pytest.fixture
def stub_session():
    return StubSession()


@pytest.fixture
def stub_manager(stub_session):
    from textembed.inference.session import SessionManager

    manager = SessionManager(loader=lambda path: stub_session)
    manager.init_session("stub.onnx")
    return manager


class LiveSessionCounter:
    """Loader that tracks how many sessions are alive (built, not closed)."""

    def __init__(self):
        self._lock = threading.Lock()
        self.live = 0
        self.built = 0

    def __call__(self, path):
        counter = self

        class _Session(StubSession):
            def close(self):
                with counter._lock:
                    counter.live -= 1

        with self._lock:
            self.live += 1
            self.built += 1
        return _Session()


@pytest.fixture
def onnx_model_file(tmp_path):
    """
    ONNX graph: token_embeddings[b, t] = [id, 2 * id] as float32.

    attention_mask and token_type_ids are declared but unused.
    """
    onnx = pytest.importorskip("onnx")
    from onnx import TensorProto, helper

    inputs = [
        helper.make_tensor_value_info(name, TensorProto.INT64, ["batch", "seq"])
        for name in ("input_ids", "attention_mask", "token_type_ids")
    ]
    output = helper.make_tensor_value_info(
        "token_embeddings", TensorProto.FLOAT, ["batch", "seq", 2]
    )
    axes = helper.make_tensor("axes", TensorProto.INT64, [1], [2])
    scale = helper.make_tensor("scale", TensorProto.FLOAT, [1, 1, 2], [1.0, 2.0])
    nodes = [
        helper.make_node("Cast", ["input_ids"], ["ids_f"], to=TensorProto.FLOAT),
        helper.make_node("Unsqueeze", ["ids_f", "axes"], ["ids_3d"]),
        helper.make_node("Mul", ["ids_3d", "scale"], ["token_embeddings"]),
    ]
    graph = helper.make_graph(
        nodes, "tiny_encoder", inputs, [output], initializer=[axes, scale]
    )
    model = helper.make_model(graph, opset_imports=[helper.make_opsetid("", 13)])
    model.ir_version = 8
    path = tmp_path / "model.onnx"
    onnx.save(model, str(path))
    return str(path)
