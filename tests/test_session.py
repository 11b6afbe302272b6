"""Tests for the inference session manager and model loaders."""

import threading
import time

import numpy as np
import pytest

from conftest import LiveSessionCounter, StubSession
from textembed.errors import (
    InferenceError,
    MissingOutputError,
    ModelLoadError,
    SessionNotInitialized,
    UnsupportedOutputShapeError,
)
from textembed.inference.runtime import load_session
from textembed.inference.session import SessionManager, extract_hidden_states
from textembed.inference.tensors import assemble_inputs
from textembed.tokenization.tokenizer import TokenizedBatch


@pytest.fixture
def inputs():
    batch = TokenizedBatch(
        input_ids=[[2, 4, 5, 3]],
        attention_mask=[[1, 1, 1, 1]],
        token_type_ids=[[0, 0, 0, 0]],
    )
    return assemble_inputs(batch)


def test_run_before_init_raises(inputs):
    manager = SessionManager(loader=lambda path: StubSession())

    with pytest.raises(SessionNotInitialized):
        manager.run(inputs)
    assert not manager.is_initialized
    assert manager.model_path is None


def test_run_feeds_all_named_tensors(inputs):
    session = StubSession()
    manager = SessionManager(loader=lambda path: session)
    manager.init_session("model.onnx")

    outputs = manager.run(inputs)

    assert manager.is_initialized
    assert manager.model_path == "model.onnx"
    assert set(session.feeds[0]) == {"input_ids", "attention_mask", "token_type_ids"}
    assert outputs["token_embeddings"].shape == (1, 4, 2)


def test_run_drops_inputs_the_model_does_not_declare(inputs):
    session = StubSession(input_names=["input_ids", "attention_mask"])
    manager = SessionManager(loader=lambda path: session)
    manager.init_session("distilbert.onnx")

    manager.run(inputs)

    assert set(session.feeds[0]) == {"input_ids", "attention_mask"}


def test_init_replaces_and_releases_previous_session():
    sessions = []

    def loader(path):
        sessions.append(StubSession())
        return sessions[-1]

    manager = SessionManager(loader=loader)
    manager.init_session("a.onnx")
    manager.init_session("b.onnx")

    assert len(sessions) == 2
    assert sessions[0].closed
    assert not sessions[1].closed
    assert manager.model_path == "b.onnx"


def test_failed_init_leaves_no_session(inputs):
    calls = []

    def loader(path):
        calls.append(path)
        if path == "broken.onnx":
            raise RuntimeError("bad graph")
        return StubSession()

    manager = SessionManager(loader=loader)
    manager.init_session("good.onnx")

    with pytest.raises(ModelLoadError) as excinfo:
        manager.init_session("broken.onnx")

    assert excinfo.value.path == "broken.onnx"
    assert isinstance(excinfo.value.cause, RuntimeError)
    assert not manager.is_initialized
    with pytest.raises(SessionNotInitialized):
        manager.run(inputs)


def test_model_load_error_from_loader_passes_through():
    def loader(path):
        raise ModelLoadError(path, FileNotFoundError(path))

    manager = SessionManager(loader=loader)
    with pytest.raises(ModelLoadError) as excinfo:
        manager.init_session("missing.onnx")
    assert isinstance(excinfo.value.cause, FileNotFoundError)


def test_backend_failure_is_inference_error(inputs):
    class Exploding(StubSession):
        def run(self, feed):
            raise RuntimeError("kernel failed")

    manager = SessionManager(loader=lambda path: Exploding())
    manager.init_session("model.onnx")

    with pytest.raises(InferenceError) as excinfo:
        manager.run(inputs)
    assert isinstance(excinfo.value.cause, RuntimeError)
    assert manager.is_initialized


def test_close_releases_session():
    session = StubSession()
    manager = SessionManager(loader=lambda path: session)
    manager.init_session("model.onnx")
    manager.close()
    assert session.closed
    assert not manager.is_initialized


def test_concurrent_inits_leave_exactly_one_session():
    counter = LiveSessionCounter()
    manager = SessionManager(loader=counter)

    threads = [
        threading.Thread(target=manager.init_session, args=(f"m{i}.onnx",))
        for i in range(16)
    ]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert counter.built == 16
    assert counter.live == 1
    assert manager.is_initialized


def test_runs_are_serialised(inputs):
    state = {"active": 0, "max_active": 0}
    lock = threading.Lock()

    class Slow(StubSession):
        def run(self, feed):
            with lock:
                state["active"] += 1
                state["max_active"] = max(state["max_active"], state["active"])
            time.sleep(0.01)
            with lock:
                state["active"] -= 1
            return super().run(feed)

    manager = SessionManager(loader=lambda path: Slow())
    manager.init_session("model.onnx")

    threads = [threading.Thread(target=manager.run, args=(inputs,)) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert state["max_active"] == 1


def test_extract_hidden_states_returns_float32_rank_3():
    outputs = {"token_embeddings": np.ones((2, 8, 4), dtype=np.float64)}
    hidden = extract_hidden_states(outputs)
    assert hidden.dtype == np.float32
    assert hidden.shape == (2, 8, 4)


def test_extract_hidden_states_missing_output():
    with pytest.raises(MissingOutputError) as excinfo:
        extract_hidden_states({"last_hidden_state": np.ones((1, 8, 4))})
    assert excinfo.value.name == "token_embeddings"
    assert excinfo.value.available == ["last_hidden_state"]


def test_extract_hidden_states_custom_name():
    hidden = extract_hidden_states(
        {"last_hidden_state": np.ones((1, 8, 4))}, name="last_hidden_state"
    )
    assert hidden.shape == (1, 8, 4)


def test_extract_hidden_states_rejects_pooled_output():
    with pytest.raises(UnsupportedOutputShapeError) as excinfo:
        extract_hidden_states({"token_embeddings": np.ones((2, 384))})
    assert excinfo.value.shape == (2, 384)


def test_load_session_missing_file(tmp_path):
    path = str(tmp_path / "model.onnx")
    with pytest.raises(ModelLoadError) as excinfo:
        load_session(path)
    assert excinfo.value.path == path


def test_load_session_unknown_format(tmp_path):
    path = tmp_path / "model.pt"
    path.write_bytes(b"\x00")
    with pytest.raises(ModelLoadError) as excinfo:
        load_session(str(path))
    assert isinstance(excinfo.value.cause, ValueError)


def test_load_session_corrupt_onnx(tmp_path):
    path = tmp_path / "model.onnx"
    path.write_bytes(b"not a protobuf")
    with pytest.raises(ModelLoadError):
        load_session(str(path))


def test_load_session_real_onnx_model(onnx_model_file, inputs):
    session = load_session(onnx_model_file)

    assert session.input_names == ["input_ids", "attention_mask", "token_type_ids"]
    assert session.output_names == ["token_embeddings"]

    outputs = session.run(inputs.as_feed())
    np.testing.assert_allclose(
        outputs["token_embeddings"][0],
        [[2, 4], [4, 8], [5, 10], [3, 6]],
    )
