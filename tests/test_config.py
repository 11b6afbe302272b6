"""Tests for settings loading."""

import pytest

from textembed.config import EmbedderSettings, env_overrides, load_settings


def test_defaults():
    settings = EmbedderSettings()
    assert settings.tokenizer_path == "models/tokenizer.json"
    assert settings.model_path == "models/model.onnx"
    assert settings.max_length == 256
    assert settings.output_name == "token_embeddings"
    assert settings.cache_tokenizer is False


def test_missing_settings_file_uses_defaults(tmp_path):
    settings = load_settings(tmp_path / "absent.yaml", environ={})
    assert settings == EmbedderSettings()


def test_settings_file_values(tmp_path):
    path = tmp_path / "settings.yaml"
    path.write_text(
        "embedding:\n"
        "  model_path: models/model.xml\n"
        "  max_length: 128\n"
        "  cache_tokenizer: true\n"
        "  output_name: last_hidden_state\n"
        "other_section:\n"
        "  ignored: 1\n"
    )
    settings = load_settings(path, environ={})
    assert settings.model_path == "models/model.xml"
    assert settings.max_length == 128
    assert settings.cache_tokenizer is True
    assert settings.output_name == "last_hidden_state"
    assert settings.tokenizer_path == "models/tokenizer.json"


def test_environment_overrides_file(tmp_path):
    path = tmp_path / "settings.yaml"
    path.write_text("embedding:\n  max_length: 128\n  normalize: false\n")
    environ = {
        "TEXTEMBED_MAX_LENGTH": "64",
        "TEXTEMBED_NORMALIZE": "yes",
        "UNRELATED": "x",
    }
    settings = load_settings(path, environ=environ)
    assert settings.max_length == 64
    assert settings.normalize is True


def test_env_overrides_only_picks_prefixed_fields():
    assert env_overrides({"TEXTEMBED_MODEL_PATH": "m.onnx", "MODEL_PATH": "x"}) == {
        "model_path": "m.onnx"
    }


def test_unknown_keys_are_ignored():
    settings = EmbedderSettings.from_dict({"max_length": 64, "pooling": "cls"})
    assert settings.max_length == 64


def test_override_skips_none():
    settings = EmbedderSettings().override(model_path=None, max_length=64)
    assert settings.model_path == "models/model.onnx"
    assert settings.max_length == 64


@pytest.mark.parametrize(
    "data",
    [
        {"max_length": 0},
        {"max_length": 100},
        {"batch_size": -1},
        {"output_name": ""},
        {"normalize": "maybe"},
        {"max_length": "lots"},
    ],
)
def test_invalid_values_raise(data):
    with pytest.raises(ValueError):
        EmbedderSettings.from_dict(data)


def test_non_mapping_settings_file(tmp_path):
    path = tmp_path / "settings.yaml"
    path.write_text("- just\n- a list\n")
    with pytest.raises(ValueError):
        load_settings(path, environ={})


def test_settings_file_max_length_not_multiple_of_8(tmp_path):
    path = tmp_path / "settings.yaml"
    path.write_text("embedding:\n  max_length: 100\n")
    with pytest.raises(ValueError, match="multiple of 8"):
        load_settings(path, environ={})
