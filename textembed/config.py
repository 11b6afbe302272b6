"""
Settings
=========
Loads embedding settings from ``configs/settings.yaml`` and the
environment.

Precedence (lowest to highest):
    1. dataclass defaults below
    2. the ``embedding:`` section of the YAML settings file
    3. ``TEXTEMBED_*`` environment variables
    4. command-line flags (applied by cli.py)

The settings file looks like::

    embedding:
      tokenizer_path: models/tokenizer.json
      model_path: models/model.onnx
      max_length: 256
"""

import logging
import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from textembed.tokenization.tokenizer import validate_max_length

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Defaults -- mirrored in configs/settings.yaml
# ---------------------------------------------------------------------------
DEFAULT_SETTINGS_PATH = Path("configs") / "settings.yaml"
DEFAULT_TOKENIZER_PATH = "models/tokenizer.json"
DEFAULT_MODEL_PATH = "models/model.onnx"
DEFAULT_MAX_LENGTH = 256
DEFAULT_BATCH_SIZE = 32
DEFAULT_OUTPUT_NAME = "token_embeddings"

ENV_PREFIX = "TEXTEMBED_"

_TRUE_STRINGS = {"1", "true", "yes", "on"}
_FALSE_STRINGS = {"0", "false", "no", "off"}


def _parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUE_STRINGS:
        return True
    if text in _FALSE_STRINGS:
        return False
    raise ValueError(f"Cannot interpret {value!r} as a boolean")


@dataclass(frozen=True)
class EmbedderSettings:
    """
    Everything the embedding pipeline needs to know at runtime.

    Attributes:
        tokenizer_path  : path to a ``tokenizer.json`` definition
        model_path      : path to a ``.onnx`` model or OpenVINO ``.xml`` IR
        max_length      : truncation length in tokens (multiple of 8)
        batch_size      : texts per inference call in ``TextEmbedder.encode``
        output_name     : model output holding token-level hidden states
        cache_tokenizer : reuse loaded tokenizers across calls
        normalize       : L2-normalise pooled vectors
    """
    tokenizer_path: str = DEFAULT_TOKENIZER_PATH
    model_path: str = DEFAULT_MODEL_PATH
    max_length: int = DEFAULT_MAX_LENGTH
    batch_size: int = DEFAULT_BATCH_SIZE
    output_name: str = DEFAULT_OUTPUT_NAME
    cache_tokenizer: bool = False
    normalize: bool = False

    def __post_init__(self):
        validate_max_length(self.max_length)
        if self.batch_size <= 0:
            raise ValueError(f"batch_size must be positive, got {self.batch_size}")
        if not self.output_name:
            raise ValueError("output_name must not be empty")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EmbedderSettings":
        """Build settings from a mapping, ignoring (and logging) unknown keys."""
        known = {f.name for f in fields(cls)}
        kwargs: Dict[str, Any] = {}
        for key, value in data.items():
            if key not in known:
                logger.warning("Ignoring unknown embedding setting: %s", key)
                continue
            kwargs[key] = _coerce(key, value)
        return cls(**kwargs)

    def override(self, **changes: Any) -> "EmbedderSettings":
        """Return a copy with the non-None ``changes`` applied."""
        changes = {k: v for k, v in changes.items() if v is not None}
        return replace(self, **changes) if changes else self


def _coerce(key: str, value: Any) -> Any:
    if key in ("max_length", "batch_size"):
        return int(value)
    if key in ("cache_tokenizer", "normalize"):
        return _parse_bool(value)
    return str(value)


def read_settings_file(path: Path) -> Dict[str, Any]:
    """
    Return the ``embedding:`` section of a YAML settings file.

    A missing file is not an error: the defaults apply.  A file that exists
    but cannot be parsed is.
    """
    if not path.exists():
        logger.warning("Settings file not found: %s (using defaults)", path)
        return {}
    with open(path, "r") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Settings file {path} must contain a mapping")
    section = data.get("embedding", {}) or {}
    if not isinstance(section, dict):
        raise ValueError(f"'embedding' section in {path} must be a mapping")
    return section


def env_overrides(environ: Optional[Dict[str, str]] = None) -> Dict[str, str]:
    """Collect ``TEXTEMBED_<FIELD>`` variables as a settings mapping."""
    environ = os.environ if environ is None else environ
    overrides = {}
    for f in fields(EmbedderSettings):
        value = environ.get(ENV_PREFIX + f.name.upper())
        if value is not None:
            overrides[f.name] = value
    return overrides


def load_settings(
    path: Optional[Path] = None,
    environ: Optional[Dict[str, str]] = None,
) -> EmbedderSettings:
    """Load settings from YAML, then apply environment overrides."""
    path = Path(path) if path is not None else DEFAULT_SETTINGS_PATH
    data = read_settings_file(path)
    data.update(env_overrides(environ))
    settings = EmbedderSettings.from_dict(data)
    logger.debug("Loaded settings: %s", settings)
    return settings
