"""
Settings
=========
Project settings live in ``configs/settings.yaml``.  Every module that needs
a setting goes through ``load_settings()`` so defaults and environment
overrides are handled in one place.

Environment variables:
    LOCAL_EMBEDDER_SETTINGS -- path to an alternate settings.yaml
    LOCAL_EMBEDDER_CACHE    -- model cache directory (overrides the yaml)

``EmbedderOptions`` is the typed view of the ``embedder:`` section that the
loader and the pipeline consume.
"""

import logging
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

from local_embedder.exceptions import InvalidConfigurationError
from local_embedder.pooling import PoolingMode

logger = logging.getLogger(__name__)

SETTINGS_PATH = Path(__file__).resolve().parent.parent / "configs" / "settings.yaml"
SETTINGS_ENV = "LOCAL_EMBEDDER_SETTINGS"
CACHE_ENV = "LOCAL_EMBEDDER_CACHE"

DEFAULT_MAX_SEQUENCE_LENGTH = 512


def default_cache_directory() -> Path:
    """~/.cache/huggingface/hub, unless LOCAL_EMBEDDER_CACHE is set."""
    override = os.environ.get(CACHE_ENV)
    if override:
        return Path(override).expanduser()
    return Path.home() / ".cache" / "huggingface" / "hub"


def load_settings(path: Optional[Union[str, Path]] = None) -> dict:
    """
    Load settings from yaml.

    Lookup order: explicit ``path``, then $LOCAL_EMBEDDER_SETTINGS, then
    configs/settings.yaml next to the package.

    Returns:
        The parsed YAML as a dict, or an empty dict if the file is missing
        or unreadable.
    """
    settings_path = Path(path or os.environ.get(SETTINGS_ENV) or SETTINGS_PATH)
    if not settings_path.exists():
        logger.warning("Settings file not found: %s", settings_path)
        return {}
    try:
        with open(settings_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as exc:
        logger.warning("Failed to read settings: %s", exc)
        return {}
    if not isinstance(data, dict):
        logger.warning("Settings file %s is not a mapping, ignoring", settings_path)
        return {}
    return data


@dataclass
class EmbedderOptions:
    """
    Options for loading and running an embedding model.

    Attributes:
        cache_dir            : where downloaded models are stored
        max_sequence_length  : fixed tokenized length (registry models may
                               lower the 512 default)
        normalize_embeddings : L2-normalise every output vector
        device               : OpenVINO device ("AUTO", "CPU", "GPU", "NPU",
                               "MULTI:CPU,GPU")
        pooling_mode         : MEAN, CLS or MAX
        do_lower_case        : lowercase before WordPiece (uncased models)
        parallel_threshold   : batches larger than this fan out to threads
        max_workers          : thread count for the fan-out (None = CPUs)
        show_progress        : tqdm bar for batch embedding
    """

    cache_dir: Optional[str] = None
    max_sequence_length: int = DEFAULT_MAX_SEQUENCE_LENGTH
    normalize_embeddings: bool = True
    device: str = "AUTO"
    pooling_mode: PoolingMode = PoolingMode.MEAN
    do_lower_case: bool = True
    parallel_threshold: int = 4
    max_workers: Optional[int] = None
    show_progress: bool = False

    def __post_init__(self):
        self.pooling_mode = PoolingMode.parse(self.pooling_mode)
        if self.max_sequence_length < 0:
            raise InvalidConfigurationError(
                f"max_sequence_length must be >= 0, got {self.max_sequence_length}"
            )
        if self.max_workers is not None and self.max_workers < 1:
            raise InvalidConfigurationError(
                f"max_workers must be >= 1, got {self.max_workers}"
            )

    def resolved_cache_dir(self) -> Path:
        if self.cache_dir:
            return Path(self.cache_dir).expanduser()
        return default_cache_directory()

    @classmethod
    def from_settings(cls, settings: Optional[Dict[str, Any]] = None) -> "EmbedderOptions":
        """
        Build options from the ``embedder:`` section of a settings dict.

        Unknown keys are ignored with a warning.  When ``settings`` is None
        the settings file is loaded.
        """
        if settings is None:
            settings = load_settings()
        section = settings.get("embedder") or {}
        known = {f.name for f in fields(cls)}
        kwargs = {}
        for key, value in section.items():
            if key in known:
                kwargs[key] = value
            elif key != "model":
                logger.warning("Ignoring unknown embedder setting: %s", key)

        device = (settings.get("openvino") or {}).get("device")
        if device and "device" not in kwargs:
            kwargs["device"] = device
        if os.environ.get(CACHE_ENV):
            kwargs["cache_dir"] = os.environ[CACHE_ENV]
        return cls(**kwargs)
