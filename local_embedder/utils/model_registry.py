"""
Registry of pre-configured embedding models.

Each entry records the HuggingFace repo and the settings the model was
trained with (pooling, lowercasing, maximum length).  Lookups are
case-insensitive.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional

from local_embedder.pooling import PoolingMode


@dataclass(frozen=True)
class ModelInfo:
    repo_id: str
    dimensions: int
    max_sequence_length: int
    pooling_mode: PoolingMode
    do_lower_case: bool
    description: str = ""
    subfolder: Optional[str] = None


_MODELS: Dict[str, ModelInfo] = {
    "all-MiniLM-L6-v2": ModelInfo(
        repo_id="sentence-transformers/all-MiniLM-L6-v2",
        dimensions=384,
        max_sequence_length=256,
        pooling_mode=PoolingMode.MEAN,
        do_lower_case=True,
        description="Fast, good quality, English",
        subfolder="onnx",
    ),
    "all-mpnet-base-v2": ModelInfo(
        repo_id="sentence-transformers/all-mpnet-base-v2",
        dimensions=768,
        max_sequence_length=384,
        pooling_mode=PoolingMode.MEAN,
        do_lower_case=True,
        description="Higher quality, English",
        subfolder="onnx",
    ),
    "bge-small-en-v1.5": ModelInfo(
        repo_id="BAAI/bge-small-en-v1.5",
        dimensions=384,
        max_sequence_length=512,
        pooling_mode=PoolingMode.CLS,
        do_lower_case=True,
        description="BAAI, English",
        subfolder="onnx",
    ),
    "bge-base-en-v1.5": ModelInfo(
        repo_id="BAAI/bge-base-en-v1.5",
        dimensions=768,
        max_sequence_length=512,
        pooling_mode=PoolingMode.CLS,
        do_lower_case=True,
        description="BAAI, English, higher quality",
        subfolder="onnx",
    ),
    "multilingual-e5-small": ModelInfo(
        repo_id="intfloat/multilingual-e5-small",
        dimensions=384,
        max_sequence_length=512,
        pooling_mode=PoolingMode.MEAN,
        do_lower_case=False,
        description="Multilingual",
        subfolder="onnx",
    ),
    "multilingual-e5-base": ModelInfo(
        repo_id="intfloat/multilingual-e5-base",
        dimensions=768,
        max_sequence_length=512,
        pooling_mode=PoolingMode.MEAN,
        do_lower_case=False,
        description="Multilingual, higher quality",
        subfolder="onnx",
    ),
}

_BY_LOWER = {key.lower(): key for key in _MODELS}


def get_model(model_id: str) -> Optional[ModelInfo]:
    """Registry entry for ``model_id``, or None."""
    key = _BY_LOWER.get(model_id.lower())
    return _MODELS[key] if key else None


def canonical_id(model_id: str) -> Optional[str]:
    return _BY_LOWER.get(model_id.lower())


def available_models() -> List[str]:
    return list(_MODELS)
