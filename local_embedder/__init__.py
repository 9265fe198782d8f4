"""
local_embedder -- local sentence embeddings on OpenVINO.

This package contains the complete text-to-vector pipeline:
    tokenization -> WordPiece tokenizer (BERT vocab.txt)
    inference    -> OpenVINO engine and device selection
    pooling      -> mean / cls / max sentence pooling
    download     -> HuggingFace hub downloader with resume
    utils        -> vector math, model registry, scratch buffers

Quick start:
    import local_embedder

    model = local_embedder.load("all-MiniLM-L6-v2")
    a = model.embed("The cat sat on the mat")
    b = model.embed("A cat was sitting on a mat")
    local_embedder.cosine_similarity(a, b)
"""

from typing import List

from local_embedder.embedding_model import EmbeddingModel
from local_embedder.exceptions import (
    DimensionMismatchError,
    EmbeddingCancelledError,
    EmptyVectorError,
    InferenceFailedError,
    InvalidConfigurationError,
    LocalEmbedderError,
    ModelDownloadError,
    ModelNotFoundError,
    VocabularyNotFoundError,
)
from local_embedder.loader import load
from local_embedder.pooling import PoolingMode
from local_embedder.settings import EmbedderOptions
from local_embedder.utils import model_registry
from local_embedder.utils.vector_ops import (
    cosine_similarity,
    dot_product,
    euclidean_distance,
)

__version__ = "0.1.0"


def get_available_models() -> List[str]:
    """Registry ids that ``load()`` can download by name."""
    return model_registry.available_models()


__all__ = [
    "DimensionMismatchError",
    "EmbedderOptions",
    "EmbeddingCancelledError",
    "EmbeddingModel",
    "EmptyVectorError",
    "InferenceFailedError",
    "InvalidConfigurationError",
    "LocalEmbedderError",
    "ModelDownloadError",
    "ModelNotFoundError",
    "PoolingMode",
    "VocabularyNotFoundError",
    "cosine_similarity",
    "dot_product",
    "euclidean_distance",
    "get_available_models",
    "load",
]
