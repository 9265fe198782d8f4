"""
Model Loader
=============
Turns a model name or path into a ready ``EmbeddingModel``.

Accepted forms of ``model_id_or_path``:
    1. A local model file (``.onnx`` or OpenVINO ``.xml``).  ``vocab.txt``
       must sit in the same directory.
    2. A registry id such as "all-MiniLM-L6-v2" (case-insensitive).  The
       registry's pooling mode and lowercasing are applied, and its maximum
       length too unless the caller changed it from the default.
    3. A HuggingFace repo id such as "sentence-transformers/all-MiniLM-L6-v2".

Anything else raises ModelNotFoundError.  Loading either returns a fully
constructed model or raises; nothing half-built escapes.
"""

import dataclasses
import logging
from pathlib import Path
from typing import Optional, Tuple

from local_embedder.download import HuggingFaceDownloader
from local_embedder.download.hf_downloader import ProgressCallback
from local_embedder.embedding_model import EmbeddingModel
from local_embedder.exceptions import ModelNotFoundError, VocabularyNotFoundError
from local_embedder.inference import DeviceManager, OpenVINOInferenceEngine
from local_embedder.pooling import create_pooling_strategy
from local_embedder.settings import DEFAULT_MAX_SEQUENCE_LENGTH, EmbedderOptions
from local_embedder.tokenization import BertTokenizer
from local_embedder.utils import model_registry
from local_embedder.utils.model_registry import ModelInfo

logger = logging.getLogger(__name__)

LOCAL_MODEL_SUFFIXES = (".onnx", ".xml")


def _is_local_path(model_id_or_path: str) -> bool:
    path = Path(model_id_or_path)
    return path.is_file() or path.suffix.lower() in LOCAL_MODEL_SUFFIXES


def resolve_model_files(
    model_id_or_path: str,
    options: EmbedderOptions,
    progress: Optional[ProgressCallback] = None,
) -> Tuple[str, Path, Path, EmbedderOptions, Optional[ModelInfo]]:
    """
    Work out where the model and vocabulary live, downloading if needed.

    Returns:
        (model_id, model_path, vocab_path, effective_options, model_info)
    """
    if _is_local_path(model_id_or_path):
        model_path = Path(model_id_or_path)
        if not model_path.is_file():
            raise ModelNotFoundError(
                f"Model file not found: {model_path}", model_id=model_id_or_path
            )
        vocab_path = model_path.parent / "vocab.txt"
        if not vocab_path.is_file():
            raise VocabularyNotFoundError(str(vocab_path))
        return model_path.stem, model_path, vocab_path, options, None

    info = model_registry.get_model(model_id_or_path)
    if info is not None:
        overrides = {
            "pooling_mode": info.pooling_mode,
            "do_lower_case": info.do_lower_case,
        }
        if options.max_sequence_length == DEFAULT_MAX_SEQUENCE_LENGTH:
            overrides["max_sequence_length"] = info.max_sequence_length
        options = dataclasses.replace(options, **overrides)

        downloader = HuggingFaceDownloader(options.resolved_cache_dir())
        model_dir = downloader.download_model(
            info.repo_id, subfolder=info.subfolder, progress=progress
        )
        model_id = model_registry.canonical_id(model_id_or_path) or model_id_or_path
        return model_id, model_dir / "model.onnx", model_dir / "vocab.txt", options, info

    if "/" in model_id_or_path:
        downloader = HuggingFaceDownloader(options.resolved_cache_dir())
        model_dir = downloader.download_model(model_id_or_path, progress=progress)
        model_id = model_id_or_path.rsplit("/", 1)[-1]
        return model_id, model_dir / "model.onnx", model_dir / "vocab.txt", options, None

    raise ModelNotFoundError(
        f"Unknown model '{model_id_or_path}'. Use a known model id "
        f"({', '.join(model_registry.available_models())}), a HuggingFace repo "
        "id (e.g. 'sentence-transformers/all-MiniLM-L6-v2'), or a local path "
        "to an ONNX / OpenVINO model file.",
        model_id=model_id_or_path,
    )


def load(
    model_id_or_path: str,
    options: Optional[EmbedderOptions] = None,
    progress: Optional[ProgressCallback] = None,
    device_manager: Optional[DeviceManager] = None,
) -> EmbeddingModel:
    """
    Load an embedding model by registry id, hub repo id, or local path.

    Args:
        model_id_or_path : see module docstring
        options          : EmbedderOptions (defaults if None)
        progress         : callback receiving DownloadProgress updates
        device_manager   : reuse an existing DeviceManager / openvino.Core

    Raises:
        ModelNotFoundError        : unknown id or missing model file
        VocabularyNotFoundError   : vocab.txt missing
        ModelDownloadError        : the hub download failed
        InvalidConfigurationError : bad options (e.g. pooling mode)
        InferenceFailedError      : OpenVINO could not compile the model
    """
    options = options or EmbedderOptions()
    model_id, model_path, vocab_path, options, info = resolve_model_files(
        model_id_or_path, options, progress
    )

    if not model_path.is_file():
        raise ModelNotFoundError(f"Model file not found: {model_path}", model_id)
    if not vocab_path.is_file():
        raise VocabularyNotFoundError(str(vocab_path))

    pooling = create_pooling_strategy(options.pooling_mode)
    tokenizer = BertTokenizer.from_vocab(vocab_path, do_lower_case=options.do_lower_case)
    engine = OpenVINOInferenceEngine.create(
        model_path, device=options.device, device_manager=device_manager
    )

    logger.info(
        "Loaded %s: dim=%d pooling=%s max_len=%d device=%s",
        model_id,
        engine.hidden_size,
        pooling.mode.value,
        options.max_sequence_length,
        engine.device,
    )
    return EmbeddingModel(model_id, engine, tokenizer, pooling, options, model_info=info)
