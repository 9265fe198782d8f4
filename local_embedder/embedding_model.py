"""
Embedding Model
================
Text in, sentence vectors out.

Pipeline (per text):
    1. **Tokenize**  -- BertTokenizer.encode() to the configured fixed
       max_sequence_length: [CLS] ... [SEP] [PAD]...
    2. **Infer**     -- the inference engine returns one vector per token,
       shape (seq_len, hidden_dim).
    3. **Pool**      -- the configured PoolingStrategy collapses the token
       vectors into one (hidden_dim,) vector using the attention mask.
    4. **Normalise** -- optional L2 normalisation so that dot product equals
       cosine similarity.

Batches:
    Small batches (at most ``parallel_threshold`` texts) run item by item on
    the calling thread.  Larger batches fan out over a ThreadPoolExecutor.
    Every item writes only its own pre-allocated result slot, so results
    come back in input order whatever order the workers finish in.  Pooling
    scratch space is borrowed from a BufferPool per item and always returned.

Cancellation:
    ``embed_batch`` accepts a ``threading.Event``.  It is checked before each
    item starts; once set, remaining items are skipped and
    EmbeddingCancelledError is raised.
"""

import logging
import os
import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Dict, List, Optional, Sequence

import numpy as np
from tqdm import tqdm

from local_embedder.exceptions import (
    EmbeddingCancelledError,
    InferenceFailedError,
    LocalEmbedderError,
)
from local_embedder.inference.base import InferenceEngine
from local_embedder.pooling import PoolingStrategy
from local_embedder.settings import EmbedderOptions
from local_embedder.tokenization import BertTokenizer, EncodedSequence
from local_embedder.utils import vector_ops
from local_embedder.utils.buffer_pool import BufferPool
from local_embedder.utils.model_registry import ModelInfo

logger = logging.getLogger(__name__)


class EmbeddingModel:
    """
    A loaded embedding model.

    Usage:
        with local_embedder.load("all-MiniLM-L6-v2") as model:
            vec = model.embed("Hello world")              # (384,)
            vecs = model.embed_batch(["a", "b", "c"])     # list of (384,)

    The tokenizer vocabulary, the pooling strategy and the options are
    read-only after construction, so one model can serve many threads.
    """

    def __init__(
        self,
        model_id: str,
        engine: InferenceEngine,
        tokenizer: BertTokenizer,
        pooling_strategy: PoolingStrategy,
        options: Optional[EmbedderOptions] = None,
        model_info: Optional[ModelInfo] = None,
    ):
        self.model_id = model_id
        self._engine = engine
        self._tokenizer = tokenizer
        self._pooling = pooling_strategy
        self._options = options or EmbedderOptions()
        self._model_info = model_info
        self._buffers = BufferPool()
        self._closed = False

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def dimensions(self) -> int:
        """Embedding vector dimensionality (the model's hidden size)."""
        return self._engine.hidden_size

    @property
    def options(self) -> EmbedderOptions:
        return self._options

    @property
    def tokenizer(self) -> BertTokenizer:
        return self._tokenizer

    @property
    def model_info(self) -> Optional[ModelInfo]:
        """Registry entry when the model was loaded by registry id."""
        return self._model_info

    # ------------------------------------------------------------------
    # Embedding
    # ------------------------------------------------------------------

    def embed(self, text: str) -> np.ndarray:
        """Embed one text; returns a (dimensions,) float32 vector."""
        self._ensure_open()
        encoded = self._tokenizer.encode(text, self._options.max_sequence_length)
        token_vectors = self._infer(encoded)
        result = np.zeros(self.dimensions, dtype=np.float32)
        self._pooling.pool(token_vectors, encoded.attention_mask, out=result)
        if self._options.normalize_embeddings:
            vector_ops.normalize_l2_in_place(result)
        return result

    def embed_batch(
        self,
        texts: Sequence[str],
        cancel_event: Optional[threading.Event] = None,
    ) -> List[np.ndarray]:
        """
        Embed many texts.

        Args:
            texts        : strings to embed
            cancel_event : optional; when set, the batch stops at the next
                           item boundary

        Returns:
            One (dimensions,) float32 vector per text, in input order.

        Raises:
            EmbeddingCancelledError : if ``cancel_event`` was set
            InferenceFailedError    : if the engine failed on any item
        """
        self._ensure_open()
        if len(texts) == 0:
            return []

        encoded = self._tokenizer.encode_batch(texts, self._options.max_sequence_length)
        results: List[Optional[np.ndarray]] = [None] * len(encoded)

        start = time.perf_counter()
        with tqdm(
            total=len(encoded),
            desc="Embedding",
            unit="text",
            disable=not self._options.show_progress,
        ) as bar:
            if len(encoded) <= self._options.parallel_threshold:
                for i, item in enumerate(encoded):
                    results[i] = self._embed_item(item, cancel_event)
                    bar.update(1)
            else:
                self._embed_parallel(encoded, results, cancel_event, bar)

        logger.debug(
            "Embedded %d texts in %.1f ms",
            len(encoded),
            (time.perf_counter() - start) * 1000,
        )
        return results  # type: ignore[return-value]

    def embed_array(
        self,
        texts: Sequence[str],
        cancel_event: Optional[threading.Event] = None,
    ) -> np.ndarray:
        """Like ``embed_batch`` but returns a (len(texts), dimensions) matrix."""
        vectors = self.embed_batch(texts, cancel_event=cancel_event)
        if not vectors:
            return np.empty((0, self.dimensions), dtype=np.float32)
        return np.stack(vectors).astype(np.float32, copy=False)

    def warmup(self) -> None:
        """Run one short inference so lazy compilation happens now."""
        self.embed("warmup")
        logger.info("Model %s warmed up", self.model_id)

    def benchmark(self, texts: Sequence[str], n_runs: int = 5) -> Dict[str, float]:
        """
        Time ``embed_batch`` over ``texts``.

        One untimed warmup run precedes ``n_runs`` timed runs.
        """
        self.embed_batch(texts)
        times = []
        for _ in range(n_runs):
            start = time.perf_counter()
            self.embed_batch(texts)
            times.append(time.perf_counter() - start)

        times_arr = np.array(times)
        return {
            "n_texts": len(texts),
            "n_runs": n_runs,
            "mean_ms": float(times_arr.mean() * 1000),
            "std_ms": float(times_arr.std() * 1000),
            "min_ms": float(times_arr.min() * 1000),
            "max_ms": float(times_arr.max() * 1000),
            "texts_per_sec": float(len(texts) / times_arr.mean()) if times_arr.mean() > 0 else 0.0,
        }

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _infer(self, encoded: EncodedSequence) -> np.ndarray:
        try:
            return self._engine.infer(encoded.token_ids, encoded.attention_mask)
        except LocalEmbedderError:
            raise
        except Exception as exc:
            raise InferenceFailedError(f"Inference failed: {exc}") from exc

    def _embed_item(
        self,
        encoded: EncodedSequence,
        cancel_event: Optional[threading.Event],
    ) -> np.ndarray:
        if cancel_event is not None and cancel_event.is_set():
            raise EmbeddingCancelledError("Embedding batch was cancelled")

        token_vectors = self._infer(encoded)
        with self._buffers.acquire(self.dimensions) as scratch:
            pooled = self._pooling.pool(token_vectors, encoded.attention_mask, out=scratch)
            if self._options.normalize_embeddings:
                vector_ops.normalize_l2_in_place(pooled)
            return pooled.copy()

    def _embed_parallel(
        self,
        encoded: List[EncodedSequence],
        results: List[Optional[np.ndarray]],
        cancel_event: Optional[threading.Event],
        bar: tqdm,
    ) -> None:
        workers = min(self._options.max_workers or os.cpu_count() or 1, len(encoded))
        logger.debug("Fanning out %d texts over %d workers", len(encoded), workers)

        with ThreadPoolExecutor(max_workers=workers) as pool:
            futures = {
                pool.submit(self._embed_item, item, cancel_event): i
                for i, item in enumerate(encoded)
            }
            try:
                for future in as_completed(futures):
                    results[futures[future]] = future.result()
                    bar.update(1)
            except BaseException:
                for future in futures:
                    future.cancel()
                raise

    def _ensure_open(self) -> None:
        if self._closed:
            raise LocalEmbedderError(f"Model {self.model_id} has been closed")

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def close(self) -> None:
        if not self._closed:
            self._engine.close()
            self._closed = True
            logger.info("Closed model %s", self.model_id)

    def __enter__(self) -> "EmbeddingModel":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def __repr__(self) -> str:
        return (
            f"EmbeddingModel(model_id={self.model_id!r}, dimensions={self.dimensions}, "
            f"pooling={self._pooling.mode.value})"
        )
