"""
Pooling Strategies
===================
Collapse the per-token output of the network, shape (seq_len, hidden_dim),
into one sentence vector of shape (hidden_dim,).

Modes:
    MEAN -- average of the attended (mask == 1) token vectors.
            Used by sentence-transformers models such as all-MiniLM-L6-v2.
    CLS  -- the vector at position 0 (the [CLS] token).  Required by the
            BGE family.
    MAX  -- per-dimension maximum over the attended token vectors.

The mode is chosen once, when the model is loaded, through
``create_pooling_strategy()``.  Every strategy is stateless, so one instance
can be shared by any number of threads.
"""

import enum
import logging
from typing import Optional, Union

import numpy as np

from local_embedder.exceptions import InvalidConfigurationError
from local_embedder.utils import vector_ops

logger = logging.getLogger(__name__)

# Floor for the Mean denominator; an all-padding input pools to zeros
MASK_SUM_EPSILON = 1e-9


class PoolingMode(enum.Enum):
    MEAN = "mean"
    CLS = "cls"
    MAX = "max"

    @classmethod
    def parse(cls, value: Union["PoolingMode", str]) -> "PoolingMode":
        """Accept a PoolingMode or its name/value in any case."""
        if isinstance(value, PoolingMode):
            return value
        if isinstance(value, str):
            key = value.strip().lower()
            for mode in cls:
                if mode.value == key:
                    return mode
        raise InvalidConfigurationError(
            f"Unknown pooling mode {value!r}; expected one of "
            f"{', '.join(m.value for m in cls)}"
        )


def _as_matrix(token_embeddings: np.ndarray, seq_len: int) -> np.ndarray:
    matrix = np.asarray(token_embeddings, dtype=np.float32)
    if matrix.ndim == 1:
        # flat [seq_len * hidden_dim] buffer
        matrix = matrix.reshape(seq_len, -1)
    return matrix


def _output(out: Optional[np.ndarray], hidden_dim: int) -> np.ndarray:
    if out is None:
        return np.zeros(hidden_dim, dtype=np.float32)
    return out[:hidden_dim]


class PoolingStrategy:
    """Base class.  Subclasses implement ``pool``."""

    mode: PoolingMode

    def pool(
        self,
        token_embeddings: np.ndarray,
        attention_mask: np.ndarray,
        out: Optional[np.ndarray] = None,
    ) -> np.ndarray:
        """
        Pool token vectors into a sentence vector.

        Args:
            token_embeddings : (seq_len, hidden_dim) array, or a flat buffer
                               of seq_len * hidden_dim values
            attention_mask   : (seq_len,) array of 0/1
            out              : optional float32 buffer of at least hidden_dim
                               values to write into

        Returns:
            The pooled (hidden_dim,) float32 vector (a view of ``out`` when
            it was given).
        """
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class MeanPoolingStrategy(PoolingStrategy):
    mode = PoolingMode.MEAN

    def pool(self, token_embeddings, attention_mask, out=None):
        mask = np.asarray(attention_mask).reshape(-1)
        matrix = _as_matrix(token_embeddings, mask.shape[0])
        result = _output(out, matrix.shape[1])
        result.fill(0.0)

        # Only real tokens (mask == 1) contribute; padding would otherwise
        # dilute the average.
        attended = mask == 1
        mask_sum = float(np.count_nonzero(attended))
        if mask_sum > 0:
            vector_ops.add_in_place(result, matrix[: mask.shape[0]][attended].sum(axis=0))

        vector_ops.divide_in_place(result, max(mask_sum, MASK_SUM_EPSILON))
        return result


class ClsPoolingStrategy(PoolingStrategy):
    mode = PoolingMode.CLS

    def pool(self, token_embeddings, attention_mask, out=None):
        mask = np.asarray(attention_mask).reshape(-1)
        matrix = _as_matrix(token_embeddings, mask.shape[0])
        result = _output(out, matrix.shape[1])
        result[:] = matrix[0]
        return result


class MaxPoolingStrategy(PoolingStrategy):
    mode = PoolingMode.MAX

    def pool(self, token_embeddings, attention_mask, out=None):
        mask = np.asarray(attention_mask).reshape(-1)
        matrix = _as_matrix(token_embeddings, mask.shape[0])
        result = _output(out, matrix.shape[1])

        attended = matrix[: mask.shape[0]][mask == 1]
        if attended.shape[0] == 0:
            result.fill(0.0)
        else:
            np.max(attended, axis=0, out=result)
        return result


_STRATEGIES = {
    PoolingMode.MEAN: MeanPoolingStrategy,
    PoolingMode.CLS: ClsPoolingStrategy,
    PoolingMode.MAX: MaxPoolingStrategy,
}


def create_pooling_strategy(mode: Union[PoolingMode, str]) -> PoolingStrategy:
    """
    Build the strategy for ``mode``.

    Raises:
        InvalidConfigurationError : for anything outside MEAN / CLS / MAX
    """
    strategy = _STRATEGIES[PoolingMode.parse(mode)]()
    logger.debug("Pooling strategy: %r", strategy)
    return strategy
