"""
Inference port
===============
The embedding pipeline only needs a function from token ids + attention
mask to per-token vectors.  Any object with this shape can stand in for the
OpenVINO engine (tests use a deterministic fake).
"""

from typing import List, Protocol, Sequence

import numpy as np


class InferenceEngine(Protocol):
    """Runs the network on fixed-length token sequences."""

    @property
    def hidden_size(self) -> int:
        ...

    def infer(self, token_ids: np.ndarray, attention_mask: np.ndarray) -> np.ndarray:
        """(N,) ids and mask -> (N, hidden_size) float32 token vectors."""
        ...

    def infer_batch(
        self,
        token_ids: Sequence[np.ndarray],
        attention_masks: Sequence[np.ndarray],
    ) -> List[np.ndarray]:
        """B sequences of length N -> B arrays of shape (N, hidden_size)."""
        ...

    def close(self) -> None:
        ...
