"""
Pooling subpackage -- token vectors to sentence vectors.

Strategies:
    MeanPoolingStrategy -- masked average (default)
    ClsPoolingStrategy  -- first-token vector
    MaxPoolingStrategy  -- masked per-dimension maximum
"""

from local_embedder.pooling.strategies import (
    ClsPoolingStrategy,
    MaxPoolingStrategy,
    MeanPoolingStrategy,
    PoolingMode,
    PoolingStrategy,
    create_pooling_strategy,
)

__all__ = [
    "ClsPoolingStrategy",
    "MaxPoolingStrategy",
    "MeanPoolingStrategy",
    "PoolingMode",
    "PoolingStrategy",
    "create_pooling_strategy",
]
