"""
Exception hierarchy
====================
Every error raised on purpose by local_embedder derives from
``LocalEmbedderError`` so callers can catch the whole family at once.

Some classes also inherit a builtin (``FileNotFoundError``, ``ValueError``)
so existing ``except`` clauses written against the builtins keep working.
"""

from typing import Optional


class LocalEmbedderError(Exception):
    """Base class for all local_embedder errors."""


class VocabularyNotFoundError(LocalEmbedderError, FileNotFoundError):
    """The vocabulary file does not exist or cannot be read."""

    def __init__(self, path: str):
        super().__init__(f"Vocabulary file not found: {path}")
        self.path = path


class ModelNotFoundError(LocalEmbedderError, FileNotFoundError):
    """A model id could not be resolved, or its model file is missing."""

    def __init__(self, message: str, model_id: Optional[str] = None):
        super().__init__(message)
        self.model_id = model_id


class ModelDownloadError(LocalEmbedderError):
    """Downloading model files from the hub failed.

    ``status`` holds the HTTP status code when the server answered.
    """

    def __init__(
        self,
        message: str,
        model_id: Optional[str] = None,
        status: Optional[int] = None,
    ):
        super().__init__(message)
        self.model_id = model_id
        self.status = status


class InvalidConfigurationError(LocalEmbedderError, ValueError):
    """Unrecognised pooling mode, bad sequence length, and similar."""


class DimensionMismatchError(LocalEmbedderError, ValueError):
    """Two vectors passed to a vector operation differ in length."""

    def __init__(self, left: int, right: int):
        super().__init__(f"Vector lengths must match. Got {left} and {right}")
        self.left = left
        self.right = right


class EmptyVectorError(LocalEmbedderError, ValueError):
    """A vector passed to a vector operation has length 0."""

    def __init__(self, name: str = "vector"):
        super().__init__(f"{name} cannot be empty")
        self.name = name


class InferenceFailedError(LocalEmbedderError):
    """The inference engine raised; the original error is chained."""


class EmbeddingCancelledError(LocalEmbedderError):
    """A batch embedding call was cancelled between items."""
