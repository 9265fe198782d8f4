"""
Download subpackage -- model acquisition from the HuggingFace hub.
"""

from local_embedder.download.hf_downloader import (
    DownloadProgress,
    HuggingFaceDownloader,
)

__all__ = ["DownloadProgress", "HuggingFaceDownloader"]
