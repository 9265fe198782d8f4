"""
HuggingFace Hub Downloader
===========================
Fetches model files from huggingface.co into a local cache that follows
the hub layout::

    <cache_dir>/models--{org}--{name}/snapshots/{revision}/

Files:
    required  -- model.onnx, config.json (taken from ``subfolder`` when
                 the repo keeps its ONNX export there, e.g. "onnx/")
    optional  -- vocab.txt, tokenizer.json, tokenizer_config.json,
                 special_tokens_map.json, 1_Pooling/config.json (repo root;
                 a 404 is skipped)

Resume support:
    Each file is first written to ``<name>.part``.  If a .part file exists
    from an interrupted run, the request carries ``Range: bytes=<size>-`` and
    the body is appended.  HTTP 416 means the .part file is already complete.
    The finished file is moved into place, so a file without the .part
    suffix is always complete.

Uses urllib from the standard library (no extra HTTP dependency).
"""

import http.client
import logging
import os
import urllib.error
import urllib.request
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional, Union

from local_embedder.exceptions import ModelDownloadError
from local_embedder.settings import default_cache_directory

logger = logging.getLogger(__name__)

HUGGINGFACE_BASE_URL = "https://huggingface.co"
USER_AGENT = "local-embedder/0.1"
CHUNK_SIZE = 81920
LFS_POINTER_PREFIX = "version https://git-lfs.github.com/spec/v1"

REQUIRED_FILES = ("model.onnx", "config.json")
OPTIONAL_FILES = (
    "vocab.txt",
    "tokenizer.json",
    "tokenizer_config.json",
    "special_tokens_map.json",
    "1_Pooling/config.json",
)


@dataclass
class DownloadProgress:
    file_name: str
    bytes_downloaded: int
    total_bytes: int

    @property
    def percent_complete(self) -> float:
        if self.total_bytes <= 0:
            return 0.0
        return self.bytes_downloaded / self.total_bytes * 100


ProgressCallback = Callable[[DownloadProgress], None]


def _parse_content_range_total(value: Optional[str]) -> Optional[int]:
    # "bytes 100-999/1000" -> 1000
    if not value or "/" not in value:
        return None
    total = value.rsplit("/", 1)[1].strip()
    return int(total) if total.isdigit() else None


class HuggingFaceDownloader:
    """
    Downloads embedding models from the HuggingFace hub with resume support.

    Usage:
        downloader = HuggingFaceDownloader()
        model_dir = downloader.download_model(
            "sentence-transformers/all-MiniLM-L6-v2", subfolder="onnx"
        )
    """

    def __init__(
        self,
        cache_dir: Optional[Union[str, Path]] = None,
        base_url: str = HUGGINGFACE_BASE_URL,
        timeout: float = 1800.0,
        token: Optional[str] = None,
    ):
        self.cache_dir = Path(cache_dir) if cache_dir else default_cache_directory()
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.token = token or os.environ.get("HF_TOKEN")

    def model_directory(self, repo_id: str, revision: str = "main") -> Path:
        sanitized = repo_id.replace("/", "--")
        return self.cache_dir / f"models--{sanitized}" / "snapshots" / revision

    def file_url(
        self,
        repo_id: str,
        filename: str,
        revision: str = "main",
        subfolder: Optional[str] = None,
    ) -> str:
        # /resolve/ follows LFS redirects to the real file
        prefix = f"{subfolder.strip('/')}/" if subfolder else ""
        return f"{self.base_url}/{repo_id}/resolve/{revision}/{prefix}{filename}"

    def download_model(
        self,
        repo_id: str,
        revision: str = "main",
        subfolder: Optional[str] = None,
        progress: Optional[ProgressCallback] = None,
    ) -> Path:
        """
        Download every file an embedding model needs and return its directory.

        Files already present in the cache are not fetched again.

        Raises:
            ModelDownloadError : if a required file cannot be downloaded
        """
        model_dir = self.model_directory(repo_id, revision)
        model_dir.mkdir(parents=True, exist_ok=True)
        logger.info("Resolving %s@%s into %s", repo_id, revision, model_dir)

        for filename in REQUIRED_FILES:
            destination = model_dir / filename
            if not destination.exists():
                self.download_file(
                    repo_id, filename, destination, revision, subfolder, progress
                )

        for filename in OPTIONAL_FILES:
            destination = model_dir / filename
            if destination.exists():
                continue
            try:
                self.download_file(repo_id, filename, destination, revision, None, progress)
            except ModelDownloadError as exc:
                if exc.status != 404:
                    raise
                logger.debug("Optional file %s not in %s, skipping", filename, repo_id)

        return model_dir

    def _open(self, url: str, start: int):
        request = urllib.request.Request(url, method="GET")
        request.add_header("User-Agent", USER_AGENT)
        if self.token:
            request.add_header("Authorization", f"Bearer {self.token}")
        if start > 0:
            request.add_header("Range", f"bytes={start}-")
        return urllib.request.urlopen(request, timeout=self.timeout)

    def download_file(
        self,
        repo_id: str,
        filename: str,
        destination: Union[str, Path],
        revision: str = "main",
        subfolder: Optional[str] = None,
        progress: Optional[ProgressCallback] = None,
    ) -> Path:
        """
        Download one file, resuming from ``<destination>.part`` if present.

        Raises:
            ModelDownloadError : on HTTP/network failure (``.status`` holds the
                                 HTTP code when there is one) or when the
                                 server returns a git-LFS pointer instead of
                                 the model
        """
        destination = Path(destination)
        destination.parent.mkdir(parents=True, exist_ok=True)
        part_path = destination.with_name(destination.name + ".part")
        start = part_path.stat().st_size if part_path.exists() else 0
        url = self.file_url(repo_id, filename, revision, subfolder)

        try:
            response = self._open(url, start)
        except urllib.error.HTTPError as exc:
            if exc.code == 416 and part_path.exists():
                # .part already holds the whole file
                os.replace(part_path, destination)
                return destination
            raise ModelDownloadError(
                f"HTTP {exc.code} downloading {url}",
                model_id=repo_id,
                status=exc.code,
            ) from exc
        except urllib.error.URLError as exc:
            raise ModelDownloadError(
                f"Cannot reach {url}: {exc.reason}", model_id=repo_id
            ) from exc
        except (OSError, http.client.HTTPException) as exc:
            raise ModelDownloadError(
                f"Cannot reach {url}: {exc}", model_id=repo_id
            ) from exc

        with response:
            status = getattr(response, "status", 200)
            length = int(response.headers.get("Content-Length") or 0)

            if status == 206:
                total = _parse_content_range_total(response.headers.get("Content-Range"))
                total_bytes = total if total is not None else start + length
                mode = "ab"
            else:
                # server ignored the Range header: start over
                start = 0
                total_bytes = length
                mode = "wb"

            downloaded = start
            try:
                head = b""
                if 0 < length < 1024 and filename.endswith(".onnx"):
                    head = response.read()
                    if head.decode("utf-8", errors="ignore").startswith(LFS_POINTER_PREFIX):
                        raise ModelDownloadError(
                            f"Received a git-LFS pointer for {filename} instead of the "
                            "model; check the network or redirect handling.",
                            model_id=repo_id,
                        )

                with open(part_path, mode) as f:
                    if head:
                        f.write(head)
                        downloaded += len(head)
                    while True:
                        chunk = response.read(CHUNK_SIZE)
                        if not chunk:
                            break
                        f.write(chunk)
                        downloaded += len(chunk)
                        if progress is not None:
                            progress(DownloadProgress(filename, downloaded, total_bytes))
            except (OSError, http.client.HTTPException) as exc:
                # the .part file is kept so the next attempt resumes from it
                raise ModelDownloadError(
                    f"Download of {url} interrupted after {downloaded} bytes: {exc}",
                    model_id=repo_id,
                ) from exc

        os.replace(part_path, destination)
        logger.info("Downloaded %s (%d bytes) -> %s", filename, downloaded, destination)
        return destination
