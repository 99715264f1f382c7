from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Callable, Optional
from urllib.parse import unquote, urlparse

import requests

from pdf_chat.exception.custom_exception import NotFound, UpstreamFailure, ValidationFailure
from pdf_chat.logger import GLOBAL_LOGGER as log

CHUNK_SIZE = 1024 * 1024  # 1 MiB per write

ProgressCallback = Callable[[int], None]


@dataclass(frozen=True)
class StoredObject:
    download_url: str
    storage_path: str
    size: int


def _safe_segment(value: str) -> str:
    # keeps user / document ids usable as path segments
    cleaned = re.sub(r"[^a-zA-Z0-9_\-]", "_", value or "")
    if not cleaned:
        raise ValidationFailure("Empty path segment for document storage")
    return cleaned


class LocalDocumentStorage:
    """
    Durable object storage for uploaded documents on the local filesystem.

    Layout mirrors a bucket: <base_dir>/users/<user_id>/files/<document_id>.
    The returned download URL is a file:// URI; `fetch_bytes` also accepts
    http(s) URLs so documents hosted elsewhere can be ingested.
    """

    def __init__(self, base_dir: str | Path, http_timeout: float = 30.0):
        self.base_dir = Path(base_dir).resolve()
        self.base_dir.mkdir(parents=True, exist_ok=True)
        self.http_timeout = http_timeout

    def object_path(self, user_id: str, document_id: str) -> Path:
        return (
            self.base_dir
            / "users"
            / _safe_segment(user_id)
            / "files"
            / _safe_segment(document_id)
        )

    def save(
        self,
        user_id: str,
        document_id: str,
        stream: BinaryIO,
        total_size: Optional[int] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> StoredObject:
        """
        Write the stream chunk by chunk, reporting integer progress percentages.
        A failed write is logged and leaves the upload incomplete; nothing retries it.
        """
        target = self.object_path(user_id, document_id)
        target.parent.mkdir(parents=True, exist_ok=True)

        written = 0
        last_percent = -1
        try:
            with open(target, "wb") as f:
                while True:
                    chunk = stream.read(CHUNK_SIZE)
                    if not chunk:
                        break
                    f.write(chunk)
                    written += len(chunk)

                    if total_size and on_progress:
                        percent = min(100, round(written / total_size * 100))
                        if percent != last_percent:
                            on_progress(percent)
                            last_percent = percent
        except OSError as e:
            log.error(
                "Error uploading the file | document_id=%s | written=%d | error=%s",
                document_id,
                written,
                str(e),
            )
            raise UpstreamFailure("Document upload failed", e) from e

        if on_progress and last_percent != 100:
            on_progress(100)

        stored = StoredObject(
            download_url=target.as_uri(),
            storage_path=str(target.relative_to(self.base_dir)),
            size=written,
        )
        log.info(
            "Document stored | document_id=%s | path=%s | size=%d",
            document_id,
            stored.storage_path,
            written,
        )
        return stored

    def fetch_bytes(self, url: str) -> bytes:
        """Return the raw bytes stored at `url`."""
        if not url:
            raise NotFound("Download URL not found")

        parsed = urlparse(url)

        if parsed.scheme == "file":
            path = Path(unquote(parsed.path))
            if not path.exists():
                raise NotFound(f"Stored document not found at {url}")
            try:
                return path.read_bytes()
            except OSError as e:
                raise UpstreamFailure("Failed to read stored document", e) from e

        if parsed.scheme in ("http", "https"):
            try:
                response = requests.get(url, timeout=self.http_timeout)
            except requests.exceptions.RequestException as e:
                log.error("Document download failed | url=%s | error=%s", url, str(e))
                raise UpstreamFailure("Failed to download document", e) from e

            if response.status_code == 404:
                raise NotFound(f"Stored document not found at {url}")
            try:
                response.raise_for_status()
            except requests.exceptions.HTTPError as e:
                raise UpstreamFailure("Failed to download document", e) from e
            return response.content

        raise ValidationFailure(f"Unsupported download URL scheme: {parsed.scheme!r}")
