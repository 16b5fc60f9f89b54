# =============================================================
# model_store.py
# -------------------------------------------------------------
# Local model artifact:
#   - status (present / size / sha256) of the GGUF file in the cache dir
#   - resumable download via HTTP Range into <name>.download
#   - checksum check, then atomic rename into place
# =============================================================

from __future__ import annotations
import hashlib
import logging
import os
import threading
import time
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import requests

from harmony_chat.errors import DownloadCancelled, ModelStoreError

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1 << 20
PROGRESS_INTERVAL_S = 0.5


def validate_model_name(name: str) -> str:
    """Reject anything that is not a bare file name (no path traversal)."""
    if not name or name != os.path.basename(name) or ".." in name or "/" in name or "\\" in name:
        raise ModelStoreError("Invalid model name")
    return name


@dataclass
class ModelStatus:
    present: bool
    size: int
    checksum_ok: bool
    progress: float
    path: Optional[str] = None

    def to_json(self) -> Dict[str, Any]:
        out = {
            "present": self.present,
            "size": self.size,
            "checksumOk": self.checksum_ok,
            "progress": self.progress,
        }
        if self.path is not None:
            out["path"] = self.path
        return out


@dataclass
class DownloadProgress:
    downloaded: int
    total: int
    percentage: float
    speed: float
    eta: float

    def to_json(self) -> Dict[str, Any]:
        return asdict(self)


class ModelStore:
    def __init__(self, cache_dir: str, model_name: str):
        self.cache_dir = Path(cache_dir).resolve()
        self.model_name = validate_model_name(model_name)

        self._cancel = threading.Event()
        self._progress: Optional[DownloadProgress] = None
        self._checksums: Dict[Tuple[str, int, int, str], bool] = {}

    # -------------------------
    # Paths
    # -------------------------
    def ensure_cache_dir(self) -> None:
        self.cache_dir.mkdir(parents=True, exist_ok=True)

    def _inside_cache(self, path: Path) -> Path:
        if path.resolve().parent != self.cache_dir:
            raise ModelStoreError("Invalid model path")
        return path

    def get_model_path(self) -> str:
        return str(self._inside_cache(self.cache_dir / self.model_name))

    def get_temp_path(self) -> str:
        return str(self._inside_cache(self.cache_dir / f"{self.model_name}.download"))

    # -------------------------
    # Status
    # -------------------------
    def verify_checksum(self, file_path: str, expected_sha256: str) -> bool:
        stat = os.stat(file_path)
        key = (file_path, stat.st_size, stat.st_mtime_ns, expected_sha256.lower())
        if key in self._checksums:
            return self._checksums[key]

        h = hashlib.sha256()
        with open(file_path, "rb") as f:
            for block in iter(lambda: f.read(CHUNK_SIZE), b""):
                h.update(block)
        ok = h.hexdigest().lower() == expected_sha256.lower()
        self._checksums[key] = ok
        return ok

    def get_status(self, expected_sha256: Optional[str] = None) -> ModelStatus:
        model_path = self.get_model_path()
        if not os.path.exists(model_path):
            logger.info("Model not found at %s", model_path)
            return ModelStatus(present=False, size=0, checksum_ok=False, progress=0)

        checksum_ok = True
        if expected_sha256:
            checksum_ok = self.verify_checksum(model_path, expected_sha256)

        return ModelStatus(
            present=True,
            size=os.path.getsize(model_path),
            checksum_ok=checksum_ok,
            progress=100,
            path=model_path,
        )

    # -------------------------
    # Download
    # -------------------------
    def get_current_progress(self) -> Optional[DownloadProgress]:
        return self._progress

    def cancel_download(self) -> None:
        self._cancel.set()

    def cleanup_partial_download(self) -> None:
        temp_path = self.get_temp_path()
        if os.path.exists(temp_path):
            os.remove(temp_path)

    def download(self, url: str, expected_sha256: Optional[str] = None, timeout: int = 30) -> None:
        """
        Download `url` into the cache, resuming a previous partial file.

        A cancelled download keeps its partial file so the next call resumes;
        any other failure removes it.
        """
        self.ensure_cache_dir()
        self._cancel.clear()
        temp_path = self.get_temp_path()
        model_path = self.get_model_path()

        start_byte = os.path.getsize(temp_path) if os.path.exists(temp_path) else 0
        if start_byte:
            logger.info("Found partial download, resuming from byte %d", start_byte)
        headers = {"Range": f"bytes={start_byte}-"} if start_byte else {}

        try:
            with requests.get(url, headers=headers, stream=True, timeout=timeout) as resp:
                if resp.status_code not in (200, 206):
                    raise ModelStoreError(f"HTTP {resp.status_code}: {resp.reason}")
                if resp.status_code == 200 and start_byte:
                    # server ignored the Range header; start over
                    start_byte = 0
                self._write_body(resp, temp_path, start_byte)
        except DownloadCancelled:
            self._progress = None
            raise
        except ModelStoreError:
            self._progress = None
            self.cleanup_partial_download()
            raise
        except requests.RequestException as e:
            self._progress = None
            self.cleanup_partial_download()
            raise ModelStoreError(str(e)) from e

        if expected_sha256 and not self.verify_checksum(temp_path, expected_sha256):
            os.remove(temp_path)
            self._progress = None
            raise ModelStoreError("Checksum verification failed")

        os.replace(temp_path, model_path)
        self._progress = None
        logger.info("Model download complete: %s", model_path)

    def _write_body(self, resp: requests.Response, temp_path: str, start_byte: int) -> None:
        total = int(resp.headers.get("content-length", 0)) + start_byte
        downloaded = start_byte
        last_time = time.monotonic()
        last_downloaded = downloaded

        with open(temp_path, "ab" if start_byte else "wb") as f:
            for chunk in resp.iter_content(chunk_size=CHUNK_SIZE):
                if self._cancel.is_set():
                    raise DownloadCancelled("Download cancelled")
                if not chunk:
                    continue
                f.write(chunk)
                downloaded += len(chunk)

                now = time.monotonic()
                elapsed = now - last_time
                if elapsed >= PROGRESS_INTERVAL_S:
                    speed = (downloaded - last_downloaded) / elapsed
                    self._progress = DownloadProgress(
                        downloaded=downloaded,
                        total=total,
                        percentage=(downloaded / total * 100) if total else 0.0,
                        speed=speed,
                        eta=((total - downloaded) / speed) if speed else 0.0,
                    )
                    last_time, last_downloaded = now, downloaded
