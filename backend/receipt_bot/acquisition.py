"""Download uploaded receipts into a scoped temporary directory."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Awaitable, Callable

import httpx

from .errors import AcquisitionError, DownloadError

logger = logging.getLogger(__name__)

LinkResolver = Callable[[str], Awaitable[str]]


@dataclass(slots=True)
class TempDocument:
    """A downloaded receipt owned by exactly one session."""

    path: Path
    content: bytes = field(repr=False)
    _released: bool = field(default=False, repr=False)

    @property
    def released(self) -> bool:
        return self._released

    def release(self) -> None:
        """Delete the file once; later calls and missing files are no-ops."""
        if self._released:
            return
        self._released = True
        try:
            self.path.unlink(missing_ok=True)
        except OSError as exc:
            logger.error("Failed to remove temporary file %s: %s", self.path, exc)


class DocumentAcquirer:
    def __init__(
        self,
        upload_dir: Path,
        http_client: httpx.AsyncClient,
        resolve_link: LinkResolver,
    ) -> None:
        self.upload_dir = Path(upload_dir)
        self.http_client = http_client
        self.resolve_link = resolve_link

    def _target_path(self, user_id: str, suffix: str) -> Path:
        timestamp = time.time_ns() // 1_000_000
        candidate = self.upload_dir / f"receipt_{user_id}_{timestamp}{suffix}"
        while candidate.exists():
            timestamp += 1
            candidate = self.upload_dir / f"receipt_{user_id}_{timestamp}{suffix}"
        return candidate

    async def acquire(self, user_id: str, file_ref: str, suffix: str = ".jpg") -> TempDocument:
        if not file_ref:
            raise AcquisitionError("No file reference supplied.")

        try:
            url = await self.resolve_link(file_ref)
        except Exception as exc:  # noqa: BLE001
            raise DownloadError(f"Could not resolve download link: {exc}") from exc

        try:
            response = await self.http_client.get(url)
        except httpx.HTTPError as exc:
            raise DownloadError(f"Failed to download file: {exc}") from exc

        if not response.is_success:
            raise DownloadError(
                f"Failed to download file: {response.status_code} {response.reason_phrase}",
                status_code=response.status_code,
            )

        content = response.content
        self.upload_dir.mkdir(parents=True, exist_ok=True)
        path = self._target_path(user_id, suffix)
        try:
            await asyncio.to_thread(path.write_bytes, content)
        except OSError as exc:
            path.unlink(missing_ok=True)
            raise AcquisitionError(f"Failed to store downloaded file: {exc}") from exc
        logger.info("Stored receipt for user %s at %s (%d bytes)", user_id, path, len(content))
        return TempDocument(path=path, content=content)


def purge_stale_uploads(upload_dir: Path, max_age_seconds: float) -> int:
    """Remove receipts left behind by sessions that never reached teardown."""
    directory = Path(upload_dir)
    if not directory.is_dir():
        return 0
    cutoff = time.time() - max_age_seconds
    removed = 0
    for path in directory.glob("receipt_*"):
        try:
            if path.is_file() and path.stat().st_mtime < cutoff:
                path.unlink(missing_ok=True)
                removed += 1
        except OSError as exc:
            logger.warning("Could not purge stale upload %s: %s", path, exc)
    if removed:
        logger.info("Purged %d stale receipt uploads from %s", removed, directory)
    return removed
