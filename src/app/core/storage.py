"""
Receipt Storage

Stores uploaded payment receipts on local disk. Uploads are validated for size,
declared MIME type and leading signature bytes before they are written.

Blocking filesystem calls run in worker threads so the event loop stays free.

Usage:
    async with storage.stage(upload) as staged:
        ...persist a record referencing staged.receipt.path...
        staged.keep()

The stored file is deleted when the block exits unless keep() was called.
"""

import asyncio
import logging
import secrets
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path

from fastapi import Request, UploadFile

from app.core.config import Settings

logger = logging.getLogger(__name__)

# Leading bytes expected for each allowed content type
FILE_SIGNATURES: dict[str, tuple[bytes, ...]] = {
    "application/pdf": (b"%PDF",),
    "image/png": (b"\x89PNG\r\n\x1a\n",),
    "image/jpeg": (b"\xff\xd8\xff",),
    "image/jpg": (b"\xff\xd8\xff",),
}

EXTENSIONS: dict[str, str] = {
    "application/pdf": ".pdf",
    "image/png": ".png",
    "image/jpeg": ".jpg",
    "image/jpg": ".jpg",
}


class ReceiptValidationError(ValueError):
    """Raised when an uploaded receipt fails validation."""


@dataclass(frozen=True)
class StoredReceipt:
    """Descriptor of a receipt written to storage."""

    filename: str
    original_name: str
    path: str
    mimetype: str
    size: int


class StagedReceipt:
    """Handle yielded by ReceiptStorage.stage()."""

    def __init__(self, receipt: StoredReceipt):
        self.receipt = receipt
        self._kept = False

    def keep(self) -> None:
        """Mark the file as permanently referenced so it survives the stage block."""
        self._kept = True

    @property
    def kept(self) -> bool:
        return self._kept


class ReceiptStorage:
    """Validates, stores and deletes payment receipt files."""

    def __init__(
        self,
        directory: str | Path,
        max_bytes: int,
        allowed_types: tuple[str, ...] | list[str],
    ):
        self.directory = Path(directory)
        self.max_bytes = max_bytes
        self.allowed_types = tuple(t.lower() for t in allowed_types)

    @classmethod
    def from_settings(cls, settings: Settings) -> "ReceiptStorage":
        return cls(
            directory=settings.receipt_dir,
            max_bytes=settings.receipt_max_bytes,
            allowed_types=settings.receipt_allowed_types,
        )

    def validate(self, content: bytes, content_type: str | None) -> str:
        """
        Check a receipt's size, declared type and signature.

        Returns:
            The normalised MIME type.

        Raises:
            ReceiptValidationError: If any check fails.
        """
        mimetype = (content_type or "").split(";")[0].strip().lower()

        if mimetype not in self.allowed_types:
            raise ReceiptValidationError(
                "Only JPEG, PNG and PDF files are accepted for the payment receipt."
            )
        if not content:
            raise ReceiptValidationError("The payment receipt file is empty.")
        if len(content) > self.max_bytes:
            limit_mb = self.max_bytes / (1024 * 1024)
            raise ReceiptValidationError(f"The payment receipt must be at most {limit_mb:g}MB.")

        signatures = FILE_SIGNATURES.get(mimetype, ())
        if signatures and not content.startswith(signatures):
            raise ReceiptValidationError(
                "The payment receipt content does not match its declared file type."
            )

        return mimetype

    def _new_filename(self, mimetype: str) -> str:
        suffix = secrets.randbelow(1_000_000_000)
        return f"payment-receipt-{int(time.time() * 1000)}-{suffix}{EXTENSIONS[mimetype]}"

    def _write(self, path: Path, content: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(content)

    async def save(self, upload: UploadFile) -> StoredReceipt:
        """Validate and write an uploaded receipt."""
        # Read one byte past the limit so oversize files are detected without buffering them whole
        content = await upload.read(self.max_bytes + 1)
        mimetype = self.validate(content, upload.content_type)

        filename = self._new_filename(mimetype)
        path = self.directory / filename
        await asyncio.to_thread(self._write, path, content)

        logger.info(f"Stored payment receipt {filename} ({len(content)} bytes)")
        return StoredReceipt(
            filename=filename,
            original_name=upload.filename or filename,
            path=str(path),
            mimetype=mimetype,
            size=len(content),
        )

    def _resolve_inside(self, path: str | Path) -> Path | None:
        candidate = Path(path).resolve()
        root = self.directory.resolve()
        if candidate == root or root not in candidate.parents:
            return None
        return candidate

    def _unlink(self, path: Path) -> bool:
        try:
            path.unlink()
            return True
        except FileNotFoundError:
            return False

    async def delete(self, path: str | Path) -> bool:
        """
        Delete a stored receipt.

        Missing files are not an error. Paths outside the receipt directory are refused.

        Returns:
            True if a file was removed.
        """
        resolved = self._resolve_inside(path)
        if resolved is None:
            logger.warning(f"Refusing to delete file outside receipt storage: {path}")
            return False

        removed = await asyncio.to_thread(self._unlink, resolved)
        if removed:
            logger.info(f"Deleted payment receipt {resolved.name}")
        return removed

    async def discard(self, path: str | Path | None) -> None:
        """Best-effort delete; failures are logged and swallowed."""
        if not path:
            return
        try:
            await self.delete(path)
        except OSError as e:
            logger.error(f"Failed to delete payment receipt {path}: {e}")

    @asynccontextmanager
    async def stage(self, upload: UploadFile) -> AsyncIterator[StagedReceipt]:
        """
        Store a receipt for the duration of a block.

        The file is deleted on every exit path unless the handle's keep() was called.
        """
        staged = StagedReceipt(await self.save(upload))
        try:
            yield staged
        finally:
            if not staged.kept:
                await self.discard(staged.receipt.path)

    def _list_older_than(self, cutoff: float) -> list[str]:
        if not self.directory.is_dir():
            return []
        return [
            str(self.directory / entry.name)
            for entry in self.directory.iterdir()
            if entry.is_file() and entry.stat().st_mtime < cutoff
        ]

    async def list_older_than(self, age_seconds: float) -> list[str]:
        """Return stored receipt paths last modified more than age_seconds ago."""
        return await asyncio.to_thread(self._list_older_than, time.time() - age_seconds)


def get_receipt_storage(request: Request) -> ReceiptStorage:
    """FastAPI dependency returning the application's shared ReceiptStorage."""
    return request.app.state.receipt_storage
