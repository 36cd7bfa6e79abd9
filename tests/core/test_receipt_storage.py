"""
Tests for receipt storage: validation, scoped staging and the orphan listing.
"""

import os
import time

import pytest

from app.core.storage import ReceiptStorage, ReceiptValidationError

PNG = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32
JPEG = b"\xff\xd8\xff\xe0" + b"\x00" * 32
PDF = b"%PDF-1.4\n" + b"0" * 32


class TestValidate:
    def test_accepts_matching_signatures(self, receipt_storage):
        assert receipt_storage.validate(PNG, "image/png") == "image/png"
        assert receipt_storage.validate(JPEG, "image/jpeg") == "image/jpeg"
        assert receipt_storage.validate(PDF, "application/pdf; charset=binary") == "application/pdf"

    def test_rejects_unsupported_type(self, receipt_storage):
        with pytest.raises(ReceiptValidationError, match="JPEG, PNG and PDF"):
            receipt_storage.validate(b"GIF89a", "image/gif")

    def test_rejects_missing_type(self, receipt_storage):
        with pytest.raises(ReceiptValidationError):
            receipt_storage.validate(PNG, None)

    def test_rejects_empty_file(self, receipt_storage):
        with pytest.raises(ReceiptValidationError, match="empty"):
            receipt_storage.validate(b"", "image/png")

    def test_rejects_oversize_file(self, receipt_storage):
        content = PNG + b"\x00" * receipt_storage.max_bytes
        with pytest.raises(ReceiptValidationError, match="at most"):
            receipt_storage.validate(content, "image/png")

    def test_rejects_signature_mismatch(self, receipt_storage):
        with pytest.raises(ReceiptValidationError, match="does not match"):
            receipt_storage.validate(PDF, "image/png")


@pytest.mark.asyncio
async def test_save_writes_file(receipt_storage, upload_factory):
    stored = await receipt_storage.save(upload_factory(PDF, "odeme.pdf", "application/pdf"))

    assert stored.original_name == "odeme.pdf"
    assert stored.mimetype == "application/pdf"
    assert stored.size == len(PDF)
    assert stored.filename.endswith(".pdf")
    with open(stored.path, "rb") as f:
        assert f.read() == PDF


@pytest.mark.asyncio
async def test_stage_deletes_unless_kept(receipt_storage, upload_factory):
    async with receipt_storage.stage(upload_factory()) as staged:
        path = staged.receipt.path
        assert os.path.exists(path)
    assert not os.path.exists(path)

    async with receipt_storage.stage(upload_factory()) as staged:
        staged.keep()
    assert os.path.exists(staged.receipt.path)


@pytest.mark.asyncio
async def test_stage_deletes_on_error(receipt_storage, upload_factory):
    with pytest.raises(RuntimeError):
        async with receipt_storage.stage(upload_factory()) as staged:
            path = staged.receipt.path
            raise RuntimeError("boom")

    assert not os.path.exists(path)


@pytest.mark.asyncio
async def test_delete_refuses_paths_outside_storage(receipt_storage, tmp_path):
    outside = tmp_path / "keep-me.txt"
    outside.write_text("important")

    assert await receipt_storage.delete(outside) is False
    assert outside.exists()


@pytest.mark.asyncio
async def test_delete_missing_file_is_not_an_error(receipt_storage):
    assert await receipt_storage.delete(receipt_storage.directory / "gone.png") is False


@pytest.mark.asyncio
async def test_list_older_than(receipt_storage, upload_factory):
    old = await receipt_storage.save(upload_factory())
    fresh = await receipt_storage.save(upload_factory())

    two_days_ago = time.time() - 2 * 86400
    os.utime(old.path, (two_days_ago, two_days_ago))

    paths = await receipt_storage.list_older_than(86400)

    assert paths == [old.path]
    assert fresh.path not in paths


@pytest.mark.asyncio
async def test_list_older_than_without_directory(tmp_path):
    storage = ReceiptStorage(tmp_path / "missing", 1024, ("image/png",))
    assert await storage.list_older_than(0) == []
